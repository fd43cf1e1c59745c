"""certrenewer module."""

import sys

from .certrenewer import RenewalManager, main
from .errors import ErrorCode, FatalError, RenewalError, WarningCode
from .orchestrator import RenewalOrchestrator
from .remote import RemoteCertificateSource, check_for_update
from .services import ServiceRestarter
from .types import CertificateJob, JobOutcome, RenewalAggregate

__all__ = ['RenewalManager', 'RenewalOrchestrator', 'RemoteCertificateSource', 'ServiceRestarter', 'CertificateJob',
           'JobOutcome', 'RenewalAggregate', 'RenewalError', 'FatalError', 'ErrorCode', 'WarningCode', 'check_for_update']


def run() -> int:
    return main(sys.argv[1:])
