import collections
import enum


CertificateJob = collections.namedtuple('CertificateJob', ['name', 'private_key_path', 'chain_path', 'service_name'])
RemoteCertificateDescriptor = collections.namedtuple('RemoteCertificateDescriptor', ['id', 'name', 'status', 'not_after'])
RemoteCertificateContent = collections.namedtuple('RemoteCertificateContent', ['chain_parts', 'private_key'])
JobResult = collections.namedtuple('JobResult', ['job', 'outcome', 'error'])
RenewalAggregate = collections.namedtuple('RenewalAggregate', ['total', 'success', 'results'])
InstanceIdentity = collections.namedtuple('InstanceIdentity', ['instance_id', 'name', 'hostname', 'cloud_id', 'folder_id'])


class CertificateStatus(enum.Enum):
    STATUS_UNSPECIFIED = 'STATUS_UNSPECIFIED'
    VALIDATING = 'VALIDATING'
    INVALID = 'INVALID'
    ISSUED = 'ISSUED'
    REVOKED = 'REVOKED'
    RENEWING = 'RENEWING'
    RENEWAL_FAILED = 'RENEWAL_FAILED'

    @classmethod
    def from_value(cls, value):
        try:
            return cls(str(value).upper())
        except ValueError:
            return cls.STATUS_UNSPECIFIED


class JobOutcome(enum.Enum):
    INSTALLED = 'installed'
    UP_TO_DATE = 'up-to-date'
    FAILED = 'failed'


def service_groups(jobs):
    groups = collections.OrderedDict()
    for job in jobs:
        groups[job.service_name] = groups.get(job.service_name, 0) + 1
    return groups
