"""
Pytest configuration and fixtures.

Certificates are generated on the fly; the remote source, the service
restarter and HTTP sessions are in-memory fakes.
"""

import datetime
import sys
import threading
from pathlib import Path

import pytest
import requests

from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.x509.oid import NameOID

# Add src directory to Python path
src_path = Path(__file__).parent.parent / "src"
if str(src_path) not in sys.path:
    sys.path.insert(0, str(src_path))

from certrenewer.errors import ContentError, RemoteLookupError, RestartError  # noqa: E402
from certrenewer.output import Output  # noqa: E402
from certrenewer.remote import RemoteCertificateSource  # noqa: E402
from certrenewer.services import ServiceRestarter  # noqa: E402
from certrenewer.types import CertificateJob, CertificateStatus, RemoteCertificateContent, RemoteCertificateDescriptor  # noqa: E402


UTC = datetime.timezone.utc
T0 = datetime.datetime(2030, 1, 1, tzinfo=UTC)


def make_certificate(not_after, *, ca=None, common_name='example.test'):
    key = ec.generate_private_key(ec.SECP256R1())
    name = x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, common_name)])
    builder = (x509.CertificateBuilder()
               .subject_name(name)
               .issuer_name(name)
               .public_key(key.public_key())
               .serial_number(x509.random_serial_number())
               .not_valid_before(not_after - datetime.timedelta(days=90))
               .not_valid_after(not_after))
    if (ca is not None):
        builder = builder.add_extension(x509.BasicConstraints(ca=ca, path_length=None), critical=True)
    certificate = builder.sign(key, hashes.SHA256())
    return certificate.public_bytes(serialization.Encoding.PEM).decode('ascii')


def make_private_key():
    key = ec.generate_private_key(ec.SECP256R1())
    return key.private_bytes(serialization.Encoding.PEM, serialization.PrivateFormat.PKCS8,
                             serialization.NoEncryption()).decode('ascii')


class FakeSource(RemoteCertificateSource):

    def __init__(self):
        self.descriptors = {}
        self.contents = {}
        self.lookup_errors = set()
        self.content_errors = set()
        self.unexpected_errors = set()
        self.fetched = []
        self._lock = threading.Lock()

    def add(self, name, not_after, status=CertificateStatus.ISSUED, chain_parts=None, private_key=None):
        certificate_id = 'id-' + name
        self.descriptors[name] = RemoteCertificateDescriptor(certificate_id, name, status, not_after)
        self.contents[certificate_id] = RemoteCertificateContent(
            tuple(chain_parts or [make_certificate(not_after, common_name=name)]),
            private_key or make_private_key())
        return self.contents[certificate_id]

    def find_by_name(self, folder_id, name, cancel=None):
        if (name in self.lookup_errors):
            raise RemoteLookupError('lookup of ' + name + ' failed')
        if (name in self.unexpected_errors):
            raise RuntimeError('boom')
        return self.descriptors.get(name)

    def fetch_content(self, certificate_id, cancel=None):
        with self._lock:
            self.fetched.append(certificate_id)
        if (certificate_id in self.content_errors):
            raise ContentError('content of ' + certificate_id + ' unavailable')
        return self.contents[certificate_id]


class FakeRestarter(ServiceRestarter):

    def __init__(self, failing=(), on_restart=None):
        self.failing = set(failing)
        self.on_restart = on_restart
        self.restarted = []

    def restart(self, service_name, cancel=None):
        self.restarted.append(service_name)
        if (self.on_restart):
            self.on_restart(service_name)
        if (service_name in self.failing):
            raise RestartError('Service ' + service_name + ' restart failed, code: 1', service_name, returncode=1, output=b'failed\n')
        return b''


class FakeResponse:

    def __init__(self, payload=None, status_code=200):
        self.payload = payload
        self.status_code = status_code

    def raise_for_status(self):
        if (400 <= self.status_code):
            raise requests.exceptions.HTTPError(str(self.status_code) + ' Error')

    def json(self):
        if (self.payload is None):
            raise ValueError('No JSON object could be decoded')
        return self.payload


class FakeSession:

    def __init__(self, *responses):
        self.responses = list(responses)
        self.requests = []

    def _respond(self, method, url, kwargs):
        self.requests.append((method, url, kwargs))
        response = self.responses.pop(0)
        if (isinstance(response, Exception)):
            raise response
        return response

    def get(self, url, **kwargs):
        return self._respond('GET', url, kwargs)

    def post(self, url, **kwargs):
        return self._respond('POST', url, kwargs)


@pytest.fixture
def output():
    return Output(quiet=True)


@pytest.fixture
def source():
    return FakeSource()


@pytest.fixture
def restarter():
    return FakeRestarter()


@pytest.fixture
def make_job(tmp_path):
    """Create a job whose chain and key files exist, with the chain expiring at ``expires``."""
    def _make_job(name, service='nginx', expires=T0, chain=None, key='OLD KEY\n', create_chain=True, create_key=True):
        chain_path = tmp_path / (name + '.pem')
        key_path = tmp_path / (name + '.key')
        if (create_chain):
            chain_path.write_text(chain if (chain is not None) else make_certificate(expires, ca=False, common_name=name))
        if (create_key):
            key_path.write_text(key)
        return CertificateJob(name=name, private_key_path=str(key_path), chain_path=str(chain_path), service_name=service)
    return _make_job
