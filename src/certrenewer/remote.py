import abc
import datetime
import re

import requests

from .errors import AbnormalStatusError, CertificateNotFoundError, ContentError, MetadataError, RemoteLookupError
from .types import CertificateStatus, RemoteCertificateContent, RemoteCertificateDescriptor


CERTIFICATE_MANAGER_ENDPOINT = 'https://certificate-manager.api.cloud.yandex.net'
CERTIFICATE_DATA_ENDPOINT = 'https://data.certificate-manager.api.cloud.yandex.net'
PRIVATE_KEY_FORMAT = 'PKCS8'

_TIMESTAMP = re.compile(r'^(\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2})(?:\.(\d+))?(Z|[+-]\d{2}:?\d{2})$')


def parse_timestamp(value):
    """Parse an RFC 3339 timestamp, allowing up to nanosecond fractions."""
    match = _TIMESTAMP.match(value.strip()) if isinstance(value, str) else None
    if (not match):
        raise ValueError('Invalid timestamp ' + repr(value))
    seconds, fraction, offset = match.groups()
    timestamp = seconds + '.' + (fraction or '0')[:6].ljust(6, '0') + ('+0000' if ('Z' == offset) else offset.replace(':', ''))
    return datetime.datetime.strptime(timestamp, '%Y-%m-%dT%H:%M:%S.%f%z').astimezone(datetime.timezone.utc)


class RemoteCertificateSource(abc.ABC):

    @abc.abstractmethod
    def find_by_name(self, folder_id, name, cancel=None):
        """Return a RemoteCertificateDescriptor, or None when the folder has no such certificate."""

    @abc.abstractmethod
    def fetch_content(self, certificate_id, cancel=None):
        """Return RemoteCertificateContent with the chain and a PKCS#8 private key."""


def check_for_update(source, folder_id, name, due_date, cancel=None):
    """Content of the remote certificate ``name`` if it is newer than ``due_date``, else None."""
    descriptor = source.find_by_name(folder_id, name, cancel=cancel)
    if (descriptor is None):
        raise CertificateNotFoundError(name, folder_id)
    if (CertificateStatus.ISSUED != descriptor.status):
        raise AbnormalStatusError(name, descriptor.status)
    if (descriptor.not_after <= due_date):
        return None
    return source.fetch_content(descriptor.id, cancel=cancel)


class CertificateManagerSource(RemoteCertificateSource):
    """Yandex Cloud Certificate Manager over its REST API."""

    def __init__(self, token_provider, *, endpoint=CERTIFICATE_MANAGER_ENDPOINT, data_endpoint=CERTIFICATE_DATA_ENDPOINT,
                 timeout=30, page_size=100, session=None):
        self.token_provider = token_provider
        self.endpoint = endpoint.rstrip('/')
        self.data_endpoint = data_endpoint.rstrip('/')
        self.timeout = timeout
        self.page_size = page_size
        self.sess = session or requests.Session()

    def _hdr(self):
        return {'Authorization': 'Bearer ' + self.token_provider()}

    def _get(self, url, params, cancel, error_class):
        if (cancel is not None and cancel.is_set()):
            raise error_class('Request to ' + url + ' cancelled')
        try:
            r = self.sess.get(url, headers=self._hdr(), params=dict(params), timeout=self.timeout)
            r.raise_for_status()
            return r.json()
        except (requests.exceptions.RequestException, MetadataError, ValueError) as error:
            raise error_class('Request to ' + url + ' failed: ' + str(error)) from error

    def _descriptor(self, certificate):
        try:
            return RemoteCertificateDescriptor(id=certificate['id'], name=certificate['name'],
                                               status=CertificateStatus.from_value(certificate.get('status')),
                                               not_after=parse_timestamp(certificate['notAfter']))
        except (KeyError, ValueError) as error:
            raise RemoteLookupError('Malformed certificate ' + repr(certificate.get('name')) + ': ' + str(error)) from error

    def find_by_name(self, folder_id, name, cancel=None):
        url = self.endpoint + '/certificate-manager/v1/certificates'
        params = {'folderId': folder_id, 'pageSize': self.page_size}
        while (True):
            page = self._get(url, params, cancel, RemoteLookupError)
            for certificate in page.get('certificates') or []:
                if (name == certificate.get('name')):
                    return self._descriptor(certificate)
            if (not page.get('nextPageToken')):
                return None
            params['pageToken'] = page['nextPageToken']

    def fetch_content(self, certificate_id, cancel=None):
        url = self.data_endpoint + '/certificate-manager/v1/certificates/' + certificate_id + ':getContent'
        content = self._get(url, {'privateKeyFormat': PRIVATE_KEY_FORMAT}, cancel, ContentError)
        chain = content.get('certificateChain')
        private_key = content.get('privateKey')
        if (not chain or not private_key):
            raise ContentError('Certificate ' + certificate_id + ' content is missing its chain or private key')
        return RemoteCertificateContent(chain_parts=tuple(chain), private_key=private_key)
