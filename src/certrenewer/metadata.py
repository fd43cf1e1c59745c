import threading
import time

import requests

from .errors import MetadataError
from .types import InstanceIdentity


METADATA_URL = 'http://169.254.169.254'
IDENTITY_PATH = '/computeMetadata/v1/instance/?recursive=true'
TOKEN_PATH = '/computeMetadata/v1/instance/service-accounts/default/token'


class InstanceMetadata:
    """
    Compute instance metadata service client.

    Provides the instance identity (folder id in particular) and IAM tokens of
    the service account attached to the instance. Tokens are cached until
    ``token_margin`` seconds before they expire.
    """
    def __init__(self, base_url=METADATA_URL, *, timeout=10, token_margin=300, session=None, clock=time.monotonic):
        self.base = base_url.rstrip('/')
        self.timeout = timeout
        self.token_margin = token_margin
        self.sess = session or requests.Session()
        self._clock = clock
        self._token = None
        self._token_expires = 0
        self._lock = threading.Lock()

    def _fetch(self, path):
        url = self.base + path
        try:
            r = self.sess.get(url, headers={'Metadata-Flavor': 'Google'}, timeout=self.timeout)
            r.raise_for_status()
            return r.json()
        except (requests.exceptions.RequestException, ValueError) as error:
            raise MetadataError('Metadata request to ' + url + ' failed: ' + str(error)) from error

    def identity(self):
        meta = self._fetch(IDENTITY_PATH)
        vendor = meta.get('vendor') or {}
        if (not vendor.get('folderId')):
            raise MetadataError('Instance metadata does not include a folder id')
        return InstanceIdentity(instance_id=meta.get('id'), name=meta.get('name'), hostname=meta.get('hostname'),
                                cloud_id=vendor.get('cloudId'), folder_id=vendor['folderId'])

    def token(self):
        with self._lock:
            if (self._token and (self._clock() < self._token_expires)):
                return self._token
            response = self._fetch(TOKEN_PATH)
            if (not response.get('access_token')):
                raise MetadataError('Metadata token response does not include an access token')
            self._token = response['access_token']
            self._token_expires = self._clock() + max(int(response.get('expires_in') or 0) - self.token_margin, 0)
            return self._token
