import datetime

import requests

from .errors import MetadataError, RenewalError


LOGGING_ENDPOINT = 'https://logging.api.cloud.yandex.net'
INGESTER_ENDPOINT = 'https://ingester.logging.yandexcloud.net'


class CloudLogSink:
    """Forwards log messages to a Yandex Cloud Logging group."""

    def __init__(self, token_provider, folder_id, group_name, *, endpoint=LOGGING_ENDPOINT, ingester=INGESTER_ENDPOINT,
                 timeout=10, session=None):
        self.token_provider = token_provider
        self.folder_id = folder_id
        self.group_name = group_name
        self.endpoint = endpoint.rstrip('/')
        self.ingester = ingester.rstrip('/')
        self.timeout = timeout
        self.sess = session or requests.Session()
        self.group_id = None

    def _hdr(self):
        return {'Authorization': 'Bearer ' + self.token_provider()}

    def resolve(self):
        url = self.endpoint + '/logging/v1/logGroups'
        try:
            r = self.sess.get(url, headers=self._hdr(), timeout=self.timeout,
                              params={'folderId': self.folder_id, 'filter': 'name="' + self.group_name + '"'})
            r.raise_for_status()
            groups = r.json().get('groups') or []
        except (requests.exceptions.RequestException, MetadataError, ValueError) as error:
            raise RenewalError('Unable to list log groups in folder ' + str(self.folder_id) + ': ' + str(error)) from error
        for group in groups:
            if (self.group_name == group.get('name')):
                self.group_id = group['id']
                return self.group_id
        raise RenewalError('Log group ' + self.group_name + ' not found in folder ' + str(self.folder_id))

    def write(self, level, message):
        if (not self.group_id):
            self.resolve()
        entry = {
            'timestamp': datetime.datetime.now(datetime.timezone.utc).isoformat().replace('+00:00', 'Z'),
            'level': level,
            'message': message,
        }
        url = self.ingester + '/logging/v1/write'
        try:
            r = self.sess.post(url, headers=self._hdr(), timeout=self.timeout,
                               json={'destination': {'logGroupId': self.group_id}, 'entries': [entry]})
            r.raise_for_status()
        except (requests.exceptions.RequestException, MetadataError) as error:
            raise RenewalError('Unable to write to log group ' + self.group_name + ': ' + str(error)) from error
