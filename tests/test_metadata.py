import pytest
import requests

from conftest import FakeResponse, FakeSession
from certrenewer.errors import MetadataError
from certrenewer.metadata import InstanceMetadata


IDENTITY = {
    'id': 'fhm0000000000000',
    'hostname': 'web-1.ru-central1.internal',
    'name': 'web-1',
    'vendor': {'cloudId': 'cloud-1', 'folderId': 'folder-1'},
}


class Clock:

    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now


def test_identity():
    session = FakeSession(FakeResponse(IDENTITY))

    identity = InstanceMetadata('http://metadata.test/', session=session).identity()

    assert identity.folder_id == 'folder-1'
    assert identity.cloud_id == 'cloud-1'
    assert identity.name == 'web-1'
    method, url, kwargs = session.requests[0]
    assert url == 'http://metadata.test/computeMetadata/v1/instance/?recursive=true'
    assert kwargs['headers'] == {'Metadata-Flavor': 'Google'}


def test_identity_without_folder():
    with pytest.raises(MetadataError):
        InstanceMetadata(session=FakeSession(FakeResponse({'id': 'x', 'vendor': {}}))).identity()


@pytest.mark.parametrize('response', [requests.exceptions.ConnectionError('no route'), FakeResponse({}, status_code=404), FakeResponse(None)])
def test_identity_errors(response):
    with pytest.raises(MetadataError):
        InstanceMetadata(session=FakeSession(response)).identity()


def test_token_is_cached_until_close_to_expiry():
    clock = Clock()
    session = FakeSession(FakeResponse({'access_token': 'first', 'expires_in': 3600, 'token_type': 'Bearer'}),
                          FakeResponse({'access_token': 'second', 'expires_in': 3600, 'token_type': 'Bearer'}))
    metadata = InstanceMetadata(session=session, token_margin=300, clock=clock)

    assert metadata.token() == 'first'
    clock.now += 3000
    assert metadata.token() == 'first'
    clock.now += 400
    assert metadata.token() == 'second'
    assert len(session.requests) == 2
    assert session.requests[0][1].endswith('/computeMetadata/v1/instance/service-accounts/default/token')


def test_token_missing():
    with pytest.raises(MetadataError):
        InstanceMetadata(session=FakeSession(FakeResponse({'expires_in': 3600}))).token()
