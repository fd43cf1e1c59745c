import datetime

import pytest

from conftest import T0, make_certificate, make_private_key
from certrenewer.errors import NotFoundError, ParseError, ReadError
from certrenewer.expiry import EARLIEST, certificate_expiry, datetime_from_asn1_generaltime


UTC = datetime.timezone.utc
ROOT_EXPIRY = datetime.datetime(2035, 6, 1, tzinfo=UTC)


def _write(tmp_path, text):
    chain_path = tmp_path / 'chain.pem'
    chain_path.write_text(text)
    return str(chain_path)


def test_single_leaf(tmp_path):
    assert certificate_expiry(_write(tmp_path, make_certificate(T0, ca=False))) == T0


def test_certificate_without_basic_constraints_is_a_leaf(tmp_path):
    chain = make_certificate(ROOT_EXPIRY, ca=True) + make_certificate(T0)
    assert certificate_expiry(_write(tmp_path, chain)) == T0


def test_leaf_after_ca_certificates(tmp_path):
    chain = make_certificate(ROOT_EXPIRY, ca=True) + make_certificate(T0, ca=False) + make_certificate(ROOT_EXPIRY, ca=True)
    assert certificate_expiry(_write(tmp_path, chain)) == T0


def test_first_leaf_wins(tmp_path):
    later = T0 + datetime.timedelta(days=1)
    chain = make_certificate(T0, ca=False) + make_certificate(later, ca=False)
    assert certificate_expiry(_write(tmp_path, chain)) == T0


def test_all_ca_falls_back_to_first(tmp_path):
    chain = make_certificate(ROOT_EXPIRY, ca=True) + make_certificate(T0, ca=True)
    assert certificate_expiry(_write(tmp_path, chain)) == ROOT_EXPIRY


def test_non_certificate_blocks_are_skipped(tmp_path):
    chain = 'example.test issued at 2029-10-03\n' + make_private_key() + make_certificate(T0, ca=False)
    assert certificate_expiry(_write(tmp_path, chain)) == T0


def test_missing_file(tmp_path):
    with pytest.raises(ReadError) as error:
        certificate_expiry(str(tmp_path / 'missing.pem'))
    assert error.value.path == str(tmp_path / 'missing.pem')


def test_no_certificates(tmp_path):
    with pytest.raises(NotFoundError):
        certificate_expiry(_write(tmp_path, make_private_key()))


def test_empty_file(tmp_path):
    with pytest.raises(NotFoundError):
        certificate_expiry(_write(tmp_path, ''))


def test_corrupt_certificate(tmp_path):
    chain = make_certificate(T0, ca=False) + '-----BEGIN CERTIFICATE-----\nbm90IGEgY2VydGlmaWNhdGU=\n-----END CERTIFICATE-----\n'
    with pytest.raises(ParseError):
        certificate_expiry(_write(tmp_path, chain))


def test_generaltime_formats():
    assert datetime_from_asn1_generaltime(b'20300101000000Z') == T0
    assert datetime_from_asn1_generaltime(b'20300101030000+0300') == T0


def test_earliest_precedes_everything():
    assert EARLIEST < datetime.datetime(1, 1, 2, tzinfo=UTC)


def test_non_utf8_bytes_around_certificates(tmp_path):
    chain_path = tmp_path / 'chain.pem'
    chain_path.write_bytes(b'\xff\xfe issued by \xe9quipe\n' + make_certificate(T0, ca=False).encode('ascii') + b'\x80\n')
    assert certificate_expiry(str(chain_path)) == T0
