import datetime
import re

import OpenSSL

from cryptography import x509

from .errors import NotFoundError, ParseError, ReadError


EARLIEST = datetime.datetime.min.replace(tzinfo=datetime.timezone.utc)

_PEM_BLOCK = re.compile(rb'-----BEGIN ([A-Z0-9 ]+)-----.*?-----END \1-----', re.DOTALL)


def datetime_from_asn1_generaltime(general_time):
    try:
        return datetime.datetime.strptime(general_time.decode('ascii'), '%Y%m%d%H%M%SZ').replace(tzinfo=datetime.timezone.utc)
    except ValueError:
        return datetime.datetime.strptime(general_time.decode('ascii'), '%Y%m%d%H%M%S%z').astimezone(datetime.timezone.utc)


def is_ca_certificate(certificate):
    try:
        return certificate.to_cryptography().extensions.get_extension_for_class(x509.BasicConstraints).value.ca
    except x509.ExtensionNotFound:
        return False


def load_chain(chain_path):
    try:
        with open(chain_path, 'rb') as chain_file:
            pem_data = chain_file.read()
    except OSError as error:
        raise ReadError('Unable to read certificate chain ' + str(chain_path) + ': ' + str(error), chain_path) from error

    chain = []
    for match in _PEM_BLOCK.finditer(pem_data):
        if (b'CERTIFICATE' != match.group(1)):
            continue
        try:
            chain.append(OpenSSL.crypto.load_certificate(OpenSSL.crypto.FILETYPE_PEM, match.group(0)))
        except (OpenSSL.crypto.Error, ValueError) as error:
            raise ParseError('Unable to parse certificate ' + str(len(chain) + 1) + ' in ' + str(chain_path) + ': ' + str(error),
                             chain_path) from error
    if (not chain):
        raise NotFoundError('No certificates found in ' + str(chain_path), chain_path)
    return chain


def leaf_certificate(chain):
    for certificate in chain:
        if (not is_ca_certificate(certificate)):
            return certificate
    return chain[0]


def certificate_expiry(chain_path) -> datetime.datetime:
    """Expiry of the leaf certificate in a PEM chain file.

    The leaf is the first certificate without ``CA:TRUE`` basic constraints, or
    the first certificate when every block is a CA. Blocks that are not
    certificates (keys, parameters) are skipped.
    """
    return datetime_from_asn1_generaltime(leaf_certificate(load_chain(chain_path)).get_notAfter())
