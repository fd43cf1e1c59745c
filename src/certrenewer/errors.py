import enum


class ErrorCode(enum.IntEnum):
    NONE = 0
    GENERAL = 1
    FATAL = 2
    EXCEPTION = 3
    CONFIG = 4
    PERMISSION = 5
    METADATA = 6
    REMOTE = 7
    INSTALL = 8
    SERVICE = 9


class WarningCode(enum.IntEnum):
    NONE = 0
    GENERAL = 100
    CONFIG = 101
    CERTIFICATE = 102
    SERVICE = 103
    LOG = 104


class RenewalError(Exception):
    pass


class FatalError(RenewalError):
    pass


class ConfigError(RenewalError):
    pass


class DurationError(ConfigError):
    pass


class MetadataError(RenewalError):
    pass


class ExpiryError(RenewalError):
    def __init__(self, message, path):
        super().__init__(message)
        self.path = path


class ReadError(ExpiryError):
    pass


class ParseError(ExpiryError):
    pass


class NotFoundError(ExpiryError):
    pass


class RemoteError(RenewalError):
    pass


class RemoteLookupError(RemoteError):
    pass


class ContentError(RemoteError):
    pass


class CertificateNotFoundError(RemoteError):
    def __init__(self, name, folder_id):
        super().__init__('certificate ' + name + ' not found in folder ' + str(folder_id))
        self.name = name
        self.folder_id = folder_id


class AbnormalStatusError(RemoteError):
    def __init__(self, name, status):
        super().__init__('abnormal status ' + str(getattr(status, 'value', status)) + ' for certificate ' + name)
        self.name = name
        self.status = status


class ReplaceError(RenewalError):
    def __init__(self, message, path):
        super().__init__(message)
        self.path = path


class BackupError(ReplaceError):
    pass


class WriteError(ReplaceError):
    pass


class RestartError(RenewalError):
    def __init__(self, message, service_name, returncode=None, output=None):
        super().__init__(message)
        self.service_name = service_name
        self.returncode = returncode
        self.output = output
