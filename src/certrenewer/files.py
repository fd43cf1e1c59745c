import grp
import os
import pwd
import shutil
import stat

from .errors import BackupError, WriteError


BACKUP_SUFFIX = '.bak'


def get_user_id(user_name):
    try:
        return pwd.getpwnam(user_name).pw_uid
    except (KeyError, TypeError):
        return -1


def get_group_id(group_name):
    try:
        return grp.getgrnam(group_name).gr_gid
    except (KeyError, TypeError):
        return -1


def open_file(file_path, *, mode='r', chmod=0o666, user=None, group=None):
    def opener(file_path, flags):
        file = os.open(file_path, flags, mode=chmod)
        if (user or group):
            os.chown(file_path, get_user_id(user), get_group_id(group))
        return file
    return open(file_path, mode, opener=opener)


def backup_file(file_path):
    backup_file_path = str(file_path) + BACKUP_SUFFIX
    try:
        with open(file_path, 'rb') as file:
            chmod = stat.S_IMODE(os.fstat(file.fileno()).st_mode)
            if (os.path.lexists(backup_file_path)):
                os.remove(backup_file_path)
            with open_file(backup_file_path, mode='wb', chmod=chmod) as backup:
                shutil.copyfileobj(file, backup)
        os.chmod(backup_file_path, chmod)
    except OSError as error:
        raise BackupError('Unable to back up ' + str(file_path) + ' to ' + backup_file_path + ': ' + str(error), file_path) from error
    return backup_file_path


def replace_with_backup(file_path, content, chmod, *, user=None, group=None):
    """Copy ``file_path`` to ``file_path.bak``, then overwrite it with ``content``.

    The file must already exist. The two steps are not atomic: after a crash
    between them the previous content is still available in the backup.
    """
    backup_file_path = backup_file(file_path)
    try:
        with open_file(file_path, mode='wb' if isinstance(content, bytes) else 'w', chmod=chmod, user=user, group=group) as file:
            file.write(content)
        os.chmod(file_path, chmod)
    except OSError as error:
        raise WriteError('Unable to write ' + str(file_path) + ': ' + str(error), file_path) from error
    return backup_file_path
