import abc
import shlex
import subprocess

from .errors import RestartError


DEFAULT_RESTART_COMMAND = 'systemctl restart {service}'


class ServiceRestarter(abc.ABC):

    @abc.abstractmethod
    def restart(self, service_name, cancel=None):
        """Restart ``service_name``, raising RestartError on failure. Returns any output of the restart."""


class CommandRestarter(ServiceRestarter):
    """Runs ``services.<name>`` from the config, or the default restart command, through the shell."""

    def __init__(self, commands=None, default_command=DEFAULT_RESTART_COMMAND, timeout=None):
        self.commands = commands or {}
        self.default_command = default_command
        self.timeout = timeout

    def command(self, service_name):
        command = self.commands.get(service_name)
        if (command):
            return command
        if (not self.default_command):
            raise RestartError('Service ' + service_name + ' does not have registered restart command', service_name)
        try:
            return self.default_command.format(service=shlex.quote(service_name))
        except (KeyError, IndexError, ValueError) as error:
            raise RestartError('Invalid restart command "' + self.default_command + '", literal braces must be doubled: ' + repr(error),
                               service_name) from error

    def restart(self, service_name, cancel=None):
        if (cancel is not None and cancel.is_set()):
            raise RestartError('Restart of ' + service_name + ' cancelled', service_name)
        command = self.command(service_name)
        try:
            return subprocess.check_output(command, shell=True, stderr=subprocess.STDOUT, timeout=self.timeout)
        except subprocess.CalledProcessError as error:
            raise RestartError('Service ' + service_name + ' restart failed, code: ' + str(error.returncode), service_name,
                               returncode=error.returncode, output=error.output) from error
        except subprocess.TimeoutExpired as error:
            raise RestartError('Service ' + service_name + ' restart timed out', service_name, output=error.output) from error
        except OSError as error:
            raise RestartError('Unable to run restart command for ' + service_name + ': ' + str(error), service_name) from error
