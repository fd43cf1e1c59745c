import datetime
import os
import sys
import threading

from .errors import ErrorCode, FatalError, RenewalError, WarningCode
from .files import open_file


COLOR_CODES = {
    'black': 30,
    'red': 31,
    'green': 32,
    'yellow': 33,
    'blue': 34,
    'magenta': 35,
    'cyan': 36,
    'light gray': 37,
    'dark gray': 90,
    'light red': 91,
    'light green': 92,
    'light yellow': 93,
    'light blue': 94,
    'light magenta': 95,
    'light cyan': 96,
    'white': 97
}
STYLE_CODES = {
    'normal': 0,
    'bold': 1,
    'bright': 1,
    'dim': 2,
    'underline': 4,
    'underlined': 4,
    'blink': 5,
    'reverse': 7,
    'invert': 7,
    'hidden': 8
}
LOG_LEVELS = ('normal', 'verbose', 'debug', 'detail')


def message(*args):
    text = ''
    for arg in args:
        text += str(arg, 'utf-8', 'replace') if isinstance(arg, bytes) else str(arg)
    return text


def indent(*args):
    return '\n'.join([('    ' + line) for line in message(*args).split('\n')])


class Output:
    """
    Console, log file and cloud log output shared by the manager and the worker threads.

    Console verbosity comes from the command line switches, the log file and
    cloud sink follow ``log_level``. The most recent error and warning codes are
    kept for the process exit status.
    """

    def __init__(self, *, quiet=False, verbose=False, debug=False, detail=False, color=False, no_color=False,
                 color_output=True, log_level='normal', log_file_path=None, log_user=None, log_group=None):
        self.quiet = quiet
        self.verbose = verbose
        self.debug_output = debug
        self.detail_output = detail
        self.color = color
        self.no_color = no_color
        self.color_output = color_output
        self.log_level = log_level
        self.log_file_path = log_file_path
        self.log_user = log_user
        self.log_group = log_group
        self.sink = None
        self.error_code = ErrorCode.NONE
        self.warning_code = WarningCode.NONE
        self._lock = threading.RLock()

    def _colorize(self, stream, color, style, text):
        if (stream.isatty() and (self.color or self.color_output) and (not self.no_color)):
            stream.write('\033[{style};{color}m{message}\033[0m'.format(color=COLOR_CODES[color], style=STYLE_CODES[style], message=text))
        else:
            stream.write(text)
        stream.flush()

    def status(self, *args):
        with self._lock:
            if (not self.quiet):
                sys.stdout.write(message(*args))
                sys.stdout.flush()
        if (self.log_level in ['normal', 'verbose', 'debug', 'detail']):
            self.log('INFO', *args)

    def info(self, *args, color='yellow', style='normal'):
        with self._lock:
            if ((self.verbose or self.debug_output or self.detail_output) and not self.quiet):
                self._colorize(sys.stdout, color, style, message(*args))
        if (self.log_level in ['verbose', 'debug', 'detail']):
            self.log('INFO', *args)

    def debug(self, *args, color='dark gray', style='normal'):
        with self._lock:
            if ((self.debug_output or self.detail_output) and not self.quiet):
                self._colorize(sys.stdout, color, style, message(*args))
        if (self.log_level in ['debug', 'detail']):
            self.log('DEBUG', *args)

    def detail(self, *args, color='light gray', style='normal'):
        with self._lock:
            if (self.detail_output and not self.quiet):
                self._colorize(sys.stdout, color, style, message(*args))
        if (self.log_level == 'detail'):
            self.log('TRACE', *args)

    def warn(self, *args, code: WarningCode = None, color='red', style='normal'):
        with self._lock:
            self.warning_code = code if (code is not None) else WarningCode.GENERAL
            if (not self.quiet):
                self._colorize(sys.stderr, color, style, message(*args))
        if (self.log_level in ['normal', 'verbose', 'debug', 'detail']):
            self.log('WARN', *args)

    def error(self, *args, code: ErrorCode = None, color='red', style='bold'):
        text = message(*args)
        with self._lock:
            self.error_code = code if (code is not None) else ErrorCode.GENERAL
            self._colorize(sys.stderr, color, style, text)
        self.log('ERROR', text)

    def fatal(self, *args, code: ErrorCode = None, color='red', style='bold'):
        text = message(*args)
        with self._lock:
            self.error_code = code if (code is not None) else ErrorCode.FATAL
            self._colorize(sys.stderr, color, style, text)
        self.log('FATAL', text)
        raise FatalError(text)

    def log(self, level, *args):
        """Append to the log file, then forward to the sink.

        Only the file write holds the output lock, so a slow sink delays the
        calling thread alone.
        """
        text = message(*args)
        if (self.log_file_path and self.log_level):
            timestamp = datetime.datetime.now().strftime('%Y-%m-%d %H:%M:%S')
            with self._lock:
                try:
                    os.makedirs(os.path.dirname(self.log_file_path) or '.', exist_ok=True)
                    with open_file(self.log_file_path, mode='a+', chmod=0o640, user=self.log_user, group=self.log_group) as log_file:
                        for line in text.splitlines():
                            log_file.write((timestamp + ' ' + line + '\n') if line else '\n')
                except OSError:
                    sys.stderr.write('Unable to write to log file ' + self.log_file_path + '\n')
        sink = self.sink
        if (sink and text.strip()):
            try:
                sink.write(level, text.strip())
            except RenewalError as error:
                sys.stderr.write('Unable to forward log message: ' + str(error) + '\n')

    def exit_code(self, warning_exit_code=False) -> int:
        if (ErrorCode.NONE != self.error_code):
            return self.error_code.value
        if ((WarningCode.NONE != self.warning_code) and warning_exit_code):
            return self.warning_code.value
        return 0
