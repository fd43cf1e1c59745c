"""Duration strings such as ``30d12h`` or ``1.5h`` used in configuration."""

import datetime
import re

from .errors import DurationError


_UNITS = {
    'd': 86400.0,
    'h': 3600.0,
    'm': 60.0,
    's': 1.0,
    'ms': 1e-3,
    'us': 1e-6,
    'µs': 1e-6,
    'ns': 1e-9,
}

_TOKEN = re.compile(r'([0-9.]*)([^0-9.]*)')


def parse_duration(value) -> datetime.timedelta:
    if (isinstance(value, datetime.timedelta)):
        return value
    if (not isinstance(value, str)):
        raise DurationError('Invalid duration ' + repr(value) + ', expected <number><unit> tokens')
    seconds = 0.0
    for number, unit in _TOKEN.findall(value.strip()):
        if (not number and not unit):
            continue
        if (not unit):
            raise DurationError('Missing unit after ' + number + ' in duration ' + repr(value))
        if (not number):
            raise DurationError('Missing number before ' + unit + ' in duration ' + repr(value))
        try:
            amount = float(number)
        except ValueError:
            raise DurationError('Invalid number ' + number + ' in duration ' + repr(value)) from None
        unit = unit.lower()
        if (unit not in _UNITS):
            raise DurationError('Unsupported time unit ' + repr(unit) + ' in duration ' + repr(value))
        seconds += _UNITS[unit] * amount
    return datetime.timedelta(seconds=seconds)


def format_duration(duration: datetime.timedelta) -> str:
    def _plural(amount, unit):
        if (0 < amount):
            return '{amount} {unit}{plural}'.format(amount=amount, unit=unit, plural='' if (1 == amount) else 's')
        return ''

    seconds = int(duration.total_seconds())
    parts = [_plural(seconds // 86400, 'day'), _plural((seconds % 86400) // 3600, 'hour'),
             _plural((seconds % 3600) // 60, 'minute'), _plural(seconds % 60, 'second')]
    return ' '.join(part for part in parts if part) or '0 seconds'
