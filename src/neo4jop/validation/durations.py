"""Go-style duration strings as used by cert-manager and Kubernetes APIs."""

import re
from datetime import timedelta

_UNITS = {
    "ns": 1e-9,
    "us": 1e-6,
    "µs": 1e-6,
    "ms": 1e-3,
    "s": 1.0,
    "m": 60.0,
    "h": 3600.0,
}

_COMPONENT = re.compile(r"(\d+(?:\.\d*)?|\.\d+)(ns|us|µs|ms|s|m|h)")


def parse_duration(value: str) -> timedelta:
    """Parse strings such as ``30m``, ``1h30m`` or ``2160h``.

    Raises:
        ValueError: the string is not a valid duration
    """
    if not isinstance(value, str) or not value:
        raise ValueError(f"invalid duration {value!r}")

    text = value
    sign = 1
    if text[0] in "+-":
        sign = -1 if text[0] == "-" else 1
        text = text[1:]

    if text == "0":
        return timedelta(0)

    pos = 0
    seconds = 0.0
    while pos < len(text):
        match = _COMPONENT.match(text, pos)
        if not match:
            raise ValueError(f"invalid duration {value!r}")
        seconds += float(match.group(1)) * _UNITS[match.group(2)]
        pos = match.end()

    if pos == 0:
        raise ValueError(f"invalid duration {value!r}")
    return timedelta(seconds=sign * seconds)


def is_valid_duration(value: str) -> bool:
    try:
        parse_duration(value)
    except ValueError:
        return False
    return True
