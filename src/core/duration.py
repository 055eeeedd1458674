import logging
import re

logger = logging.getLogger(__name__)

DEFAULT_PERIOD_SECONDS = 1.0

_UNIT_SECONDS = {
    "ns": 1e-9,
    "us": 1e-6,
    "µs": 1e-6,  # micro sign
    "μs": 1e-6,  # greek mu
    "ms": 1e-3,
    "s": 1.0,
    "m": 60.0,
    "h": 3600.0,
}
_COMPONENT = re.compile(r"([0-9]+(?:\.[0-9]*)?|\.[0-9]+)([a-zµμ]+)")


def parse_duration(value: str) -> float:
    """
    Parse a Go-style duration string such as "300ms", "1.5h" or "2h45m" into seconds.

    Raises:
        ValueError: If the string is not a valid duration.
    """
    if not isinstance(value, str):
        raise ValueError(f"time: invalid duration {value!r}")
    text = value.strip()
    sign = 1.0
    if text[:1] in ("-", "+"):
        if text[0] == "-":
            sign = -1.0
        text = text[1:]
    if text == "0":
        return 0.0
    if not text:
        raise ValueError(f"time: invalid duration {value!r}")

    total = 0.0
    pos = 0
    while pos < len(text):
        match = _COMPONENT.match(text, pos)
        if match is None:
            raise ValueError(f"time: invalid duration {value!r}")
        number, unit = match.groups()
        if unit not in _UNIT_SECONDS:
            raise ValueError(f"time: unknown unit {unit!r} in duration {value!r}")
        total += float(number) * _UNIT_SECONDS[unit]
        pos = match.end()
    return sign * total


def resolve_period(value: str, default: float = DEFAULT_PERIOD_SECONDS) -> float:
    """
    Parse a probe period, falling back to the default when it is unusable.
    """
    try:
        period = parse_duration(value)
    except ValueError as e:
        logger.warning(
            f"Value of period duration cannot be parsed, using default value of {default}s. "
            f"Passed value: {value!r} Error: {e}"
        )
        return default
    if period <= 0:
        logger.warning(
            f"Period duration must be positive, using default value of {default}s. "
            f"Passed value: {value!r}"
        )
        return default
    return period
