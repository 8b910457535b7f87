import re

from tipsy.errors import InvalidDurationError

UNIT_SECONDS = {
    "ns": 1e-9,
    "us": 1e-6,
    "µs": 1e-6,
    "ms": 1e-3,
    "s": 1.0,
    "m": 60.0,
    "h": 3600.0,
}

_COMPONENT = re.compile(r"([0-9]*\.?[0-9]+)(ns|us|µs|ms|s|m|h)")


def parse_duration(value: str) -> float:
    """Parse a duration such as ``30s``, ``1m30s`` or ``1.5h`` into seconds."""
    text = (value or "").strip()
    if text == "0":
        return 0.0
    if not text:
        raise InvalidDurationError(f"invalid duration '{value}'")

    total = 0.0
    pos = 0
    for match in _COMPONENT.finditer(text):
        if match.start() != pos:
            break
        number, unit = match.groups()
        total += float(number) * UNIT_SECONDS[unit]
        pos = match.end()

    if pos != len(text):
        raise InvalidDurationError(f"invalid duration '{value}'")
    return total


def format_duration(seconds: float) -> str:
    seconds = int(seconds)
    hours, rem = divmod(seconds, 3600)
    minutes, secs = divmod(rem, 60)
    if hours:
        return f"{hours}h{minutes}m{secs}s"
    if minutes:
        return f"{minutes}m{secs}s"
    return f"{secs}s"
