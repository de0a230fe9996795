import re

from .types import ConfigError

_UNITS = {
    "ns": 1e-9,
    "us": 1e-6,
    "µs": 1e-6,
    "ms": 1e-3,
    "s": 1.0,
    "m": 60.0,
    "h": 3600.0,
}

_PART_RE = re.compile(r"(\d+(?:\.\d*)?|\.\d+)(ns|us|µs|ms|s|m|h)")


def parse_duration(value: object) -> float:
    """Parse a Go-style duration ("20m", "1h30m", "1.5s") or a number of seconds."""
    if isinstance(value, bool):
        raise ConfigError(f"Invalid duration: {value!r}")

    if isinstance(value, (int, float)):
        if value < 0:
            raise ConfigError(f"Duration can't be negative: {value}")
        return float(value)

    if not isinstance(value, str):
        raise ConfigError(f"Duration should be a string or a number, got {type(value)}")

    text = value.strip()
    if text == "0":
        return 0.0

    pos = 0
    total = 0.0
    while pos < len(text):
        m = _PART_RE.match(text, pos)
        if m is None:
            raise ConfigError(f"Invalid duration: {value!r}")
        total += float(m.group(1)) * _UNITS[m.group(2)]
        pos = m.end()

    if pos == 0:
        raise ConfigError(f"Invalid duration: {value!r}")

    return total


def format_duration(seconds: float) -> str:
    """Inverse of parse_duration for whole-second values, e.g. 1230 -> "20m30s"."""
    if seconds < 1:
        return f"{seconds * 1000:g}ms"

    whole = int(seconds)
    hours, rest = divmod(whole, 3600)
    minutes, secs = divmod(rest, 60)
    out = ""
    if hours:
        out += f"{hours}h"
    if minutes:
        out += f"{minutes}m"
    frac = seconds - whole
    if secs or frac or not out:
        out += f"{secs + frac:g}s"
    return out
