"""Formatting and parsing of human-entered time values."""

import math


def format_time(seconds: float) -> str:
    """Convert seconds to m:ss."""
    safe = max(0.0, seconds) if isinstance(seconds, (int, float)) and math.isfinite(seconds) else 0.0
    minutes = int(safe // 60)
    secs = int(safe % 60)
    return f"{minutes}:{secs:02d}"


def _parse_number(text: str) -> float | None:
    try:
        value = float(text)
    except ValueError:
        return None
    if not math.isfinite(value) or value < 0:
        return None
    return value


def parse_time_input(value) -> float | None:
    """Parse a loop-editing time value into seconds.

    Accepted formats are ``ss``, ``m:ss`` and ``h:mm:ss``. Components may be
    fractional. Returns None for empty, negative or malformed input.
    """
    text = str(value if value is not None else "").strip()
    if not text:
        return None

    if ":" not in text:
        return _parse_number(text)

    parts = [part.strip() for part in text.split(":")]
    if len(parts) not in (2, 3) or any(part == "" for part in parts):
        return None

    numbers = [_parse_number(part) for part in parts]
    if any(n is None for n in numbers):
        return None

    if len(numbers) == 2:
        minutes, secs = numbers
        return minutes * 60 + secs
    hours, minutes, secs = numbers
    return hours * 3600 + minutes * 60 + secs
