from __future__ import annotations

import re

from common.errors import MalformedTimestamp

_DIGITS = re.compile(r"[0-9]+")
_FRACTION_SPLIT = re.compile(r"[,.]")


def parse_timestamp(text: str) -> int:
    """Decode ``HH:MM:SS,mmm`` / ``MM:SS.mmm`` into milliseconds.

    The fraction is right-padded or truncated to exactly three digits, so
    ``00:01.5`` is 1500 ms and ``00:01,12345`` is 1123 ms.
    """
    pieces = _FRACTION_SPLIT.split(text.strip(), maxsplit=1)
    time_part = pieces[0]
    fraction = pieces[1] if len(pieces) > 1 else ""

    fields = time_part.split(":")
    if len(fields) == 3:
        hours, minutes, seconds = fields
    elif len(fields) == 2:
        hours = "0"
        minutes, seconds = fields
    else:
        raise MalformedTimestamp(f"Invalid timestamp: {text!r}")

    if fraction and not _DIGITS.fullmatch(fraction):
        raise MalformedTimestamp(f"Invalid timestamp: {text!r}")
    for part in (hours, minutes, seconds):
        if not _DIGITS.fullmatch(part):
            raise MalformedTimestamp(f"Invalid timestamp: {text!r}")

    fraction = fraction.ljust(3, "0")[:3]
    return ((int(hours) * 60 + int(minutes)) * 60 + int(seconds)) * 1000 + int(fraction)


def format_timestamp(ms: int) -> str:
    """Encode milliseconds as ``HH:MM:SS,mmm``."""
    if ms < 0:
        raise ValueError(f"Timestamp must be non-negative, got {ms}")
    hours, rest = divmod(ms, 3_600_000)
    minutes, rest = divmod(rest, 60_000)
    seconds, millis = divmod(rest, 1000)
    return f"{hours:02d}:{minutes:02d}:{seconds:02d},{millis:03d}"
