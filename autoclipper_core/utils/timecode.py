import re
from typing import Optional

# Leading "[H:MM:SS]" or "[MM:SS]" at the start of a formatted transcript line
LINE_TIMESTAMP_RE = re.compile(r"^\[(\d+):(\d+)(?::(\d+))?\]")
TIMESTAMP_RE = re.compile(r"^\[?\s*(\d+):(\d{1,2})(?::(\d{1,2}))?(?:\.(\d+))?\s*\]?$")


def format_timestamp(seconds: float) -> str:
    """Formats seconds as M:SS, or H:MM:SS once past the hour."""
    total = int(max(0.0, seconds))
    h, rem = divmod(total, 3600)
    m, s = divmod(rem, 60)
    if h > 0:
        return f"{h}:{m:02d}:{s:02d}"
    return f"{m}:{s:02d}"


def _to_seconds(first: str, second: str, third: Optional[str]) -> int:
    if third is not None:
        return int(first) * 3600 + int(second) * 60 + int(third)
    return int(first) * 60 + int(second)


def parse_timestamp(text: str) -> Optional[float]:
    """
    Parses "H:MM:SS", "MM:SS" (optionally bracketed, optionally with a
    fractional part) into seconds. Returns None when the text is not a timestamp.
    """
    match = TIMESTAMP_RE.match(text.strip())
    if not match:
        return None
    seconds = float(_to_seconds(match.group(1), match.group(2), match.group(3)))
    if match.group(4):
        seconds += float(f"0.{match.group(4)}")
    return seconds


def match_line_timestamp(line: str) -> Optional[int]:
    """Seconds of the timestamp prefixing a transcript line, if any."""
    match = LINE_TIMESTAMP_RE.match(line)
    if not match:
        return None
    return _to_seconds(match.group(1), match.group(2), match.group(3))
