"""Progress parsing for ffmpeg diagnostic output.

ffmpeg writes a stream header (``Duration: 00:00:09.05, start: ...``,
``Stream #0:0(und): Video: h264 ...``) followed by periodic stats lines
(``frame=  120 fps= 60 ... time=00:00:04.80 bitrate=...``). This module
recognises those few tokens with regular expressions; it is not a container
parser. Every function is pure and never raises on malformed input.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import timedelta

from conversion.domain.models import StreamFormat

_TIMESTAMP = r"(-?\d+):(\d{1,2}):(\d{1,2}(?:\.\d+)?)"

TIME_PATTERN = re.compile(r"\btime=\s*" + _TIMESTAMP)
DURATION_PATTERN = re.compile(r"\bDuration:\s*" + _TIMESTAMP)
STREAM_PATTERN = re.compile(r"\bStream #\d+:\d+\S*: (Video|Audio|Subtitle|Data): ([\w-]+)")

_FULL_TIMESTAMP = re.compile(r"^\s*" + _TIMESTAMP + r"\s*$")


@dataclass(frozen=True)
class ParsedLine:
    """Tokens recognised in one diagnostic line. Absent tokens are None."""

    processed: timedelta | None = None
    total: timedelta | None = None
    stream: StreamFormat | None = None

    @property
    def is_empty(self) -> bool:
        return self.processed is None and self.total is None and self.stream is None


def _to_timedelta(hours: str, minutes: str, seconds: str) -> timedelta | None:
    if hours.startswith("-"):
        return None
    try:
        return timedelta(hours=int(hours), minutes=int(minutes), seconds=float(seconds))
    except (ValueError, OverflowError):
        return None


def parse_timestamp(text: str) -> timedelta | None:
    """Parse ``HH:MM:SS[.frac]`` into a timedelta, or None if malformed or negative."""
    match = _FULL_TIMESTAMP.match(text)
    if match is None:
        return None
    return _to_timedelta(*match.groups())


def parse_line(line: str) -> ParsedLine:
    """Extract elapsed time, total duration and stream format from a line."""
    processed = total = None
    stream = None

    time_match = TIME_PATTERN.search(line)
    if time_match:
        processed = _to_timedelta(*time_match.groups())

    duration_match = DURATION_PATTERN.search(line)
    if duration_match:
        total = _to_timedelta(*duration_match.groups())

    stream_match = STREAM_PATTERN.search(line)
    if stream_match:
        stream = StreamFormat(kind=stream_match.group(1), codec=stream_match.group(2))

    return ParsedLine(processed=processed, total=total, stream=stream)
