"""
Transcript chunking.

Long transcripts are split on line boundaries into chunks that fit the model
context window. Each new chunk is seeded with the trailing lines of the
previous one (everything within ``overlap_seconds`` of the seam) so a moment
straddling a chunk boundary is seen whole by at least one model call.
"""
import math
from typing import Iterable, List, Optional, Tuple

from autoclipper_core.transcription.models import TranscriptChunk, TranscriptSegment
from autoclipper_core.utils.timecode import LINE_TIMESTAMP_RE, format_timestamp, match_line_timestamp

DEFAULT_MAX_CHARS = 24000  # ~6000 tokens
DEFAULT_OVERLAP_SECONDS = 30.0

_BufferedLine = Tuple[Optional[int], str]


def format_transcript(segments: Iterable[TranscriptSegment]) -> str:
    """Renders segments as "[M:SS] text" lines, ordered by start time."""
    lines = []
    for seg in sorted(segments, key=lambda s: s.start):
        prefix = f"[{format_timestamp(seg.start)}]"
        if seg.speaker:
            lines.append(f"{prefix} {seg.speaker}: {seg.text}")
        else:
            lines.append(f"{prefix} {seg.text}")
    return "\n".join(lines)


def estimate_tokens(text: str) -> int:
    """Rough token estimate, 1 token per 4 characters of English text."""
    return math.ceil(len(text) / 4)


def extract_end_time(transcript: str) -> int:
    """Last line timestamp found scanning from the end, or 0."""
    for line in reversed(transcript.split("\n")):
        seconds = match_line_timestamp(line)
        if seconds is not None:
            return seconds
    return 0


def _buffer_size(buffer: List[_BufferedLine]) -> int:
    return sum(len(line) + 1 for _, line in buffer)


def _drop_orphans(buffer: List[_BufferedLine]) -> List[_BufferedLine]:
    # Untimestamped lines only survive behind the timestamped line they continue
    start = 0
    while start < len(buffer) and buffer[start][0] is None:
        start += 1
    return buffer[start:]


def _trim_overlap(buffer: List[_BufferedLine], latest: int, overlap_seconds: float) -> List[_BufferedLine]:
    buffer = _drop_orphans(buffer)
    while buffer and latest - buffer[0][0] > overlap_seconds:
        buffer = _drop_orphans(buffer[1:])
    return buffer


def _fit_overlap(buffer: List[_BufferedLine], budget: int) -> List[_BufferedLine]:
    while buffer and _buffer_size(buffer) > budget:
        buffer = _drop_orphans(buffer[1:])
    return buffer


def chunk_transcript(
    transcript: str,
    max_chars: int = DEFAULT_MAX_CHARS,
    overlap_seconds: float = DEFAULT_OVERLAP_SECONDS,
) -> List[TranscriptChunk]:
    """
    Splits a formatted transcript into overlapping chunks of at most
    ``max_chars`` characters.

    A single line longer than ``max_chars`` becomes its own oversized chunk
    rather than being dropped.
    """
    if not transcript.strip():
        return []

    if len(transcript) <= max_chars:
        return [TranscriptChunk(text=transcript.strip(), start_offset=0, end_offset=extract_end_time(transcript))]

    chunks: List[TranscriptChunk] = []
    current: List[str] = []
    current_size = 0
    chunk_start = 0.0
    last_timestamp = 0
    overlap: List[_BufferedLine] = []

    for line in transcript.split("\n"):
        timestamp = match_line_timestamp(line)
        if timestamp is not None:
            last_timestamp = timestamp

        line_size = len(line) + 1
        if current and current_size + line_size > max_chars:
            text = "\n".join(current).strip()
            if text:
                chunks.append(
                    TranscriptChunk(
                        text=text,
                        start_offset=chunk_start,
                        end_offset=max(float(last_timestamp), chunk_start),
                    )
                )

            overlap = _trim_overlap(overlap, last_timestamp, overlap_seconds)
            overlap = _fit_overlap(overlap, max_chars - line_size)

            current = [buffered for _, buffered in overlap]
            current_size = _buffer_size(overlap)
            chunk_start = float(overlap[0][0]) if overlap else float(last_timestamp)

        current.append(line)
        current_size += line_size

        if timestamp is not None:
            overlap.append((timestamp, line))
            overlap = _trim_overlap(overlap, last_timestamp, overlap_seconds)
        elif overlap:
            overlap.append((None, line))

    text = "\n".join(current).strip()
    if text:
        chunks.append(
            TranscriptChunk(text=text, start_offset=chunk_start, end_offset=max(float(last_timestamp), chunk_start))
        )

    return chunks


def rebase_chunk_text(text: str, offset: float) -> str:
    """Rewrites line timestamps so they count from ``offset`` instead of zero."""
    rebased = []
    for line in text.split("\n"):
        seconds = match_line_timestamp(line)
        if seconds is None:
            rebased.append(line)
            continue
        relative = max(0.0, seconds - offset)
        rebased.append(LINE_TIMESTAMP_RE.sub(f"[{format_timestamp(relative)}]", line, count=1))
    return "\n".join(rebased)
