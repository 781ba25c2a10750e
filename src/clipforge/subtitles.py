"""SubRip (SRT) subtitle tracks built from transcript segments."""

from __future__ import annotations

import re
from collections.abc import Iterable
from pathlib import Path

from clipforge.jobs.models import TranscriptSegment

_TIMESTAMP_RE = re.compile(r"^(\d{2,}):(\d{2}):(\d{2}),(\d{3})$")
_ARROW = " --> "


def format_timestamp(ms: int) -> str:
    """Format milliseconds as ``HH:MM:SS,mmm``. Hours are not wrapped at 24."""
    if ms < 0:
        raise ValueError(f"negative timestamp: {ms}")
    hours, rem = divmod(ms, 3_600_000)
    minutes, rem = divmod(rem, 60_000)
    seconds, millis = divmod(rem, 1000)
    return f"{hours:02d}:{minutes:02d}:{seconds:02d},{millis:03d}"


def parse_timestamp(value: str) -> int:
    match = _TIMESTAMP_RE.match(value.strip())
    if not match:
        raise ValueError(f"invalid SRT timestamp: {value!r}")
    hours, minutes, seconds, millis = (int(g) for g in match.groups())
    return ((hours * 60 + minutes) * 60 + seconds) * 1000 + millis


def render_srt(segments: Iterable[TranscriptSegment]) -> str:
    """Render segments as an SRT document with 1-based sequential numbering.

    Text is written as given; trimming is left to ``normalize_segments``.
    An empty segment list yields an empty document.
    """
    blocks = []
    for index, seg in enumerate(segments, start=1):
        blocks.append(
            f"{index}\n{format_timestamp(seg.start_ms)}{_ARROW}{format_timestamp(seg.end_ms)}\n{seg.text}\n"
        )
    return "\n".join(blocks)


def parse_srt(content: str) -> list[TranscriptSegment]:
    """Parse an SRT document back into segments, in file order."""
    content = content.replace("\r\n", "\n").lstrip("\ufeff")
    segments: list[TranscriptSegment] = []
    for block in re.split(r"\n\s*\n", content.strip("\n")):
        lines = block.split("\n")
        if len(lines) < 2:
            continue
        timing = lines[1] if _ARROW.strip() in lines[1] else lines[0]
        start_raw, _, end_raw = timing.partition("-->")
        text_start = lines.index(timing) + 1
        segments.append(
            TranscriptSegment(
                start_ms=parse_timestamp(start_raw),
                end_ms=parse_timestamp(end_raw),
                text="\n".join(lines[text_start:]),
            )
        )
    return segments


def write_srt(segments: Iterable[TranscriptSegment], path: Path) -> Path:
    path.write_text(render_srt(segments), encoding="utf-8")
    return path


def clip_segments(
    segments: Iterable[TranscriptSegment], start_ms: int, end_ms: int
) -> list[TranscriptSegment]:
    """Restrict segments to ``[start_ms, end_ms)`` and shift them to start at 0.

    Segments straddling a window edge are trimmed to it.
    """
    clipped: list[TranscriptSegment] = []
    for seg in segments:
        if seg.end_ms <= start_ms or seg.start_ms >= end_ms:
            continue
        new_start = max(seg.start_ms, start_ms) - start_ms
        new_end = min(seg.end_ms, end_ms) - start_ms
        if new_end <= new_start or not seg.text.strip():
            continue
        clipped.append(TranscriptSegment(start_ms=new_start, end_ms=new_end, text=seg.text))
    return clipped


def normalize_segments(segments: Iterable[TranscriptSegment]) -> list[TranscriptSegment]:
    """Order segments by start time and trim overlaps so they never overlap."""
    ordered = sorted(segments, key=lambda s: (s.start_ms, s.end_ms))
    result: list[TranscriptSegment] = []
    for seg in ordered:
        if not seg.text.strip():
            continue
        start = seg.start_ms
        if result and start < result[-1].end_ms:
            start = result[-1].end_ms
        if seg.end_ms <= start:
            continue
        result.append(TranscriptSegment(start_ms=start, end_ms=seg.end_ms, text=seg.text.strip()))
    return result
