"""SMPTE-style timecode helpers (H:MM:SS:FF)."""

import re

TIMECODE_RE = re.compile(r"^(\d+):([0-5]\d):([0-5]\d)[:;](\d{2})$")


def timecode_to_seconds(timecode: str, fps: int) -> float:
    """Convert an H:MM:SS:FF timecode to seconds at the given frame rate."""
    if fps <= 0:
        raise ValueError(f"fps must be positive, got {fps}")
    match = TIMECODE_RE.match(timecode.strip())
    if not match:
        raise ValueError(f"Invalid timecode: {timecode!r}")
    hours, minutes, seconds, frames = (int(part) for part in match.groups())
    if frames >= fps:
        raise ValueError(f"Frame {frames} out of range for {fps} fps in {timecode!r}")
    return hours * 3600 + minutes * 60 + seconds + frames / fps


def insertion_offset_seconds(start: str, insert_at: str, fps: int) -> float:
    """Offset of ``insert_at`` from the first frame ``start``; never negative."""
    offset = timecode_to_seconds(insert_at, fps) - timecode_to_seconds(start, fps)
    if offset < 0:
        raise ValueError(f"Insertion point {insert_at} precedes start {start}")
    return offset
