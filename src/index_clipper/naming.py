"""Clip file naming.

Names are a pure function of (segment, position) so the expected file set
of a job can be recomputed later without re-running the split.
"""

from __future__ import annotations

import re

from index_clipper.models import Segment

DEFAULT_MAX_LENGTH = 120
DEFAULT_PLACEHOLDER = "untitled"
CLIP_EXTENSION = ".mp4"

_FORBIDDEN_CHARS = re.compile(r'[\\/:*?"<>|\x00-\x1f]')
_WHITESPACE = re.compile(r"\s+")


def sanitize_filename(
    value: str,
    max_length: int = DEFAULT_MAX_LENGTH,
    placeholder: str = DEFAULT_PLACEHOLDER,
) -> str:
    """Make a string safe to use as a file or folder name.

    Whitespace runs (tabs and newlines included) collapse to a single space,
    then forbidden and control characters become ``_``. The result is
    trimmed and truncated.

    Args:
        value: Raw name
        max_length: Maximum length of the result
        placeholder: Returned when nothing usable is left

    Returns:
        Sanitized name, never empty
    """
    normalized = _FORBIDDEN_CHARS.sub("_", _WHITESPACE.sub(" ", value)).strip()
    safe = normalized or placeholder
    if len(safe) > max_length:
        safe = safe[:max_length].strip() or placeholder
    return safe


def compact_timecode(timecode: str) -> str:
    """``00:22:12`` -> ``002212``."""
    return timecode.replace(":", "")


def clip_file_name(
    segment: Segment,
    index: int,
    *,
    max_title_length: int = DEFAULT_MAX_LENGTH,
) -> str:
    """Build the output file name for a segment.

    Args:
        segment: Parsed segment
        index: 0-based position of the segment in its job
        max_title_length: Upper bound for the sanitized title part

    Returns:
        ``{NN}_{HHMMSS}-{HHMMSS}_{title}.mp4`` with NN 1-based, at least 2 digits
    """
    number = f"{index + 1:02d}"
    span = f"{compact_timecode(segment.start)}-{compact_timecode(segment.end)}"
    title = sanitize_filename(segment.title or "", max_length=max_title_length)
    return f"{number}_{span}_{title}{CLIP_EXTENSION}"
