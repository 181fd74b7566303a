"""Segment model for index-clipper.

A Segment is one timestamp range lifted out of the index text.
"""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class ParseMode(str, Enum):
    """Which segments of an index to keep."""

    ALL = "all"
    FLAGGED = "flagged"  # Only segments carrying the flag annotation


class Segment(BaseModel):
    """One time range plus metadata extracted from the index text.

    Timecodes are ``HH:MM:SS`` strings handed to ffmpeg untouched.
    """

    model_config = ConfigDict(frozen=True)

    start: str = Field(pattern=r"^\d{2}:\d{2}:\d{2}$")
    end: str = Field(pattern=r"^\d{2}:\d{2}:\d{2}$")
    title: str | None = None
    # True when the block carries the flag annotation, None otherwise
    flagged: bool | None = None
