"""Data models for index-clipper.

Pydantic models for parsed segments and splitting jobs.
"""

from __future__ import annotations

from index_clipper.models.job import Job, JobState, JobStatus
from index_clipper.models.segment import ParseMode, Segment

__all__ = [
    # Segment models
    "ParseMode",
    "Segment",
    # Job models
    "Job",
    "JobState",
    "JobStatus",
]
