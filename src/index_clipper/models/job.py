"""Job model for index-clipper.

A Job is one request to split one source video. Records are frozen;
the JobStore replaces them wholesale on every update.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from pathlib import Path
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field

from index_clipper.models.segment import ParseMode, Segment


class JobState(str, Enum):
    """Lifecycle state of a job."""

    QUEUED = "queued"
    PROCESSING = "processing"
    DONE = "done"
    ERROR = "error"


def generate_job_id() -> str:
    """Generate a unique job ID."""
    return uuid4().hex


class JobStatus(BaseModel):
    """What a status query exposes about a job."""

    state: JobState
    progress: int
    message: str | None = None
    error: str | None = None


class Job(BaseModel):
    """A splitting job and everything needed to package its output."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    id: str = Field(default_factory=generate_job_id)
    state: JobState = JobState.QUEUED
    progress: int = Field(default=0, ge=0, le=100)
    mode: ParseMode = ParseMode.ALL

    # Intake
    segments: tuple[Segment, ...] | None = None
    source_media_path: Path | None = None
    source_title: str | None = None
    index_text_path: Path | None = None

    # Outcome
    message: str | None = None
    error: str | None = None

    created_at: datetime = Field(default_factory=datetime.now)

    @property
    def is_terminal(self) -> bool:
        """Check if the job has finished, successfully or not."""
        return self.state in (JobState.DONE, JobState.ERROR)

    def status(self) -> JobStatus:
        """Project the record onto its public status view."""
        return JobStatus(
            state=self.state,
            progress=self.progress,
            message=self.message,
            error=self.error,
        )
