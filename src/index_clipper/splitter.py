"""Splitting orchestration.

Drives one job from ``queued`` to ``done`` or ``error``: one stream-copy
cut per segment, strictly in order, with progress written back to the
JobStore after every clip.
"""

from __future__ import annotations

import asyncio
import math
import time
from abc import ABC, abstractmethod
from pathlib import Path

from index_clipper.config import ClipperConfig
from index_clipper.errors import ClipperError
from index_clipper.ffmpeg import ToolInvoker, build_cut_args
from index_clipper.jobs import JobStore
from index_clipper.logging import (
    get_logger,
    log_operation_complete,
    log_operation_failed,
    log_operation_start,
)
from index_clipper.models import JobState
from index_clipper.naming import clip_file_name

logger = get_logger(__name__)

NO_SEGMENTS_MESSAGE = "no segments"


def progress_percent(done: int, total: int) -> int:
    """Whole-number percentage, rounding halves up."""
    if total <= 0:
        return 100
    return min(100, math.floor(100 * done / total + 0.5))


class ProgressReporter(ABC):
    """Receives per-clip progress from the orchestrator."""

    @abstractmethod
    def on_progress(self, done: int, total: int) -> None:
        """Called after clip ``done`` of ``total`` has been written."""
        pass


class StoreProgressReporter(ProgressReporter):
    """Writes percentage progress onto the job record."""

    def __init__(self, store: JobStore, job_id: str) -> None:
        self.store = store
        self.job_id = job_id

    def on_progress(self, done: int, total: int) -> None:
        self.store.update(self.job_id, progress=progress_percent(done, total))


class SplittingOrchestrator:
    """Runs the external cutting tool over a job's segments.

    A failing cut is fatal to the job: remaining segments are skipped,
    clips already written stay on disk, and the failure text is recorded
    as the job's ``error``.
    """

    def __init__(
        self,
        store: JobStore,
        invoker: ToolInvoker,
        config: ClipperConfig | None = None,
    ) -> None:
        self.store = store
        self.invoker = invoker
        self.config = config or ClipperConfig()

    async def run(self, job_id: str, reporter: ProgressReporter | None = None) -> None:
        """Split the job's source media into clips.

        Args:
            job_id: Job to process; must already carry its segments
            reporter: Optional extra reporter (e.g. a console progress bar),
                called after the job record has been updated
        """
        job = self.store.get(job_id)
        if job is None:
            logger.warning("Job vanished before processing", extra={"job_id": job_id})
            return

        self.store.update(job_id, state=JobState.PROCESSING, progress=0)

        segments = job.segments or ()
        if not segments:
            self.store.update(
                job_id, state=JobState.DONE, progress=100, message=NO_SEGMENTS_MESSAGE
            )
            logger.info("No segments to cut", extra={"job_id": job_id})
            return

        if job.source_media_path is None:
            self.store.update(job_id, state=JobState.ERROR, error="missing video file")
            return

        reporters: list[ProgressReporter] = [StoreProgressReporter(self.store, job_id)]
        if reporter is not None:
            reporters.append(reporter)

        clips_dir = self.config.clips_dir(job_id)
        total = len(segments)
        started = time.monotonic()

        log_operation_start(logger, "split", job_id=job_id, segments=total)
        try:
            await asyncio.to_thread(clips_dir.mkdir, parents=True, exist_ok=True)
            for index, segment in enumerate(segments):
                output = clips_dir / clip_file_name(
                    segment, index, max_title_length=self.config.title_max_length
                )
                await self._cut(job.source_media_path, segment.start, segment.end, output)
                for r in reporters:
                    r.on_progress(index + 1, total)
        except Exception as e:
            message = e.message if isinstance(e, ClipperError) else str(e)
            self.store.update(job_id, state=JobState.ERROR, error=message or type(e).__name__)
            log_operation_failed(logger, "split", e, job_id=job_id)
            return

        self.store.update(job_id, state=JobState.DONE, progress=100)
        log_operation_complete(
            logger, "split", duration=time.monotonic() - started, job_id=job_id, clips=total
        )

    async def _cut(self, source: Path, start: str, end: str, output: Path) -> None:
        logger.debug("Cutting %s-%s", start, end, extra={"output": output.name})
        await self.invoker.invoke(build_cut_args(source, start, end, output))
