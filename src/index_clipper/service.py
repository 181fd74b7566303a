"""Service facade for index-clipper.

The single entry point a transport layer (HTTP routes, CLI) talks to.
Owns the JobStore and wires parser, orchestrator and archive builder.
"""

from __future__ import annotations

import asyncio
import shutil
from pathlib import Path

from index_clipper.archive import ArchiveBuilder, ArchiveStream
from index_clipper.background import BackgroundTasks
from index_clipper.config import ClipperConfig
from index_clipper.errors import NotFoundError, StorageError, ValidationError
from index_clipper.ffmpeg import FFmpegInvoker, ToolInvoker
from index_clipper.index_parser import IndexParser
from index_clipper.jobs import JobStore
from index_clipper.logging import get_logger
from index_clipper.models import JobState, JobStatus, ParseMode
from index_clipper.naming import sanitize_filename
from index_clipper.splitter import SplittingOrchestrator

logger = get_logger(__name__)

INDEX_FILE_NAME = "index.txt"


class ClipService:
    """Upload-to-download lifecycle of splitting jobs.

    Example:
        service = ClipService(config)
        job_id = await service.submit(Path("talk.mp4"), index_text)
        ...
        service.status(job_id)  # JobStatus(state=..., progress=...)
        archive = await service.download(job_id)
    """

    def __init__(
        self,
        config: ClipperConfig | None = None,
        store: JobStore | None = None,
        invoker: ToolInvoker | None = None,
        archives: ArchiveBuilder | None = None,
    ) -> None:
        self.config = config or ClipperConfig()
        self.store = store or JobStore()
        self.invoker = invoker or FFmpegInvoker(self.config.ffmpeg)
        self.parser = IndexParser(flag_pattern=self.config.flag_pattern)
        self.orchestrator = SplittingOrchestrator(self.store, self.invoker, self.config)
        self.archives = archives or ArchiveBuilder(self.store, self.config)
        self.tasks = BackgroundTasks()

    async def submit(
        self,
        media_path: Path | str | None,
        index_text: str | None,
        mode: ParseMode = ParseMode.ALL,
        source_title: str | None = None,
    ) -> str:
        """Register a job and schedule its split in the background.

        Args:
            media_path: Materialized source video
            index_text: Raw index text
            mode: Keep all segments or only flagged ones
            source_title: Display title; defaults to the media file stem

        Returns:
            The new job id. Progress is observable via ``status``.

        Raises:
            ValidationError: If the media file or the index text is missing.
                The job is kept in state ``error``.
            StorageError: If the index text cannot be written. The job is
                kept in state ``error``.
        """
        job = self.store.create(mode=mode)

        media = Path(media_path) if media_path else None
        if media is None or not await asyncio.to_thread(media.is_file):
            self.store.update(job.id, state=JobState.ERROR, error="missing video file")
            raise ValidationError("video file is required", context={"job_id": job.id})

        if not index_text or not index_text.strip():
            self.store.update(job.id, state=JobState.ERROR, error="missing index text")
            raise ValidationError("index text is required", context={"job_id": job.id})

        index_path = self.config.job_storage_dir(job.id) / INDEX_FILE_NAME
        try:
            await asyncio.to_thread(_write_text, index_path, index_text)
        except OSError as e:
            self.store.update(job.id, state=JobState.ERROR, error="failed to store index text")
            logger.error(
                "Index text write failed",
                extra={"job_id": job.id, "path": str(index_path), "error": str(e)},
            )
            raise StorageError(
                f"failed to store index text: {e}",
                context={"job_id": job.id},
            ) from e

        segments = self.parser.parse_text(index_text, mode)
        title = sanitize_filename(
            source_title or media.stem, max_length=self.config.title_max_length
        )

        self.store.update(
            job.id,
            segments=segments,
            source_media_path=media,
            source_title=title,
            index_text_path=index_path,
        )
        logger.info(
            "Job submitted",
            extra={"job_id": job.id, "segments": len(segments), "mode": mode.value},
        )

        self.tasks.spawn(self.orchestrator.run(job.id), name=f"split-{job.id}")
        return job.id

    def status(self, job_id: str) -> JobStatus:
        """Current status of a job.

        Raises:
            NotFoundError: If the job is unknown
        """
        job = self.store.get(job_id)
        if job is None:
            raise NotFoundError("job not found", context={"job_id": job_id})
        return job.status()

    async def download(self, job_id: str) -> ArchiveStream:
        """Archive of one job's clips, named ``clips_{job_id}.zip``.

        Raises:
            NotFoundError: If the job's clip directory does not exist
        """
        return await self.archives.build_single(job_id)

    async def download_batch(self, job_ids: list[str]) -> ArchiveStream:
        """Archive of several jobs' clips, named ``ALL_{timestamp}.zip``.

        Raises:
            ValidationError: If no usable job id was given
        """
        ids = [job_id.strip() for job_id in job_ids if isinstance(job_id, str) and job_id.strip()]
        if not ids:
            raise ValidationError("job ids are required")
        return await self.archives.build_batch(ids)

    async def cleanup(self, job_id: str) -> None:
        """Delete a job's files and forget it. Safe to call repeatedly."""
        for directory in (
            self.config.job_storage_dir(job_id),
            self.config.job_output_dir(job_id),
        ):
            try:
                await asyncio.to_thread(_remove_tree, directory)
            except OSError as e:
                logger.error(
                    "Cleanup failed",
                    extra={"job_id": job_id, "path": str(directory), "error": str(e)},
                )
        self.store.delete(job_id)

    async def shutdown(self) -> None:
        """Wait for all background splits to finish."""
        await self.tasks.drain()


def _write_text(path: Path, text: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text, encoding="utf-8")


def _remove_tree(path: Path) -> None:
    if path.exists():
        shutil.rmtree(path)
