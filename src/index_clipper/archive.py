"""Zip packaging of generated clips.

Builds downloadable archives for one job or a batch of jobs. Resolution
(which files go where, what is missing) happens up front; the zip itself is
produced lazily as a byte stream, one chunk at a time, so a multi-gigabyte
archive never sits in memory.

Layout:
    single:  {title}/{flagged|unflagged|all}/{clip}.mp4
    batch:   ALL_{yyyyMMdd_HHmmss}/{title}/{flagged|unflagged|all}/{clip}.mp4
             ALL_{yyyyMMdd_HHmmss}/_errors.txt   (only when something is wrong)
"""

from __future__ import annotations

import asyncio
import io
import stat
import time
import zipfile
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path, PurePosixPath
from typing import AsyncIterator, Callable, Iterator

from index_clipper.config import ClipperConfig
from index_clipper.errors import ArchiveError, ArchiveProblem, NotFoundError
from index_clipper.jobs import JobStore
from index_clipper.logging import get_logger
from index_clipper.models import Job, JobState, ParseMode
from index_clipper.naming import clip_file_name, sanitize_filename

logger = get_logger(__name__)

_COMPRESSION = {
    "deflated": zipfile.ZIP_DEFLATED,
    "stored": zipfile.ZIP_STORED,
}

# Zip timestamps cannot predate 1980
_MIN_ZIP_DATE = (1980, 1, 1, 0, 0, 0)


@dataclass(frozen=True)
class ArchiveEntry:
    """A file on disk and its path inside the archive."""

    path: Path
    arcname: str


class _ChunkSink(io.RawIOBase):
    """Unseekable write target that hands out what was written so far.

    ``zipfile`` detects that it cannot seek and writes data descriptors
    after each member instead of patching local headers.
    """

    def __init__(self) -> None:
        super().__init__()
        self._buffer = bytearray()

    def writable(self) -> bool:
        return True

    def write(self, data) -> int:  # type: ignore[override]
        self._buffer.extend(data)
        return len(data)

    def take(self) -> bytes:
        data = bytes(self._buffer)
        self._buffer.clear()
        return data


@dataclass
class ArchiveStream:
    """A resolved archive, ready to be streamed.

    Attributes:
        filename: Suggested download name
        entries: Files to include, in order
        manifest: Problems to report in the manifest entry
        manifest_arcname: Where the manifest goes inside the archive
        compression: ``zipfile`` compression constant
        chunk_size: Bytes read per write
    """

    filename: str
    entries: list[ArchiveEntry] = field(default_factory=list)
    manifest: list[ArchiveProblem] = field(default_factory=list)
    manifest_arcname: str = "_errors.txt"
    compression: int = zipfile.ZIP_DEFLATED
    chunk_size: int = 1024 * 1024

    @property
    def manifest_text(self) -> str:
        """Manifest content, one problem per line."""
        return "\n".join(str(problem) for problem in self.manifest)

    def iter_bytes(self) -> Iterator[bytes]:
        """Yield the zip file in chunks.

        Raises:
            ArchiveError: If a file cannot be read or the zip cannot be
                written. Chunks already yielded are not recalled.
        """
        sink = _ChunkSink()
        try:
            with zipfile.ZipFile(sink, mode="w", compression=self.compression) as zf:
                for entry in self.entries:
                    yield from self._write_entry(zf, sink, entry)
                if self.manifest:
                    info = zipfile.ZipInfo(self.manifest_arcname, time.localtime()[:6])
                    info.compress_type = zipfile.ZIP_DEFLATED
                    info.external_attr = (stat.S_IFREG | 0o644) << 16
                    zf.writestr(info, self.manifest_text)
            data = sink.take()
            if data:
                yield data
        except (OSError, zipfile.LargeZipFile, RuntimeError, ValueError) as e:
            logger.error("Archive assembly failed", extra={"archive": self.filename})
            raise ArchiveError(
                f"Failed to build {self.filename}: {e}",
                context={"archive": self.filename},
            ) from e

    def _write_entry(
        self,
        zf: zipfile.ZipFile,
        sink: _ChunkSink,
        entry: ArchiveEntry,
    ) -> Iterator[bytes]:
        st = entry.path.stat()
        date_time = max(time.localtime(st.st_mtime)[:6], _MIN_ZIP_DATE)
        info = zipfile.ZipInfo(entry.arcname, date_time)
        info.compress_type = self.compression
        info.external_attr = (stat.S_IFREG | 0o644) << 16
        info.file_size = st.st_size

        force_zip64 = st.st_size >= zipfile.ZIP64_LIMIT
        with entry.path.open("rb") as src, zf.open(info, mode="w", force_zip64=force_zip64) as dst:
            while True:
                chunk = src.read(self.chunk_size)
                if not chunk:
                    break
                dst.write(chunk)
                data = sink.take()
                if data:
                    yield data

    async def aiter_bytes(self) -> AsyncIterator[bytes]:
        """Async variant of ``iter_bytes``; each chunk is built in a worker thread."""
        iterator = self.iter_bytes()
        while True:
            chunk = await asyncio.to_thread(next, iterator, None)
            if chunk is None:
                break
            yield chunk

    def write_to(self, path: Path) -> Path:
        """Stream the archive into a file on disk."""
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "wb") as f:
            for chunk in self.iter_bytes():
                f.write(chunk)
        return path


def _list_files(directory: Path, recursive: bool) -> list[Path]:
    candidates = directory.rglob("*") if recursive else directory.iterdir()
    return sorted(p for p in candidates if p.is_file())


class ArchiveBuilder:
    """Resolves jobs' clip directories into archive streams.

    Example:
        builder = ArchiveBuilder(store, config)
        archive = await builder.build_batch(["a1b2", "c3d4"])
        async for chunk in archive.aiter_bytes():
            await response.write(chunk)
    """

    def __init__(
        self,
        store: JobStore,
        config: ClipperConfig | None = None,
        clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        self.store = store
        self.config = config or ClipperConfig()
        self.clock = clock

    def _new_stream(self, filename: str) -> ArchiveStream:
        settings = self.config.archive
        return ArchiveStream(
            filename=filename,
            compression=_COMPRESSION[settings.compression],
            chunk_size=settings.chunk_size,
        )

    def job_folder_name(self, job_id: str, job: Job | None) -> str:
        """Sanitized job title, or the id when there is none."""
        return sanitize_filename(
            job.source_title if job and job.source_title else job_id,
            max_length=self.config.title_max_length,
        )

    def _segment_folder(self, flagged: bool | None) -> str:
        settings = self.config.archive
        return settings.flagged_folder if flagged is True else settings.unflagged_folder

    async def _collect_expected(
        self,
        job: Job,
        clips_dir: Path,
        root: PurePosixPath,
    ) -> tuple[list[ArchiveEntry], int]:
        """Check each expected clip individually.

        Returns:
            Entries for the clips found, and the number missing
        """
        entries: list[ArchiveEntry] = []
        missing = 0
        for index, segment in enumerate(job.segments or ()):
            name = clip_file_name(segment, index, max_title_length=self.config.title_max_length)
            path = clips_dir / name
            if not await asyncio.to_thread(path.is_file):
                missing += 1
                continue
            arcname = root / self._segment_folder(segment.flagged) / name
            entries.append(ArchiveEntry(path=path, arcname=str(arcname)))
        return entries, missing

    async def _collect_directory(
        self,
        clips_dir: Path,
        root: PurePosixPath,
        recursive: bool,
    ) -> list[ArchiveEntry]:
        files = await asyncio.to_thread(_list_files, clips_dir, recursive)
        folder = root / self.config.archive.fallback_folder
        return [
            ArchiveEntry(path=path, arcname=str(folder / path.relative_to(clips_dir).as_posix()))
            for path in files
        ]

    @staticmethod
    def _uses_segment_layout(job: Job | None) -> bool:
        return bool(job and job.mode == ParseMode.ALL and job.segments)

    async def build_single(self, job_id: str) -> ArchiveStream:
        """Resolve one job's clips.

        Args:
            job_id: Job to package

        Returns:
            ArchiveStream named ``clips_{job_id}.zip``

        Raises:
            NotFoundError: If the job's clip directory does not exist
        """
        clips_dir = self.config.clips_dir(job_id)
        if not await asyncio.to_thread(clips_dir.is_dir):
            raise NotFoundError("clips not found", context={"job_id": job_id})

        job = self.store.get(job_id)
        root = PurePosixPath(self.job_folder_name(job_id, job))
        archive = self._new_stream(f"clips_{job_id}.zip")

        if self._uses_segment_layout(job):
            archive.entries, _ = await self._collect_expected(job, clips_dir, root)

        if not archive.entries:
            archive.entries = await self._collect_directory(clips_dir, root, recursive=True)

        logger.info(
            "Resolved single archive",
            extra={"job_id": job_id, "entries": len(archive.entries)},
        )
        return archive

    async def build_batch(self, job_ids: list[str]) -> ArchiveStream:
        """Resolve several jobs into one archive.

        Problem jobs never fail the archive; each becomes a manifest line.
        Jobs are resolved one after another in request order.

        Args:
            job_ids: Jobs to package (duplicates are ignored)

        Returns:
            ArchiveStream named ``ALL_{yyyyMMdd_HHmmss}.zip``
        """
        root_name = f"ALL_{self.clock():%Y%m%d_%H%M%S}"
        root = PurePosixPath(root_name)
        archive = self._new_stream(f"{root_name}.zip")
        archive.manifest_arcname = str(root / self.config.archive.manifest_name)
        used_folders: set[str] = set()

        for job_id in dict.fromkeys(job_ids):
            job = self.store.get(job_id)
            if job is None:
                archive.manifest.append(ArchiveProblem(job_id, "job not found"))
                continue

            if job.state != JobState.DONE:
                archive.manifest.append(ArchiveProblem(job_id, f"state is {job.state.value}"))
                continue

            clips_dir = self.config.clips_dir(job_id)
            if not await asyncio.to_thread(clips_dir.is_dir):
                archive.manifest.append(ArchiveProblem(job_id, "clips not found"))
                continue

            folder = self.job_folder_name(job_id, job)
            if folder in used_folders:
                folder = f"{folder}_{job_id[:8]}"
            used_folders.add(folder)
            job_root = root / folder

            if self._uses_segment_layout(job):
                entries, missing = await self._collect_expected(job, clips_dir, job_root)
                if not entries:
                    archive.manifest.append(ArchiveProblem(job_id, "no clips found"))
                elif missing:
                    archive.manifest.append(ArchiveProblem(job_id, f"{missing} clips missing"))
            else:
                entries = await self._collect_directory(clips_dir, job_root, recursive=False)
                if not entries:
                    archive.manifest.append(ArchiveProblem(job_id, "no clips found"))

            archive.entries.extend(entries)

        if archive.manifest:
            logger.warning(
                "Batch archive has problems",
                extra={"archive": archive.filename, "problems": len(archive.manifest)},
            )
        return archive
