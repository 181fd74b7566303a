"""Tests for zip packaging of generated clips."""

import asyncio
import io
import zipfile
from datetime import datetime
from pathlib import Path
from unittest.mock import patch

import pytest

from index_clipper.archive import ArchiveBuilder, ArchiveEntry, ArchiveStream
from index_clipper.config import ArchiveSettings, ClipperConfig
from index_clipper.errors import ArchiveError, ArchiveProblem, NotFoundError
from index_clipper.jobs import JobStore
from index_clipper.models import JobState, ParseMode, Segment
from index_clipper.naming import clip_file_name

FIXED_TIME = datetime(2024, 1, 2, 3, 4, 5)
BATCH_ROOT = "ALL_20240102_030405"

SEGMENTS = (
    Segment(start="00:00:00", end="00:01:00", title="Intro", flagged=True),
    Segment(start="00:01:00", end="00:02:00", title="Talk", flagged=None),
    Segment(start="00:02:00", end="00:03:00", title="Demo", flagged=True),
    Segment(start="00:03:00", end="00:04:00", title="Outro", flagged=None),
)


def read_zip(archive: ArchiveStream) -> zipfile.ZipFile:
    return zipfile.ZipFile(io.BytesIO(b"".join(archive.iter_bytes())))


def write_clips(config, job_id, segments, skip=()):
    clips_dir = config.clips_dir(job_id)
    clips_dir.mkdir(parents=True, exist_ok=True)
    for index, segment in enumerate(segments):
        if index in skip:
            continue
        (clips_dir / clip_file_name(segment, index)).write_bytes(f"clip {index}".encode())
    return clips_dir


@pytest.fixture
def config(tmp_path):
    return ClipperConfig(storage_root=tmp_path / "storage", output_root=tmp_path / "output")


@pytest.fixture
def store():
    return JobStore()


@pytest.fixture
def builder(store, config):
    return ArchiveBuilder(store, config, clock=lambda: FIXED_TIME)


class TestArchiveStream:
    """Tests for ArchiveStream encoding."""

    def test_streams_entries_and_manifest(self, tmp_path):
        """Test a small archive end to end."""
        clip = tmp_path / "a.mp4"
        clip.write_bytes(b"x" * 5000)
        archive = ArchiveStream(
            filename="test.zip",
            entries=[ArchiveEntry(path=clip, arcname="root/a.mp4")],
            manifest=[ArchiveProblem("job1", "job not found")],
            manifest_arcname="root/_errors.txt",
            chunk_size=1024,
        )

        zf = read_zip(archive)

        assert zf.namelist() == ["root/a.mp4", "root/_errors.txt"]
        assert zf.read("root/a.mp4") == b"x" * 5000
        assert zf.read("root/_errors.txt").decode() == "job1: job not found"
        assert zf.testzip() is None

    def test_stream_yields_multiple_chunks(self, tmp_path):
        """Test that large files are not emitted in one piece."""
        clip = tmp_path / "big.mp4"
        clip.write_bytes(bytes(range(256)) * 64)
        archive = ArchiveStream(
            filename="big.zip",
            entries=[ArchiveEntry(path=clip, arcname="big.mp4")],
            compression=zipfile.ZIP_STORED,
            chunk_size=1024,
        )

        chunks = list(archive.iter_bytes())

        assert len(chunks) > 1
        zf = zipfile.ZipFile(io.BytesIO(b"".join(chunks)))
        assert zf.read("big.mp4") == clip.read_bytes()

    def test_no_manifest_when_clean(self, tmp_path):
        """Test that an empty manifest adds no entry."""
        clip = tmp_path / "a.mp4"
        clip.write_bytes(b"a")
        archive = ArchiveStream(
            filename="a.zip", entries=[ArchiveEntry(path=clip, arcname="a.mp4")]
        )

        assert read_zip(archive).namelist() == ["a.mp4"]

    def test_missing_file_raises_archive_error(self, tmp_path):
        """Test that a file vanishing mid-stream surfaces as ArchiveError."""
        archive = ArchiveStream(
            filename="a.zip",
            entries=[ArchiveEntry(path=tmp_path / "gone.mp4", arcname="gone.mp4")],
        )

        with pytest.raises(ArchiveError, match="a.zip"):
            list(archive.iter_bytes())

    def test_async_iteration(self, tmp_path):
        """Test aiter_bytes gives the same archive."""
        clip = tmp_path / "a.mp4"
        clip.write_bytes(b"async")
        archive = ArchiveStream(
            filename="a.zip", entries=[ArchiveEntry(path=clip, arcname="a.mp4")]
        )

        async def collect():
            return [chunk async for chunk in archive.aiter_bytes()]

        data = b"".join(asyncio.run(collect()))

        assert zipfile.ZipFile(io.BytesIO(data)).read("a.mp4") == b"async"

    def test_write_to(self, tmp_path):
        """Test writing an archive to disk."""
        clip = tmp_path / "a.mp4"
        clip.write_bytes(b"disk")
        archive = ArchiveStream(
            filename="a.zip", entries=[ArchiveEntry(path=clip, arcname="a.mp4")]
        )

        target = archive.write_to(tmp_path / "out" / "a.zip")

        assert zipfile.ZipFile(target).read("a.mp4") == b"disk"


class TestBuildSingle:
    """Tests for single-job archives."""

    def test_segment_layout(self, builder, store, config):
        """Test flagged and unflagged folders under the job title."""
        store.create(
            id="job1",
            state=JobState.DONE,
            progress=100,
            segments=SEGMENTS,
            source_title="My Talk",
        )
        write_clips(config, "job1", SEGMENTS)

        archive = asyncio.run(builder.build_single("job1"))

        assert archive.filename == "clips_job1.zip"
        assert sorted(read_zip(archive).namelist()) == sorted(
            [
                f"My Talk/flagged/{clip_file_name(SEGMENTS[0], 0)}",
                f"My Talk/unflagged/{clip_file_name(SEGMENTS[1], 1)}",
                f"My Talk/flagged/{clip_file_name(SEGMENTS[2], 2)}",
                f"My Talk/unflagged/{clip_file_name(SEGMENTS[3], 3)}",
            ]
        )

    def test_missing_clips_skipped(self, builder, store, config):
        """Test that absent clips are left out without a manifest."""
        store.create(id="job1", state=JobState.DONE, segments=SEGMENTS, source_title="T")
        write_clips(config, "job1", SEGMENTS, skip={1})

        archive = asyncio.run(builder.build_single("job1"))

        assert len(archive.entries) == 3
        assert archive.manifest == []

    def test_missing_directory(self, builder, store):
        """Test that a job without a clip directory cannot be downloaded."""
        store.create(id="job1", state=JobState.DONE, segments=SEGMENTS)

        with pytest.raises(NotFoundError, match="clips not found"):
            asyncio.run(builder.build_single("job1"))

    def test_unknown_job_with_directory(self, builder, config):
        """Test the directory listing fallback for jobs the store forgot."""
        clips_dir = config.clips_dir("old")
        (clips_dir / "nested").mkdir(parents=True)
        (clips_dir / "a.mp4").write_bytes(b"a")
        (clips_dir / "nested" / "b.mp4").write_bytes(b"b")

        archive = asyncio.run(builder.build_single("old"))

        assert sorted(read_zip(archive).namelist()) == ["old/all/a.mp4", "old/all/nested/b.mp4"]

    def test_flagged_mode_uses_directory_listing(self, builder, store, config):
        """Test that FLAGGED jobs are packaged from the directory."""
        flagged = tuple(s for s in SEGMENTS if s.flagged)
        store.create(
            id="job1", state=JobState.DONE, mode=ParseMode.FLAGGED,
            segments=flagged, source_title="T",
        )
        write_clips(config, "job1", flagged)

        archive = asyncio.run(builder.build_single("job1"))

        assert all(e.arcname.startswith("T/all/") for e in archive.entries)
        assert len(archive.entries) == 2

    def test_falls_back_when_names_do_not_match(self, builder, store, config):
        """Test that stray files are still offered when no expected clip exists."""
        store.create(id="job1", state=JobState.DONE, segments=SEGMENTS, source_title="T")
        clips_dir = config.clips_dir("job1")
        clips_dir.mkdir(parents=True)
        (clips_dir / "renamed.mp4").write_bytes(b"r")

        archive = asyncio.run(builder.build_single("job1"))

        assert [e.arcname for e in archive.entries] == ["T/all/renamed.mp4"]


class TestBuildBatch:
    """Tests for multi-job archives."""

    def test_mixed_batch(self, builder, store, config):
        """Test a batch with a partial job and an unknown job."""
        store.create(
            id="jobA", state=JobState.DONE, progress=100, segments=SEGMENTS, source_title="A"
        )
        write_clips(config, "jobA", SEGMENTS, skip={3})

        archive = asyncio.run(builder.build_batch(["jobA", "jobB"]))
        zf = read_zip(archive)

        assert archive.filename == f"{BATCH_ROOT}.zip"
        clip_names = [n for n in zf.namelist() if n.endswith(".mp4")]
        assert len(clip_names) == 3
        assert all(n.startswith(f"{BATCH_ROOT}/A/") for n in clip_names)
        assert zf.read(f"{BATCH_ROOT}/_errors.txt").decode().splitlines() == [
            "jobA: 1 clips missing",
            "jobB: job not found",
        ]

    def test_clean_batch_has_no_manifest(self, builder, store, config):
        """Test that a fully successful batch has no manifest entry."""
        for job_id, title in (("j1", "One"), ("j2", "Two")):
            store.create(id=job_id, state=JobState.DONE, segments=SEGMENTS, source_title=title)
            write_clips(config, job_id, SEGMENTS)

        archive = asyncio.run(builder.build_batch(["j1", "j2"]))
        names = read_zip(archive).namelist()

        assert len(names) == 8
        assert not any(n.endswith("_errors.txt") for n in names)
        assert {n.split("/")[1] for n in names} == {"One", "Two"}

    def test_unfinished_job(self, builder, store, config):
        """Test that a job still processing is reported."""
        store.create(id="busy", state=JobState.PROCESSING, segments=SEGMENTS)
        write_clips(config, "busy", SEGMENTS)

        archive = asyncio.run(builder.build_batch(["busy"]))

        assert archive.entries == []
        assert archive.manifest == [ArchiveProblem("busy", "state is processing")]

    def test_missing_directory(self, builder, store):
        """Test a done job whose clips were removed."""
        store.create(id="j1", state=JobState.DONE, segments=SEGMENTS)

        archive = asyncio.run(builder.build_batch(["j1"]))

        assert archive.manifest == [ArchiveProblem("j1", "clips not found")]

    def test_no_clips_found(self, builder, store, config):
        """Test a done job whose directory is empty."""
        store.create(id="j1", state=JobState.DONE, segments=SEGMENTS)
        config.clips_dir("j1").mkdir(parents=True)

        archive = asyncio.run(builder.build_batch(["j1"]))

        assert archive.manifest == [ArchiveProblem("j1", "no clips found")]

    def test_job_without_segments_uses_directory(self, builder, store, config):
        """Test the flat listing for jobs without segment metadata."""
        store.create(id="j1", state=JobState.DONE)
        clips_dir = config.clips_dir("j1")
        clips_dir.mkdir(parents=True)
        (clips_dir / "x.mp4").write_bytes(b"x")

        archive = asyncio.run(builder.build_batch(["j1"]))

        assert [e.arcname for e in archive.entries] == [f"{BATCH_ROOT}/j1/all/x.mp4"]
        assert archive.manifest == []

    def test_duplicate_titles_get_distinct_folders(self, builder, store, config):
        """Test that two jobs with the same title do not collide."""
        for job_id in ("aaaaaaaaaaaa", "bbbbbbbbbbbb"):
            store.create(id=job_id, state=JobState.DONE, segments=SEGMENTS, source_title="Same")
            write_clips(config, job_id, SEGMENTS)

        archive = asyncio.run(builder.build_batch(["aaaaaaaaaaaa", "bbbbbbbbbbbb"]))
        folders = {n.split("/")[1] for n in read_zip(archive).namelist()}

        assert folders == {"Same", "Same_bbbbbbbb"}

    def test_duplicate_ids_packaged_once(self, builder, store, config):
        """Test that a repeated id is ignored."""
        store.create(id="j1", state=JobState.DONE, segments=SEGMENTS, source_title="T")
        write_clips(config, "j1", SEGMENTS)

        archive = asyncio.run(builder.build_batch(["j1", "j1"]))

        assert len(archive.entries) == 4

    def test_stored_compression_setting(self, store, tmp_path):
        """Test that the compression setting is honoured."""
        config = ClipperConfig(
            output_root=tmp_path / "output",
            archive=ArchiveSettings(compression="stored"),
        )
        builder = ArchiveBuilder(store, config, clock=lambda: FIXED_TIME)
        store.create(id="j1", state=JobState.DONE, segments=SEGMENTS, source_title="T")
        write_clips(config, "j1", SEGMENTS)

        archive = asyncio.run(builder.build_batch(["j1"]))
        infos = read_zip(archive).infolist()

        assert {info.compress_type for info in infos} == {zipfile.ZIP_STORED}

    def test_problems_logged(self, builder):
        """Test that a batch with problems logs a warning."""
        with patch("index_clipper.archive.logger") as mock_logger:
            asyncio.run(builder.build_batch(["nope"]))

        mock_logger.warning.assert_called_once()
        assert mock_logger.warning.call_args.kwargs["extra"]["problems"] == 1
