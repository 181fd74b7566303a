"""Tests for job models and the in-memory job store."""

import pydantic
import pytest

from index_clipper.jobs import JobStore
from index_clipper.models import Job, JobState, JobStatus, ParseMode, Segment


class TestJobModel:
    """Tests for the Job record."""

    def test_defaults(self):
        """Test a freshly created job."""
        job = Job()

        assert len(job.id) == 32
        assert job.state == JobState.QUEUED
        assert job.progress == 0
        assert job.mode == ParseMode.ALL
        assert job.segments is None
        assert not job.is_terminal

    def test_unique_ids(self):
        """Test that ids do not repeat."""
        assert len({Job().id for _ in range(50)}) == 50

    def test_frozen(self):
        """Test that records cannot be mutated in place."""
        job = Job()

        with pytest.raises(pydantic.ValidationError):
            job.state = JobState.DONE

    def test_progress_bounds(self):
        """Test progress validation."""
        with pytest.raises(pydantic.ValidationError):
            Job(progress=101)
        with pytest.raises(pydantic.ValidationError):
            Job(progress=-1)

    def test_terminal_states(self):
        """Test is_terminal."""
        assert Job(state=JobState.DONE).is_terminal
        assert Job(state=JobState.ERROR).is_terminal
        assert not Job(state=JobState.PROCESSING).is_terminal

    def test_status_view(self):
        """Test the public status projection."""
        job = Job(state=JobState.ERROR, progress=40, error="boom")

        assert job.status() == JobStatus(state=JobState.ERROR, progress=40, error="boom")


class TestSegmentModel:
    """Tests for the Segment record."""

    def test_timecode_format(self):
        """Test that malformed timecodes are rejected."""
        with pytest.raises(pydantic.ValidationError):
            Segment(start="0:00:01", end="00:00:02")

    def test_equality(self):
        """Test value equality."""
        assert Segment(start="00:00:01", end="00:00:02", title="a") == Segment(
            start="00:00:01", end="00:00:02", title="a"
        )


class TestJobStore:
    """Tests for JobStore."""

    def test_create_and_get(self):
        """Test registering a job."""
        store = JobStore()
        job = store.create()

        assert store.get(job.id) is job
        assert job.id in store
        assert len(store) == 1

    def test_create_with_id(self):
        """Test rehydrating a job under a known id."""
        store = JobStore()
        job = store.create(id="abc", state=JobState.DONE, progress=100)

        assert store.get("abc") == job
        assert store.ids() == ["abc"]

    def test_create_duplicate_id(self):
        """Test that an id cannot be registered twice."""
        store = JobStore()
        store.create(id="abc")

        with pytest.raises(ValueError, match="already exists"):
            store.create(id="abc")

    def test_get_unknown(self):
        """Test lookup of an unknown id."""
        assert JobStore().get("missing") is None

    def test_update_merges_fields(self):
        """Test that untouched fields keep their values."""
        store = JobStore()
        job = store.create(source_title="Talk")

        updated = store.update(job.id, state=JobState.PROCESSING, progress=10)

        assert updated.state == JobState.PROCESSING
        assert updated.progress == 10
        assert updated.source_title == "Talk"
        assert updated.created_at == job.created_at
        assert store.get(job.id) is updated

    def test_update_replaces_record(self):
        """Test that earlier snapshots are left unchanged."""
        store = JobStore()
        job = store.create()

        store.update(job.id, progress=50)

        assert job.progress == 0
        assert store.get(job.id).progress == 50

    def test_update_segments(self):
        """Test storing parsed segments."""
        store = JobStore()
        job = store.create()
        segments = (Segment(start="00:00:00", end="00:00:10", title="a", flagged=True),)

        store.update(job.id, segments=segments)

        assert store.get(job.id).segments == segments

    def test_update_unknown(self):
        """Test that updating an unknown id is a no-op."""
        store = JobStore()

        assert store.update("missing", progress=5) is None
        assert len(store) == 0

    def test_update_validates(self):
        """Test that invalid values are rejected and the record is kept."""
        store = JobStore()
        job = store.create()

        with pytest.raises(pydantic.ValidationError):
            store.update(job.id, progress=500)

        assert store.get(job.id) is job

    def test_update_rejects_unknown_field(self):
        """Test that a misspelled field fails instead of being dropped."""
        store = JobStore()
        job = store.create()

        with pytest.raises(pydantic.ValidationError):
            store.update(job.id, stat=JobState.DONE)

        assert store.get(job.id) is job

    def test_create_rejects_unknown_field(self):
        """Test that unknown fields are rejected on creation."""
        with pytest.raises(pydantic.ValidationError):
            JobStore().create(titel="Talk")

    def test_delete_is_idempotent(self):
        """Test deleting twice."""
        store = JobStore()
        job = store.create()

        store.delete(job.id)
        store.delete(job.id)

        assert store.get(job.id) is None
        assert len(store) == 0

    def test_iteration(self):
        """Test iterating over jobs in creation order."""
        store = JobStore()
        first = store.create()
        second = store.create()

        assert [job.id for job in store] == [first.id, second.id]
