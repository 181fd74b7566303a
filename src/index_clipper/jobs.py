"""In-memory job registry.

Jobs live for the lifetime of the process. Each update builds a new frozen
``Job`` and swaps it in with a single assignment, so readers always see
either the old or the new record.
"""

from __future__ import annotations

from typing import Any, Iterator

from index_clipper.models import Job


class JobStore:
    """Keyed registry of Job records.

    One instance is owned by the service and passed to collaborators;
    nothing else keeps Job objects around, everything looks them up by id.

    Example:
        store = JobStore()
        job = store.create()
        store.update(job.id, state=JobState.PROCESSING)
        store.get(job.id).state  # JobState.PROCESSING
    """

    def __init__(self) -> None:
        self._jobs: dict[str, Job] = {}

    def create(self, **fields: Any) -> Job:
        """Register a new job.

        Args:
            **fields: Initial field values; ``id`` may be given to rehydrate
                a known job, otherwise a fresh one is generated.

        Returns:
            The new job in state ``queued`` with progress 0 unless overridden
        """
        job = Job(**fields)
        if job.id in self._jobs:
            raise ValueError(f"Job already exists: {job.id}")
        self._jobs[job.id] = job
        return job

    def get(self, job_id: str) -> Job | None:
        """Get a job by id, or None if unknown."""
        return self._jobs.get(job_id)

    def update(self, job_id: str, **fields: Any) -> Job | None:
        """Merge fields into a job.

        Fields not supplied are left untouched. The merged record is
        validated before it replaces the stored one.

        Args:
            job_id: Job to update
            **fields: Fields to replace

        Returns:
            The updated job, or None if the id is unknown
        """
        job = self._jobs.get(job_id)
        if job is None:
            return None

        merged = Job.model_validate({**job.model_dump(), **fields})
        self._jobs[job_id] = merged
        return merged

    def delete(self, job_id: str) -> None:
        """Forget a job. Unknown ids are ignored."""
        self._jobs.pop(job_id, None)

    def ids(self) -> list[str]:
        """Ids of all known jobs, oldest first."""
        return list(self._jobs)

    def __contains__(self, job_id: object) -> bool:
        return job_id in self._jobs

    def __len__(self) -> int:
        return len(self._jobs)

    def __iter__(self) -> Iterator[Job]:
        return iter(list(self._jobs.values()))
