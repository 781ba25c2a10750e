"""JSON-backed job store: the single source of truth for ContentJobs.

Persists all jobs in one JSON file, loaded on init and rewritten
atomically after every mutation.  Writes are guarded by a status check
so that a stale copy of a job can never overwrite a newer one.
"""

from __future__ import annotations

import json
import logging
import threading
from collections import Counter
from datetime import UTC, datetime
from pathlib import Path

from pydantic import BaseModel, Field, ValidationError

from clipforge.core import _atomic_write
from clipforge.errors import (
    ConflictFailure,
    InvalidTransitionError,
    NotFoundFailure,
    StoreUnavailableError,
)
from clipforge.jobs.models import SYSTEM_ACTOR, ContentJob, JobStatus, can_transition

logger = logging.getLogger(__name__)

JOBS_FILENAME = ".clipforge-jobs.json"

# Alias to avoid shadowing by JobStore.list method
_list = list


class _StoreData(BaseModel):
    """Internal wrapper for JSON serialization."""

    jobs: list[ContentJob] = Field(default_factory=list)


class JobStore:
    """Thread-safe CRUD store for content jobs."""

    def __init__(self, data_dir: Path) -> None:
        self._path = data_dir / JOBS_FILENAME
        self._lock = threading.RLock()
        self._jobs: dict[str, ContentJob] = {j.id: j for j in self._load().jobs}

    # ── Private helpers ──────────────────────────────────────────

    def _load(self) -> _StoreData:
        if not self._path.exists():
            return _StoreData()
        try:
            raw = json.loads(self._path.read_text(encoding="utf-8"))
            return _StoreData.model_validate(raw)
        except OSError as exc:
            raise StoreUnavailableError(f"Cannot read job store at {self._path}: {exc}") from exc
        except (json.JSONDecodeError, ValidationError) as exc:
            raise StoreUnavailableError(f"Corrupt job store at {self._path}: {exc}") from exc

    def _save(self) -> None:
        data = _StoreData(jobs=_list(self._jobs.values()))
        try:
            _atomic_write(self._path, data.model_dump_json(indent=2))
        except OSError as exc:
            raise StoreUnavailableError(f"Cannot write job store at {self._path}: {exc}") from exc

    def _commit(self, job_id: str, job: ContentJob | None) -> None:
        """Apply one change in memory and persist it, rolling back on failure."""
        previous = self._jobs.get(job_id)
        if job is None:
            self._jobs.pop(job_id, None)
        else:
            self._jobs[job_id] = job
        try:
            self._save()
        except StoreUnavailableError:
            if previous is None:
                self._jobs.pop(job_id, None)
            else:
                self._jobs[job_id] = previous
            raise

    # ── Write operations ─────────────────────────────────────────

    def insert(self, job: ContentJob) -> ContentJob:
        """Insert a new job.

        Raises ConflictFailure if the id or the source video is already known.
        """
        with self._lock:
            if job.id in self._jobs:
                raise ConflictFailure(f"Job {job.id} already exists")
            existing = self._find_by_source(job.source_video_id)
            if existing is not None:
                raise ConflictFailure(
                    f"Source video {job.source_video_id} already tracked by job {existing.id}"
                )
            self._commit(job.id, job)
            logger.debug("Inserted job %s (source=%s)", job.id, job.source_video_id)
            return job

    def save(self, job: ContentJob, *, expected_status: JobStatus) -> ContentJob:
        """Persist ``job`` if the stored copy is still at ``expected_status``.

        Raises NotFoundFailure for unknown jobs, ConflictFailure when the
        stored status moved on, and InvalidTransitionError when the new
        status is not reachable from the stored one.
        """
        with self._lock:
            current = self._jobs.get(job.id)
            if current is None:
                raise NotFoundFailure(f"Job {job.id} not found")
            if current.status != expected_status:
                raise ConflictFailure(
                    f"Job {job.id} is {current.status}, expected {expected_status}"
                )
            if job.status != current.status and not can_transition(current.status, job.status):
                raise InvalidTransitionError(current.status.value, job.status.value)
            self._commit(job.id, job)
            return job

    def soft_delete(self, job_id: str, *, actor: str = SYSTEM_ACTOR) -> ContentJob:
        """Mark a job deleted.  Jobs are never physically removed."""
        with self._lock:
            job = self.require(job_id)
            if job.audit.is_deleted:
                return job
            audit = job.audit.touched(actor).model_copy(
                update={"deleted_at": datetime.now(tz=UTC)}
            )
            updated = job.model_copy(update={"audit": audit})
            self._commit(job_id, updated)
            return updated

    # ── Read operations ──────────────────────────────────────────

    def _find_by_source(self, source_video_id: str) -> ContentJob | None:
        for job in self._jobs.values():
            if job.source_video_id == source_video_id:
                return job
        return None

    def get(self, job_id: str, *, include_deleted: bool = False) -> ContentJob | None:
        """Return a job by id, or None if not found."""
        with self._lock:
            job = self._jobs.get(job_id)
        if job is None or (job.audit.is_deleted and not include_deleted):
            return None
        return job

    def require(self, job_id: str) -> ContentJob:
        job = self.get(job_id)
        if job is None:
            raise NotFoundFailure(f"Job {job_id} not found")
        return job

    def find_by_source_video_id(self, source_video_id: str) -> ContentJob | None:
        """Return the job for a source video, including soft-deleted ones."""
        with self._lock:
            return self._find_by_source(source_video_id)

    def list(
        self,
        status: JobStatus | None = None,
        *,
        limit: int | None = None,
        include_deleted: bool = False,
    ) -> _list[ContentJob]:
        """Return jobs oldest-first, optionally filtered by status."""
        with self._lock:
            jobs = _list(self._jobs.values())
        if not include_deleted:
            jobs = [j for j in jobs if not j.audit.is_deleted]
        if status is not None:
            jobs = [j for j in jobs if j.status == status]
        jobs.sort(key=lambda j: (j.audit.created_at, j.id))
        if limit is not None:
            jobs = jobs[:limit]
        return jobs

    def count_by_status(self) -> dict[JobStatus, int]:
        counts = Counter(j.status for j in self.list())
        return {status: counts.get(status, 0) for status in JobStatus}
