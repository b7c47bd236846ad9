"""
In-process tracking for import jobs.

The registry is the only shared mutable structure of the import pipeline.
It maps job ids to immutable ``ImportJob`` snapshots; a mutation builds a new
snapshot and swaps it in while holding the lock, so concurrent pollers see
either the previous state or the next one, never a mix of both.
"""
from __future__ import annotations

import logging
import threading
from dataclasses import replace
from datetime import datetime, timedelta, timezone
from typing import Callable, Dict, List, Optional, Tuple

from catalog_import.domain.imports.errors import JobNotFoundError, JobStateError
from catalog_import.domain.imports.models import ImportJob, JobStatus

logger = logging.getLogger(__name__)

JobUpdate = Callable[[ImportJob], ImportJob]


class JobRegistry:
    """Thread-safe store of active and recently finished import jobs."""

    def __init__(self, retention_hours: float = 24.0):
        self._jobs: Dict[str, ImportJob] = {}
        self._changed = threading.Condition(threading.Lock())
        self._retention = timedelta(hours=retention_hours) if retention_hours > 0 else None
        self._closed = False

    def create(
        self,
        table_name: str,
        *,
        file_name: Optional[str] = None,
        idempotency_key: Optional[str] = None,
    ) -> ImportJob:
        """Allocate a new job in the ``uploading`` state."""
        job = ImportJob.new(table_name, file_name=file_name, idempotency_key=idempotency_key)
        with self._changed:
            self._jobs[job.job_id] = job
            self._changed.notify_all()
        logger.info("Created import job %s for table '%s' (file=%s)", job.job_id, table_name, file_name)
        return job

    def create_or_get(
        self,
        table_name: str,
        *,
        file_name: Optional[str] = None,
        idempotency_key: Optional[str] = None,
    ) -> Tuple[ImportJob, bool]:
        """
        Create a job unless one for the same table already carries
        ``idempotency_key``. The same key may be reused for a different table.

        Returns:
            Tuple of (job, created)
        """
        if idempotency_key is None:
            return self.create(table_name, file_name=file_name), True

        with self._changed:
            existing = self._find_by_key_locked(table_name, idempotency_key)
            if existing is not None:
                return existing, False
            job = ImportJob.new(table_name, file_name=file_name, idempotency_key=idempotency_key)
            self._jobs[job.job_id] = job
            self._changed.notify_all()
        logger.info(
            "Created import job %s for table '%s' (file=%s, idempotency_key=%s)",
            job.job_id,
            table_name,
            file_name,
            idempotency_key,
        )
        return job, True

    def get(self, job_id: str) -> ImportJob:
        with self._changed:
            job = self._jobs.get(job_id)
        if job is None:
            raise JobNotFoundError(job_id)
        return job

    def _find_by_key_locked(self, table_name: str, idempotency_key: str) -> Optional[ImportJob]:
        # Caller holds self._changed
        for job in self._jobs.values():
            if job.table_name == table_name and job.idempotency_key == idempotency_key:
                return job
        return None

    def list(
        self,
        *,
        status: Optional[JobStatus] = None,
        table_name: Optional[str] = None,
    ) -> List[ImportJob]:
        """Return job snapshots, newest first."""
        # Insertion order is creation order
        with self._changed:
            jobs = list(reversed(list(self._jobs.values())))
        if status is not None:
            jobs = [job for job in jobs if job.status == status]
        if table_name is not None:
            jobs = [job for job in jobs if job.table_name == table_name]
        return jobs

    def mutate(self, job_id: str, update: JobUpdate) -> ImportJob:
        """
        Apply ``update`` to the job and publish the result atomically.

        ``update`` receives the current snapshot and must return the next one.
        It runs while the registry lock is held, so it must not do I/O.

        Raises:
            JobNotFoundError: unknown job id
            JobStateError: the job is terminal, or the update would move a
                progress counter backwards
        """
        with self._changed:
            current = self._jobs.get(job_id)
            if current is None:
                raise JobNotFoundError(job_id)
            if current.is_complete:
                raise JobStateError(
                    job_id,
                    f"Import job '{job_id}' is {current.status.value} and can no longer change",
                )

            updated = update(current)
            if updated.job_id != job_id:
                raise JobStateError(job_id, "Job updates must not change the job id")
            if updated.current < current.current:
                raise JobStateError(job_id, "Job progress cannot move backwards")
            if current.total and updated.total != current.total:
                raise JobStateError(job_id, "Job total is fixed once known")

            updated = replace(updated, version=current.version + 1)
            self._jobs[job_id] = updated
            self._changed.notify_all()
        return updated

    def wait_for_change(self, job_id: str, since_version: int, timeout: float) -> ImportJob:
        """
        Block until the job's version passes ``since_version`` or ``timeout`` elapses.

        Returns the latest snapshot either way; callers compare versions to
        tell a change from a timeout. Terminal jobs return immediately since
        they cannot change any more.
        """
        def _ready() -> bool:
            job = self._jobs.get(job_id)
            return self._closed or job is None or job.version > since_version or job.is_complete

        with self._changed:
            self._changed.wait_for(_ready, timeout=max(timeout, 0))
            job = self._jobs.get(job_id)
        if job is None:
            raise JobNotFoundError(job_id)
        return job

    def dismiss(self, job_id: str) -> ImportJob:
        """Remove a finished job so it no longer shows up when polling."""
        with self._changed:
            job = self._jobs.get(job_id)
            if job is None:
                raise JobNotFoundError(job_id)
            if not job.is_complete:
                raise JobStateError(job_id, f"Import job '{job_id}' is still {job.status.value}")
            del self._jobs[job_id]
            self._changed.notify_all()
        logger.info("Dismissed import job %s", job_id)
        return job

    def purge_expired(self, now: Optional[datetime] = None) -> int:
        """Drop finished jobs older than the retention window. Returns the number removed."""
        if self._retention is None:
            return 0
        cutoff = (now or datetime.now(timezone.utc)) - self._retention
        with self._changed:
            expired = [
                job_id
                for job_id, job in self._jobs.items()
                if job.is_complete and job.completed_at is not None and job.completed_at < cutoff
            ]
            for job_id in expired:
                del self._jobs[job_id]
        if expired:
            logger.info("Purged %d expired import jobs", len(expired))
        return len(expired)

    def close(self) -> None:
        """Release anyone blocked in ``wait_for_change``."""
        with self._changed:
            self._closed = True
            self._changed.notify_all()

    def __len__(self) -> int:
        with self._changed:
            return len(self._jobs)
