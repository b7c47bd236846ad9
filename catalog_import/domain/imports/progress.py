"""
Read-only view over the job registry for pollers.

Every value returned here is an immutable job snapshot, so callers can poll
as often as they like while executors keep mutating the same jobs.
"""
from __future__ import annotations

from typing import List, Optional

from catalog_import.domain.imports.models import ImportJob, ImportResult, JobStatus
from catalog_import.domain.imports.registry import JobRegistry


class ProgressReporter:
    def __init__(self, registry: JobRegistry, max_wait_seconds: float = 30.0):
        self._registry = registry
        self.max_wait_seconds = max_wait_seconds

    def poll(self, status: Optional[JobStatus] = None) -> List[ImportJob]:
        """All visible jobs, newest first."""
        return self._registry.list(status=status)

    def snapshot(self, job_id: str) -> ImportJob:
        return self._registry.get(job_id)

    def result(self, job_id: str) -> ImportResult:
        """
        Terminal result of a finished job.

        Raises:
            JobNotFoundError: unknown job id
            JobStateError: the job has not finished yet
        """
        return self._registry.get(job_id).result()

    def wait(self, job_id: str, since_version: int, timeout: float) -> ImportJob:
        """
        Long-poll: return once the job moves past ``since_version``.

        The timeout is capped at ``max_wait_seconds`` so a misbehaving client
        cannot pin a worker thread indefinitely.
        """
        timeout = min(max(timeout, 0.0), self.max_wait_seconds)
        return self._registry.wait_for_change(job_id, since_version, timeout)
