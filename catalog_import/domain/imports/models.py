"""
Value objects describing an import job and its outcome.

``ImportJob`` instances are immutable snapshots. Every change produces a new
instance (``dataclasses.replace``) which the registry swaps in atomically, so
whoever holds a snapshot holds a consistent point-in-time view of the job.
"""
from __future__ import annotations

import uuid
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from catalog_import.domain.imports.errors import JobStateError


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class JobStatus(str, Enum):
    UPLOADING = "uploading"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES


TERMINAL_STATUSES = frozenset({JobStatus.COMPLETED, JobStatus.FAILED})

_ALLOWED_TRANSITIONS = {
    JobStatus.UPLOADING: {JobStatus.PROCESSING, JobStatus.FAILED},
    JobStatus.PROCESSING: {JobStatus.COMPLETED, JobStatus.FAILED},
    JobStatus.COMPLETED: set(),
    JobStatus.FAILED: set(),
}


class EmptyFilePolicy(str, Enum):
    """What to do with a file that has a header but no data rows."""
    COMPLETE = "complete"
    FAIL = "fail"


@dataclass(frozen=True)
class FailedRecord:
    """A source row that did not validate or could not be saved."""
    original_index: int
    record: Dict[str, Any]
    error: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "original_index": self.original_index,
            "record": dict(self.record),
            "error": self.error,
        }


@dataclass(frozen=True)
class ImportSummary:
    total_records: int = 0
    new_records: int = 0
    updated_records: int = 0
    error_records: int = 0


@dataclass(frozen=True)
class ImportResult:
    """Terminal outcome handed back to the caller once a job has finished."""
    success: int
    failed: int
    errors: List[str]
    failed_records: List[FailedRecord]
    summary: ImportSummary


@dataclass(frozen=True)
class ImportJob:
    job_id: str
    table_name: str
    status: JobStatus = JobStatus.UPLOADING
    stage: str = "Queued"
    current: int = 0
    total: int = 0
    success_count: int = 0
    updated_count: int = 0
    failed_records: Tuple[FailedRecord, ...] = ()
    throughput_rps: Optional[float] = None
    eta: Optional[int] = None
    error: Optional[str] = None
    file_name: Optional[str] = None
    idempotency_key: Optional[str] = None
    version: int = 0
    created_at: datetime = field(default_factory=_utcnow)
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None

    @classmethod
    def new(
        cls,
        table_name: str,
        *,
        file_name: Optional[str] = None,
        idempotency_key: Optional[str] = None,
    ) -> "ImportJob":
        return cls(
            job_id=str(uuid.uuid4()),
            table_name=table_name,
            file_name=file_name,
            idempotency_key=idempotency_key,
        )

    @property
    def is_complete(self) -> bool:
        return self.status.is_terminal

    @property
    def failed_count(self) -> int:
        return len(self.failed_records)

    def _transition(self, status: JobStatus, **changes: Any) -> "ImportJob":
        if status not in _ALLOWED_TRANSITIONS[self.status]:
            raise JobStateError(
                self.job_id,
                f"Import job '{self.job_id}' cannot move from '{self.status.value}' to '{status.value}'",
            )
        return replace(self, status=status, **changes)

    def start_processing(self, stage: str = "Parsing file") -> "ImportJob":
        return self._transition(JobStatus.PROCESSING, stage=stage, started_at=_utcnow())

    def complete(self, stage: str = "Import completed") -> "ImportJob":
        return self._transition(
            JobStatus.COMPLETED,
            stage=stage,
            eta=None,
            completed_at=_utcnow(),
        )

    def fail(self, error: str, stage: str = "Import failed") -> "ImportJob":
        return self._transition(
            JobStatus.FAILED,
            stage=stage,
            error=error,
            eta=None,
            completed_at=_utcnow(),
        )

    def record_success(self, stage: Optional[str] = None, *, updated: bool = False) -> "ImportJob":
        """Count one saved row; ``updated`` marks a row that replaced an existing record."""
        return replace(
            self,
            current=self.current + 1,
            success_count=self.success_count + 1,
            updated_count=self.updated_count + (1 if updated else 0),
            stage=stage or self.stage,
        )

    def with_metrics(self, throughput_rps: Optional[float], eta: Optional[int]) -> "ImportJob":
        return replace(self, throughput_rps=throughput_rps, eta=eta)

    def record_failure(self, failed: FailedRecord, stage: Optional[str] = None) -> "ImportJob":
        return replace(
            self,
            current=self.current + 1,
            failed_records=self.failed_records + (failed,),
            stage=stage or self.stage,
        )

    def result(self) -> ImportResult:
        if not self.is_complete:
            raise JobStateError(self.job_id, f"Import job '{self.job_id}' is still {self.status.value}")
        failed = list(self.failed_records)
        return ImportResult(
            success=self.success_count,
            failed=len(failed),
            errors=[f"Row {item.original_index + 1}: {item.error}" for item in failed],
            failed_records=failed,
            summary=ImportSummary(
                total_records=self.total,
                new_records=self.success_count - self.updated_count,
                updated_records=self.updated_count,
                error_records=len(failed),
            ),
        )
