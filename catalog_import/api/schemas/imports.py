"""
Request and response bodies for the import endpoints.

Field names are exposed in camelCase (``jobId``, ``isComplete``...) because
the admin front end polls these directly.
"""
from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from catalog_import.domain.imports.models import FailedRecord, ImportJob, ImportResult
from catalog_import.domain.imports.retry import ImportResultView


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class JobSnapshot(_CamelModel):
    """Point-in-time progress of one import job."""
    job_id: str
    table_name: str
    file_name: Optional[str] = None
    status: str
    stage: str
    current: int
    total: int
    error: Optional[str] = None
    throughput_rps: Optional[float] = None
    eta: Optional[int] = None
    is_complete: bool
    success: int
    failed: int
    updated: int = 0
    version: int
    created_at: datetime
    completed_at: Optional[datetime] = None

    @classmethod
    def from_job(cls, job: ImportJob) -> "JobSnapshot":
        return cls(
            job_id=job.job_id,
            table_name=job.table_name,
            file_name=job.file_name,
            status=job.status.value,
            stage=job.stage,
            current=job.current,
            total=job.total,
            error=job.error,
            throughput_rps=job.throughput_rps,
            eta=job.eta,
            is_complete=job.is_complete,
            success=job.success_count,
            failed=job.failed_count,
            updated=job.updated_count,
            version=job.version,
            created_at=job.created_at,
            completed_at=job.completed_at,
        )


class SubmitImportResponse(_CamelModel):
    job_id: str
    status: str
    created: bool = True


class FailedRecordInfo(_CamelModel):
    original_index: int
    record: Dict[str, Any]
    error: str

    @classmethod
    def from_failed(cls, failed: FailedRecord) -> "FailedRecordInfo":
        return cls(original_index=failed.original_index, record=dict(failed.record), error=failed.error)


class ImportSummaryInfo(_CamelModel):
    total_records: int
    new_records: int
    updated_records: int
    error_records: int


class ImportResultResponse(_CamelModel):
    job_id: str
    status: str
    error: Optional[str] = None
    success: int
    failed: int
    errors: List[str]
    failed_records: List[FailedRecordInfo]
    summary: ImportSummaryInfo

    @classmethod
    def from_result(cls, job: ImportJob, result: ImportResult) -> "ImportResultResponse":
        return cls(
            job_id=job.job_id,
            status=job.status.value,
            error=job.error,
            success=result.success,
            failed=result.failed,
            errors=list(result.errors),
            failed_records=[FailedRecordInfo.from_failed(item) for item in result.failed_records],
            summary=ImportSummaryInfo(
                total_records=result.summary.total_records,
                new_records=result.summary.new_records,
                updated_records=result.summary.updated_records,
                error_records=result.summary.error_records,
            ),
        )

    def to_view(self) -> ImportResultView:
        """Local editable copy for applying retries against."""
        return ImportResultView(
            success=self.success,
            failed=self.failed,
            failed_records=[
                FailedRecord(original_index=item.original_index, record=dict(item.record), error=item.error)
                for item in self.failed_records
            ],
        )


class RetryRecordRequest(_CamelModel):
    record: Dict[str, Any]
    original_index: Optional[int] = Field(default=None, ge=0)


class RetryRecordResponse(_CamelModel):
    success: bool
    original_index: Optional[int] = None
    record: Optional[Dict[str, Any]] = None
    error: Optional[str] = None
    updated: bool = False
