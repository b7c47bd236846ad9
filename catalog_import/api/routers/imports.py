"""
Endpoints for submitting imports and resubmitting failed rows.
"""
import logging
from typing import Optional

from fastapi import APIRouter, Depends, File, Form, HTTPException, UploadFile, status

from catalog_import.api.dependencies import (
    get_dispatcher,
    get_retry_coordinator,
    get_upload_limit_bytes,
    get_validators,
)
from catalog_import.api.schemas.imports import (
    RetryRecordRequest,
    RetryRecordResponse,
    SubmitImportResponse,
)
from catalog_import.domain.imports.errors import UnknownTargetTableError
from catalog_import.domain.imports.executor import ImportDispatcher
from catalog_import.domain.imports.retry import RetryCoordinator
from catalog_import.domain.imports.validators import ValidatorRegistry

router = APIRouter(prefix="/api/import", tags=["imports"])

logger = logging.getLogger(__name__)


@router.post(
    "/{table_name}",
    response_model=SubmitImportResponse,
    status_code=status.HTTP_202_ACCEPTED,
)
async def submit_import_endpoint(
    table_name: str,
    file: UploadFile = File(...),
    idempotency_key: Optional[str] = Form(None),
    dispatcher: ImportDispatcher = Depends(get_dispatcher),
    validators: ValidatorRegistry = Depends(get_validators),
    max_bytes: int = Depends(get_upload_limit_bytes),
):
    """
    Queue an import of the uploaded CSV/Excel file into ``table_name``.

    Returns immediately with the job id; poll ``/api/import/jobs/{job_id}``
    for progress. Sending the same ``idempotency_key`` for the same table
    again returns the original job instead of importing twice.
    """
    if table_name not in validators:
        raise HTTPException(status_code=404, detail=f"Unknown import target table '{table_name}'")

    file_content = await file.read()
    if len(file_content) > max_bytes:
        raise HTTPException(
            status_code=413,
            detail=f"File too large; the limit is {max_bytes // (1024 * 1024)} MB",
        )

    logger.info(
        "Received import for table '%s': file=%s size=%d bytes",
        table_name,
        file.filename,
        len(file_content),
    )
    job, created = dispatcher.submit(
        table_name,
        file.filename,
        file_content,
        idempotency_key=idempotency_key,
    )
    return SubmitImportResponse(job_id=job.job_id, status=job.status.value, created=created)


@router.post("/{table_name}/retry", response_model=RetryRecordResponse)
def retry_record_endpoint(
    table_name: str,
    request: RetryRecordRequest,
    coordinator: RetryCoordinator = Depends(get_retry_coordinator),
):
    """
    Validate and save one corrected record from a finished import.

    The original job is not modified; the caller removes the entry from its
    own list of failed rows when this succeeds. A record that still fails
    comes back with status 422 and the new error.
    """
    try:
        outcome = coordinator.retry(table_name, request.record)
    except UnknownTargetTableError as e:
        raise HTTPException(status_code=404, detail=e.message)

    if not outcome.success:
        raise HTTPException(
            status_code=422,
            detail=RetryRecordResponse(
                success=False,
                original_index=request.original_index,
                error=outcome.error,
            ).model_dump(by_alias=True),
        )

    return RetryRecordResponse(
        success=True,
        original_index=request.original_index,
        record=outcome.record,
        updated=outcome.updated,
    )
