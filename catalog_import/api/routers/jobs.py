"""
Endpoints for tracking import job progress.

These handlers are plain ``def`` functions: FastAPI runs them on its thread
pool, so a long-poll waiting on one job never stalls requests for others.
"""
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query

from catalog_import.api.dependencies import get_progress_reporter, get_registry
from catalog_import.api.schemas.imports import ImportResultResponse, JobSnapshot
from catalog_import.domain.imports.errors import JobNotFoundError, JobStateError
from catalog_import.domain.imports.models import JobStatus
from catalog_import.domain.imports.progress import ProgressReporter
from catalog_import.domain.imports.registry import JobRegistry

router = APIRouter(prefix="/api/import", tags=["import-jobs"])


@router.get("/jobs", response_model=List[JobSnapshot])
def list_import_jobs_endpoint(
    status: Optional[JobStatus] = None,
    reporter: ProgressReporter = Depends(get_progress_reporter),
):
    """Snapshots of every visible job, newest first. Meant to be polled every couple of seconds."""
    return [JobSnapshot.from_job(job) for job in reporter.poll(status=status)]


@router.get("/jobs/{job_id}", response_model=JobSnapshot)
def get_import_job_endpoint(
    job_id: str,
    since_version: Optional[int] = Query(None, ge=0),
    wait: float = Query(0.0, ge=0.0),
    reporter: ProgressReporter = Depends(get_progress_reporter),
):
    """
    Snapshot of one job.

    With ``since_version`` and ``wait`` the call blocks for up to ``wait``
    seconds until the job changes, instead of returning the same snapshot
    again.
    """
    try:
        if since_version is not None and wait > 0:
            job = reporter.wait(job_id, since_version, wait)
        else:
            job = reporter.snapshot(job_id)
    except JobNotFoundError as e:
        raise HTTPException(status_code=404, detail=e.message)
    return JobSnapshot.from_job(job)


@router.get("/jobs/{job_id}/result", response_model=ImportResultResponse)
def get_import_result_endpoint(
    job_id: str,
    reporter: ProgressReporter = Depends(get_progress_reporter),
):
    """Counts, error list and failed rows of a finished job; 409 while it is still running."""
    try:
        job = reporter.snapshot(job_id)
        result = job.result()
    except JobNotFoundError as e:
        raise HTTPException(status_code=404, detail=e.message)
    except JobStateError as e:
        raise HTTPException(status_code=409, detail=e.message)
    return ImportResultResponse.from_result(job, result)


@router.delete("/jobs/{job_id}", response_model=JobSnapshot)
def dismiss_import_job_endpoint(
    job_id: str,
    registry: JobRegistry = Depends(get_registry),
):
    """Stop listing a finished job. Running jobs cannot be dismissed."""
    try:
        job = registry.dismiss(job_id)
    except JobNotFoundError as e:
        raise HTTPException(status_code=404, detail=e.message)
    except JobStateError as e:
        raise HTTPException(status_code=409, detail=e.message)
    return JobSnapshot.from_job(job)
