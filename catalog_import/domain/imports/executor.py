"""
Background execution of import jobs.

``ImportExecutor`` drives one job from ``uploading`` to a terminal state:
rows are validated and saved one at a time in file order, each row's outcome
is committed to the registry in a single mutation, and throughput/ETA are
refreshed periodically.

Failure handling follows two rules:

- anything that goes wrong with a single row is recorded against that row
  and the job keeps going; the job still ends ``completed``
- anything that stops the file from being processed (unreadable file,
  unknown table) ends the job ``failed`` with one top-level error

Rows saved before a failure stay saved. Callers fix and resubmit individual
rows through the retry endpoint rather than re-uploading the file.

``ImportDispatcher`` runs executors on a bounded thread pool so uploads
return immediately and several imports can progress at once.
"""
from __future__ import annotations

import logging
import math
import threading
import time
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import replace
from functools import partial
from typing import Any, Callable, Dict, Mapping, Optional, Tuple

from catalog_import.db.models import RecordStore
from catalog_import.domain.imports.errors import (
    EmptyFileError,
    ImportPipelineError,
    RowError,
)
from catalog_import.domain.imports.models import EmptyFilePolicy, FailedRecord, ImportJob
from catalog_import.domain.imports.registry import JobRegistry
from catalog_import.domain.imports.sources import RowSource, open_row_source
from catalog_import.domain.imports.validators import RowValidator, ValidatorRegistry
from catalog_import.utils.serialization import make_json_safe

logger = logging.getLogger(__name__)

RowSourceFactory = Callable[[], RowSource]


def compute_metrics(current: int, total: int, elapsed_seconds: float) -> Tuple[Optional[float], Optional[int]]:
    """
    Rows-per-second and seconds-remaining estimates.

    Returns ``(None, None)`` until there is something to measure; the ETA is
    ``None`` whenever the total is unknown or already reached.
    """
    if current <= 0 or elapsed_seconds <= 0:
        return None, None
    throughput = current / elapsed_seconds
    if total <= 0 or current >= total:
        return throughput, None
    return throughput, math.ceil((total - current) / throughput)


def attempt_row(
    validator: RowValidator,
    store: RecordStore,
    table_name: str,
    row: Mapping[str, Any],
    job_id: Optional[str] = None,
) -> Tuple[Dict[str, Any], bool]:
    """
    Validate and persist a single row.

    Shared by the executor and the retry path so both report the same errors.

    Returns:
        Tuple of (saved record, created); ``created`` is False when the row
        replaced a stored record with the same key

    Raises:
        RowError: the row was rejected or could not be saved
    """
    record = validator.validate(row)
    created = store.upsert(table_name, record, key=validator.record_key(record), job_id=job_id)
    return record, created


class _ProgressClock:
    """Decides when throughput/ETA are due for a refresh."""

    def __init__(self, every_rows: int, every_seconds: float, clock: Callable[[], float]):
        self._every_rows = max(every_rows, 1)
        self._every_seconds = every_seconds
        self._clock = clock
        self.started = clock()
        self._last_refresh = self.started

    def elapsed(self) -> float:
        return self._clock() - self.started

    def due(self, rows_done: int) -> bool:
        now = self._clock()
        if rows_done % self._every_rows == 0 or now - self._last_refresh >= self._every_seconds:
            self._last_refresh = now
            return True
        return False


class ImportExecutor:
    def __init__(
        self,
        registry: JobRegistry,
        validators: ValidatorRegistry,
        store: RecordStore,
        *,
        progress_every_rows: int = 100,
        progress_every_seconds: float = 1.0,
        empty_file_policy: EmptyFilePolicy = EmptyFilePolicy.COMPLETE,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.registry = registry
        self.validators = validators
        self.store = store
        self.progress_every_rows = progress_every_rows
        self.progress_every_seconds = progress_every_seconds
        self.empty_file_policy = EmptyFilePolicy(empty_file_policy)
        self._clock = clock

    def run(self, job_id: str, open_rows: RowSourceFactory) -> ImportJob:
        """Process the job to completion and return its terminal snapshot."""
        job = self.registry.get(job_id)
        progress = _ProgressClock(self.progress_every_rows, self.progress_every_seconds, self._clock)

        try:
            validator = self.validators.get(job.table_name)
            self.registry.mutate(job_id, lambda current: current.start_processing("Parsing file"))
            source = open_rows()
            if source.total == 0 and self.empty_file_policy == EmptyFilePolicy.FAIL:
                raise EmptyFileError(job.file_name)
            total = source.total or 0
            self.registry.mutate(
                job_id,
                lambda current: replace(current, total=total, stage=_row_stage(0, total)),
            )
        except ImportPipelineError as exc:
            logger.error("Import job %s could not start: %s", job_id, exc.message)
            return self._fail(job_id, exc.message)
        except Exception as exc:
            logger.exception("Import job %s could not start", job_id)
            return self._fail(job_id, f"Import failed: {exc}")

        logger.info(
            "Import job %s started: table=%s file=%s rows=%s",
            job_id,
            job.table_name,
            job.file_name,
            total if total else "unknown",
        )

        try:
            for index, row in enumerate(source.rows):
                self._process_row(job_id, job.table_name, validator, index, row, total, progress)
        except ImportPipelineError as exc:
            logger.error("Import job %s aborted while reading rows: %s", job_id, exc.message)
            return self._fail(job_id, exc.message)
        except Exception as exc:
            logger.exception("Import job %s aborted while reading rows", job_id)
            return self._fail(job_id, f"Import failed: {exc}")

        return self._finish(job_id, progress)

    def _process_row(
        self,
        job_id: str,
        table_name: str,
        validator: RowValidator,
        index: int,
        row: Mapping[str, Any],
        total: int,
        progress: _ProgressClock,
    ) -> None:
        error: Optional[str] = None
        created = True
        try:
            _, created = attempt_row(validator, self.store, table_name, row, job_id=job_id)
        except RowError as exc:
            error = exc.message
        except Exception as exc:
            # Unexpected validator/store failures still only concern this row
            logger.exception("Unexpected error importing row %d of job %s", index, job_id)
            error = f"Unexpected error: {exc}"

        rows_done = index + 1
        stage = _row_stage(rows_done, total)
        metrics = compute_metrics(rows_done, total, progress.elapsed()) if progress.due(rows_done) else None

        if error is None:
            def _update(current: ImportJob) -> ImportJob:
                updated = current.record_success(stage, updated=not created)
                return updated.with_metrics(*metrics) if metrics else updated
        else:
            logger.debug("Row %d of job %s rejected: %s", index, job_id, error)
            failed = FailedRecord(original_index=index, record=make_json_safe(dict(row)), error=error)

            def _update(current: ImportJob) -> ImportJob:
                updated = current.record_failure(failed, stage)
                return updated.with_metrics(*metrics) if metrics else updated

        self.registry.mutate(job_id, _update)

    def _finish(self, job_id: str, progress: _ProgressClock) -> ImportJob:
        job = self.registry.get(job_id)
        if job.current == 0 and self.empty_file_policy == EmptyFilePolicy.FAIL:
            return self._fail(job_id, EmptyFileError(job.file_name).message)

        self.registry.mutate(job_id, lambda current: replace(current, stage="Finalizing import"))
        elapsed = progress.elapsed()

        def _complete(current: ImportJob) -> ImportJob:
            # Streams without an up-front count learn their total here
            total = current.total or current.current
            throughput, _ = compute_metrics(current.current, total, elapsed)
            finalized = replace(current, total=total, throughput_rps=throughput)
            return finalized.complete("Import completed")

        job = self.registry.mutate(job_id, _complete)
        logger.info(
            "Import job %s completed: %d imported (%d updated), %d failed of %d rows",
            job_id,
            job.success_count,
            job.updated_count,
            job.failed_count,
            job.total,
        )
        return job

    def _fail(self, job_id: str, message: str) -> ImportJob:
        return self.registry.mutate(job_id, lambda current: current.fail(message))


def _row_stage(rows_done: int, total: int) -> str:
    if rows_done == 0:
        return "Validating rows"
    if total:
        return f"Validating row {rows_done:,} of {total:,}"
    return f"Validating row {rows_done:,}"


class ImportDispatcher:
    """Accepts uploads, registers a job for each and runs it in the background."""

    def __init__(
        self,
        registry: JobRegistry,
        executor: ImportExecutor,
        *,
        max_concurrent_jobs: int = 2,
        csv_chunk_size: int = 5000,
    ):
        self.registry = registry
        self.executor = executor
        self.csv_chunk_size = csv_chunk_size
        self._pool = ThreadPoolExecutor(
            max_workers=max(max_concurrent_jobs, 1),
            thread_name_prefix="import-worker",
        )
        self._futures: Dict[str, Future] = {}
        self._futures_lock = threading.Lock()

    def submit(
        self,
        table_name: str,
        file_name: Optional[str],
        file_content: bytes,
        *,
        idempotency_key: Optional[str] = None,
    ) -> Tuple[ImportJob, bool]:
        """
        Register an import and schedule it without waiting for it to run.

        A repeated ``idempotency_key`` returns the job created the first time.

        Returns:
            Tuple of (job, created)
        """
        job, created = self.registry.create_or_get(
            table_name,
            file_name=file_name,
            idempotency_key=idempotency_key,
        )
        if not created:
            logger.info("Idempotency key %s already maps to job %s", idempotency_key, job.job_id)
            return job, False

        open_rows = partial(open_row_source, file_content, file_name, self.csv_chunk_size)
        future = self._pool.submit(self.executor.run, job.job_id, open_rows)
        with self._futures_lock:
            self._futures[job.job_id] = future
        future.add_done_callback(partial(self._forget, job.job_id))
        return job, True

    def wait(self, job_id: str, timeout: Optional[float] = None) -> ImportJob:
        """Block until the job's worker has finished (used by tests and scripts)."""
        with self._futures_lock:
            future = self._futures.get(job_id)
        if future is not None:
            future.result(timeout=timeout)
        return self.registry.get(job_id)

    def _forget(self, job_id: str, future: Future) -> None:
        exc = future.exception()
        if exc is not None:
            logger.error("Import worker for job %s crashed: %s", job_id, exc)
        with self._futures_lock:
            self._futures.pop(job_id, None)

    def shutdown(self, wait: bool = True) -> None:
        self._pool.shutdown(wait=wait)
