"""
Tests for the import executor: partial failures, pipeline-fatal errors,
empty files and the progress snapshots published while a job runs.
"""

import itertools
from typing import Any, Dict, Iterator, List

import pytest

from catalog_import.domain.imports.errors import FileReadError, JobStateError, RecordPersistenceError
from catalog_import.domain.imports.executor import ImportExecutor, compute_metrics
from catalog_import.domain.imports.models import EmptyFilePolicy, JobStatus
from catalog_import.domain.imports.registry import JobRegistry
from catalog_import.domain.imports.sources import RowSource, open_row_source
from catalog_import.domain.imports.validators import ValidatorRegistry

from tests.helpers import make_csv, reference_rows, row_source


class RecordingRegistry(JobRegistry):
    """Registry that keeps every snapshot it publishes."""

    def __init__(self):
        super().__init__()
        self.history = []

    def mutate(self, job_id, update):
        job = super().mutate(job_id, update)
        self.history.append(job)
        return job


class FlakyStore:
    """Accepts every record except those whose item code is listed in ``reject``."""

    def __init__(self, reject):
        self.reject = set(reject)
        self.saved: List[Dict[str, Any]] = []

    def upsert(self, table_name, record, key=None, job_id=None):
        if record.get("kode_item") in self.reject:
            raise RecordPersistenceError("Could not save record: IntegrityError")
        self.saved.append(dict(record))
        return True

    def query(self, table_name):
        return list(self.saved)


def _run(executor, registry, table, source_factory, file_name="upload.csv"):
    job = registry.create(table, file_name=file_name)
    return executor.run(job.job_id, source_factory)


class TestPartialFailure:

    def test_invalid_rows_are_collected_and_job_completes(self, executor, registry, store):
        rows = reference_rows(10, invalid=[3, 7])

        job = _run(executor, registry, "reference-sheet", lambda: row_source(rows))

        assert job.status == JobStatus.COMPLETED
        assert job.is_complete is True
        assert job.error is None
        assert job.success_count == 8
        assert job.failed_count == 2
        assert (job.current, job.total) == (10, 10)
        assert [item.original_index for item in job.failed_records] == [2, 6]
        assert job.failed_records[0].record == {"kode_item": "BAD CODE!", "nama_item": "Item 3"}
        assert "kode_item" in job.failed_records[0].error

        saved = store.query("reference-sheet")
        assert len(saved) == 8
        assert "BAD CODE!" not in {record["kode_item"] for record in saved}

    def test_result_lists_errors_by_row_number(self, executor, registry):
        rows = reference_rows(10, invalid=[3, 7])

        job = _run(executor, registry, "reference-sheet", lambda: row_source(rows))
        result = job.result()

        assert result.success == 8
        assert result.failed == 2
        assert result.errors[0].startswith("Row 3: ")
        assert result.errors[1].startswith("Row 7: ")
        assert result.summary.total_records == 10
        assert result.summary.new_records == 8
        assert result.summary.error_records == 2

    def test_every_row_invalid_still_completes(self, executor, registry):
        rows = reference_rows(4, invalid=[1, 2, 3, 4])

        job = _run(executor, registry, "reference-sheet", lambda: row_source(rows))

        assert job.status == JobStatus.COMPLETED
        assert job.success_count == 0
        assert job.failed_count == 4

    def test_persistence_failure_is_a_row_error(self, registry, validators):
        store = FlakyStore(reject={"ITM-0002"})
        executor = ImportExecutor(registry, validators, store, progress_every_rows=1)

        job = _run(executor, registry, "reference-sheet", lambda: row_source(reference_rows(3)))

        assert job.status == JobStatus.COMPLETED
        assert job.success_count == 2
        assert [item.original_index for item in job.failed_records] == [1]
        assert job.failed_records[0].error == "Could not save record: IntegrityError"
        assert [record["kode_item"] for record in store.saved] == ["ITM-0001", "ITM-0003"]

    def test_unexpected_validator_error_only_fails_the_row(self, registry, store):
        class ExplodingValidator:
            def validate(self, row):
                if row["kode_item"] == "ITM-0002":
                    raise KeyError("kelompok")
                return dict(row)

            def record_key(self, record):
                return None

        executor = ImportExecutor(
            registry,
            ValidatorRegistry({"reference-sheet": ExplodingValidator()}),
            store,
        )
        job = _run(executor, registry, "reference-sheet", lambda: row_source(reference_rows(3)))

        assert job.status == JobStatus.COMPLETED
        assert job.success_count == 2
        assert job.failed_records[0].error.startswith("Unexpected error: ")


class TestReimport:

    def test_second_import_updates_instead_of_duplicating(self, executor, registry, store):
        rows = reference_rows(3)
        _run(executor, registry, "reference-sheet", lambda: row_source(rows))

        renamed = [dict(row, nama_item=f"{row['nama_item']} (revised)") for row in rows]
        job = _run(executor, registry, "reference-sheet", lambda: row_source(renamed))

        assert job.status == JobStatus.COMPLETED
        assert job.success_count == 3
        assert job.updated_count == 3
        summary = job.result().summary
        assert (summary.new_records, summary.updated_records) == (0, 3)

        saved = store.query("reference-sheet")
        assert len(saved) == 3
        assert saved[0]["nama_item"] == "Item 1 (revised)"

    def test_mixed_new_and_existing_rows_are_counted_separately(self, executor, registry, store):
        _run(executor, registry, "reference-sheet", lambda: row_source(reference_rows(2)))

        job = _run(executor, registry, "reference-sheet", lambda: row_source(reference_rows(5, invalid=[4])))

        assert (job.success_count, job.updated_count, job.failed_count) == (4, 2, 1)
        summary = job.result().summary
        assert (summary.new_records, summary.updated_records, summary.error_records) == (2, 2, 1)
        assert len(store.query("reference-sheet")) == 4


class TestPipelineFailure:

    def test_unreadable_spreadsheet_fails_the_job(self, executor, registry):
        garbage = b"this is not a workbook"

        job = _run(
            executor,
            registry,
            "reference-sheet",
            lambda: open_row_source(garbage, "broken.xlsx"),
            file_name="broken.xlsx",
        )

        assert job.status == JobStatus.FAILED
        assert job.is_complete is True
        assert job.error.startswith("Failed to read file 'broken.xlsx'")
        assert job.current == 0
        assert job.failed_records == ()

    def test_unsupported_extension_fails_the_job(self, executor, registry):
        job = _run(
            executor,
            registry,
            "reference-sheet",
            lambda: open_row_source(b"kode_item\nA1\n", "items.txt"),
            file_name="items.txt",
        )

        assert job.status == JobStatus.FAILED
        assert "Unsupported file type" in job.error

    def test_row_with_extra_fields_fails_before_any_row_is_saved(self, executor, registry, store):
        content = b"kode_item,nama_item\nITM-0001,First\nITM-0002,Second,stray\nITM-0003,Third\n"

        job = _run(
            executor,
            registry,
            "reference-sheet",
            lambda: open_row_source(content, "items.csv"),
            file_name="items.csv",
        )

        assert job.status == JobStatus.FAILED
        assert job.error.startswith("Failed to read file 'items.csv'")
        assert job.current == 0
        assert store.query("reference-sheet") == []

    def test_unknown_table_fails_without_reading(self, executor, registry):
        opened = []

        def factory():
            opened.append(True)
            return row_source(reference_rows(2))

        job = _run(executor, registry, "no-such-table", factory)

        assert job.status == JobStatus.FAILED
        assert job.error == "Unknown import target table 'no-such-table'"
        assert opened == []

    def test_stream_breaking_midway_keeps_saved_rows(self, executor, registry, store):
        def broken_rows() -> Iterator[Dict[str, Any]]:
            yield from reference_rows(3)
            raise FileReadError("items.csv", "Error tokenizing data")

        job = _run(executor, registry, "reference-sheet", lambda: RowSource(rows=broken_rows(), total=10))

        assert job.status == JobStatus.FAILED
        assert job.error == "Failed to read file 'items.csv': Error tokenizing data"
        assert job.current == 3
        assert job.success_count == 3
        assert len(store.query("reference-sheet")) == 3

    def test_failed_job_cannot_be_revived(self, executor, registry):
        job = _run(executor, registry, "no-such-table", lambda: row_source([]))

        with pytest.raises(JobStateError):
            registry.mutate(job.job_id, lambda current: current.complete())
        assert registry.get(job.job_id).status == JobStatus.FAILED


class TestEmptyFiles:

    def test_empty_file_completes_by_default(self, executor, registry):
        content = make_csv([], columns=["kode_item", "nama_item"])

        job = _run(executor, registry, "reference-sheet", lambda: open_row_source(content, "empty.csv"))

        assert job.status == JobStatus.COMPLETED
        assert (job.current, job.total) == (0, 0)
        assert job.result().success == 0
        assert job.result().failed == 0

    def test_empty_file_fails_when_configured(self, registry, validators, store):
        executor = ImportExecutor(registry, validators, store, empty_file_policy=EmptyFilePolicy.FAIL)
        content = make_csv([], columns=["kode_item", "nama_item"])

        job = _run(executor, registry, "reference-sheet", lambda: open_row_source(content, "empty.csv"))

        assert job.status == JobStatus.FAILED
        assert job.error == "No rows found in file"

    def test_zero_byte_file_completes(self, executor, registry):
        job = _run(executor, registry, "reference-sheet", lambda: open_row_source(b"", "empty.csv"))

        assert job.status == JobStatus.COMPLETED
        assert job.total == 0


class TestProgressSnapshots:

    def test_snapshots_are_monotonic(self, validators, store):
        registry = RecordingRegistry()
        executor = ImportExecutor(registry, validators, store, progress_every_rows=1)
        rows = reference_rows(6, invalid=[2, 5])

        job = _run(executor, registry, "reference-sheet", lambda: row_source(rows))

        currents = [snapshot.current for snapshot in registry.history]
        versions = [snapshot.version for snapshot in registry.history]
        assert currents == sorted(currents)
        assert versions == sorted(versions)
        assert len(set(versions)) == len(versions)
        assert all(snapshot.total == 6 for snapshot in registry.history[1:])
        for snapshot in registry.history:
            assert snapshot.success_count + snapshot.failed_count == snapshot.current
        assert [snapshot.is_complete for snapshot in registry.history].count(True) == 1
        assert registry.history[-1] == job

    def test_stage_reports_row_position(self, validators, store):
        registry = RecordingRegistry()
        executor = ImportExecutor(registry, validators, store, progress_every_rows=1)

        _run(executor, registry, "reference-sheet", lambda: row_source(reference_rows(2)))

        stages = [snapshot.stage for snapshot in registry.history]
        assert stages[0] == "Parsing file"
        assert "Validating row 1 of 2" in stages
        assert "Validating row 2 of 2" in stages
        assert stages[-1] == "Import completed"

    def test_unknown_total_is_filled_in_at_the_end(self, executor, registry):
        rows = reference_rows(5)

        job = _run(executor, registry, "reference-sheet", lambda: row_source(rows, total=None))

        assert job.status == JobStatus.COMPLETED
        assert job.total == 5
        assert job.current == 5

    def test_metrics_use_injected_clock(self, registry, validators, store):
        ticks = itertools.count(start=0, step=1)
        executor = ImportExecutor(
            registry,
            validators,
            store,
            progress_every_rows=1,
            clock=lambda: float(next(ticks)),
        )

        job = _run(executor, registry, "reference-sheet", lambda: row_source(reference_rows(4)))

        assert job.throughput_rps is not None
        assert job.throughput_rps > 0
        assert job.eta is None


class TestComputeMetrics:

    def test_nothing_to_measure_yet(self):
        assert compute_metrics(0, 100, 5.0) == (None, None)
        assert compute_metrics(10, 100, 0.0) == (None, None)

    def test_eta_rounds_up(self):
        throughput, eta = compute_metrics(10, 25, 4.0)
        assert throughput == 2.5
        assert eta == 6

    def test_no_eta_without_total_or_when_done(self):
        assert compute_metrics(10, 0, 2.0) == (5.0, None)
        assert compute_metrics(10, 10, 2.0) == (5.0, None)
