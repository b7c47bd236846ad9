"""
Resubmission of individual rows that failed during an import.

A retry runs the same validate-and-save step as the executor, for one edited
record, without touching the job it came from. The job record in the registry
stays exactly as the import left it; whoever holds the import result updates
their own copy with ``ImportResultView.apply_retry``.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional

from catalog_import.db.models import RecordStore
from catalog_import.domain.imports.errors import RowError
from catalog_import.domain.imports.executor import attempt_row
from catalog_import.domain.imports.models import FailedRecord, ImportResult
from catalog_import.domain.imports.validators import ValidatorRegistry
from catalog_import.utils.serialization import make_json_safe

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RetryOutcome:
    success: bool
    record: Optional[Dict[str, Any]] = None
    error: Optional[str] = None
    # True when the saved record replaced one with the same key
    updated: bool = False


class RetryCoordinator:
    def __init__(self, validators: ValidatorRegistry, store: RecordStore):
        self.validators = validators
        self.store = store

    def retry(self, table_name: str, record: Mapping[str, Any]) -> RetryOutcome:
        """
        Validate and save one corrected record.

        Raises:
            UnknownTargetTableError: no validator for ``table_name``
        """
        validator = self.validators.get(table_name)
        try:
            saved, created = attempt_row(validator, self.store, table_name, record)
        except RowError as exc:
            logger.info("Retry for table '%s' rejected: %s", table_name, exc.message)
            return RetryOutcome(success=False, error=exc.message)
        except Exception as exc:
            # Same wording as the executor uses for the row during the import
            logger.exception("Unexpected error retrying a record for table '%s'", table_name)
            return RetryOutcome(success=False, error=f"Unexpected error: {exc}")
        logger.info("Retry for table '%s' saved (%s)", table_name, "inserted" if created else "updated")
        return RetryOutcome(success=True, record=saved, updated=not created)


@dataclass
class ImportResultView:
    """
    A caller's editable copy of a finished import's result.

    Entries are addressed by ``original_index``; applying a retry to one entry
    never renumbers, reorders or edits any other entry.
    """
    success: int
    failed: int
    failed_records: List[FailedRecord] = field(default_factory=list)

    @classmethod
    def from_result(cls, result: ImportResult) -> "ImportResultView":
        return cls(
            success=result.success,
            failed=result.failed,
            failed_records=list(result.failed_records),
        )

    @property
    def errors(self) -> List[str]:
        return [f"Row {item.original_index + 1}: {item.error}" for item in self.failed_records]

    def _position(self, original_index: int) -> int:
        for position, item in enumerate(self.failed_records):
            if item.original_index == original_index:
                return position
        raise KeyError(original_index)

    def apply_retry(
        self,
        original_index: int,
        outcome: RetryOutcome,
        submitted: Optional[Mapping[str, Any]] = None,
    ) -> None:
        """
        Fold a retry outcome into this view.

        On success the entry is removed and one row moves from ``failed`` to
        ``success``. On failure the entry keeps its place, with the submitted
        values and the new error, and the counts stay as they are.

        Raises:
            KeyError: no failed entry has ``original_index``
        """
        position = self._position(original_index)
        if outcome.success:
            del self.failed_records[position]
            self.success += 1
            self.failed -= 1
            return

        previous = self.failed_records[position]
        self.failed_records[position] = FailedRecord(
            original_index=previous.original_index,
            record=make_json_safe(dict(submitted)) if submitted is not None else previous.record,
            error=outcome.error or previous.error,
        )
