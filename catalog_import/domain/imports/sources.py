"""
Turn an uploaded file into an ordered stream of raw rows.

Parsing problems surface as ``FileReadError`` whether they happen while
opening the file or halfway through streaming it, so the executor has a single
pipeline-fatal error type to handle.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, Iterator, Optional

from pandas.errors import EmptyDataError, ParserError

from catalog_import.domain.imports.errors import FileReadError, UnsupportedFileTypeError
from catalog_import.domain.imports.processors.csv_processor import (
    count_csv_rows,
    iter_csv_rows,
    process_excel,
)

logger = logging.getLogger(__name__)

CSV_EXTENSIONS = (".csv",)
EXCEL_EXTENSIONS = (".xlsx", ".xls", ".xlsm")


@dataclass
class RowSource:
    """Rows of one uploaded file; ``total`` is None when it cannot be known up front."""
    rows: Iterator[Dict[str, Any]]
    total: Optional[int] = None


def detect_file_type(file_name: Optional[str]) -> str:
    name = (file_name or "").lower()
    if name.endswith(CSV_EXTENSIONS):
        return "csv"
    if name.endswith(EXCEL_EXTENSIONS):
        return "excel"
    raise UnsupportedFileTypeError(file_name)


def _guarded(rows: Iterator[Dict[str, Any]], file_name: Optional[str]) -> Iterator[Dict[str, Any]]:
    try:
        yield from rows
    except EmptyDataError:
        return
    except (ParserError, UnicodeDecodeError, ValueError) as exc:
        raise FileReadError(file_name, str(exc)) from exc


def open_row_source(file_content: bytes, file_name: Optional[str], csv_chunk_size: int = 5000) -> RowSource:
    """
    Open ``file_content`` for streaming.

    Raises:
        UnsupportedFileTypeError: the extension is neither CSV nor Excel
        FileReadError: the content cannot be decoded or parsed
    """
    file_type = detect_file_type(file_name)

    if file_type == "csv":
        try:
            total = count_csv_rows(file_content)
        except EmptyDataError:
            logger.info("CSV file '%s' has no content", file_name)
            return RowSource(rows=iter(()), total=0)
        except (ParserError, UnicodeDecodeError, ValueError) as exc:
            raise FileReadError(file_name, str(exc)) from exc
        return RowSource(rows=_guarded(iter_csv_rows(file_content, csv_chunk_size), file_name), total=total)

    # openpyxl has no streaming mode through pandas; spreadsheets are read whole
    try:
        records = process_excel(file_content)
    except Exception as exc:
        raise FileReadError(file_name, str(exc)) from exc
    return RowSource(rows=iter(records), total=len(records))
