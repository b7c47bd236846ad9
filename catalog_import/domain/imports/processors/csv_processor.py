import io
import logging
from typing import Any, Dict, Iterator, List, Optional

import pandas as pd

logger = logging.getLogger(__name__)


def _clean_records(df: pd.DataFrame) -> List[Dict[str, Any]]:
    records = df.to_dict("records")

    # Convert pandas NaN/NaT values to None so blank cells read as missing
    for record in records:
        for key, value in record.items():
            if not isinstance(value, (list, dict)) and pd.isna(value):
                record[key] = None
    return records


def count_csv_rows(file_content: bytes) -> int:
    """
    Count data rows (header excluded) without materialising the records.

    Quoted fields may contain newlines, so this parses rather than counting
    line breaks. Every column is parsed, with the same options the row reader
    uses, so a row with extra fields fails here instead of halfway through the
    import.
    """
    total = 0
    for chunk in pd.read_csv(
        io.BytesIO(file_content),
        dtype=str,
        chunksize=50000,
        skip_blank_lines=True,
    ):
        total += len(chunk)
    return total


def iter_csv_rows(file_content: bytes, chunk_size: int = 5000) -> Iterator[Dict[str, Any]]:
    """
    Stream CSV rows as dictionaries keyed by header.

    Values are read as strings (``dtype=str``) so leading zeros in item codes
    survive; validators coerce numbers themselves.
    """
    reader = pd.read_csv(
        io.BytesIO(file_content),
        dtype=str,
        chunksize=chunk_size,
        skip_blank_lines=True,
        keep_default_na=True,
    )
    rows_read = 0
    for chunk in reader:
        chunk.columns = [str(column).strip() for column in chunk.columns]
        records = _clean_records(chunk)
        rows_read += len(records)
        yield from records
    logger.debug("Read %d CSV rows", rows_read)


def process_excel(file_content: bytes, sheet_name: Optional[str] = None) -> List[Dict[str, Any]]:
    """Read the first (or named) worksheet of an Excel workbook into a list of dictionaries."""
    try:
        df = pd.read_excel(io.BytesIO(file_content), sheet_name=sheet_name or 0, engine="openpyxl")
    except Exception:
        # Fallback to default pandas engine (legacy .xls)
        df = pd.read_excel(io.BytesIO(file_content), sheet_name=sheet_name or 0)

    df = df.dropna(how="all")
    df.columns = [str(column).strip() for column in df.columns]
    records = _clean_records(df)
    logger.info("Processed Excel sheet: %d rows, columns: %s", len(records), list(df.columns))
    return records
