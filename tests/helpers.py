"""Builders for the files and rows used across the import tests."""

import io
from typing import Any, Dict, Iterable, List, Optional

import pandas as pd

from catalog_import.domain.imports.sources import RowSource


def make_csv(rows: Iterable[Dict[str, Any]], columns: Optional[List[str]] = None) -> bytes:
    """Render rows as CSV bytes with a header line."""
    return pd.DataFrame(list(rows), columns=columns).to_csv(index=False).encode("utf-8")


def make_xlsx(rows: Iterable[Dict[str, Any]]) -> bytes:
    buffer = io.BytesIO()
    pd.DataFrame(list(rows)).to_excel(buffer, index=False, engine="openpyxl")
    return buffer.getvalue()


def reference_rows(count: int, invalid: Iterable[int] = ()) -> List[Dict[str, Any]]:
    """
    Reference-sheet rows; positions in ``invalid`` (1-based, as a user counts
    lines in a spreadsheet) get an item code the validator rejects.
    """
    invalid = set(invalid)
    rows = []
    for number in range(1, count + 1):
        code = "BAD CODE!" if number in invalid else f"ITM-{number:04d}"
        rows.append({"kode_item": code, "nama_item": f"Item {number}"})
    return rows


def row_source(rows: List[Dict[str, Any]], total: Optional[int] = -1) -> RowSource:
    """In-memory row source; ``total`` defaults to ``len(rows)``, pass None for unknown."""
    return RowSource(rows=iter(rows), total=len(rows) if total == -1 else total)
