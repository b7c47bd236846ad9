import math
from datetime import date, datetime, time
from decimal import Decimal
from typing import Any


def make_json_safe(value: Any) -> Any:
    """
    Convert parsed spreadsheet values into JSON-serialisable structures.

    Cells coming out of pandas may be numpy scalars, ``Timestamp`` objects or
    ``NaN``; records are stored as JSON and echoed back to callers, so they
    are normalised here once.
    """
    if isinstance(value, dict):
        return {str(key): make_json_safe(val) for key, val in value.items()}
    if isinstance(value, (list, tuple, set)):
        return [make_json_safe(item) for item in value]
    if isinstance(value, Decimal):
        # Keep integers as ints, otherwise convert to string to avoid precision loss
        if value == value.to_integral():
            return int(value)
        return str(value)
    if isinstance(value, (datetime, date, time)):
        return value.isoformat()
    if isinstance(value, bytes):
        return value.decode(errors="ignore")
    if isinstance(value, float):
        return None if math.isnan(value) or math.isinf(value) else value
    if isinstance(value, (int, str, bool)) or value is None:
        return value
    # numpy scalars expose the plain Python value via item()
    item = getattr(value, "item", None)
    if callable(item):
        return make_json_safe(item())
    return str(value)
