"""
Row validation for import target tables.

A validator turns one raw row (header -> cell value, exactly as parsed) into
the record that gets persisted, or raises ``RowValidationError`` explaining
why the row was rejected. The pipeline only relies on that contract; the
per-table rules live in ``table_schemas``.
"""
from __future__ import annotations

import logging
import re
from typing import Any, Dict, Iterable, Mapping, Optional, Protocol, Sequence, Tuple, Type

from pydantic import BaseModel, ValidationError

from catalog_import.domain.imports.errors import RowValidationError, UnknownTargetTableError
from catalog_import.utils.serialization import make_json_safe

logger = logging.getLogger(__name__)


# Preset regex patterns shared by the table schemas
PRESET_PATTERNS = {
    "email": r"^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$",
    "phone": r"^\+?[\d\s\-\.\(\)]{7,20}$",
    "item_code": r"^[A-Za-z0-9][A-Za-z0-9\-_./]*$",
    "store_code": r"^[A-Za-z0-9\-_]+$",
    "alphanumeric_id": r"^[A-Za-z0-9]+$",
}

PRESET_DESCRIPTIONS = {
    "email": "email address",
    "phone": "phone number (7-20 digits with optional separators)",
    "item_code": "item code (letters, digits, '-', '_', '.', '/')",
    "store_code": "store code (letters, digits, '-', '_')",
    "alphanumeric_id": "alphanumeric identifier",
}


def validate_with_preset(
    value: Any,
    preset_name: str,
    allow_null: bool = True
) -> Tuple[bool, Optional[str]]:
    """
    Validate a value against a preset pattern.

    Returns:
        Tuple of (is_valid, error_message)
    """
    if value is None or (isinstance(value, str) and not value.strip()):
        if allow_null:
            return True, None
        return False, "Value is required"

    pattern = PRESET_PATTERNS.get(preset_name)
    if pattern is None:
        return False, f"Unknown preset validator: {preset_name}"

    str_val = str(value).strip()
    if not re.match(pattern, str_val):
        description = PRESET_DESCRIPTIONS.get(preset_name, preset_name)
        return False, f"Value '{str_val}' is not a valid {description}"
    return True, None


def preset_check(preset_name: str):
    """Build a pydantic field validator body for a preset; raises ValueError on mismatch."""
    def _check(value: Any) -> Any:
        is_valid, message = validate_with_preset(value, preset_name)
        if not is_valid:
            raise ValueError(message)
        return value.strip() if isinstance(value, str) else value
    return _check


def normalize_header(header: Any) -> str:
    """Lowercase, trim and collapse separators so 'Kode Item', 'kode_item' and 'KODE-ITEM' match."""
    text = str(header or "").strip().lower()
    return re.sub(r"[\s_\-/]+", " ", text)


class RowValidator(Protocol):
    """Contract the executor and the retry path rely on."""

    def validate(self, row: Mapping[str, Any]) -> Dict[str, Any]:
        ...

    def record_key(self, record: Mapping[str, Any]) -> Optional[str]:
        """Natural key of a validated record, or None when the table has none."""
        ...


class PydanticRowValidator:
    """
    Validate rows against a pydantic model.

    ``aliases`` maps normalised spreadsheet headers to model field names;
    headers that already equal a field name (after normalisation) need no
    alias. Unknown columns are ignored and blank cells count as missing.

    ``key_fields`` name the fields that identify a record in the target
    table; rows with the same key overwrite each other when saved.
    """

    def __init__(
        self,
        model: Type[BaseModel],
        aliases: Optional[Mapping[str, str]] = None,
        key_fields: Sequence[str] = (),
    ):
        self.model = model
        unknown = [name for name in key_fields if name not in model.model_fields]
        if unknown:
            raise ValueError(f"Key fields {unknown} are not fields of {model.__name__}")
        self.key_fields = tuple(key_fields)
        self._aliases: Dict[str, str] = {}
        for field_name in model.model_fields:
            self._aliases[normalize_header(field_name)] = field_name
        for header, field_name in (aliases or {}).items():
            if field_name not in model.model_fields:
                raise ValueError(f"Alias '{header}' points to unknown field '{field_name}'")
            self._aliases[normalize_header(header)] = field_name

    def map_row(self, row: Mapping[str, Any]) -> Dict[str, Any]:
        mapped: Dict[str, Any] = {}
        for header, value in row.items():
            field_name = self._aliases.get(normalize_header(header))
            if field_name is None or field_name in mapped:
                continue
            if value is None or (isinstance(value, str) and not value.strip()):
                continue
            mapped[field_name] = value.strip() if isinstance(value, str) else value
        return mapped

    def validate(self, row: Mapping[str, Any]) -> Dict[str, Any]:
        try:
            instance = self.model.model_validate(self.map_row(row))
        except ValidationError as exc:
            raise RowValidationError(format_validation_error(exc)) from exc
        return make_json_safe(instance.model_dump(mode="json"))

    def record_key(self, record: Mapping[str, Any]) -> Optional[str]:
        if not self.key_fields:
            return None
        return "|".join("" if record.get(name) is None else str(record[name]) for name in self.key_fields)


def format_validation_error(exc: ValidationError) -> str:
    """Flatten a pydantic error into one readable line ("qty: Input should be ...; sku: ...")."""
    parts = []
    for error in exc.errors():
        location = ".".join(str(part) for part in error.get("loc", ()) if part != "__root__")
        message = error.get("msg", "Invalid value")
        if message.startswith("Value error, "):
            message = message[len("Value error, "):]
        parts.append(f"{location}: {message}" if location else message)
    return "; ".join(parts) or "Invalid row"


class ValidatorRegistry:
    """Lookup of row validators by target table identifier."""

    def __init__(self, validators: Optional[Mapping[str, RowValidator]] = None):
        self._validators: Dict[str, RowValidator] = dict(validators or {})

    def register(self, table_name: str, validator: RowValidator) -> None:
        self._validators[table_name] = validator

    def get(self, table_name: str) -> RowValidator:
        validator = self._validators.get(table_name)
        if validator is None:
            raise UnknownTargetTableError(table_name)
        return validator

    def __contains__(self, table_name: str) -> bool:
        return table_name in self._validators

    def tables(self) -> Iterable[str]:
        return sorted(self._validators)
