"""
Core type definitions for event payload contracts.

This module defines the building blocks the per-event contracts are made of:
- FieldKind: Basic value kinds (ids, strings, dates, uuids, ...)
- FieldDef: One field with its kind and requirement rules
- Contract: An ordered set of fields describing one JSON object

Validation collects every violation instead of stopping at the first one, and
returns a normalized copy of the object (ids coerced to int, dates parsed to
aware UTC datetimes, flags to bool). Keys not named by the contract are kept
as they are.

Invariants:
    - Validation is pure: no I/O, no mutation of the input
    - Error messages name the full dotted path of the offending field
    - A conditional requirement is evaluated against the normalized value
      of the field it depends on

Example:
    >>> contract = Contract("payload", (
    ...     field("id", FieldKind.ID, required=True),
    ...     field("title", FieldKind.STRING, required=True),
    ... ))
    >>> normalized, errors = contract.validate({"id": "7", "title": "Terms"})
    >>> normalized["id"], errors
    (7, [])
"""

from __future__ import annotations

import re
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any

MAX_ID = 2147483647
_DIGITS = re.compile(r"^\d+$")


class FieldKind(Enum):
    """Supported field kinds."""

    ID = "id"  # Positive 32-bit integer, digit strings coerced
    STRING = "str"
    DIGITS = "digits"  # String made of decimal digits only
    DATE = "date"  # ISO-8601 string or Unix milliseconds
    UUID = "uuid"
    ID_LIST = "id_list"  # Non-empty list of unique ids
    FLAG = "flag"  # Boolean, or 0/1
    OBJECT = "object"  # Nested contract


@dataclass(frozen=True)
class FieldDef:
    """Definition of a single contract field.

    Attributes:
        name: Key in the JSON object
        kind: Value kind
        required: Whether the key must be present and non-null
        enum_values: Allowed values, if restricted
        required_when: (other_field, value) making this field required
        contract: Nested contract if kind is OBJECT
    """

    name: str
    kind: FieldKind
    required: bool = False
    enum_values: tuple[Any, ...] | None = None
    required_when: tuple[str, Any] | None = None
    contract: Contract | None = None

    def __post_init__(self) -> None:
        if not self.name:
            raise ValueError("Field name cannot be empty")
        if self.kind == FieldKind.OBJECT and self.contract is None:
            raise ValueError(f"contract required for OBJECT field '{self.name}'")

    def is_required(self, normalized: dict[str, Any]) -> bool:
        if self.required:
            return True
        if self.required_when is not None:
            other, expected = self.required_when
            return normalized.get(other) == expected
        return False

    def normalize(self, value: Any, path: str) -> tuple[Any, list[str]]:
        """Check a present, non-null value and return its normalized form.

        Returns:
            Tuple of (normalized_value, errors)
        """
        kind = self.kind

        if kind == FieldKind.ID:
            coerced = _coerce_id(value)
            if coerced is None:
                return value, [f"'{path}' must be a positive integer id"]
            value = coerced

        elif kind == FieldKind.STRING:
            if not isinstance(value, str):
                return value, [f"'{path}' must be a string, got {type(value).__name__}"]

        elif kind == FieldKind.DIGITS:
            if not isinstance(value, str) or not _DIGITS.match(value):
                return value, [f"'{path}' must be a string of digits"]

        elif kind == FieldKind.DATE:
            parsed = _parse_date(value)
            if parsed is None:
                return value, [f"'{path}' must be an ISO-8601 date"]
            value = parsed

        elif kind == FieldKind.UUID:
            if not isinstance(value, str):
                return value, [f"'{path}' must be a uuid string"]
            try:
                uuid.UUID(value)
            except ValueError:
                return value, [f"'{path}' must be a valid uuid"]

        elif kind == FieldKind.ID_LIST:
            if not isinstance(value, list) or not value:
                return value, [f"'{path}' must be a non-empty list of ids"]
            ids: list[int] = []
            errors: list[str] = []
            for i, item in enumerate(value):
                coerced = _coerce_id(item)
                if coerced is None:
                    errors.append(f"'{path}[{i}]' must be a positive integer id")
                elif coerced in ids:
                    errors.append(f"'{path}[{i}]' contains a duplicate value")
                else:
                    ids.append(coerced)
            if errors:
                return value, errors
            value = ids

        elif kind == FieldKind.FLAG:
            if isinstance(value, bool):
                pass
            elif isinstance(value, int) and value in (0, 1):
                value = bool(value)
            else:
                return value, [f"'{path}' must be a boolean or 0/1"]

        elif kind == FieldKind.OBJECT:
            if not isinstance(value, dict):
                return value, [f"'{path}' must be an object"]
            return self.contract.validate(value, prefix=path)

        if self.enum_values is not None and value not in self.enum_values:
            return value, [f"'{path}' must be one of {list(self.enum_values)}"]

        return value, []


@dataclass(frozen=True)
class Contract:
    """Structural contract of one JSON object.

    Attributes:
        name: Label used in error messages
        fields: Field definitions, validated in order
    """

    name: str
    fields: tuple[FieldDef, ...]

    def validate(self, data: Any, prefix: str = "") -> tuple[dict[str, Any], list[str]]:
        """Validate data against the contract.

        Args:
            data: Decoded JSON value
            prefix: Dotted path of data within the enclosing object

        Returns:
            Tuple of (normalized_copy, errors)
        """
        label = prefix or self.name
        if not isinstance(data, dict):
            return {}, [f"'{label}' must be an object"]

        normalized = dict(data)
        errors: list[str] = []

        # Unconditional fields first so conditional ones see normalized values.
        ordered = sorted(self.fields, key=lambda f: f.required_when is not None)
        for field_def in ordered:
            path = f"{prefix}.{field_def.name}" if prefix else field_def.name
            value = data.get(field_def.name)

            if value is None:
                if field_def.is_required(normalized):
                    errors.append(f"'{path}' is required")
                continue

            value, field_errors = field_def.normalize(value, path)
            normalized[field_def.name] = value
            errors.extend(field_errors)

        return normalized, errors


def field(
    name: str,
    kind: FieldKind,
    *,
    required: bool = False,
    enum_values: tuple[Any, ...] | None = None,
    required_when: tuple[str, Any] | None = None,
    contract: Contract | None = None,
) -> FieldDef:
    """Shorthand constructor for FieldDef."""
    return FieldDef(
        name=name,
        kind=kind,
        required=required,
        enum_values=enum_values,
        required_when=required_when,
        contract=contract,
    )


def _coerce_id(value: Any) -> int | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, str) and _DIGITS.match(value):
        value = int(value)
    if isinstance(value, int) and 1 <= value <= MAX_ID:
        return value
    return None


def _parse_date(value: Any) -> datetime | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        try:
            return datetime.fromtimestamp(value / 1000.0, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            return None
    if not isinstance(value, str):
        return None
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)
