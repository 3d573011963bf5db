"""
Parametrized SQL construction for the record store gateway.

Statements are built from column/value maps. Identifiers (tables, columns)
are checked against a strict pattern and interpolated; values are never
interpolated and always travel as bound parameters (qmark style).

Example:
    >>> q = select("terms_of_use", {"terms_of_use_id": 5001})
    >>> q.sql
    'SELECT * FROM terms_of_use WHERE terms_of_use_id = ?'
    >>> q.params
    (5001,)
"""

from __future__ import annotations

import re
from collections.abc import Collection, Mapping
from dataclasses import dataclass
from typing import Any

_IDENTIFIER = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*(\.[A-Za-z_][A-Za-z0-9_]*)?$")


class InvalidIdentifier(ValueError):
    """Table or column name is not a plain SQL identifier."""

    pass


class In:
    """Membership condition: ``column IN (?, ?, ...)``.

    An empty collection matches nothing.
    """

    def __init__(self, values: Collection[Any]) -> None:
        self.values = tuple(values)

    def __repr__(self) -> str:
        return f"In({list(self.values)})"


@dataclass(frozen=True)
class Query:
    """A SQL statement with its bound parameters."""

    sql: str
    params: tuple[Any, ...] = ()


def identifier(name: str) -> str:
    """Return name unchanged if it is a safe identifier.

    Raises:
        InvalidIdentifier: If name contains anything but letters, digits,
            underscores and at most one schema dot
    """
    if not isinstance(name, str) or not _IDENTIFIER.match(name):
        raise InvalidIdentifier(f"Invalid SQL identifier: {name!r}")
    return name


def where_clause(conditions: Mapping[str, Any]) -> Query:
    """Build a conjunction of equality / IN conditions.

    Raises:
        ValueError: If conditions is empty (unbounded updates/deletes are refused)
    """
    if not conditions:
        raise ValueError("At least one where condition is required")

    parts: list[str] = []
    params: list[Any] = []
    for column, value in conditions.items():
        column = identifier(column)
        if isinstance(value, In):
            if not value.values:
                parts.append("1 = 0")
                continue
            placeholders = ", ".join("?" for _ in value.values)
            parts.append(f"{column} IN ({placeholders})")
            params.extend(value.values)
        elif value is None:
            parts.append(f"{column} IS NULL")
        else:
            parts.append(f"{column} = ?")
            params.append(value)

    return Query(" AND ".join(parts), tuple(params))


def select(table: str, conditions: Mapping[str, Any], columns: Collection[str] = ()) -> Query:
    cols = ", ".join(identifier(c) for c in columns) if columns else "*"
    where = where_clause(conditions)
    return Query(f"SELECT {cols} FROM {identifier(table)} WHERE {where.sql}", where.params)


def insert(table: str, values: Mapping[str, Any]) -> Query:
    if not values:
        raise ValueError("Cannot insert an empty row")
    columns = ", ".join(identifier(c) for c in values)
    placeholders = ", ".join("?" for _ in values)
    return Query(
        f"INSERT INTO {identifier(table)} ({columns}) VALUES ({placeholders})",
        tuple(values.values()),
    )


def update(table: str, values: Mapping[str, Any], conditions: Mapping[str, Any]) -> Query:
    if not values:
        raise ValueError("Cannot update with no values")
    assignments = ", ".join(f"{identifier(c)} = ?" for c in values)
    where = where_clause(conditions)
    return Query(
        f"UPDATE {identifier(table)} SET {assignments} WHERE {where.sql}",
        tuple(values.values()) + where.params,
    )


def delete(table: str, conditions: Mapping[str, Any]) -> Query:
    where = where_clause(conditions)
    return Query(f"DELETE FROM {identifier(table)} WHERE {where.sql}", where.params)
