"""
Legacy relational store access.

This module handles:
- Bounded connection pooling (pool.py)
- Parametrized statement construction (query.py)
- Generic record operations over an open transaction (gateway.py)
- Relation names and lookup constants (tables.py)

Invariants:
    - Values are bound, identifiers are validated
    - The pool is injected, never a module-level singleton
"""

from .gateway import RecordGateway
from .pool import ConnectionPool, PoolClosedError, StoreError, sqlite_connector
from .query import In, InvalidIdentifier, Query
from .tables import AgreeabilityType, Tables, create_schema, legacy_timestamp

__all__ = [
    "RecordGateway",
    "ConnectionPool",
    "PoolClosedError",
    "StoreError",
    "sqlite_connector",
    "In",
    "InvalidIdentifier",
    "Query",
    "AgreeabilityType",
    "Tables",
    "create_schema",
    "legacy_timestamp",
]
