"""
Legacy terms processor test suite.

This package contains:
- unit/: Unit tests (no store, no broker)
- integration/: Integration tests (temporary SQLite store, in-memory stream)
"""
