"""
Legacy store relations and lookup constants.

Table schema:
    terms_of_use:
        - terms_of_use_id INTEGER PRIMARY KEY
        - terms_text TEXT
        - terms_of_use_type_id INTEGER
        - terms_of_use_agreeability_type_id INTEGER
        - title TEXT, url TEXT
        - create_date TEXT, modify_date TEXT  ('YYYY-MM-DD HH:MM:SS', UTC)

    terms_of_use_dependency:
        - dependent_terms_of_use_id -> dependency_terms_of_use_id

    project_role_terms_of_use_xref:
        - (project_id, resource_role_id, terms_of_use_id), create_date, modify_date

    user_terms_of_use_xref / user_terms_of_use_ban_xref:
        - (user_id, terms_of_use_id)

    docusign_envelope:
        - docusign_envelope_id TEXT PRIMARY KEY, docusign_template_id,
          user_id, is_completed

Invariants:
    - Cross-reference relations carry no unique or foreign key constraints;
      handlers check existence and uniqueness themselves
    - Lookup tables (types, agreeability types, resource roles) are never
      written by the processor
"""

from __future__ import annotations

import sqlite3
from datetime import datetime, timezone
from enum import IntEnum


class Tables:
    """Names of the legacy relations."""

    DOCUSIGN_ENVELOPE = "docusign_envelope"
    TERMS_OF_USE_AGREEABILITY_TYPE = "terms_of_use_agreeability_type_lu"
    TERMS_OF_USE = "terms_of_use"
    TERMS_OF_USE_TYPE = "terms_of_use_type"
    TERMS_OF_USE_DEPENDENCY = "terms_of_use_dependency"
    TERMS_OF_USE_DOCUSIGN_TEMPLATE_XREF = "terms_of_use_docusign_template_xref"
    PROJECT_ROLE_TERMS_OF_USE_XREF = "project_role_terms_of_use_xref"
    USER_TERMS_OF_USE_BAN_XREF = "user_terms_of_use_ban_xref"
    USER_TERMS_OF_USE_XREF = "user_terms_of_use_xref"
    RESOURCE_ROLE = "resource_role_lu"


class AgreeabilityType(IntEnum):
    """Legacy ids of the agreeability types the processor acts on."""

    ELECTRONICALLY_AGREEABLE = 3
    DOCUSIGNABLE = 4


SCHEMA_SQL = """
    CREATE TABLE IF NOT EXISTS terms_of_use_type (
        terms_of_use_type_id INTEGER PRIMARY KEY,
        terms_of_use_type_desc TEXT
    );

    CREATE TABLE IF NOT EXISTS terms_of_use_agreeability_type_lu (
        terms_of_use_agreeability_type_id INTEGER PRIMARY KEY,
        name TEXT NOT NULL,
        description TEXT
    );

    CREATE TABLE IF NOT EXISTS terms_of_use (
        terms_of_use_id INTEGER PRIMARY KEY,
        terms_text TEXT,
        terms_of_use_type_id INTEGER NOT NULL,
        terms_of_use_agreeability_type_id INTEGER NOT NULL,
        title TEXT NOT NULL,
        url TEXT,
        create_date TEXT,
        modify_date TEXT
    );

    CREATE TABLE IF NOT EXISTS terms_of_use_dependency (
        dependent_terms_of_use_id INTEGER NOT NULL,
        dependency_terms_of_use_id INTEGER NOT NULL
    );

    CREATE INDEX IF NOT EXISTS idx_dependency_dependent
        ON terms_of_use_dependency(dependent_terms_of_use_id);

    CREATE TABLE IF NOT EXISTS terms_of_use_docusign_template_xref (
        terms_of_use_id INTEGER NOT NULL,
        docusign_template_id TEXT NOT NULL
    );

    CREATE TABLE IF NOT EXISTS resource_role_lu (
        resource_role_id INTEGER PRIMARY KEY,
        name TEXT NOT NULL
    );

    CREATE TABLE IF NOT EXISTS project_role_terms_of_use_xref (
        project_id INTEGER NOT NULL,
        resource_role_id INTEGER NOT NULL,
        terms_of_use_id INTEGER NOT NULL,
        create_date TEXT,
        modify_date TEXT
    );

    CREATE INDEX IF NOT EXISTS idx_project_role_terms
        ON project_role_terms_of_use_xref(project_id, resource_role_id);

    CREATE TABLE IF NOT EXISTS user_terms_of_use_xref (
        user_id INTEGER NOT NULL,
        terms_of_use_id INTEGER NOT NULL,
        create_date TEXT,
        modify_date TEXT
    );

    CREATE INDEX IF NOT EXISTS idx_user_terms ON user_terms_of_use_xref(user_id, terms_of_use_id);

    CREATE TABLE IF NOT EXISTS user_terms_of_use_ban_xref (
        user_id INTEGER NOT NULL,
        terms_of_use_id INTEGER NOT NULL,
        create_date TEXT
    );

    CREATE TABLE IF NOT EXISTS docusign_envelope (
        docusign_envelope_id TEXT PRIMARY KEY,
        docusign_template_id TEXT NOT NULL,
        user_id INTEGER NOT NULL,
        is_completed INTEGER NOT NULL DEFAULT 0
    );
"""


def create_schema(conn: sqlite3.Connection) -> None:
    """Create the legacy relations for local development and tests."""
    conn.executescript(SCHEMA_SQL)


def legacy_timestamp(value: datetime | None = None) -> str:
    """Format a datetime for the legacy date columns, defaulting to now (UTC)."""
    if value is None:
        value = datetime.now(timezone.utc)
    elif value.tzinfo is not None:
        value = value.astimezone(timezone.utc)
    return value.strftime("%Y-%m-%d %H:%M:%S")
