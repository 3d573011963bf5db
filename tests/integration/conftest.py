"""
Integration test fixtures: a temporary legacy store and an in-memory stream.
"""

import os
import sqlite3
import tempfile

import pytest

from processor.legacy_terms_processor.apply import EventRouter, TransactionCoordinator
from processor.legacy_terms_processor.config import NotificationConfig
from processor.legacy_terms_processor.notify import NotificationSink
from processor.legacy_terms_processor.store import ConnectionPool, create_schema, sqlite_connector
from processor.legacy_terms_processor.stream import InMemoryEventStream

from .helpers import REVIEWER_ROLE_ID, STANDARD_TYPE_ID, SUBMITTER_ROLE_ID, TOPICS, Store


@pytest.fixture
def store_path():
    """Create a seeded legacy store in a temporary directory."""
    with tempfile.TemporaryDirectory() as tmpdir:
        path = os.path.join(tmpdir, "legacy.db")
        conn = sqlite3.connect(path)
        create_schema(conn)
        conn.executemany(
            "INSERT INTO terms_of_use_agreeability_type_lu VALUES (?, ?, ?)",
            [
                (1, "Non-electronically-agreeable", None),
                (3, "Electronically-agreeable", None),
                (4, "DocuSignable", None),
            ],
        )
        conn.execute("INSERT INTO terms_of_use_type VALUES (?, ?)", (STANDARD_TYPE_ID, "Standard"))
        conn.executemany(
            "INSERT INTO resource_role_lu VALUES (?, ?)",
            [(SUBMITTER_ROLE_ID, "Submitter"), (REVIEWER_ROLE_ID, "Reviewer")],
        )
        conn.commit()
        conn.close()
        yield path


@pytest.fixture
def store(store_path):
    return Store(store_path)


@pytest.fixture
async def pool(store_path):
    pool = ConnectionPool(sqlite_connector(store_path), max_size=4)
    yield pool
    await pool.close()


@pytest.fixture
async def stream():
    stream = InMemoryEventStream()
    await stream.connect()
    yield stream
    await stream.close()


@pytest.fixture
def sink(stream):
    return NotificationSink(stream, NotificationConfig(), TOPICS.support)


@pytest.fixture
def coordinator(pool, sink):
    return TransactionCoordinator(pool, sink)


@pytest.fixture
def router(coordinator):
    return EventRouter(TOPICS, coordinator)


@pytest.fixture
def reports(stream):
    """Failure reports published so far, decoded."""

    def collect() -> list[dict]:
        return [r.value_json() for r in stream.get_all_records(TOPICS.support)]

    return collect
