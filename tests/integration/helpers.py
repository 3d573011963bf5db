"""
Helpers shared by the integration tests: record builders and direct store access.
"""

import json
import sqlite3

from processor.legacy_terms_processor.config import TopicsConfig
from processor.legacy_terms_processor.stream import StreamPos, StreamRecord


TOPICS = TopicsConfig()

SUBMITTER_ROLE_ID = 1
REVIEWER_ROLE_ID = 2
STANDARD_TYPE_ID = 1


class Store:
    """Direct access to the test database, outside any processor transaction."""

    def __init__(self, path: str) -> None:
        self.path = path

    def execute(self, sql: str, params: tuple = ()) -> None:
        conn = sqlite3.connect(self.path)
        try:
            conn.execute(sql, params)
            conn.commit()
        finally:
            conn.close()

    def rows(self, sql: str, params: tuple = ()) -> list[tuple]:
        conn = sqlite3.connect(self.path)
        try:
            return conn.execute(sql, params).fetchall()
        finally:
            conn.close()

    def count(self, table: str, where: str = "1 = 1", params: tuple = ()) -> int:
        return self.rows(f"SELECT COUNT(*) FROM {table} WHERE {where}", params)[0][0]

    def add_terms(self, terms_id: int, agreeability_type_id: int = 3, title: str = "Terms") -> None:
        self.execute(
            "INSERT INTO terms_of_use (terms_of_use_id, terms_text, terms_of_use_type_id, "
            "terms_of_use_agreeability_type_id, title, url, create_date, modify_date) "
            "VALUES (?, 'text', ?, ?, ?, NULL, '2026-01-01 00:00:00', '2026-01-01 00:00:00')",
            (terms_id, STANDARD_TYPE_ID, agreeability_type_id, title),
        )


def envelope(topic: str, payload: dict, **overrides) -> dict:
    data = {
        "topic": topic,
        "originator": "terms-api",
        "timestamp": "2026-10-17T08:00:00.000Z",
        "mime-type": "application/json",
        "payload": payload,
    }
    data.update(overrides)
    return data


def make_record(topic: str, value, offset: int = 0, partition: int = 0) -> StreamRecord:
    """Build a consumed record; dict values are JSON-encoded."""
    if not isinstance(value, bytes):
        value = json.dumps(value).encode("utf-8")
    return StreamRecord(
        key="",
        value=value,
        position=StreamPos(topic=topic, partition=partition, offset=offset, timestamp_ms=0),
    )


