"""
In-memory event stream implementation for testing.

Provides the EventStream protocol without a broker for:
- Unit and integration tests
- Local runs with STREAM_BACKEND=memory

Invariants:
    - All data is lost on process exit
    - Same key always maps to the same partition
    - Records are yielded in offset order per partition

How to change safely:
    - Keep the interface compatible with the EventStream protocol
    - Testing helpers live at the bottom of the class
"""

from __future__ import annotations

import asyncio
import hashlib
import logging
import time
from collections import defaultdict
from collections.abc import AsyncIterator, Sequence
from dataclasses import dataclass, field

from .base import StreamConnectionError, StreamPos, StreamRecord

logger = logging.getLogger(__name__)


@dataclass
class InMemoryPartition:
    """In-memory partition storage."""

    records: list[StreamRecord] = field(default_factory=list)
    next_offset: int = 0


class InMemoryEventStream:
    """In-memory implementation of EventStream.

    Example:
        >>> stream = InMemoryEventStream()
        >>> await stream.connect()
        >>> await stream.publish("terms.notification.created", "", b"{}")
        >>> async for record in stream.subscribe(["terms.notification.created"], "g"):
        ...     await stream.commit(record)
    """

    def __init__(self, num_partitions: int = 4) -> None:
        """Initialize in-memory stream.

        Args:
            num_partitions: Number of partitions per topic
        """
        self.num_partitions = num_partitions
        self._topics: dict[str, dict[int, InMemoryPartition]] = defaultdict(
            lambda: {i: InMemoryPartition() for i in range(self.num_partitions)}
        )
        self._committed: dict[tuple[str, int], int] = {}
        self._connected = False
        self._lock = asyncio.Lock()
        self._new_record = asyncio.Event()
        self._closing = False

    @property
    def is_connected(self) -> bool:
        return self._connected

    async def connect(self) -> None:
        self._connected = True
        self._closing = False
        logger.debug("InMemoryEventStream connected")

    async def close(self) -> None:
        """Close and wake any subscriber so it can exit."""
        self._connected = False
        self._closing = True
        self._new_record.set()
        logger.debug("InMemoryEventStream closed")

    async def publish(
        self,
        topic: str,
        key: str,
        value: bytes,
        headers: dict[str, bytes] | None = None,
    ) -> StreamPos:
        """Append a record to the topic partition chosen by key.

        Raises:
            StreamConnectionError: If not connected
        """
        if not self._connected:
            raise StreamConnectionError("Not connected")

        partition = self._partition_for_key(key)

        async with self._lock:
            part = self._topics[topic][partition]
            pos = StreamPos(
                topic=topic,
                partition=partition,
                offset=part.next_offset,
                timestamp_ms=int(time.time() * 1000),
            )
            part.records.append(
                StreamRecord(key=key, value=value, position=pos, headers=headers or {})
            )
            part.next_offset += 1
            self._new_record.set()

        logger.debug("Record appended to in-memory stream", extra=pos.to_dict())
        return pos

    async def subscribe(
        self,
        topics: Sequence[str],
        group_id: str,
    ) -> AsyncIterator[StreamRecord]:
        """Yield records from the topics, starting at committed offsets.

        Raises:
            StreamConnectionError: If not connected
        """
        if not self._connected:
            raise StreamConnectionError("Not connected")

        positions = {
            (topic, partition): self._committed.get((topic, partition), 0)
            for topic in topics
            for partition in range(self.num_partitions)
        }

        while not self._closing:
            async with self._lock:
                self._new_record.clear()
                pending: list[StreamRecord] = []
                for (topic, partition), offset in positions.items():
                    records = self._topics[topic][partition].records
                    pending.extend(records[offset:])
                    positions[(topic, partition)] = len(records)

            # Yield outside the lock so consumers may publish while handling.
            for record in pending:
                yield record

            if not pending:
                try:
                    await asyncio.wait_for(self._new_record.wait(), timeout=1.0)
                except asyncio.TimeoutError:
                    pass

    async def commit(self, record: StreamRecord) -> None:
        pos = record.position
        self._committed[(pos.topic, pos.partition)] = pos.offset + 1

    def _partition_for_key(self, key: str) -> int:
        """Get partition number for a key using consistent hashing."""
        digest = hashlib.md5(key.encode("utf-8")).digest()
        return int.from_bytes(digest[:4], "big") % self.num_partitions

    # Testing helpers

    def get_all_records(self, topic: str) -> list[StreamRecord]:
        """All records of a topic across partitions."""
        records: list[StreamRecord] = []
        if topic in self._topics:
            for partition in sorted(self._topics[topic]):
                records.extend(self._topics[topic][partition].records)
        return records

    def get_record_count(self, topic: str) -> int:
        return len(self.get_all_records(topic))

    def committed_offset(self, topic: str, partition: int) -> int:
        """Next offset to read for a partition (0 when nothing committed)."""
        return self._committed.get((topic, partition), 0)

    def committed_count(self, topic: str) -> int:
        """Number of records committed across all partitions of a topic."""
        return sum(offset for (t, _), offset in self._committed.items() if t == topic)

    async def wait_for_commits(self, topic: str, count: int, timeout: float = 5.0) -> bool:
        """Wait until count records of topic have been committed."""
        start = time.time()
        while time.time() - start < timeout:
            if self.committed_count(topic) >= count:
                return True
            await asyncio.sleep(0.01)
        return False
