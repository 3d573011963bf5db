"""
Base protocol and types for the event stream abstraction.

This module defines the EventStream protocol that broker backends implement,
along with the record/position types handed to the router and the errors
raised by backends.

Invariants:
    - StreamPos uniquely identifies a record within a topic partition
    - Records of one partition are yielded in offset order
    - commit() acknowledges exactly the record passed in (offset + 1)

How to change safely:
    - Protocol changes require updating every backend (kafka, memory)
    - Keep publish() durable: it returns only after the broker acknowledged
"""

from __future__ import annotations

import json
import logging
from abc import abstractmethod
from collections.abc import AsyncIterator, Sequence
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

if TYPE_CHECKING:
    from ..config import ProcessorConfig

logger = logging.getLogger(__name__)


class StreamError(Exception):
    """Base exception for stream operations."""

    pass


class StreamConnectionError(StreamError):
    """Connection to the broker failed."""

    pass


class StreamTimeoutError(StreamError):
    """Broker operation timed out."""

    pass


class StreamSerializationError(StreamError):
    """Record value could not be decoded."""

    pass


@dataclass(frozen=True)
class StreamPos:
    """Position of a record in the stream.

    Attributes:
        topic: Topic name
        partition: Partition number
        offset: Offset within the partition
        timestamp_ms: Broker timestamp of the record (milliseconds)
    """

    topic: str
    partition: int
    offset: int
    timestamp_ms: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "topic": self.topic,
            "partition": self.partition,
            "offset": self.offset,
            "timestamp_ms": self.timestamp_ms,
        }

    def __str__(self) -> str:
        return f"{self.topic}:{self.partition}:{self.offset}"


@dataclass
class StreamRecord:
    """A record consumed from the stream.

    Attributes:
        key: Partition key (may be empty)
        value: Raw message bytes, expected to be a JSON envelope
        position: Where the record sits in the stream
        headers: Broker headers

    Example:
        >>> async for record in stream.subscribe(["terms.notification.created"], "g"):
        ...     envelope = record.value_json()
        ...     await stream.commit(record)
    """

    key: str
    value: bytes
    position: StreamPos
    headers: dict[str, bytes] = field(default_factory=dict)

    @property
    def topic(self) -> str:
        return self.position.topic

    def value_json(self) -> Any:
        """Parse value as JSON.

        Raises:
            StreamSerializationError: If value is not valid JSON
        """
        try:
            return json.loads(self.value.decode("utf-8"))
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            raise StreamSerializationError(f"Failed to parse record value as JSON: {e}") from e

    def __str__(self) -> str:
        return f"StreamRecord(key={self.key}, pos={self.position})"


@runtime_checkable
class EventStream(Protocol):
    """Protocol for broker backends.

    Ordering contract:
        - Records sharing a key land on the same partition
        - Consumers receive records in order within a partition

    Acknowledgment contract:
        - Nothing is committed implicitly; the caller commits every record
    """

    @abstractmethod
    async def connect(self) -> None:
        """Connect to the broker.

        Raises:
            StreamConnectionError: If connection fails
        """
        ...

    @abstractmethod
    async def close(self) -> None:
        """Flush pending writes and release resources."""
        ...

    @abstractmethod
    async def publish(
        self,
        topic: str,
        key: str,
        value: bytes,
        headers: dict[str, bytes] | None = None,
    ) -> StreamPos:
        """Publish a record and wait for the broker acknowledgment.

        Raises:
            StreamConnectionError: If not connected
            StreamTimeoutError: If the send times out
            StreamError: For other send failures
        """
        ...

    @abstractmethod
    def subscribe(
        self,
        topics: Sequence[str],
        group_id: str,
    ) -> AsyncIterator[StreamRecord]:
        """Yield records from the given topics as a member of group_id.

        The caller must call commit() for each record it has handled.
        """
        ...

    @abstractmethod
    async def commit(self, record: StreamRecord) -> None:
        """Acknowledge a consumed record.

        Raises:
            StreamError: If commit fails
        """
        ...

    @property
    @abstractmethod
    def is_connected(self) -> bool:
        """Whether currently connected to the broker."""
        ...


def create_event_stream(config: ProcessorConfig) -> EventStream:
    """Create the stream backend named by the configuration.

    Raises:
        ValueError: If the backend is not supported
    """
    from ..config import StreamBackend
    from .kafka import KafkaEventStream
    from .memory import InMemoryEventStream

    if config.stream_backend == StreamBackend.KAFKA:
        return KafkaEventStream(config.kafka)
    elif config.stream_backend == StreamBackend.MEMORY:
        logger.warning("Using in-memory event stream; nothing will be consumed from a broker")
        return InMemoryEventStream()
    else:
        raise ValueError(f"Unsupported stream backend: {config.stream_backend}")
