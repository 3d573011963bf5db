"""
Event stream abstraction for the legacy terms processor.

Backends:
- Kafka/Redpanda (production)
- In-memory (tests and local runs)

Invariants:
    - Records within a partition are consumed in order
    - Nothing is acknowledged unless the caller commits it
"""

from .base import (
    EventStream,
    StreamConnectionError,
    StreamError,
    StreamPos,
    StreamRecord,
    StreamSerializationError,
    StreamTimeoutError,
    create_event_stream,
)
from .kafka import KafkaEventStream
from .memory import InMemoryEventStream

__all__ = [
    "EventStream",
    "StreamRecord",
    "StreamPos",
    "StreamError",
    "StreamConnectionError",
    "StreamTimeoutError",
    "StreamSerializationError",
    "create_event_stream",
    "KafkaEventStream",
    "InMemoryEventStream",
]
