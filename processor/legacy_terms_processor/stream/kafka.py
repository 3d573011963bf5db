"""
Kafka event stream implementation.

Consumes the terms topics as one consumer group member and publishes failure
reports. Works with Apache Kafka, Amazon MSK and Redpanda.

Invariants:
    - Auto-commit is disabled; the applier commits every record explicitly
    - Producer waits for acks before publish() returns
    - A single consumer serves all subscribed topics

How to change safely:
    - Test against a real broker before deploying consumer setting changes
    - Keep commit() committing offset + 1 (the next record to read)
"""

from __future__ import annotations

import logging
import time
from collections.abc import AsyncIterator, Sequence
from typing import Any

from aiokafka import AIOKafkaConsumer, AIOKafkaProducer
from aiokafka.errors import KafkaConnectionError, KafkaError, KafkaTimeoutError
from aiokafka.helpers import create_ssl_context
from aiokafka.structs import OffsetAndMetadata, TopicPartition

from .base import (
    StreamConnectionError,
    StreamError,
    StreamPos,
    StreamRecord,
    StreamTimeoutError,
)

logger = logging.getLogger(__name__)


class KafkaEventStream:
    """Kafka implementation of the EventStream protocol.

    Uses aiokafka for the producer (failure reports) and the consumer
    (inbound terms events).

    Example:
        >>> stream = KafkaEventStream(KafkaConfig(brokers="localhost:9092"))
        >>> await stream.connect()
        >>> async for record in stream.subscribe(topics, "legacy-terms-processor"):
        ...     ...
    """

    def __init__(self, config: Any) -> None:
        """Initialize the Kafka stream.

        Args:
            config: KafkaConfig instance with connection settings
        """
        self.config = config
        self._producer: AIOKafkaProducer | None = None
        self._consumer: AIOKafkaConsumer | None = None
        self._connected = False

    @property
    def is_connected(self) -> bool:
        """Whether connected to Kafka."""
        return self._connected and self._producer is not None

    def _security_options(self) -> dict[str, Any]:
        """Build SSL/SASL options shared by producer and consumer."""
        options: dict[str, Any] = {}
        if self.config.security_protocol != "PLAINTEXT":
            options["security_protocol"] = self.config.security_protocol
        if self.config.ssl_certfile and self.config.ssl_keyfile:
            options["security_protocol"] = "SSL"
            options["ssl_context"] = create_ssl_context(
                cafile=self.config.ssl_cafile,
                certfile=self.config.ssl_certfile,
                keyfile=self.config.ssl_keyfile,
            )
        if self.config.sasl_mechanism:
            options["sasl_mechanism"] = self.config.sasl_mechanism
            options["sasl_plain_username"] = self.config.sasl_username
            options["sasl_plain_password"] = self.config.sasl_password
        return options

    async def connect(self) -> None:
        """Start the producer.

        Raises:
            StreamConnectionError: If connection fails
        """
        if self._connected:
            return

        try:
            self._producer = AIOKafkaProducer(
                bootstrap_servers=self.config.brokers,
                acks=self.config.acks if self.config.acks == "all" else int(self.config.acks),
                request_timeout_ms=30000,
                retry_backoff_ms=100,
                **self._security_options(),
            )
            await self._producer.start()
            self._connected = True

            logger.info(
                "Connected to Kafka",
                extra={"brokers": self.config.brokers, "acks": self.config.acks},
            )

        except Exception as e:
            self._connected = False
            raise StreamConnectionError(f"Failed to connect to Kafka: {e}") from e

    async def close(self) -> None:
        """Stop consumer and producer."""
        if self._consumer:
            try:
                await self._consumer.stop()
            except KafkaError as e:
                logger.warning(f"Error closing consumer: {e}")
            self._consumer = None

        if self._producer:
            try:
                await self._producer.stop()
            except KafkaError as e:
                logger.warning(f"Error closing producer: {e}")
            self._producer = None

        self._connected = False
        logger.info("Kafka connections closed")

    async def publish(
        self,
        topic: str,
        key: str,
        value: bytes,
        headers: dict[str, bytes] | None = None,
    ) -> StreamPos:
        """Publish a record and wait for the acknowledgment.

        Raises:
            StreamConnectionError: If not connected
            StreamTimeoutError: If send times out
            StreamError: For other Kafka errors
        """
        if not self._producer:
            raise StreamConnectionError("Not connected to Kafka")

        try:
            kafka_headers = [(k, v) for k, v in headers.items()] if headers else None

            metadata = await self._producer.send_and_wait(
                topic,
                value=value,
                key=key.encode("utf-8") if key else None,
                headers=kafka_headers,
            )

            pos = StreamPos(
                topic=metadata.topic,
                partition=metadata.partition,
                offset=metadata.offset,
                timestamp_ms=metadata.timestamp or int(time.time() * 1000),
            )
            logger.debug("Record published", extra=pos.to_dict())
            return pos

        except KafkaTimeoutError as e:
            raise StreamTimeoutError(f"Kafka send timed out: {e}") from e
        except KafkaConnectionError as e:
            self._connected = False
            raise StreamConnectionError(f"Kafka connection lost: {e}") from e
        except KafkaError as e:
            raise StreamError(f"Kafka send failed: {e}") from e

    async def subscribe(
        self,
        topics: Sequence[str],
        group_id: str,
    ) -> AsyncIterator[StreamRecord]:
        """Consume the given topics and yield records.

        Raises:
            StreamConnectionError: If subscription fails
            StreamError: For other consumer errors
        """
        try:
            if self._consumer:
                await self._consumer.stop()

            self._consumer = AIOKafkaConsumer(
                *topics,
                bootstrap_servers=self.config.brokers,
                group_id=group_id,
                auto_offset_reset=self.config.auto_offset_reset,
                enable_auto_commit=False,
                session_timeout_ms=30000,
                heartbeat_interval_ms=10000,
                **self._security_options(),
            )
            await self._consumer.start()

            logger.info(
                "Subscribed to Kafka topics",
                extra={"topics": list(topics), "group_id": group_id},
            )

            async for msg in self._consumer:
                yield StreamRecord(
                    key=msg.key.decode("utf-8") if msg.key else "",
                    value=msg.value or b"",
                    position=StreamPos(
                        topic=msg.topic,
                        partition=msg.partition,
                        offset=msg.offset,
                        timestamp_ms=msg.timestamp or int(time.time() * 1000),
                    ),
                    headers=dict(msg.headers) if msg.headers else {},
                )

        except KafkaConnectionError as e:
            raise StreamConnectionError(f"Failed to subscribe: {e}") from e
        except KafkaError as e:
            raise StreamError(f"Consumer error: {e}") from e

    async def commit(self, record: StreamRecord) -> None:
        """Commit the offset following the record.

        Raises:
            StreamError: If commit fails
        """
        if not self._consumer:
            raise StreamError("No active consumer to commit")

        try:
            tp = TopicPartition(record.position.topic, record.position.partition)
            await self._consumer.commit({tp: OffsetAndMetadata(record.position.offset + 1, "")})

            logger.debug("Committed offset", extra=record.position.to_dict())

        except KafkaError as e:
            raise StreamError(f"Failed to commit: {e}") from e
