"""
Event router and applier loop for the legacy terms processor.

The Applier consumes the nine inbound topics and hands each record to the
EventRouter, which decodes it, checks it and runs its handler through the
TransactionCoordinator. Records are fanned out to one worker per
(topic, partition); a worker handles its records one at a time and commits
each record's offset when the router returns, whatever the outcome.

Invariants:
    - At most one event in flight per partition
    - Every routed record is committed, applied or not (at-most-once)
    - A single bad record never stops the loop
    - The envelope topic must equal the topic the record arrived on

How to change safely:
    - Adding a retry or dead-letter step belongs between route() and the
      commit; keep the commit unconditional
    - Keep queues bounded so a slow partition applies backpressure to the
      consumer instead of buffering without limit
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Sequence
from dataclasses import dataclass
from enum import Enum
from typing import Any

from ..config import TopicsConfig
from ..errors import ContractViolation, HandlerFailed, MalformedEnvelope
from ..events import EventKind, topic_map
from ..schema import validate_event
from ..stream import EventStream, StreamPos, StreamRecord, StreamSerializationError
from .coordinator import Handler, TransactionCoordinator
from .handlers import HANDLERS

logger = logging.getLogger(__name__)


class RouteOutcome(Enum):
    """What happened to one record."""

    APPLIED = "applied"
    IGNORED = "ignored"  # Topic with no event kind
    DISCARDED = "discarded"  # Unparseable or topic mismatch
    REJECTED = "rejected"  # Contract violation
    FAILED = "failed"  # Handler rolled back


@dataclass
class RouteResult:
    """Result of routing one record.

    Attributes:
        outcome: What happened
        position: Stream position of the record
        kind: Event kind, when the topic has one
        error: Error message for DISCARDED, REJECTED and FAILED
    """

    outcome: RouteOutcome
    position: StreamPos
    kind: EventKind | None = None
    error: str | None = None


class EventRouter:
    """Maps records to handlers and runs them.

    Example:
        >>> router = EventRouter(config.topics, coordinator)
        >>> result = await router.route(record)
        >>> result.outcome
        <RouteOutcome.APPLIED: 'applied'>
    """

    def __init__(
        self,
        topics: TopicsConfig,
        coordinator: TransactionCoordinator,
        handlers: dict[EventKind, Handler] | None = None,
    ) -> None:
        self.coordinator = coordinator
        self.handlers = HANDLERS if handlers is None else handlers
        self._kinds = topic_map(topics)

    def kind_for(self, topic: str) -> EventKind | None:
        return self._kinds.get(topic)

    async def route(self, record: StreamRecord) -> RouteResult:
        """Decode, check and apply one record. Never raises for a bad record."""
        pos = record.position
        logger.info(
            "Handle event record",
            extra={"topic": pos.topic, "partition": pos.partition, "offset": pos.offset},
        )

        try:
            data = self._decode(record)
        except MalformedEnvelope as e:
            logger.error(str(e), extra=pos.to_dict())
            return RouteResult(RouteOutcome.DISCARDED, pos, error=str(e))

        kind = self.kind_for(pos.topic)
        if kind is None or kind not in self.handlers:
            logger.warning("No handler for topic, ignoring", extra=pos.to_dict())
            return RouteResult(RouteOutcome.IGNORED, pos)

        try:
            envelope, payload = validate_event(kind, data)
        except ContractViolation as e:
            logger.error(
                f"Rejected {kind.value} event: {e}",
                extra={**pos.to_dict(), "errors": e.errors},
            )
            return RouteResult(RouteOutcome.REJECTED, pos, kind, str(e))

        try:
            await self.coordinator.run(kind, payload, self.handlers[kind], envelope.payload)
        except HandlerFailed as e:
            logger.error(
                f"Failed to apply {kind.value} event: {e}",
                extra=pos.to_dict(),
                exc_info=True,
            )
            return RouteResult(RouteOutcome.FAILED, pos, kind, str(e))

        logger.debug("Successfully processed message", extra=pos.to_dict())
        return RouteResult(RouteOutcome.APPLIED, pos, kind)

    @staticmethod
    def _decode(record: StreamRecord) -> dict[str, Any]:
        """Parse the record and check its declared topic.

        Raises:
            MalformedEnvelope: If the value is not a JSON object or the
                declared topic differs from the record's topic
        """
        try:
            data = record.value_json()
        except StreamSerializationError as e:
            raise MalformedEnvelope(f"Invalid message JSON: {e}") from e

        topic = record.position.topic
        declared = data.get("topic") if isinstance(data, dict) else None
        if declared != topic:
            raise MalformedEnvelope(
                f"The message topic {declared} doesn't match the Kafka topic {topic}.",
                details={"declared": declared, "topic": topic},
            )
        return data


class Applier:
    """Consumes inbound topics and applies records, one worker per partition.

    Example:
        >>> applier = Applier(stream, router, config.topics.inbound(), "legacy-terms-processor")
        >>> task = asyncio.create_task(applier.start())
        >>> ...
        >>> await applier.stop()
        >>> await task
    """

    def __init__(
        self,
        stream: EventStream,
        router: EventRouter,
        topics: Sequence[str],
        group_id: str,
        queue_size: int = 100,
    ) -> None:
        """Initialize the applier.

        Args:
            stream: Event stream to consume from
            router: Router applying each record
            topics: Topics to subscribe to
            group_id: Consumer group ID
            queue_size: Records buffered per partition worker
        """
        self.stream = stream
        self.router = router
        self.topics = list(topics)
        self.group_id = group_id
        self.queue_size = queue_size

        self._running = False
        self._consumer_task: asyncio.Task | None = None
        self._queues: dict[tuple[str, int], asyncio.Queue] = {}
        self._workers: dict[tuple[str, int], asyncio.Task] = {}
        self._counts = {outcome: 0 for outcome in RouteOutcome}
        self._commit_errors = 0
        self._last_position: StreamPos | None = None

    @property
    def running(self) -> bool:
        return self._running

    async def start(self) -> None:
        """Run the applier until stop() is called.

        Workers finish their queued records before this returns.
        """
        if self._running:
            logger.warning("Applier already running")
            return

        self._running = True
        logger.info(
            "Starting applier",
            extra={"topics": self.topics, "group_id": self.group_id},
        )

        self._consumer_task = asyncio.create_task(self._consume())
        try:
            await self._consumer_task
        except asyncio.CancelledError:
            logger.info("Applier consumer cancelled")
        except Exception as e:
            logger.error(f"Applier error: {e}", exc_info=True)
            raise
        finally:
            await self._drain_workers()
            self._running = False
            logger.info("Applier stopped", extra=self.stats)

    async def stop(self) -> None:
        """Stop consuming; in-flight handlers run to completion."""
        self._running = False
        logger.info("Stopping applier")
        if self._consumer_task is not None and not self._consumer_task.done():
            self._consumer_task.cancel()

    async def _consume(self) -> None:
        async for record in self.stream.subscribe(self.topics, self.group_id):
            if not self._running:
                break
            key = (record.position.topic, record.position.partition)
            queue = self._queues.get(key)
            if queue is None:
                queue = asyncio.Queue(maxsize=self.queue_size)
                self._queues[key] = queue
                self._workers[key] = asyncio.create_task(self._work(key, queue))
                logger.debug("Started partition worker", extra={"topic": key[0], "partition": key[1]})
            await queue.put(record)

    async def _work(self, key: tuple[str, int], queue: asyncio.Queue) -> None:
        while True:
            record = await queue.get()
            if record is None:
                queue.task_done()
                return
            try:
                result = await self.router.route(record)
                self._counts[result.outcome] += 1
            except Exception as e:
                self._counts[RouteOutcome.FAILED] += 1
                logger.error(f"Error processing record: {e}", exc_info=True)
            finally:
                # Commit offset regardless of outcome
                await self._commit(record)
                queue.task_done()

    async def _commit(self, record: StreamRecord) -> None:
        try:
            await self.stream.commit(record)
            self._last_position = record.position
        except Exception as e:
            self._commit_errors += 1
            logger.error(f"Failed to commit offset: {e}", extra=record.position.to_dict())

    async def _drain_workers(self) -> None:
        for queue in self._queues.values():
            await queue.put(None)
        if self._workers:
            await asyncio.gather(*self._workers.values(), return_exceptions=True)
        self._queues.clear()
        self._workers.clear()

    @property
    def stats(self) -> dict[str, Any]:
        """Get applier statistics."""
        return {
            "running": self._running,
            "processed": self._counts[RouteOutcome.APPLIED],
            "failed": self._counts[RouteOutcome.FAILED],
            "rejected": self._counts[RouteOutcome.REJECTED],
            "discarded": self._counts[RouteOutcome.DISCARDED],
            "ignored": self._counts[RouteOutcome.IGNORED],
            "commit_errors": self._commit_errors,
            "workers": len(self._workers),
            "last_position": str(self._last_position) if self._last_position else None,
        }
