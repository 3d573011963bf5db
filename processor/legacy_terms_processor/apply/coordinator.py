"""
Transaction coordinator: one event, one connection, one transaction.

For every valid event the coordinator borrows a connection from the pool,
opens a transaction and awaits the domain handler inside it. A handler that
returns is committed. Any exception, from the handler or from the store
itself, rolls the transaction back, sends one failure report and is raised
again as HandlerFailed.

Invariants:
    - A handler never spans more than one connection or transaction
    - The connection goes back to the pool on every exit path
    - A connection whose rollback failed is discarded, not reused
    - Exactly one failure report per failed event

How to change safely:
    - Keep the report after the rollback; the report must not describe
      writes that are still pending
    - Do not add retries here; the acknowledgment policy is at-most-once
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from typing import Any

from ..errors import HandlerFailed
from ..events import EventKind
from ..notify import NotificationSink
from ..store import ConnectionPool, RecordGateway

logger = logging.getLogger(__name__)

Handler = Callable[[RecordGateway, Any], Awaitable[None]]


class TransactionCoordinator:
    """Runs domain handlers inside store transactions.

    Example:
        >>> coordinator = TransactionCoordinator(pool, sink)
        >>> await coordinator.run(kind, payload, handlers.agree_terms_of_use, raw)
    """

    def __init__(self, pool: ConnectionPool, sink: NotificationSink) -> None:
        self.pool = pool
        self.sink = sink

    async def run(
        self,
        kind: EventKind,
        payload: Any,
        handler: Handler,
        raw_payload: dict[str, Any],
    ) -> None:
        """Apply one event.

        Args:
            kind: Event kind, selects the report subject
            payload: Typed payload handed to the handler
            handler: Domain handler to run inside the transaction
            raw_payload: Payload as received, copied into the failure report

        Raises:
            HandlerFailed: After rollback and report, chained to the cause
        """
        logger.debug("Starting transaction", extra={"kind": kind.value})
        try:
            async with self.pool.acquire() as conn:
                gateway = RecordGateway(conn)
                await gateway.begin()
                try:
                    await handler(gateway, payload)
                    await gateway.commit()
                except BaseException:
                    await self._rollback(gateway, conn)
                    raise
        except Exception as e:
            logger.error(
                f"Error in processing {kind.value} event: {e}",
                extra={"kind": kind.value},
            )
            await self.sink.report(kind, raw_payload, str(e))
            raise HandlerFailed(
                f"{kind.value} handler failed: {e}",
                details={"kind": kind.value, "error": type(e).__name__},
            ) from e

        logger.debug("Transaction committed", extra={"kind": kind.value})

    async def _rollback(self, gateway: RecordGateway, conn: Any) -> None:
        try:
            await gateway.rollback()
        except Exception as e:
            logger.error(f"Rollback failed, discarding connection: {e}")
            self.pool.invalidate(conn)
