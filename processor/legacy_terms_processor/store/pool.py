"""
Bounded connection pool for the legacy store.

The pool is constructed once by the process orchestrator and handed to the
transaction coordinator. It lends out DB-API connections, creating them
lazily up to max_size; a coroutine asking for a connection while all are
lent out is suspended until one is released.

Invariants:
    - At most max_size connections are checked out at any time
    - A connection is lent to one holder at a time
    - Invalidated connections are closed, never handed out again
    - After close() no connection can be acquired

How to change safely:
    - Keep acquisition blocking (suspending); callers rely on backpressure
    - Driver specifics belong in the connect factory, not in the pool
"""

from __future__ import annotations

import asyncio
import logging
import sqlite3
from collections.abc import AsyncIterator, Callable
from contextlib import asynccontextmanager
from typing import Any

logger = logging.getLogger(__name__)


class StoreError(Exception):
    """Base exception for store access."""

    pass


class PoolClosedError(StoreError):
    """Pool has been closed."""

    pass


def sqlite_connector(database: str, busy_timeout_ms: int = 5000) -> Callable[[], sqlite3.Connection]:
    """Build a factory of SQLite connections with explicit transaction control.

    Args:
        database: SQLite database path
        busy_timeout_ms: Lock wait before a statement fails

    Returns:
        Zero-argument callable returning a new connection
    """

    def connect() -> sqlite3.Connection:
        conn = sqlite3.connect(
            database,
            timeout=busy_timeout_ms / 1000.0,
            isolation_level=None,  # Autocommit by default, explicit transactions
        )
        conn.execute(f"PRAGMA busy_timeout = {int(busy_timeout_ms)}")
        return conn

    return connect


class ConnectionPool:
    """Bounded pool of DB-API connections.

    Example:
        >>> pool = ConnectionPool(sqlite_connector("legacy.db"), max_size=10)
        >>> async with pool.acquire() as conn:
        ...     conn.execute("SELECT 1")
        >>> await pool.close()
    """

    def __init__(self, connect: Callable[[], Any], max_size: int = 10) -> None:
        """Initialize the pool.

        Args:
            connect: Factory returning a new DB-API connection
            max_size: Maximum connections checked out at once
        """
        if max_size < 1:
            raise ValueError(f"max_size must be positive, got {max_size}")

        self._connect = connect
        self.max_size = max_size
        self._idle: list[Any] = []
        self._invalid: set[int] = set()
        self._slots = asyncio.Semaphore(max_size)
        self._in_use = 0
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def in_use(self) -> int:
        """Connections currently lent out."""
        return self._in_use

    @property
    def idle(self) -> int:
        """Connections open and waiting to be lent."""
        return len(self._idle)

    @asynccontextmanager
    async def acquire(self) -> AsyncIterator[Any]:
        """Borrow a connection for the duration of the block.

        Suspends while max_size connections are lent out.

        Raises:
            PoolClosedError: If the pool is closed
        """
        if self._closed:
            raise PoolClosedError("Connection pool is closed")

        async with self._slots:
            if self._closed:
                raise PoolClosedError("Connection pool is closed")

            conn = self._idle.pop() if self._idle else self._open()
            self._in_use += 1
            try:
                yield conn
            finally:
                self._in_use -= 1
                self._release(conn)

    def invalidate(self, conn: Any) -> None:
        """Mark a borrowed connection as unusable; it is closed on release."""
        self._invalid.add(id(conn))

    async def close(self) -> None:
        """Close idle connections and refuse further acquisition.

        Connections still lent out are closed as they are released.
        """
        self._closed = True
        while self._idle:
            self._close_quietly(self._idle.pop())
        logger.info("Connection pool closed", extra={"in_use": self._in_use})

    def _open(self) -> Any:
        try:
            conn = self._connect()
        except Exception as e:
            raise StoreError(f"Failed to open store connection: {e}") from e
        logger.debug("Opened store connection", extra={"in_use": self._in_use + 1})
        return conn

    def _release(self, conn: Any) -> None:
        if id(conn) in self._invalid:
            self._invalid.discard(id(conn))
            logger.warning("Discarding invalidated store connection")
            self._close_quietly(conn)
        elif self._closed:
            self._close_quietly(conn)
        else:
            self._idle.append(conn)

    @staticmethod
    def _close_quietly(conn: Any) -> None:
        try:
            conn.close()
        except Exception as e:
            logger.warning(f"Error closing store connection: {e}")
