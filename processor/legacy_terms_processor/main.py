"""
Legacy terms processor - main entry point.

This module starts the processor with all components:
- Event stream (Kafka, or in-memory for local runs)
- Legacy store connection pool
- Failure report sink
- Applier loop (inbound topics -> legacy store)
- Health endpoint

Usage:
    legacy-terms-processor
    python -m processor.legacy_terms_processor.main

Configuration is entirely via environment variables.
See config.py for all available settings.

Invariants:
    - The applier starts only after the stream and the pool are open
    - Shutdown stops consuming first, lets in-flight handlers finish, then
      closes the stream and drains the pool
    - An applier loop that ends on its own requests shutdown; an applier
      error makes start() raise so the process exits non-zero

How to change safely:
    - Add new components with enable/disable flags
    - Test shutdown sequence thoroughly
"""

from __future__ import annotations

import asyncio
import logging
import signal
import sys
from typing import Any

import json_log_formatter

from .api import HealthServer
from .apply import Applier, EventRouter, TransactionCoordinator
from .config import ProcessorConfig
from .errors import ProcessorError
from .notify import NotificationSink
from .store import ConnectionPool, create_schema, sqlite_connector
from .stream import EventStream, create_event_stream

logger = logging.getLogger(__name__)


def setup_logging(config: ProcessorConfig) -> None:
    """Configure logging based on configuration.

    Args:
        config: Processor configuration
    """
    level = getattr(logging, config.observability.log_level.upper(), logging.INFO)

    if config.observability.log_format == "json":
        formatter: logging.Formatter = json_log_formatter.JSONFormatter()
    else:
        formatter = logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")

    handler = logging.StreamHandler()
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    root_logger.handlers = [handler]

    # Reduce noise from libraries
    logging.getLogger("aiokafka").setLevel(logging.WARNING)
    logging.getLogger("aiohttp").setLevel(logging.WARNING)


class Processor:
    """Legacy terms processor orchestrator.

    Manages the lifecycle of all components:
    - Event stream connection
    - Store connection pool
    - Applier loop and health endpoint

    Example:
        >>> processor = Processor()
        >>> await processor.start()  # Runs until request_shutdown()
        >>> await processor.stop()
    """

    def __init__(
        self,
        config: ProcessorConfig | None = None,
        stream: EventStream | None = None,
        pool: ConnectionPool | None = None,
    ) -> None:
        """Initialize the processor.

        Args:
            config: Optional configuration (loaded from env if not provided)
            stream: Event stream to use instead of one built from config
            pool: Connection pool to use instead of one built from config
        """
        self.config = config or ProcessorConfig.from_env()
        self._running = False
        self._shutdown_event = asyncio.Event()

        self.stream = stream
        self.pool = pool
        self.sink: NotificationSink | None = None
        self.applier: Applier | None = None
        self.health_server: HealthServer | None = None
        self._applier_task: asyncio.Task | None = None
        self._applier_error: BaseException | None = None

    @property
    def running(self) -> bool:
        return self._running

    async def start(self) -> None:
        """Start all components and wait for a shutdown request."""
        if self._running:
            logger.warning("Processor already running")
            return

        logger.info("Starting legacy terms processor")
        self.config.log_config()

        try:
            if self.stream is None:
                self.stream = create_event_stream(self.config)
            await self.stream.connect()
            logger.info("Event stream connected")

            if self.pool is None:
                self.pool = ConnectionPool(
                    sqlite_connector(self.config.store.database, self.config.store.busy_timeout_ms),
                    max_size=self.config.store.pool_max_size,
                )
            if self.config.store.create_schema:
                async with self.pool.acquire() as conn:
                    create_schema(conn)
                logger.info("Legacy store schema ensured")

            self.sink = NotificationSink(
                self.stream, self.config.notification, self.config.topics.support
            )
            router = EventRouter(self.config.topics, TransactionCoordinator(self.pool, self.sink))
            self.applier = Applier(
                stream=self.stream,
                router=router,
                topics=self.config.topics.inbound(),
                group_id=self.config.kafka.group_id,
                queue_size=self.config.applier.queue_size,
            )
            self._applier_task = asyncio.create_task(self.applier.start())
            self._applier_task.add_done_callback(self._on_applier_done)

            if self.config.health.enabled:
                self.health_server = HealthServer(
                    self.health, self.config.health.host, self.config.health.port
                )
                await self.health_server.start()

            self._running = True
            logger.info("Legacy terms processor started successfully")

            # Wait for shutdown signal
            await self._shutdown_event.wait()

        except Exception as e:
            logger.error(f"Processor startup failed: {e}", exc_info=True)
            self._running = True
            await self.stop()
            raise

        if self._applier_error is not None:
            raise ProcessorError(
                f"Applier stopped unexpectedly: {self._applier_error}"
            ) from self._applier_error

    def _on_applier_done(self, task: asyncio.Task) -> None:
        """Shut the process down once the applier loop has ended."""
        if not task.cancelled() and task.exception() is not None:
            self._applier_error = task.exception()
            logger.error(
                f"Applier stopped unexpectedly: {self._applier_error}",
                exc_info=self._applier_error,
            )
        self.request_shutdown()

    async def stop(self) -> None:
        """Stop the processor gracefully."""
        if not self._running:
            return

        logger.info("Stopping legacy terms processor")

        if self.applier:
            await self.applier.stop()
        if self._applier_task:
            await asyncio.gather(self._applier_task, return_exceptions=True)

        if self.health_server:
            await self.health_server.stop()

        if self.stream:
            await self.stream.close()

        if self.pool:
            await self.pool.close()

        self._running = False
        logger.info("Legacy terms processor stopped")

    def request_shutdown(self) -> None:
        """Request graceful shutdown."""
        self._shutdown_event.set()

    async def health(self) -> dict[str, Any]:
        """Report component health for the /health endpoint."""
        stream_ok = self.stream is not None and self.stream.is_connected
        store_ok = self.pool is not None and not self.pool.closed
        applier_ok = (
            self.applier is not None
            and self.applier.running
            and self._applier_task is not None
            and not self._applier_task.done()
        )
        return {
            "healthy": stream_ok and store_ok and applier_ok,
            "checks": {"stream": stream_ok, "store": store_ok, "applier": applier_ok},
            "applier": self.applier.stats if self.applier else None,
        }


def main() -> None:
    """Main entry point."""
    # Load configuration
    try:
        config = ProcessorConfig.from_env()
    except ValueError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        sys.exit(1)

    setup_logging(config)

    processor = Processor(config)

    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)

    def handle_signal(sig: int) -> None:
        logger.info(f"Received signal {sig}, initiating shutdown")
        processor.request_shutdown()

    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(sig, handle_signal, sig)

    exit_code = 0
    try:
        loop.run_until_complete(processor.start())
    except KeyboardInterrupt:
        pass
    except ProcessorError as e:
        logger.error(f"Processor failed: {e}")
        exit_code = 1
    finally:
        loop.run_until_complete(processor.stop())
        loop.close()

    sys.exit(exit_code)


if __name__ == "__main__":
    main()
