"""Wiring for the materializer worker process."""

from __future__ import annotations

import asyncio
import signal
from typing import TYPE_CHECKING

from loguru import logger

from tvbars.core.data.storage import DuckDBFactory, EventStore
from tvbars.core.exceptions import StoreError
from tvbars.core.materializer import Materializer, MaterializerLoop
from tvbars.core.monitoring import MaterializerMetrics

if TYPE_CHECKING:
    from tvbars.core.config import StoreConfig, TvBarsConfig


def open_store(config: StoreConfig, *, ensure_schema: bool = True) -> EventStore:
    """Open the configured store. Raises ``ConfigurationError`` if no database is set."""

    store = EventStore.open(DuckDBFactory(config), ensure_schema=ensure_schema)
    logger.info("store opened", database=config.database)
    return store


def build_loop(
    store: EventStore,
    config: TvBarsConfig,
    *,
    metrics: MaterializerMetrics | None = None,
    shutdown_event: asyncio.Event | None = None,
) -> MaterializerLoop:
    materializer = Materializer(store, config.materializer)
    return MaterializerLoop(materializer, config.materializer, metrics=metrics, shutdown_event=shutdown_event)


def _install_signal_handlers(shutdown_event: asyncio.Event) -> None:
    def _request_shutdown() -> None:
        logger.info("shutdown signal received")
        shutdown_event.set()

    event_loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            event_loop.add_signal_handler(sig, _request_shutdown)
        except (NotImplementedError, RuntimeError):
            logger.debug("signal handlers unavailable for {}", sig.name)


async def _open_store_until_ready(config: TvBarsConfig, shutdown_event: asyncio.Event) -> EventStore | None:
    """Keep trying to open the store, waiting ``error_backoff_seconds`` between attempts.

    Returns ``None`` when shutdown is requested before the store opens.
    ``ConfigurationError`` is not a ``StoreError`` and propagates at once.
    """

    backoff = config.materializer.error_backoff_seconds
    attempts = 0
    while not shutdown_event.is_set():
        attempts += 1
        try:
            return open_store(config.store)
        except StoreError as exc:
            logger.warning(
                "store unavailable: {}",
                exc,
                error_code=exc.error_code.value,
                attempt=attempts,
                backoff_seconds=backoff,
            )
        try:
            await asyncio.wait_for(shutdown_event.wait(), timeout=backoff)
        except TimeoutError:
            pass
    return None


async def run_worker(
    config: TvBarsConfig,
    *,
    max_cycles: int | None = None,
    metrics: MaterializerMetrics | None = None,
    handle_signals: bool = True,
    shutdown_event: asyncio.Event | None = None,
) -> MaterializerLoop | None:
    """Validate configuration, open the store and run the loop until shutdown.

    Configuration errors propagate and abort startup. A store that cannot be
    opened yet, for example because another process holds the database file,
    is retried until it opens or shutdown is requested; in the latter case
    ``None`` is returned. Cycle errors are handled inside the loop.
    """

    config.validate()
    shutdown_event = shutdown_event or asyncio.Event()
    if handle_signals:
        _install_signal_handlers(shutdown_event)

    store = await _open_store_until_ready(config, shutdown_event)
    if store is None:
        logger.info("worker stopped before the store opened")
        return None
    try:
        loop = build_loop(store, config, metrics=metrics, shutdown_event=shutdown_event)
        await loop.run(max_cycles=max_cycles)
        return loop
    finally:
        store.close()


__all__ = ["build_loop", "open_store", "run_worker"]
