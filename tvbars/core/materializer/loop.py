"""Polling loop driving materialization cycles."""

from __future__ import annotations

import asyncio
from time import perf_counter
from typing import TYPE_CHECKING

from loguru import logger

from tvbars.core.exceptions import CycleTimeoutError, TvBarsError
from tvbars.core.logging import log_context
from tvbars.core.materializer.service import CycleResult, Materializer, MaterializerState

if TYPE_CHECKING:
    from tvbars.core.config import MaterializerConfig
    from tvbars.core.monitoring import MaterializerMetrics


class MaterializerLoop:
    """Repeats cycles until shutdown is requested.

    Cycles run in a worker thread. After a committed non-empty batch the next
    cycle starts immediately; an empty batch waits ``idle_sleep_seconds`` and a
    failed cycle waits ``error_backoff_seconds`` before retrying the same
    range. Shutdown is only observed between cycles; waits end early when it
    is requested.
    """

    def __init__(
        self,
        materializer: Materializer,
        config: MaterializerConfig,
        *,
        metrics: MaterializerMetrics | None = None,
        shutdown_event: asyncio.Event | None = None,
    ) -> None:
        self._materializer = materializer
        self._config = config
        self._metrics = metrics
        self._shutdown_event = shutdown_event or asyncio.Event()
        self.state = MaterializerState.IDLE
        self.cycles = 0
        self.failures = 0
        self.consecutive_failures = 0
        self.last_result: CycleResult | None = None
        self.last_error: BaseException | None = None
        materializer.set_state_listener(self.set_state)

    def set_state(self, state: MaterializerState) -> None:
        if state is not self.state:
            logger.debug("materializer state {} -> {}", self.state.value, state.value)
        self.state = state

    def request_shutdown(self) -> None:
        """Ask the loop to stop at the next cycle boundary."""
        logger.info("materializer shutdown requested")
        self._shutdown_event.set()

    @property
    def stopping(self) -> bool:
        return self._shutdown_event.is_set()

    async def run(self, max_cycles: int | None = None) -> None:
        """Run cycles until shutdown or until ``max_cycles`` cycles have run."""
        logger.info(
            "materializer loop started",
            route=self._config.route_tag,
            batch_size=self._config.batch_size,
        )
        while not self._shutdown_event.is_set():
            self.cycles += 1
            with log_context(cycle=self.cycles, route=self._config.route_tag):
                delay = await self._cycle()
            if max_cycles is not None and self.cycles >= max_cycles:
                break
            if delay > 0:
                await self._wait(delay)
        self.set_state(MaterializerState.STOPPED)
        logger.info("materializer loop stopped", cycles=self.cycles, failures=self.failures)

    async def run_once(self) -> CycleResult:
        """Run a single cycle and return its result; failures propagate."""
        result = await self._execute_cycle()
        self.set_state(MaterializerState.IDLE)
        return result

    async def _cycle(self) -> float:
        """Run one cycle and return how long to wait before the next one."""
        start = perf_counter()
        try:
            result = await self._execute_cycle()
        except Exception as exc:
            self._record_failure(exc, perf_counter() - start)
            self.set_state(MaterializerState.BACKOFF)
            return self._config.error_backoff_seconds

        self.last_result = result
        self.consecutive_failures = 0
        self.set_state(MaterializerState.IDLE)
        if self._metrics is not None:
            self._metrics.observe_cycle(
                latency_seconds=perf_counter() - start,
                fetched=result.fetched,
                inserted=result.inserted,
                duplicates=result.duplicates,
                skipped_unknown=result.skipped_unknown,
                skipped_invalid=result.skipped_invalid,
                checkpoint=result.checkpoint_after,
            )
        if result.idle:
            return self._config.idle_sleep_seconds
        logger.info(
            "materialized: fetched_raw={} inserted_bars={}",
            result.fetched,
            result.inserted,
            duplicates=result.duplicates,
            skipped_unknown=result.skipped_unknown,
            skipped_invalid=result.skipped_invalid,
            checkpoint=result.checkpoint_after,
        )
        return 0.0

    async def _execute_cycle(self) -> CycleResult:
        timeout = self._config.cycle_timeout_seconds
        worker = asyncio.ensure_future(asyncio.to_thread(self._materializer.run_cycle))
        done, _ = await asyncio.wait({worker}, timeout=timeout)
        if worker in done:
            return worker.result()

        logger.warning("cycle exceeded {}s, interrupting", timeout)
        self._materializer.interrupt()
        try:
            # The cycle may still have committed before the interrupt landed.
            return await worker
        except Exception as exc:
            raise CycleTimeoutError(f"cycle exceeded {timeout}s and was rolled back", timeout) from exc

    def _record_failure(self, exc: Exception, latency_seconds: float) -> None:
        self.set_state(MaterializerState.ERROR)
        self.failures += 1
        self.consecutive_failures += 1
        self.last_error = exc
        if self._metrics is not None:
            self._metrics.increment_failure(latency_seconds)
        error_code = exc.error_code.value if isinstance(exc, TvBarsError) else type(exc).__name__
        logger.opt(exception=None if isinstance(exc, TvBarsError) else exc).error(
            "materializer error: {}",
            exc,
            error_code=error_code,
            consecutive_failures=self.consecutive_failures,
            backoff_seconds=self._config.error_backoff_seconds,
        )

    async def _wait(self, seconds: float) -> None:
        try:
            await asyncio.wait_for(self._shutdown_event.wait(), timeout=seconds)
        except TimeoutError:
            pass


__all__ = ["MaterializerLoop"]
