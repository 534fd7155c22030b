"""Tests for the asynchronous materializer loop."""

from __future__ import annotations

import asyncio
import time
from collections.abc import Callable
from dataclasses import replace

import pytest
from loguru import logger
from prometheus_client import CollectorRegistry

from tvbars.core.config import MaterializerConfig
from tvbars.core.exceptions import CycleTimeoutError, StoreError
from tvbars.core.materializer import Materializer, MaterializerLoop, MaterializerState
from tvbars.core.monitoring import MaterializerMetrics

BAR_PAYLOAD = {"records": [{"kind": "BAR", "symbol": "X", "tf_sec": 15, "close": 1.0}]}


@pytest.mark.asyncio
async def test_loop_runs_until_max_cycles(
    materializer: Materializer,
    materializer_config: MaterializerConfig,
    insert_event: Callable[..., None],
    checkpoint_of: Callable[[], int],
) -> None:
    insert_event(1, BAR_PAYLOAD)
    loop = MaterializerLoop(materializer, materializer_config)

    await loop.run(max_cycles=3)

    assert loop.cycles == 3
    assert loop.failures == 0
    assert loop.state is MaterializerState.STOPPED
    assert loop.last_result is not None and loop.last_result.idle
    assert checkpoint_of() == 1


@pytest.mark.asyncio
async def test_failed_cycle_backs_off_and_retries_same_range(
    materializer: Materializer,
    materializer_config: MaterializerConfig,
    insert_event: Callable[..., None],
    checkpoint_of: Callable[[], int],
    count_bars: Callable[[], int],
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    insert_event(7, BAR_PAYLOAD)
    registry = CollectorRegistry()
    loop = MaterializerLoop(materializer, materializer_config, metrics=MaterializerMetrics(registry=registry))
    original = materializer.run_cycle
    attempts = {"n": 0}

    def flaky():  # type: ignore[no-untyped-def]
        attempts["n"] += 1
        if attempts["n"] == 1:
            raise StoreError("connection reset")
        return original()

    monkeypatch.setattr(materializer, "run_cycle", flaky)

    await loop.run(max_cycles=2)

    assert loop.failures == 1
    assert loop.consecutive_failures == 0
    assert isinstance(loop.last_error, StoreError)
    assert count_bars() == 1
    assert checkpoint_of() == 7
    assert registry.get_sample_value("tvbars_cycles_total", {"outcome": "error"}) == 1.0
    assert registry.get_sample_value("tvbars_cycles_total", {"outcome": "ok"}) == 1.0
    assert registry.get_sample_value("tvbars_bars_inserted_total") == 1.0
    assert registry.get_sample_value("tvbars_checkpoint_last_raw_event_id") == 7.0


@pytest.mark.asyncio
async def test_unexpected_errors_do_not_stop_the_loop(
    materializer: Materializer,
    materializer_config: MaterializerConfig,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    def broken():  # type: ignore[no-untyped-def]
        raise ZeroDivisionError("bug")

    monkeypatch.setattr(materializer, "run_cycle", broken)
    loop = MaterializerLoop(materializer, materializer_config)

    await loop.run(max_cycles=3)

    assert loop.failures == 3
    assert loop.consecutive_failures == 3
    assert loop.state is MaterializerState.STOPPED


@pytest.mark.asyncio
async def test_shutdown_interrupts_idle_wait(
    materializer: Materializer,
    materializer_config: MaterializerConfig,
) -> None:
    loop = MaterializerLoop(materializer, replace(materializer_config, idle_sleep_seconds=30.0))

    task = asyncio.create_task(loop.run())
    await asyncio.sleep(0.2)
    loop.request_shutdown()
    await asyncio.wait_for(task, timeout=5)

    assert loop.stopping
    assert loop.cycles >= 1
    assert loop.state is MaterializerState.STOPPED


@pytest.mark.asyncio
async def test_preset_shutdown_event_runs_no_cycles(
    materializer: Materializer,
    materializer_config: MaterializerConfig,
) -> None:
    event = asyncio.Event()
    event.set()
    loop = MaterializerLoop(materializer, materializer_config, shutdown_event=event)

    await loop.run()

    assert loop.cycles == 0


@pytest.mark.asyncio
async def test_slow_cycle_is_interrupted(
    materializer: Materializer,
    materializer_config: MaterializerConfig,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    interrupted: list[bool] = []

    def slow():  # type: ignore[no-untyped-def]
        time.sleep(0.4)
        raise StoreError("interrupted")

    monkeypatch.setattr(materializer, "run_cycle", slow)
    monkeypatch.setattr(materializer, "interrupt", lambda: interrupted.append(True) or True)
    loop = MaterializerLoop(materializer, replace(materializer_config, cycle_timeout_seconds=0.1))

    with pytest.raises(CycleTimeoutError) as exc_info:
        await loop.run_once()

    assert interrupted == [True]
    assert exc_info.value.timeout_seconds == 0.1


@pytest.mark.asyncio
async def test_committed_batch_logs_summary(
    materializer: Materializer,
    materializer_config: MaterializerConfig,
    insert_event: Callable[..., None],
) -> None:
    insert_event(1, BAR_PAYLOAD)
    messages: list[str] = []
    handler_id = logger.add(lambda message: messages.append(message.record["message"]), level="INFO")
    try:
        loop = MaterializerLoop(materializer, materializer_config)
        await loop.run(max_cycles=1)
    finally:
        logger.remove(handler_id)

    assert "materialized: fetched_raw=1 inserted_bars=1" in messages
    assert loop.last_result is not None
    assert loop.last_result.inserted == 1
