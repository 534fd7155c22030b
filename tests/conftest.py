"""Pytest configuration for the tvbars test suite."""

from __future__ import annotations

import json
from collections.abc import Callable, Iterator
from datetime import datetime
from typing import Any

import pytest

from tvbars.core.config import MEMORY_DATABASE, MaterializerConfig, StoreConfig
from tvbars.core.data.raw_log import RawEventLog
from tvbars.core.data.schema import utc_now
from tvbars.core.data.storage import DuckDBFactory, EventStore
from tvbars.core.materializer import Materializer


def pytest_addoption(parser: pytest.Parser) -> None:
    """Register command-line options for controlling integration tests."""

    parser.addoption(
        "--tvbars-run-integration",
        action="store_true",
        default=False,
        help="Run tvbars integration tests that use on-disk databases and real timers.",
    )


def pytest_configure(config: pytest.Config) -> None:
    """Register the integration marker for tvbars tests."""

    config.addinivalue_line(
        "markers",
        "integration: marks tvbars tests using on-disk databases or multiple processes",
    )


def pytest_collection_modifyitems(config: pytest.Config, items: list[pytest.Item]) -> None:
    """Skip integration tests unless explicitly requested."""

    if config.getoption("--tvbars-run-integration"):
        return

    tvbars_skip_integration = pytest.mark.skip(
        reason="integration tests require --tvbars-run-integration",
    )
    for tvbars_item in items:
        if "integration" in tvbars_item.keywords:
            tvbars_item.add_marker(tvbars_skip_integration)


@pytest.fixture
def store() -> Iterator[EventStore]:
    """In-memory store with the schema provisioned."""

    event_store = EventStore.open(DuckDBFactory(StoreConfig(database=MEMORY_DATABASE)))
    try:
        yield event_store
    finally:
        event_store.close()


@pytest.fixture
def materializer_config() -> MaterializerConfig:
    return MaterializerConfig(
        batch_size=300,
        idle_sleep_seconds=0.01,
        error_backoff_seconds=0.01,
        lock_timeout_seconds=0.2,
        cycle_timeout_seconds=5.0,
    )


@pytest.fixture
def materializer(store: EventStore, materializer_config: MaterializerConfig) -> Materializer:
    return Materializer(store, materializer_config)


@pytest.fixture
def raw_log(store: EventStore) -> RawEventLog:
    return RawEventLog(store)


@pytest.fixture
def insert_event(store: EventStore) -> Callable[..., None]:
    """Insert a raw event with an explicit id, bypassing the id sequence."""

    def _insert(
        event_id: int,
        payload: Any,
        *,
        path: str = "/tv",
        received_at: datetime | None = None,
    ) -> None:
        with store.unit_of_work() as uow:
            uow.execute(
                "INSERT INTO raw_events (id, received_at, path, payload) VALUES (?, ?, ?, ?)",
                [event_id, received_at or utc_now(), path, json.dumps(payload)],
            )

    return _insert


@pytest.fixture
def checkpoint_of(store: EventStore) -> Callable[[], int]:
    def _read() -> int:
        with store.reader() as cursor:
            row = cursor.execute("SELECT last_raw_event_id FROM materializer_state WHERE id = 1").fetchone()
        return int(row[0])

    return _read


@pytest.fixture
def count_bars(store: EventStore) -> Callable[[], int]:
    def _count() -> int:
        with store.reader() as cursor:
            row = cursor.execute("SELECT COUNT(*) FROM bars").fetchone()
        return int(row[0])

    return _count
