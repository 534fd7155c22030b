"""One materialization cycle: lock, fetch, extract, persist, advance, commit."""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum
from time import perf_counter
from typing import TYPE_CHECKING

from loguru import logger

from tvbars.core.materializer.checkpoint import CheckpointStore
from tvbars.core.materializer.extractor import ExtractionResult, extract_bars
from tvbars.core.materializer.fetcher import fetch_batch
from tvbars.core.materializer.sink import BarSink

if TYPE_CHECKING:
    from tvbars.core.config import MaterializerConfig
    from tvbars.core.data.storage import EventStore


class MaterializerState(str, Enum):
    """Lifecycle of the materializer loop."""

    IDLE = "idle"
    FETCHING = "fetching"
    EXTRACTING = "extracting"
    PERSISTING = "persisting"
    CHECKPOINTING = "checkpointing"
    ERROR = "error"
    BACKOFF = "backoff"
    STOPPED = "stopped"


@dataclass(slots=True, frozen=True)
class CycleResult:
    """Summary of a committed cycle."""

    fetched: int
    inserted: int
    duplicates: int
    skipped_unknown: int
    skipped_invalid: int
    checkpoint_before: int
    checkpoint_after: int
    duration_ms: float

    @property
    def idle(self) -> bool:
        return self.fetched == 0


StateListener = Callable[[MaterializerState], None]


class Materializer:
    """Runs materialization cycles against an explicit store handle."""

    def __init__(
        self,
        store: EventStore,
        config: MaterializerConfig,
        *,
        on_state: StateListener | None = None,
    ) -> None:
        self._store = store
        self._config = config
        self._on_state = on_state
        self.checkpoints = CheckpointStore(store, lock_timeout_seconds=config.lock_timeout_seconds)
        self.sink = BarSink(store)

    def run_cycle(self) -> CycleResult:
        """Process one batch atomically.

        Everything from the checkpoint lock to the checkpoint advance happens
        in a single unit of work. Any exception rolls all of it back and is
        re-raised to the caller; the checkpoint is then unchanged and the same
        range is retried by the next cycle.
        """
        start = perf_counter()
        inserted = duplicates = skipped_unknown = skipped_invalid = 0

        with self._store.unit_of_work(interruptible=True) as uow:
            self._transition(MaterializerState.FETCHING)
            before = self.checkpoints.acquire(uow)
            events = fetch_batch(uow, before, self._config.batch_size, self._config.route_tag)

            self._transition(MaterializerState.EXTRACTING)
            extractions: list[ExtractionResult] = [extract_bars(event) for event in events]

            self._transition(MaterializerState.PERSISTING)
            for extraction in extractions:
                skipped_unknown += extraction.skipped_unknown
                skipped_invalid += extraction.skipped_invalid
                for issue in extraction.issues:
                    logger.warning(
                        "skipping invalid element: {}",
                        issue.message,
                        raw_event_id=issue.raw_event_id,
                        index=issue.index,
                        field=issue.field,
                        error_code=issue.code,
                    )
                for bar in extraction.bars:
                    if self.sink.insert_if_absent(uow, bar):
                        inserted += 1
                    else:
                        duplicates += 1

            after = before
            if events:
                self._transition(MaterializerState.CHECKPOINTING)
                after = self.checkpoints.advance(uow, max(event.id for event in events))

        return CycleResult(
            fetched=len(events),
            inserted=inserted,
            duplicates=duplicates,
            skipped_unknown=skipped_unknown,
            skipped_invalid=skipped_invalid,
            checkpoint_before=before,
            checkpoint_after=after,
            duration_ms=(perf_counter() - start) * 1000,
        )

    def set_state_listener(self, listener: StateListener | None) -> None:
        self._on_state = listener

    def interrupt(self) -> bool:
        """Abort the statement running in the current cycle, if any."""
        return self._store.interrupt()

    def _transition(self, state: MaterializerState) -> None:
        if self._on_state is not None:
            self._on_state(state)


__all__ = ["CycleResult", "Materializer", "MaterializerState"]
