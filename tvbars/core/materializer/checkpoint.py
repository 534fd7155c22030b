"""Singleton checkpoint cursor over the raw event log."""

from __future__ import annotations

from typing import TYPE_CHECKING

import duckdb
from loguru import logger

from tvbars.core.data.schema import CHECKPOINT_ROW_ID, utc_now
from tvbars.core.exceptions import CheckpointLockError, ErrorCode, StoreError
from tvbars.core.models import Checkpoint

if TYPE_CHECKING:
    from tvbars.core.data.storage import EventStore, UnitOfWork


class CheckpointStore:
    """Reads, locks and advances the ``materializer_state`` row.

    ``acquire`` and ``advance`` must run inside the same unit of work as the
    bars they unlock, so a rollback leaves the checkpoint untouched.
    """

    def __init__(self, store: EventStore, *, lock_timeout_seconds: float = 10.0) -> None:
        self._store = store
        self._lock_timeout = lock_timeout_seconds

    def acquire(self, uow: UnitOfWork) -> int:
        """Claim the checkpoint row for this unit of work and return ``last_raw_event_id``.

        Raises:
            CheckpointLockError: Another unit of work holds the checkpoint.
            StoreError: The checkpoint row is missing or the store failed.
        """
        if not uow.claim(self._store.checkpoint_lock, self._lock_timeout):
            raise CheckpointLockError(
                "checkpoint is held by another materialization pass",
                timeout_seconds=self._lock_timeout,
            )
        try:
            # A write claim makes concurrent transactions on the row conflict.
            uow.execute(
                "UPDATE materializer_state SET updated_at = updated_at WHERE id = ?",
                [CHECKPOINT_ROW_ID],
            )
        except StoreError as exc:
            if isinstance(exc.__cause__, duckdb.TransactionException):
                raise CheckpointLockError(
                    "checkpoint row is locked by a concurrent transaction",
                    details={"cause": str(exc.__cause__)},
                ) from exc
            raise
        return self._current(uow)

    def advance(self, uow: UnitOfWork, candidate_id: int) -> int:
        """Move the cursor to ``max(current, candidate_id)`` and return the new value."""
        uow.execute(
            "UPDATE materializer_state "
            "SET last_raw_event_id = GREATEST(last_raw_event_id, ?), updated_at = ? "
            "WHERE id = ?",
            [int(candidate_id), utc_now(), CHECKPOINT_ROW_ID],
        )
        advanced = self._current(uow)
        logger.debug("checkpoint advanced", last_raw_event_id=advanced, candidate_id=candidate_id)
        return advanced

    def read(self) -> Checkpoint:
        """Return the committed checkpoint without taking the lock."""
        with self._store.reader() as cursor:
            row = cursor.execute(
                "SELECT last_raw_event_id, updated_at FROM materializer_state WHERE id = ?",
                [CHECKPOINT_ROW_ID],
            ).fetchone()
        if row is None:
            raise StoreError("checkpoint row is missing; run schema init", ErrorCode.CHECKPOINT_MISSING)
        return Checkpoint(last_raw_event_id=int(row[0]), updated_at=row[1])

    @staticmethod
    def _current(uow: UnitOfWork) -> int:
        row = uow.fetchone(
            "SELECT last_raw_event_id FROM materializer_state WHERE id = ?",
            [CHECKPOINT_ROW_ID],
        )
        if row is None:
            raise StoreError("checkpoint row is missing; run schema init", ErrorCode.CHECKPOINT_MISSING)
        return int(row[0])


__all__ = ["CheckpointStore"]
