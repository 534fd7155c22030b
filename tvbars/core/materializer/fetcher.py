"""Reads the next slice of unprocessed raw events."""

from __future__ import annotations

from typing import TYPE_CHECKING

from tvbars.core.data.raw_log import row_to_raw_event

if TYPE_CHECKING:
    from tvbars.core.data.storage import UnitOfWork
    from tvbars.core.models import RawEvent


def fetch_batch(uow: UnitOfWork, after_id: int, limit: int, route_tag: str) -> list[RawEvent]:
    """Return up to ``limit`` events with ``id > after_id`` on ``route_tag``, ascending by id.

    Must run in the unit of work that holds the checkpoint so the processed
    prefix is fixed for the duration of the cycle.
    """

    if limit < 1:
        raise ValueError("limit must be positive")
    rows = uow.fetchall(
        "SELECT id, received_at, path, payload FROM raw_events "
        "WHERE id > ? AND path = ? ORDER BY id ASC LIMIT ?",
        [int(after_id), route_tag, int(limit)],
    )
    return [row_to_raw_event(row) for row in rows]


__all__ = ["fetch_batch"]
