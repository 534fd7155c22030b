"""Raw event log entries and the materializer checkpoint."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from datetime import datetime


@dataclass(slots=True, frozen=True)
class RawEvent:
    """One ingested webhook payload as stored in the append-only log."""

    id: int
    received_at: datetime
    path: str
    payload: Any


@dataclass(slots=True, frozen=True)
class Checkpoint:
    """Snapshot of the singleton materializer cursor."""

    last_raw_event_id: int
    updated_at: datetime


__all__ = ["Checkpoint", "RawEvent"]
