"""Append-only raw event log.

Writers append webhook payloads; the materializer only reads. Appends are
serialized per store so that id order equals commit order and a reader never
sees id ``n + 1`` before id ``n``.
"""

from __future__ import annotations

import json
from datetime import datetime, timedelta
from typing import TYPE_CHECKING, Any

from loguru import logger

from tvbars.core.data.schema import RAW_EVENTS_ID_SEQUENCE, to_utc_naive, utc_now
from tvbars.core.exceptions import StoreError
from tvbars.core.models import RawEvent

if TYPE_CHECKING:
    from tvbars.core.data.storage import EventStore

MAX_RAW_BODY_CHARS = 5000
EXPORT_MINUTES_BOUNDS = (1, 1440)
EXPORT_LIMIT_BOUNDS = (1, 20_000)


def clamp(value: int, bounds: tuple[int, int]) -> int:
    low, high = bounds
    return max(low, min(high, value))


def parse_webhook_body(body: str | bytes | None) -> dict[str, Any]:
    """Turn a webhook body into a JSON object, never raising.

    Unparseable bodies are kept as a marker document so the delivery is still
    recorded in the log.
    """

    if isinstance(body, bytes):
        body = body.decode("utf-8", errors="replace")
    raw = (body or "").strip()
    if not raw:
        return {"_parse_ok": False, "_error": "empty_body"}
    try:
        parsed = json.loads(raw)
    except ValueError:
        return {"_parse_ok": False, "_error": "json_parse_failed", "_raw": raw[:MAX_RAW_BODY_CHARS]}
    if isinstance(parsed, dict):
        return parsed
    return {"_parse_ok": True, "value": parsed}


def decode_document(value: Any) -> Any:
    """Return ``value`` with JSON text decoded; undecodable text becomes ``None``."""

    if isinstance(value, (str, bytes)):
        try:
            return json.loads(value)
        except ValueError:
            return None
    return value


def row_to_raw_event(row: tuple[Any, ...]) -> RawEvent:
    event_id, received_at, path, payload = row
    return RawEvent(id=int(event_id), received_at=received_at, path=path, payload=decode_document(payload))


class RawEventLog:
    """Reader and writer for the ``raw_events`` table."""

    def __init__(self, store: EventStore) -> None:
        self._store = store

    def append(self, payload: Any, path: str, received_at: datetime | None = None) -> RawEvent:
        """Append one payload and return the stored event with its assigned id."""

        received_at = to_utc_naive(received_at) if received_at else utc_now()
        document = json.dumps(payload, default=str)
        with self._store.append_lock:
            with self._store.unit_of_work() as uow:
                row = uow.fetchone(f"SELECT nextval('{RAW_EVENTS_ID_SEQUENCE}')")
                if row is None:
                    raise StoreError(
                        "sequence returned no value",
                        details={"sequence": RAW_EVENTS_ID_SEQUENCE},
                    )
                event_id = int(row[0])
                uow.execute(
                    "INSERT INTO raw_events (id, received_at, path, payload) VALUES (?, ?, ?, ?)",
                    [event_id, received_at, path, document],
                )
        logger.info("raw event appended", raw_event_id=event_id, route=path)
        return RawEvent(id=event_id, received_at=received_at, path=path, payload=json.loads(document))

    def count(self, path: str | None = None, *, after_id: int | None = None) -> int:
        """Count events, optionally only those on ``path`` and with ``id > after_id``."""

        clauses: list[str] = []
        params: list[Any] = []
        if path is not None:
            clauses.append("path = ?")
            params.append(path)
        if after_id is not None:
            clauses.append("id > ?")
            params.append(int(after_id))
        where = f" WHERE {' AND '.join(clauses)}" if clauses else ""
        with self._store.reader() as cursor:
            row = cursor.execute(f"SELECT COUNT(*) FROM raw_events{where}", params).fetchone()
        return int(row[0]) if row else 0

    def export_recent(self, minutes: int = 60, limit: int = 5000, *, now: datetime | None = None) -> list[RawEvent]:
        """Return events received in the last ``minutes``, oldest first.

        ``minutes`` is clamped to [1, 1440] and ``limit`` to [1, 20000].
        """

        minutes = clamp(minutes, EXPORT_MINUTES_BOUNDS)
        limit = clamp(limit, EXPORT_LIMIT_BOUNDS)
        since = (to_utc_naive(now) if now else utc_now()) - timedelta(minutes=minutes)
        with self._store.reader() as cursor:
            rows = cursor.execute(
                "SELECT id, received_at, path, payload FROM raw_events "
                "WHERE received_at >= ? ORDER BY received_at ASC, id ASC LIMIT ?",
                [since, limit],
            ).fetchall()
        return [row_to_raw_event(row) for row in rows]


__all__ = [
    "RawEventLog",
    "clamp",
    "decode_document",
    "parse_webhook_body",
    "row_to_raw_event",
]
