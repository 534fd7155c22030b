"""Insert-if-absent store for bars, plus the read side used for export."""

from __future__ import annotations

import json
from dataclasses import fields
from typing import TYPE_CHECKING, Any

from tvbars.core.data.raw_log import EXPORT_LIMIT_BOUNDS, clamp, decode_document
from tvbars.core.data.schema import BARS_TABLE
from tvbars.core.models import Bar

if TYPE_CHECKING:
    from tvbars.core.data.storage import EventStore, UnitOfWork

_BAR_COLUMNS = tuple(field.name for field in fields(Bar))
_INSERT_SQL = (
    f"INSERT INTO {BARS_TABLE.name} ({', '.join(_BAR_COLUMNS)}) "
    f"VALUES ({', '.join('?' for _ in _BAR_COLUMNS)}) "
    "ON CONFLICT (dedup) DO NOTHING"
)


def _bar_params(bar: Bar) -> list[Any]:
    return [
        json.dumps(bar.payload, default=str) if name == "payload" else getattr(bar, name)
        for name in _BAR_COLUMNS
    ]


def _row_to_bar(row: tuple[Any, ...]) -> Bar:
    values = dict(zip(_BAR_COLUMNS, row, strict=True))
    values["payload"] = decode_document(values["payload"]) or {}
    return Bar(**values)


class BarSink:
    """Keyed by ``dedup``; the first writer of a key wins and later writes are no-ops."""

    def __init__(self, store: EventStore) -> None:
        self._store = store

    def insert_if_absent(self, uow: UnitOfWork, bar: Bar) -> bool:
        """Insert ``bar`` unless its dedup key exists. Returns ``True`` when inserted."""

        exists = uow.fetchone(f"SELECT 1 FROM {BARS_TABLE.name} WHERE dedup = ?", [bar.dedup])
        if exists is not None:
            return False
        uow.execute(_INSERT_SQL, _bar_params(bar))
        return True

    def get(self, dedup: str) -> Bar | None:
        with self._store.reader() as cursor:
            row = cursor.execute(
                f"SELECT {', '.join(_BAR_COLUMNS)} FROM {BARS_TABLE.name} WHERE dedup = ?",
                [dedup],
            ).fetchone()
        return _row_to_bar(row) if row else None

    def count(self) -> int:
        with self._store.reader() as cursor:
            row = cursor.execute(f"SELECT COUNT(*) FROM {BARS_TABLE.name}").fetchone()
        return int(row[0]) if row else 0

    def export(self, *, symbol: str | None = None, tf_sec: int | None = None, limit: int = 5000) -> list[Bar]:
        """Return bars newest close first, optionally filtered. ``limit`` is clamped to [1, 20000]."""

        clauses: list[str] = []
        params: list[Any] = []
        if symbol is not None:
            clauses.append("symbol = ?")
            params.append(symbol)
        if tf_sec is not None:
            clauses.append("tf_sec = ?")
            params.append(int(tf_sec))
        where = f"WHERE {' AND '.join(clauses)} " if clauses else ""
        params.append(clamp(limit, EXPORT_LIMIT_BOUNDS))
        with self._store.reader() as cursor:
            rows = cursor.execute(
                f"SELECT {', '.join(_BAR_COLUMNS)} FROM {BARS_TABLE.name} {where}"
                "ORDER BY t_close_ms DESC NULLS LAST, raw_event_id DESC, dedup ASC LIMIT ?",
                params,
            ).fetchall()
        return [_row_to_bar(row) for row in rows]


__all__ = ["BarSink"]
