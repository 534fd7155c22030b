"""Typed bar records derived from raw events."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from datetime import datetime


@dataclass(slots=True, frozen=True)
class Bar:
    """A materialized time-series data point, unique by ``dedup``."""

    dedup: str
    raw_event_id: int
    received_at: datetime
    symbol: str
    tf_sec: int
    tf: str | None = None
    t_open_ms: int | None = None
    t_close_ms: int | None = None
    open: float | None = None
    high: float | None = None
    low: float | None = None
    close: float | None = None
    volume: float | None = None
    spot_close: float | None = None
    oi_close: float | None = None
    funding_rate: float | None = None
    premium_pct: float | None = None
    premium_idx: float | None = None
    basis: float | None = None
    basis_pct: float | None = None
    long_accounts: float | None = None
    short_accounts: float | None = None
    liq_buy: float | None = None
    liq_sell: float | None = None
    payload: dict[str, Any] = field(default_factory=dict)


__all__ = ["Bar"]
