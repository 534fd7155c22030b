"""Prometheus metrics for the materializer."""

from __future__ import annotations

from prometheus_client import CollectorRegistry, Counter, Gauge, Histogram, generate_latest

_ALLOWED_SKIP_REASONS = {"unknown_kind", "invalid"}


class MaterializerMetrics:
    """Collects and exposes materializer cycle metrics."""

    def __init__(self, *, registry: CollectorRegistry | None = None) -> None:
        self.registry = registry or CollectorRegistry()
        self.cycle_latency_seconds = Histogram(
            "tvbars_cycle_latency_seconds",
            "Wall clock duration of materializer cycles.",
            buckets=(0.005, 0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, float("inf")),
            registry=self.registry,
        )
        self.cycles_total = Counter(
            "tvbars_cycles_total",
            "Materializer cycles grouped by outcome.",
            ("outcome",),
            registry=self.registry,
        )
        self.raw_events_fetched_total = Counter(
            "tvbars_raw_events_fetched_total",
            "Raw events fetched by committed cycles.",
            registry=self.registry,
        )
        self.bars_inserted_total = Counter(
            "tvbars_bars_inserted_total",
            "Bars newly inserted by committed cycles.",
            registry=self.registry,
        )
        self.bars_duplicate_total = Counter(
            "tvbars_bars_duplicate_total",
            "Bar candidates whose dedup key already existed.",
            registry=self.registry,
        )
        self.elements_skipped_total = Counter(
            "tvbars_elements_skipped_total",
            "Log elements skipped by the extractor.",
            ("reason",),
            registry=self.registry,
        )
        self.checkpoint = Gauge(
            "tvbars_checkpoint_last_raw_event_id",
            "Last raw event id covered by the checkpoint.",
            registry=self.registry,
        )

    def observe_cycle(
        self,
        *,
        latency_seconds: float,
        fetched: int,
        inserted: int,
        duplicates: int,
        skipped_unknown: int,
        skipped_invalid: int,
        checkpoint: int,
    ) -> None:
        """Record a committed cycle."""

        self.cycle_latency_seconds.observe(latency_seconds)
        self.cycles_total.labels(outcome="ok" if fetched else "idle").inc()
        self.raw_events_fetched_total.inc(fetched)
        self.bars_inserted_total.inc(inserted)
        self.bars_duplicate_total.inc(duplicates)
        self._record_skips("unknown_kind", skipped_unknown)
        self._record_skips("invalid", skipped_invalid)
        self.checkpoint.set(checkpoint)

    def increment_failure(self, latency_seconds: float | None = None) -> None:
        """Record a rolled back cycle."""

        if latency_seconds is not None:
            self.cycle_latency_seconds.observe(latency_seconds)
        self.cycles_total.labels(outcome="error").inc()

    def render(self) -> bytes:
        """Render metrics in Prometheus exposition format."""

        return generate_latest(self.registry)

    def _record_skips(self, reason: str, count: int) -> None:
        if count <= 0:
            return
        label = reason if reason in _ALLOWED_SKIP_REASONS else "__other__"
        self.elements_skipped_total.labels(reason=label).inc(count)


__all__ = ["MaterializerMetrics"]
