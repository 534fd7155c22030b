"""Monitoring module."""

from tvbars.core.monitoring.metrics import MaterializerMetrics

__all__ = ["MaterializerMetrics"]
