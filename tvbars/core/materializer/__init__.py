"""Checkpointed materialization of raw events into bars."""

from tvbars.core.materializer.checkpoint import CheckpointStore
from tvbars.core.materializer.extractor import (
    ExtractionResult,
    ValidationIssue,
    extract_bars,
)
from tvbars.core.materializer.fetcher import fetch_batch
from tvbars.core.materializer.loop import MaterializerLoop
from tvbars.core.materializer.service import CycleResult, Materializer, MaterializerState
from tvbars.core.materializer.sink import BarSink

__all__ = [
    "BarSink",
    "CheckpointStore",
    "CycleResult",
    "ExtractionResult",
    "Materializer",
    "MaterializerLoop",
    "MaterializerState",
    "ValidationIssue",
    "extract_bars",
    "fetch_batch",
]
