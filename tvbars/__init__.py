"""tvbars - raw webhook event log and checkpointed bar materializer.

Webhook payloads are appended to an immutable raw event log; a polling
materializer turns the BAR records they carry into an idempotent, deduplicated
``bars`` table, advancing a checkpoint in the same transaction.
"""

from tvbars.core.config import ConfigManager, TvBarsConfig
from tvbars.core.data.raw_log import RawEventLog, parse_webhook_body
from tvbars.core.data.storage import DuckDBFactory, EventStore
from tvbars.core.materializer import BarSink, CheckpointStore, Materializer, MaterializerLoop
from tvbars.core.models import Bar, Checkpoint, RawEvent
from tvbars.core.worker import open_store, run_worker

__version__ = "0.1.0"

__all__ = [
    "Bar",
    "BarSink",
    "Checkpoint",
    "CheckpointStore",
    "ConfigManager",
    "DuckDBFactory",
    "EventStore",
    "Materializer",
    "MaterializerLoop",
    "RawEvent",
    "RawEventLog",
    "TvBarsConfig",
    "__version__",
    "open_store",
    "parse_webhook_body",
    "run_worker",
]
