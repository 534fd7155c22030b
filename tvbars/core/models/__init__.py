"""Domain models."""

from tvbars.core.models.bars import Bar
from tvbars.core.models.events import Checkpoint, RawEvent

__all__ = ["Bar", "Checkpoint", "RawEvent"]
