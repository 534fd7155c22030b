"""Exception handling module."""

from tvbars.core.exceptions.base import (
    CheckpointLockError,
    ConfigurationError,
    CycleTimeoutError,
    RecordValidationError,
    StoreError,
    TvBarsError,
)
from tvbars.core.exceptions.codes import ErrorCode

__all__ = [
    "TvBarsError",
    "ConfigurationError",
    "StoreError",
    "CheckpointLockError",
    "CycleTimeoutError",
    "RecordValidationError",
    "ErrorCode",
]
