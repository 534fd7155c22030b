"""Stable error codes shared by the tvbars error hierarchy."""

from __future__ import annotations

from enum import Enum


class ErrorCode(str, Enum):
    """Machine readable error identifiers."""

    GENERAL = "GENERAL_ERROR"
    CONFIGURATION = "CONFIGURATION_ERROR"
    STORE = "STORE_ERROR"
    CHECKPOINT_LOCKED = "CHECKPOINT_LOCKED"
    CHECKPOINT_MISSING = "CHECKPOINT_MISSING"
    CYCLE_TIMEOUT = "CYCLE_TIMEOUT"
    VALIDATION = "VALIDATION_ERROR"


__all__ = ["ErrorCode"]
