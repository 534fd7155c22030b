"""Structured logging for tvbars."""

from tvbars.core.logging.config import LogConfig
from tvbars.core.logging.logger import configure_logging, log_context, logger

__all__ = ["LogConfig", "configure_logging", "log_context", "logger"]
