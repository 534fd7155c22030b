"""tvbars core exception classes."""

from typing import Any

from tvbars.core.exceptions.codes import ErrorCode


class TvBarsError(Exception):
    """Base class for every error raised by tvbars."""

    retryable: bool = False

    def __init__(
        self,
        message: str,
        error_code: ErrorCode = ErrorCode.GENERAL,
        details: dict[str, Any] | None = None,
    ):
        """Initialise the error.

        Args:
            message: Human readable message.
            error_code: Stable error code.
            details: Extra structured context.
        """
        super().__init__(message)
        self.message = message
        self.error_code = error_code
        self.details = details or {}

    def to_payload(self) -> dict[str, Any]:
        """Return a serializable payload representing the error."""

        return {
            "code": self.error_code.value,
            "message": self.message,
            "retryable": self.retryable,
            "details": dict(self.details),
        }


class ConfigurationError(TvBarsError):
    """Invalid or missing configuration. Aborts startup."""

    def __init__(
        self,
        message: str,
        setting: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        super_details = details or {}
        if setting:
            super_details["setting"] = setting
        super().__init__(message, ErrorCode.CONFIGURATION, super_details)
        self.setting = setting


class StoreError(TvBarsError):
    """Transient failure talking to the backing store."""

    retryable = True

    def __init__(
        self,
        message: str,
        error_code: ErrorCode = ErrorCode.STORE,
        details: dict[str, Any] | None = None,
    ):
        super().__init__(message, error_code, details)


class CheckpointLockError(StoreError):
    """The checkpoint row is held by another unit of work."""

    def __init__(
        self,
        message: str,
        timeout_seconds: float | None = None,
        details: dict[str, Any] | None = None,
    ):
        super_details = details or {}
        if timeout_seconds is not None:
            super_details["timeout_seconds"] = timeout_seconds
        super().__init__(message, ErrorCode.CHECKPOINT_LOCKED, super_details)
        self.timeout_seconds = timeout_seconds


class CycleTimeoutError(StoreError):
    """A materialization cycle exceeded its time budget and was rolled back."""

    def __init__(self, message: str, timeout_seconds: float, details: dict[str, Any] | None = None):
        super_details = details or {}
        super_details["timeout_seconds"] = timeout_seconds
        super().__init__(message, ErrorCode.CYCLE_TIMEOUT, super_details)
        self.timeout_seconds = timeout_seconds


class RecordValidationError(TvBarsError):
    """A single log element failed validation."""

    def __init__(
        self,
        message: str,
        field: str,
        index: int | None = None,
        details: dict[str, Any] | None = None,
    ):
        super_details = details or {}
        super_details["field"] = field
        if index is not None:
            super_details["index"] = index
        super().__init__(message, ErrorCode.VALIDATION, super_details)
        self.field = field
        self.index = index
