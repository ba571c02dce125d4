"""loomsync core exception classes."""

from typing import Any


class LoomSyncError(Exception):
    """Base exception for loomsync."""

    def __init__(
        self,
        message: str,
        error_code: str = "GENERAL_ERROR",
        details: dict[str, Any] | None = None,
    ):
        """Initialise the exception.

        Args:
            message: Human readable message
            error_code: Error code, see :class:`ErrorCode`
            details: Extra structured details
        """
        super().__init__(message)
        self.message = message
        self.error_code = error_code
        self.details = details or {}


class RecordValidationError(LoomSyncError):
    """Write input rejected before touching any store."""

    def __init__(
        self,
        message: str,
        validation_errors: dict[str, Any] | None = None,
        error_code: str = "VALIDATION_ERROR",
        details: dict[str, Any] | None = None,
    ):
        super_details = details or {}
        if validation_errors:
            super_details["validation_errors"] = validation_errors
        super().__init__(message, error_code, super_details)
        self.validation_errors = validation_errors or {}


class RemoteStoreError(LoomSyncError):
    """Remote collection store failure."""

    def __init__(
        self,
        message: str,
        store_name: str,
        error_code: str = "REMOTE_ERROR",
        details: dict[str, Any] | None = None,
    ):
        super().__init__(message, error_code, details)
        self.store_name = store_name


class RemoteTimeoutError(RemoteStoreError):
    """Remote call exceeded its timeout."""

    def __init__(
        self,
        message: str,
        store_name: str,
        timeout: float | None = None,
        details: dict[str, Any] | None = None,
    ):
        super_details = details or {}
        if timeout is not None:
            super_details["timeout"] = timeout
        super().__init__(message, store_name, "REMOTE_TIMEOUT", super_details)
        self.timeout = timeout


class RemoteUnavailableError(RemoteStoreError):
    """Remote store unreachable or answering with a server-side failure."""

    def __init__(
        self,
        message: str,
        store_name: str,
        status_code: int | None = None,
        details: dict[str, Any] | None = None,
    ):
        super_details = details or {}
        if status_code is not None:
            super_details["status_code"] = status_code
        super().__init__(message, store_name, "REMOTE_UNAVAILABLE", super_details)
        self.status_code = status_code


class CacheError(LoomSyncError):
    """Local cache store failure."""

    def __init__(
        self,
        message: str,
        cache_type: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        super_details = details or {}
        if cache_type:
            super_details["cache_type"] = cache_type
        super().__init__(message, "CACHE_ERROR", super_details)


class ConfigurationError(LoomSyncError):
    """Invalid configuration."""

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(message, "CONFIGURATION_ERROR", details)
