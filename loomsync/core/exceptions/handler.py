"""Error mapping and failure bookkeeping."""

import asyncio
from datetime import UTC, datetime
from typing import Any

from loomsync.core.logging import get_logger

from .base import LoomSyncError, RemoteStoreError, RemoteTimeoutError, RemoteUnavailableError
from .codes import ErrorCode
from .messages import format_error_response

logger = get_logger(__name__)


def map_remote_error(
    error: BaseException,
    store_name: str,
    operation: str,
    timeout: float | None = None,
    **context: Any,
) -> RemoteStoreError:
    """Translate whatever a remote collaborator raised into a :class:`RemoteStoreError`.

    Timeouts become :class:`RemoteTimeoutError`; everything else is treated as the
    remote being unavailable.
    """
    details = {"operation": operation, **context}
    if isinstance(error, RemoteStoreError):
        error.details.update(details)
        return error
    if isinstance(error, (asyncio.TimeoutError, TimeoutError)):
        return RemoteTimeoutError(
            f"{store_name} {operation} timed out",
            store_name=store_name,
            timeout=timeout,
            details=details,
        )
    status_code = getattr(error, "status_code", None)
    return RemoteUnavailableError(
        f"{store_name} {operation} failed: {error}",
        store_name=store_name,
        status_code=status_code if isinstance(status_code, int) else None,
        details={**details, "error_type": type(error).__name__},
    )


def create_error_response(error: Exception, error_code: ErrorCode | None = None, **kwargs: Any) -> dict[str, Any]:
    """Build a standard error payload from any exception."""
    if isinstance(error, LoomSyncError):
        return format_error_response(
            ErrorCode(error.error_code),
            message=error.message,
            **{**error.details, **kwargs},
        )
    return format_error_response(error_code or ErrorCode.INTERNAL_ERROR, message=str(error), **kwargs)


class ErrorTracker:
    """Counts failures per error code, store and operation."""

    def __init__(self) -> None:
        self.error_counts: dict[str, int] = {}
        self.last_errors: dict[str, dict[str, Any]] = {}

    def record_error(
        self,
        error_code: str,
        store: str | None = None,
        operation: str | None = None,
    ) -> None:
        """Record one failure."""
        key = f"{error_code}:{store}:{operation}"
        self.error_counts[key] = self.error_counts.get(key, 0) + 1

        self.last_errors[key] = {
            "error_code": error_code,
            "store": store,
            "operation": operation,
            "timestamp": datetime.now(UTC).isoformat(),
            "count": self.error_counts[key],
        }
        logger.debug("error recorded", error_key=key, count=self.error_counts[key])

    def get_error_stats(self) -> dict[str, Any]:
        """Return failure statistics."""
        return {
            "error_counts": dict(self.error_counts),
            "last_errors": dict(self.last_errors),
            "total_errors": sum(self.error_counts.values()),
        }

    def reset(self) -> None:
        self.error_counts.clear()
        self.last_errors.clear()
