"""Exception handling module."""

from loomsync.core.exceptions.base import (
    CacheError,
    ConfigurationError,
    LoomSyncError,
    RecordValidationError,
    RemoteStoreError,
    RemoteTimeoutError,
    RemoteUnavailableError,
)
from loomsync.core.exceptions.codes import ErrorCode
from loomsync.core.exceptions.handler import ErrorTracker, create_error_response, map_remote_error
from loomsync.core.exceptions.messages import ErrorMessageTemplate, format_error_response

__all__ = [
    "LoomSyncError",
    "RecordValidationError",
    "RemoteStoreError",
    "RemoteTimeoutError",
    "RemoteUnavailableError",
    "CacheError",
    "ConfigurationError",
    "ErrorCode",
    "ErrorMessageTemplate",
    "format_error_response",
    "create_error_response",
    "map_remote_error",
    "ErrorTracker",
]
