"""Standardized error codes."""

from enum import Enum


class ErrorCode(str, Enum):
    """Error codes carried by :class:`LoomSyncError` instances."""

    GENERAL_ERROR = "GENERAL_ERROR"
    CONFIGURATION_ERROR = "CONFIGURATION_ERROR"
    INTERNAL_ERROR = "INTERNAL_ERROR"

    # Write input
    VALIDATION_ERROR = "VALIDATION_ERROR"
    RECORD_NOT_FOUND = "RECORD_NOT_FOUND"
    RECORD_DELETED = "RECORD_DELETED"

    # Remote collection store
    REMOTE_ERROR = "REMOTE_ERROR"
    REMOTE_TIMEOUT = "REMOTE_TIMEOUT"
    REMOTE_UNAVAILABLE = "REMOTE_UNAVAILABLE"
    REMOTE_IMPLAUSIBLE = "REMOTE_IMPLAUSIBLE"

    # Local cache store
    CACHE_ERROR = "CACHE_ERROR"
    CACHE_CORRUPTED = "CACHE_CORRUPTED"

    # Change propagation
    BUS_ERROR = "BUS_ERROR"

    # Command line output
    OUTPUT_ERROR = "OUTPUT_ERROR"
