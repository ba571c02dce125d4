"""Message templates for the error payloads printed by the CLI."""

from typing import Any

from loomsync.core.exceptions.codes import ErrorCode


class ErrorMessageTemplate:
    """Registry of message templates per error code."""

    _templates: dict[ErrorCode, str] = {
        ErrorCode.GENERAL_ERROR: "An unknown error occurred",
        ErrorCode.CONFIGURATION_ERROR: "Configuration error: {details}",
        ErrorCode.INTERNAL_ERROR: "Internal error",
        ErrorCode.VALIDATION_ERROR: "Validation failed: {validation_errors}",
        ErrorCode.RECORD_NOT_FOUND: "Record {record_id} not found in collection {collection_key}",
        ErrorCode.RECORD_DELETED: "Record {record_id} was deleted from collection {collection_key}",
        ErrorCode.REMOTE_ERROR: "Remote store {store} failed: {message}",
        ErrorCode.REMOTE_TIMEOUT: "Remote store {store} timed out after {timeout}s",
        ErrorCode.REMOTE_UNAVAILABLE: "Remote store {store} is unavailable",
        ErrorCode.REMOTE_IMPLAUSIBLE: "Remote store {store} returned implausible data for {collection_key}",
        ErrorCode.CACHE_ERROR: "Cache error: {message}",
        ErrorCode.CACHE_CORRUPTED: "Cache entry for {collection_key} is unreadable",
        ErrorCode.BUS_ERROR: "Change propagation failed: {message}",
        ErrorCode.OUTPUT_ERROR: "Unable to write output to {path}: {reason}",
    }

    @classmethod
    def get_message(cls, error_code: ErrorCode, **kwargs: Any) -> str:
        """Render the message for ``error_code`` with ``kwargs``.

        Falls back to the generic message when a template variable is missing.
        """
        template = cls._templates.get(error_code, cls._templates[ErrorCode.GENERAL_ERROR])
        try:
            return template.format(**kwargs)
        except KeyError:
            return f"{cls._templates[ErrorCode.GENERAL_ERROR]} (error code: {error_code.value})"


def format_error_response(error_code: ErrorCode, message: str | None = None, **kwargs: Any) -> dict[str, Any]:
    """Build the standard error payload.

    Args:
        error_code: Error code
        message: Custom message, rendered from the template when omitted
        **kwargs: Extra details

    Returns:
        The error payload dictionary
    """
    if message is None:
        message = ErrorMessageTemplate.get_message(error_code, **kwargs)

    return {
        "error": {
            "code": error_code.value,
            "message": message,
            "details": kwargs,
        }
    }
