"""Exit codes used by CLI commands."""

VALIDATION_EXIT_CODE = 10
REMOTE_EXIT_CODE = 20
SYSTEM_EXIT_CODE = 30

__all__ = ["VALIDATION_EXIT_CODE", "REMOTE_EXIT_CODE", "SYSTEM_EXIT_CODE"]
