"""Utility helpers shared across CLI commands."""

from __future__ import annotations

import json
import sys
from contextlib import ExitStack
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Mapping, Sequence, TextIO

import typer
from pydantic import ValidationError

from loomsync.core.exceptions import ErrorCode, create_error_response, format_error_response

from .constants import VALIDATION_EXIT_CODE
from .formatters import OutputFormatter, create_formatter


@dataclass(slots=True)
class CLIOptions:
    """Resolved options derived from the Typer context."""

    format: str = "table"
    output_path: Path | None = None
    no_color: bool = False
    config_path: Path | None = None
    remote_path: Path | None = None


def get_cli_options(ctx: typer.Context) -> CLIOptions:
    """Extract :class:`CLIOptions` from the Typer context object."""

    ctx.ensure_object(dict)
    data = ctx.obj or {}
    return CLIOptions(
        format=str(data.get("format", "table")),
        output_path=data.get("output_path"),
        no_color=bool(data.get("no_color", False)),
        config_path=data.get("config_path"),
        remote_path=data.get("remote_path"),
    )


def prepare_output(ctx: typer.Context) -> tuple[OutputFormatter, TextIO, ExitStack, CLIOptions]:
    """Resolve formatter and writable stream for the current command.

    The format itself is validated by the app callback.
    """

    options = get_cli_options(ctx)
    formatter = create_formatter(options.format, no_color=options.no_color)

    stack = ExitStack()
    stream: TextIO
    if options.output_path is not None:
        try:
            stream = stack.enter_context(open(options.output_path, "w", encoding="utf-8"))
        except OSError as exc:
            stack.close()
            emit_error(ErrorCode.OUTPUT_ERROR, path=str(options.output_path), reason=exc.strerror or str(exc))
            raise typer.Exit(code=VALIDATION_EXIT_CODE) from exc
    else:
        stream = sys.stdout

    return formatter, stream, stack, options


def emit_error(error_code: ErrorCode, message: str | None = None, **details: Any) -> None:
    """Print the standard error payload for ``error_code`` to stderr.

    Without ``message`` the text is rendered from the code's template and ``details``.
    """

    payload = format_error_response(error_code, message, **details)
    _write_payload(payload)


def report_error(error: Exception) -> None:
    """Print the standard error payload for a raised exception to stderr."""

    _write_payload(create_error_response(error))


def reject_invalid_input(exc: ValidationError) -> typer.Exit:
    """Report a pydantic validation failure and return the exit to raise."""

    emit_error(ErrorCode.VALIDATION_ERROR, validation_errors="; ".join(error["msg"] for error in exc.errors()))
    return typer.Exit(code=VALIDATION_EXIT_CODE)


def emit_advisory(message: str) -> None:
    """Print a non-fatal notice (for example, cached data shown) to stderr."""

    typer.echo(json.dumps({"advisory": message}, ensure_ascii=False), err=True)


def _write_payload(payload: Mapping[str, Any]) -> None:
    error = dict(payload["error"])
    details = error.pop("details", None)
    if details:
        error["details"] = _sanitize_details(details)
    typer.echo(json.dumps({"error": error}, ensure_ascii=False, default=str), err=True)


def _sanitize_details(details: Mapping[str, object]) -> Mapping[str, object]:
    sanitized: dict[str, object] = {}
    for key, value in details.items():
        if isinstance(value, (str, int, float, bool)) or value is None:
            sanitized[key] = value
        elif isinstance(value, Mapping):
            sanitized[key] = {str(k): str(v) for k, v in value.items()}
        elif isinstance(value, Sequence) and not isinstance(value, (str, bytes, bytearray)):
            sanitized[key] = [str(item) for item in value]
        else:
            sanitized[key] = str(value)
    return sanitized


__all__ = [
    "CLIOptions",
    "get_cli_options",
    "prepare_output",
    "emit_error",
    "report_error",
    "reject_invalid_input",
    "emit_advisory",
]
