"""Main entry point for the loomsync command line interface."""

from __future__ import annotations

from pathlib import Path

import typer

from loomsync.core.config import ConfigManager
from loomsync.core.exceptions import ConfigurationError
from loomsync.core.logging import configure_logging

from .collection import register as register_collection_commands
from .formatters import create_formatter
from .notes import register as register_notes_commands


def create_app() -> typer.Typer:
    """Create a Typer application instance for loomsync."""

    app = typer.Typer(add_completion=False, help="loomsync command line interface")

    @app.callback()
    def main(
        ctx: typer.Context,
        format: str = typer.Option(
            "table",
            "--format",
            "-f",
            help="Output format (table or jsonl).",
            show_default=True,
        ),
        output: Path | None = typer.Option(
            None,
            "--output",
            "-o",
            help="Write output to a file instead of stdout.",
        ),
        log_level: str | None = typer.Option(
            None,
            "--log-level",
            help="Logging level (defaults to the configured level).",
        ),
        no_color: bool = typer.Option(
            False,
            "--no-color",
            help="Disable colorized output for table format.",
        ),
        config: Path | None = typer.Option(
            None,
            "--config",
            help="Configuration file (defaults to ~/.loomsync/config.toml).",
        ),
    ) -> None:
        ctx.ensure_object(dict)
        normalized_format = format.strip().lower()
        try:
            # Validate formatter eagerly for immediate feedback on invalid options
            create_formatter(normalized_format, no_color=no_color)
        except ValueError as exc:
            raise typer.BadParameter(str(exc), param_hint="--format") from exc

        try:
            logging_config = ConfigManager(config).get_config().logging
        except ConfigurationError as exc:
            raise typer.BadParameter(exc.message, param_hint="--config") from exc
        level = (log_level or logging_config.level).upper()

        ctx.obj.update(
            {
                "format": normalized_format,
                "output_path": output,
                "log_level": level,
                "no_color": no_color,
                "config_path": config,
            }
        )
        try:
            configure_logging(
                level=level,
                file_output=logging_config.file is not None,
                file_path=logging_config.file,
            )
        except ValueError as exc:
            raise typer.BadParameter(str(exc), param_hint="--log-level") from exc

    register_notes_commands(app)
    register_collection_commands(app)
    return app


app = create_app()
