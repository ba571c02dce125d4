"""Commands for decoding and encoding lifecycle notes."""

from __future__ import annotations

import typer
from pydantic import ValidationError

from loomsync.core.codec import decode_notes, encode_lifecycle
from loomsync.core.models import Lifecycle, StageEntry

from .utils import prepare_output, reject_invalid_input

notes_app = typer.Typer(help="Lifecycle notes codec.")


def register(app: typer.Typer) -> None:
    """Register the notes command group on the provided application."""

    app.add_typer(notes_app, name="notes", help="Decode and encode tagged record notes")


@notes_app.command("decode")
def decode_command(
    ctx: typer.Context,
    raw: str = typer.Argument(..., help="Raw notes text, for example 'Received: 40kg on 2024-01-05'."),
) -> None:
    """Show the lifecycle carried by a notes string."""

    formatter, stream, stack, _ = prepare_output(ctx)
    try:
        formatter.render_lifecycle(decode_notes(raw), stream=stream)
    finally:
        stack.close()


@notes_app.command("encode")
def encode_command(
    ctx: typer.Context,
    note: str = typer.Option("", "--note", help="Free-text note kept in front of the tags."),
    received: float | None = typer.Option(None, "--received", help="Received quantity (kg)."),
    received_date: str | None = typer.Option(None, "--received-date", help="Date of receipt."),
    dispatched: float | None = typer.Option(None, "--dispatched", help="Dispatched quantity (kg)."),
    dispatched_date: str | None = typer.Option(None, "--dispatched-date", help="Date of dispatch."),
    original_qty: float | None = typer.Option(None, "--original-qty", help="Originally ordered quantity (kg)."),
    middleman: str | None = typer.Option(None, "--middleman", help="Intermediary party, omitted when direct."),
) -> None:
    """Build the notes string for a lifecycle."""

    formatter, stream, stack, _ = prepare_output(ctx)
    try:
        try:
            lifecycle = Lifecycle(
                user_note=note,
                received=StageEntry(quantity=received, date=received_date) if received is not None else None,
                dispatched=StageEntry(quantity=dispatched, date=dispatched_date) if dispatched is not None else None,
                original_quantity=original_qty,
                intermediary=middleman,
            )
        except ValidationError as exc:
            raise reject_invalid_input(exc) from exc
        formatter.render([{"raw_notes": encode_lifecycle(lifecycle)}], stream=stream, columns=["raw_notes"])
    finally:
        stack.close()


__all__ = ["notes_app", "register"]
