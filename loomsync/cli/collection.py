"""Collection command implementations for the loomsync CLI."""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from pathlib import Path
from typing import Any, TypeVar

import typer
from pydantic import ValidationError

from loomsync.core.client import SyncClient
from loomsync.core.config import ConfigManager
from loomsync.core.data.remote import JsonFileRemoteStore
from loomsync.core.exceptions import LoomSyncError, RecordValidationError, RemoteStoreError
from loomsync.core.models import LifecyclePatch, Record, StageEntry

from .constants import REMOTE_EXIT_CODE, SYSTEM_EXIT_CODE, VALIDATION_EXIT_CODE
from .utils import emit_advisory, get_cli_options, prepare_output, reject_invalid_input, report_error

T = TypeVar("T")

collection_app = typer.Typer(help="Collection operations.")

LIFECYCLE_FIELDS = ("received", "dispatched", "original_quantity", "intermediary", "user_note")


def register(app: typer.Typer) -> None:
    """Register the collection command group on the provided application."""

    app.add_typer(collection_app, name="collection", help="Load, edit and watch synced collections")


@collection_app.callback()
def collection_callback(
    ctx: typer.Context,
    remote: Path | None = typer.Option(
        None,
        "--remote",
        envvar="LOOMSYNC_REMOTE_PATH",
        help="JSON document acting as the remote store.",
    ),
) -> None:
    ctx.ensure_object(dict)
    ctx.obj["remote_path"] = remote


def get_client(remote_path: Path | None, config_path: Path | None) -> SyncClient:
    """Factory hook for obtaining a :class:`SyncClient` instance."""

    if remote_path is None:
        raise typer.BadParameter("a remote store is required", param_hint="--remote")
    return SyncClient(JsonFileRemoteStore(remote_path), ConfigManager(config_path).get_config())


def _run(ctx: typer.Context, action: Callable[[SyncClient], Awaitable[T]]) -> T:
    options = get_cli_options(ctx)

    async def runner() -> T:
        client = get_client(options.remote_path, options.config_path)
        try:
            return await action(client)
        finally:
            await client.close()

    try:
        return asyncio.run(runner())
    except RecordValidationError as error:
        report_error(error)
        raise typer.Exit(code=VALIDATION_EXIT_CODE) from error
    except RemoteStoreError as error:
        report_error(error)
        raise typer.Exit(code=REMOTE_EXIT_CODE) from error
    except LoomSyncError as error:
        report_error(error)
        raise typer.Exit(code=SYSTEM_EXIT_CODE) from error


@collection_app.command("show")
def show_command(
    ctx: typer.Context,
    key: str = typer.Argument(..., help="Collection key."),
    force: bool = typer.Option(False, "--force", help="Ignore cache freshness and consult the remote store."),
    refresh: bool = typer.Option(False, "--refresh", help="Let remote values replace confirmed cached records."),
) -> None:
    """Load a collection and render its records."""

    formatter, stream, stack, _ = prepare_output(ctx)
    try:
        result = _run(ctx, lambda client: client.refresh(key) if refresh else client.load(key, force=force))
        if result.advisory:
            emit_advisory(result.advisory)
        formatter.render_records(result.records, stream=stream, title=key)
    finally:
        stack.close()


def _build_patch(values: dict[str, Any], clear: list[str]) -> LifecyclePatch:
    fields: dict[str, Any] = {}
    if values["sent"] is not None:
        fields["sent"] = StageEntry(quantity=values["sent"], date=values["sent_date"])
    for stage in ("received", "dispatched"):
        if values[stage] is not None:
            fields[stage] = StageEntry(quantity=values[stage], date=values[f"{stage}_date"])
    for name in ("original_quantity", "intermediary", "user_note"):
        if values[name] is not None:
            fields[name] = values[name]
    for name in clear:
        if name not in LIFECYCLE_FIELDS:
            raise typer.BadParameter(
                f"cannot clear '{name}'. Allowed values: {', '.join(LIFECYCLE_FIELDS)}",
                param_hint="--clear",
            )
        fields[name] = None
    return LifecyclePatch(**fields)


@collection_app.command("update")
def update_command(
    ctx: typer.Context,
    key: str = typer.Argument(..., help="Collection key."),
    record_id: str = typer.Argument(..., help="Record id."),
    sent: float | None = typer.Option(None, "--sent", help="Sent quantity (kg)."),
    sent_date: str | None = typer.Option(None, "--sent-date", help="Date sent."),
    received: float | None = typer.Option(None, "--received", help="Received quantity (kg)."),
    received_date: str | None = typer.Option(None, "--received-date", help="Date of receipt."),
    dispatched: float | None = typer.Option(None, "--dispatched", help="Dispatched quantity (kg)."),
    dispatched_date: str | None = typer.Option(None, "--dispatched-date", help="Date of dispatch."),
    original_qty: float | None = typer.Option(None, "--original-qty", help="Originally ordered quantity (kg)."),
    middleman: str | None = typer.Option(None, "--middleman", help="Intermediary party."),
    note: str | None = typer.Option(None, "--note", help="Replace the free-text note."),
    clear: list[str] = typer.Option([], "--clear", help="Lifecycle field to clear; may be repeated."),
) -> None:
    """Apply a lifecycle change to one record."""

    formatter, stream, stack, _ = prepare_output(ctx)
    try:
        try:
            patch = _build_patch(
                {
                    "sent": sent,
                    "sent_date": sent_date,
                    "received": received,
                    "received_date": received_date,
                    "dispatched": dispatched,
                    "dispatched_date": dispatched_date,
                    "original_quantity": original_qty,
                    "intermediary": middleman,
                    "user_note": note,
                },
                clear,
            )
        except ValidationError as exc:
            raise reject_invalid_input(exc) from exc

        async def action(client: SyncClient):
            await client.load(key)
            return await client.update(key, record_id, patch)

        result = _run(ctx, action)
        if result.advisory:
            emit_advisory(result.advisory)
        formatter.render_records([result.record], stream=stream)
    finally:
        stack.close()


@collection_app.command("pending")
def pending_command(ctx: typer.Context, key: str = typer.Argument(..., help="Collection key.")) -> None:
    """List local changes not yet confirmed by the remote store."""

    formatter, stream, stack, _ = prepare_output(ctx)

    async def action(client: SyncClient):
        return client.pending(key)

    try:
        changes = _run(ctx, action)
        rows = [{"id": record.id, "change": "write", "raw_notes": record.raw_notes} for record in changes.records]
        rows.extend({"id": record_id, "change": "delete", "raw_notes": None} for record_id in changes.deletions)
        formatter.render(rows, stream=stream, columns=["id", "change", "raw_notes"])
    finally:
        stack.close()


@collection_app.command("retry")
def retry_command(ctx: typer.Context, key: str = typer.Argument(..., help="Collection key.")) -> None:
    """Replay pending changes against the remote store."""

    formatter, stream, stack, _ = prepare_output(ctx)
    try:
        report = _run(ctx, lambda client: client.retry_pending(key))
        rows = [{"id": record_id, "status": "confirmed"} for record_id in report.confirmed]
        rows.extend({"id": record_id, "status": "failed"} for record_id in report.failed)
        formatter.render(rows, stream=stream, columns=["id", "status"])
    finally:
        stack.close()
    if report.failed:
        raise typer.Exit(code=REMOTE_EXIT_CODE)


@collection_app.command("watch")
def watch_command(
    ctx: typer.Context,
    key: str = typer.Argument(..., help="Collection key."),
    duration: float = typer.Option(10.0, "--duration", min=0.0, help="Seconds to keep watching."),
) -> None:
    """Print every snapshot of a collection published while watching."""

    formatter, stream, stack, _ = prepare_output(ctx)

    def show(records: list[Record]) -> None:
        formatter.render_records(records, stream=stream, title=key)

    async def action(client: SyncClient) -> None:
        result = await client.load(key, background=True)
        show(list(result.records))
        # a background refresh only runs once this coroutine yields
        unsubscribe = client.subscribe(key, show)
        try:
            await asyncio.sleep(duration)
        finally:
            unsubscribe()

    try:
        _run(ctx, action)
    finally:
        stack.close()


__all__ = ["collection_app", "register", "get_client"]
