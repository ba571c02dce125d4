"""Rendering of records and lifecycles for CLI commands."""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any, Iterable, Mapping, Sequence, TextIO

from rich.box import SIMPLE
from rich.console import Console
from rich.table import Table

from loomsync.core.codec import QUANTITY_UNIT, format_quantity
from loomsync.core.models import Lifecycle, Record, SyncState

RECORD_COLUMNS = [
    "id",
    "quantity",
    "sent_date",
    "received",
    "received_date",
    "dispatched",
    "dispatched_date",
    "intermediary",
    "note",
    "sync_state",
]

LIFECYCLE_COLUMNS = [
    "received",
    "received_date",
    "dispatched",
    "dispatched_date",
    "original_quantity",
    "intermediary",
    "user_note",
]

QUANTITY_COLUMNS = frozenset({"quantity", "received", "dispatched", "original_quantity"})


def lifecycle_to_row(lifecycle: Lifecycle) -> dict[str, Any]:
    """Flatten a lifecycle into one row keyed by :data:`LIFECYCLE_COLUMNS`."""
    row: dict[str, Any] = {}
    for stage in ("received", "dispatched"):
        entry = getattr(lifecycle, stage)
        row[stage] = entry.quantity if entry else None
        row[f"{stage}_date"] = entry.date if entry else None
    row["original_quantity"] = lifecycle.original_quantity
    row["intermediary"] = lifecycle.intermediary
    row["user_note"] = lifecycle.user_note
    return row


def record_to_row(record: Record) -> dict[str, Any]:
    """Flatten a record and its decoded lifecycle into one row keyed by :data:`RECORD_COLUMNS`."""
    row = lifecycle_to_row(record.lifecycle)
    return {
        "id": record.id,
        "quantity": record.display_quantity,
        "sent_date": record.sent_date,
        "received": row["received"],
        "received_date": row["received_date"],
        "dispatched": row["dispatched"],
        "dispatched_date": row["dispatched_date"],
        "intermediary": row["intermediary"],
        "note": row["user_note"],
        "sync_state": record.sync_state.value,
    }


class OutputFormatter:
    """Base class for CLI output formatters."""

    name: str

    def render(
        self,
        rows: Sequence[Mapping[str, object]],
        *,
        stream: TextIO,
        columns: Sequence[str] | None = None,
        title: str | None = None,
    ) -> None:
        """Render the provided rows to the target stream."""

        raise NotImplementedError

    def render_records(self, records: Iterable[Record], *, stream: TextIO, title: str | None = None) -> None:
        self.render([record_to_row(record) for record in records], stream=stream, columns=RECORD_COLUMNS, title=title)

    def render_lifecycle(self, lifecycle: Lifecycle, *, stream: TextIO) -> None:
        self.render([lifecycle_to_row(lifecycle)], stream=stream, columns=LIFECYCLE_COLUMNS)


@dataclass(slots=True)
class TableFormatter(OutputFormatter):
    """Rich table; quantities carry their unit and pending records are highlighted."""

    name: str = "table"
    no_color: bool = False
    width: int | None = None

    def render(
        self,
        rows: Sequence[Mapping[str, object]],
        *,
        stream: TextIO,
        columns: Sequence[str] | None = None,
        title: str | None = None,
    ) -> None:
        console = Console(
            file=stream,
            color_system=None if self.no_color else "auto",
            no_color=self.no_color,
            width=self.width,
        )
        resolved_columns = list(columns) if columns else list(rows[0].keys()) if rows else []

        table = Table(box=SIMPLE, show_lines=False, title=title)
        for column in resolved_columns:
            table.add_column(column, header_style="" if self.no_color else "bold")
        for row in rows:
            pending = row.get("sync_state") == SyncState.PENDING.value
            table.add_row(
                *(self._format_cell(column, row.get(column)) for column in resolved_columns),
                style="yellow" if pending and not self.no_color else None,
            )
        if resolved_columns:
            console.print(table)
        if not rows:
            console.print("No records.")

    @staticmethod
    def _format_cell(column: str, value: object) -> str:
        if value is None or value == "":
            return "-"
        if column in QUANTITY_COLUMNS and isinstance(value, (int, float)):
            return f"{format_quantity(value)}{QUANTITY_UNIT}"
        return str(value)


@dataclass(slots=True)
class JSONLFormatter(OutputFormatter):
    """One JSON object per row, values left unformatted."""

    name: str = "jsonl"

    def render(
        self,
        rows: Sequence[Mapping[str, object]],
        *,
        stream: TextIO,
        columns: Sequence[str] | None = None,
        title: str | None = None,
    ) -> None:
        for row in rows:
            data = {column: row.get(column) for column in columns} if columns else dict(row)
            stream.write(json.dumps(data, ensure_ascii=False, default=str))
            stream.write("\n")
        stream.flush()


def create_formatter(name: str, *, no_color: bool = False) -> OutputFormatter:
    """Instantiate a formatter by name."""

    normalized = name.strip().lower()
    if normalized == "table":
        return TableFormatter(no_color=no_color)
    if normalized == "jsonl":
        return JSONLFormatter()
    raise ValueError(f"Unsupported format '{name}'. Available formats: table, jsonl.")


__all__ = [
    "OutputFormatter",
    "TableFormatter",
    "JSONLFormatter",
    "create_formatter",
    "record_to_row",
    "lifecycle_to_row",
    "RECORD_COLUMNS",
    "LIFECYCLE_COLUMNS",
]
