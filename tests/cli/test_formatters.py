import io
import json

import pytest

from loomsync.cli.formatters import (
    LIFECYCLE_COLUMNS,
    RECORD_COLUMNS,
    JSONLFormatter,
    TableFormatter,
    create_formatter,
    record_to_row,
)
from loomsync.core.models import Record, SyncState


@pytest.fixture()
def record() -> Record:
    return Record(
        id="7",
        collection_key="orders",
        base_quantity=12.5,
        raw_notes="fragile | Received: 12.5kg on 2024-01-05 | Middleman: Acme",
        sync_state=SyncState.PENDING,
    )


def test_record_row_flattens_the_lifecycle(record: Record) -> None:
    row = record_to_row(record)

    assert list(row) == RECORD_COLUMNS
    assert row["received"] == 12.5
    assert row["received_date"] == "2024-01-05"
    assert row["dispatched"] is None
    assert row["intermediary"] == "Acme"
    assert row["note"] == "fragile"
    assert row["sync_state"] == "pending"


def test_jsonl_renders_records_unformatted(record: Record) -> None:
    stream = io.StringIO()

    JSONLFormatter().render_records([record], stream=stream)

    assert json.loads(stream.getvalue())["quantity"] == 12.5


def test_table_renders_quantities_with_unit(record: Record) -> None:
    stream = io.StringIO()

    TableFormatter(no_color=True, width=200).render_records([record], stream=stream, title="orders")

    output = stream.getvalue()
    assert "12.5kg" in output
    assert "pending" in output


def test_table_lifecycle_uses_lifecycle_columns(record: Record) -> None:
    stream = io.StringIO()

    TableFormatter(no_color=True, width=200).render_lifecycle(record.lifecycle, stream=stream)

    output = stream.getvalue()
    for column in LIFECYCLE_COLUMNS:
        assert column in output


def test_empty_table_says_so() -> None:
    stream = io.StringIO()

    TableFormatter(no_color=True, width=200).render_records([], stream=stream)

    assert "No records." in stream.getvalue()


def test_unknown_formatter_is_rejected() -> None:
    with pytest.raises(ValueError):
        create_formatter("xml")
