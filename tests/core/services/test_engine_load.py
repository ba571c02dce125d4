"""Tests for ReconciliationEngine.load and force_refresh."""

from __future__ import annotations

import asyncio

import pytest

from loomsync.core.data.cache import InMemoryCollectionCache
from loomsync.core.data.remote import InMemoryRemoteStore
from loomsync.core.exceptions import RecordValidationError
from loomsync.core.models import LoadSource, Record, SyncState
from loomsync.core.services import (
    ADVISORY_CACHED,
    ADVISORY_IMPLAUSIBLE,
    ADVISORY_NOTHING_CACHED,
    ChangeBus,
    ReconciliationEngine,
    SyncSettings,
)


def _row(record_id: str, quantity: float = 100.0, notes: str = "") -> dict[str, object]:
    return {"id": record_id, "baseQuantity": quantity, "rawNotes": notes}


def _cached(record_id: str, notes: str = "", **fields: object) -> Record:
    return Record(collection_key="orders", id=record_id, raw_notes=notes, **fields)


class Recorder:
    def __init__(self, bus: ChangeBus, key: str = "orders") -> None:
        self.snapshots: list[list[Record]] = []
        bus.subscribe(key, self.snapshots.append)


@pytest.mark.asyncio
async def test_cold_start_adopts_remote(engine: ReconciliationEngine, remote: InMemoryRemoteStore, cache, bus) -> None:
    remote.seed("orders", [_row("1"), _row("2", notes="Received: 5kg")])
    recorder = Recorder(bus)

    result = await engine.load("orders")

    assert result.source is LoadSource.REMOTE
    assert [r.id for r in result.records] == ["1", "2"]
    assert result.records[1].lifecycle.received.quantity == 5
    assert result.advisory is None
    assert cache.read("orders").ids == ["1", "2"]
    assert [[r.id for r in snap] for snap in recorder.snapshots] == [["1", "2"]]


@pytest.mark.asyncio
async def test_fresh_cache_short_circuits_remote(engine: ReconciliationEngine, remote: InMemoryRemoteStore) -> None:
    remote.seed("orders", [_row("1")])

    first = await engine.load("orders")
    second = await engine.load("orders")

    assert remote.fetch_calls == 1
    assert second.source is LoadSource.CACHE
    assert second.records == first.records


@pytest.mark.asyncio
async def test_stale_cache_is_reconciled(engine: ReconciliationEngine, remote: InMemoryRemoteStore, clock) -> None:
    remote.seed("orders", [_row("1")])
    await engine.load("orders")

    clock.advance(seconds=31)
    await engine.load("orders")

    assert remote.fetch_calls == 2


@pytest.mark.asyncio
async def test_force_skips_the_freshness_check(engine: ReconciliationEngine, remote: InMemoryRemoteStore) -> None:
    remote.seed("orders", [_row("1")])
    await engine.load("orders")

    await engine.load("orders", force=True)

    assert remote.fetch_calls == 2


@pytest.mark.asyncio
async def test_empty_cache_is_not_fresh(engine: ReconciliationEngine, remote: InMemoryRemoteStore, cache) -> None:
    cache.write("orders", [])
    remote.seed("orders", [_row("1")])

    result = await engine.load("orders")

    assert remote.fetch_calls == 1
    assert result.source is LoadSource.REMOTE


@pytest.mark.asyncio
async def test_empty_remote_preserves_cache(engine: ReconciliationEngine, remote: InMemoryRemoteStore, cache, clock, bus) -> None:
    originals = [_cached(str(i), f"Received: {i}kg") for i in range(1, 6)]
    written = cache.write("orders", originals)
    clock.advance(minutes=5)
    remote.return_empty = True
    recorder = Recorder(bus)

    result = await engine.load("orders")

    assert [r.id for r in result.records] == ["1", "2", "3", "4", "5"]
    assert result.source is LoadSource.CACHE
    assert result.advisory == ADVISORY_IMPLAUSIBLE
    entry = cache.read("orders")
    assert entry.version == written.version
    assert list(entry.records) == list(written.records)
    assert recorder.snapshots == []


@pytest.mark.asyncio
async def test_smaller_remote_keeps_cache(engine: ReconciliationEngine, remote: InMemoryRemoteStore, cache, clock) -> None:
    cache.write("orders", [_cached("1"), _cached("2"), _cached("3")])
    clock.advance(minutes=5)
    remote.seed("orders", [_row("1"), _row("4")])

    result = await engine.load("orders")

    assert [r.id for r in result.records] == ["1", "2", "3"]
    assert result.advisory == ADVISORY_IMPLAUSIBLE
    assert engine.error_stats()["total_errors"] == 1


@pytest.mark.asyncio
async def test_remote_failure_returns_cache_with_advisory(
    engine: ReconciliationEngine, remote: InMemoryRemoteStore, cache, clock
) -> None:
    written = cache.write("orders", [_cached("1", "Dispatched: 2kg")])
    clock.advance(minutes=5)
    remote.set_offline()

    result = await engine.load("orders")

    assert result.source is LoadSource.CACHE
    assert result.degraded
    assert result.advisory == ADVISORY_CACHED
    assert list(result.records) == list(written.records)
    assert cache.read("orders").version == written.version


@pytest.mark.asyncio
async def test_remote_failure_without_cache_is_empty(engine: ReconciliationEngine, remote: InMemoryRemoteStore) -> None:
    remote.set_offline()

    result = await engine.load("orders")

    assert result.source is LoadSource.EMPTY
    assert result.records == ()
    assert result.advisory == ADVISORY_NOTHING_CACHED


@pytest.mark.asyncio
async def test_remote_timeout_is_a_failure(cache, clock, bus) -> None:
    remote = InMemoryRemoteStore({"orders": [_row("1"), _row("2")]}, latency=0.5)
    engine = ReconciliationEngine(cache, remote, bus, SyncSettings(remote_timeout=0.05))
    cache.write("orders", [_cached("1")])
    clock.advance(minutes=5)

    result = await engine.load("orders")

    assert result.advisory == ADVISORY_CACHED
    assert [r.id for r in result.records] == ["1"]
    stats = engine.error_stats()
    assert any(key.startswith("REMOTE_TIMEOUT") for key in stats["error_counts"])


@pytest.mark.asyncio
async def test_both_empty_is_an_empty_result(engine: ReconciliationEngine) -> None:
    result = await engine.load("orders")

    assert result.source is LoadSource.EMPTY
    assert result.records == ()
    assert result.advisory is None


@pytest.mark.asyncio
async def test_superset_merge_keeps_cached_values(
    engine: ReconciliationEngine, remote: InMemoryRemoteStore, cache, clock, bus
) -> None:
    cache.write("orders", [_cached("1", "Received: 40kg"), _cached("2")])
    clock.advance(minutes=5)
    remote.seed("orders", [_row("1", notes="Received: 10kg"), _row("2"), _row("3", notes="Dispatched: 1kg")])
    recorder = Recorder(bus)

    result = await engine.load("orders")

    assert result.source is LoadSource.MERGED
    assert [r.id for r in result.records] == ["1", "2", "3"]
    assert result.records[0].raw_notes == "Received: 40kg"
    assert result.records[2].raw_notes == "Dispatched: 1kg"
    assert cache.read("orders").ids == ["1", "2", "3"]
    assert len(recorder.snapshots) == 1
    assert bus.last_version("orders") == result.version


@pytest.mark.asyncio
async def test_equal_sets_refresh_freshness_without_publishing(
    engine: ReconciliationEngine, remote: InMemoryRemoteStore, cache, clock, bus
) -> None:
    cache.write("orders", [_cached("1", "Received: 40kg")])
    clock.advance(minutes=5)
    remote.seed("orders", [_row("1", notes="Received: 10kg")])
    recorder = Recorder(bus)

    result = await engine.load("orders")

    assert result.source is LoadSource.CACHE
    assert result.records[0].raw_notes == "Received: 40kg"
    assert cache.is_fresh("orders", 30_000)
    assert recorder.snapshots == []


@pytest.mark.asyncio
async def test_malformed_rows_are_quarantined(engine: ReconciliationEngine, remote: InMemoryRemoteStore) -> None:
    remote.seed(
        "orders",
        [
            _row("1"),
            {"id": "2", "baseQuantity": -4},
            {"baseQuantity": 3},
            {"id": "3", "collectionKey": "products"},
            _row("4"),
        ],
    )

    result = await engine.load("orders")

    assert [r.id for r in result.records] == ["1", "4"]
    assert result.quarantined == 3


@pytest.mark.asyncio
async def test_remote_local_columns_are_ignored(engine: ReconciliationEngine, remote: InMemoryRemoteStore) -> None:
    remote.seed("orders", [{**_row("1"), "syncState": "pending", "updatedAtLocal": "1999-01-01T00:00:00Z"}])

    result = await engine.load("orders")

    assert result.records[0].sync_state is SyncState.SYNCED
    assert result.records[0].updated_at_local.year != 1999


@pytest.mark.asyncio
async def test_tombstoned_ids_are_not_resurrected(engine: ReconciliationEngine, remote: InMemoryRemoteStore, clock) -> None:
    remote.seed("orders", [_row("1"), _row("2")])
    await engine.load("orders")
    engine.mark_deleted("orders", "2")

    clock.advance(minutes=5)
    result = await engine.load("orders")

    assert [r.id for r in result.records] == ["1"]


@pytest.mark.asyncio
async def test_concurrent_loads_share_one_fetch(cache, bus) -> None:
    remote = InMemoryRemoteStore({"orders": [_row("1")]}, latency=0.05)
    engine = ReconciliationEngine(cache, remote, bus, SyncSettings(remote_timeout=1))

    first, second = await asyncio.gather(engine.load("orders"), engine.load("orders"))

    assert remote.fetch_calls == 1
    assert first.records == second.records


@pytest.mark.asyncio
async def test_background_load_returns_stale_cache_then_publishes(cache, clock, bus) -> None:
    remote = InMemoryRemoteStore({"orders": [_row("1"), _row("2")]}, latency=0.01)
    engine = ReconciliationEngine(cache, remote, bus, SyncSettings(remote_timeout=1))
    cache.write("orders", [_cached("1")])
    clock.advance(minutes=5)
    recorder = Recorder(bus)

    result = await engine.load("orders", background=True)

    assert result.refreshing
    assert [r.id for r in result.records] == ["1"]
    assert recorder.snapshots == []

    for _ in range(50):
        if recorder.snapshots:
            break
        await asyncio.sleep(0.01)
    assert [r.id for r in recorder.snapshots[-1]] == ["1", "2"]
    await engine.close()


@pytest.mark.asyncio
async def test_force_refresh_lets_remote_win_for_synced_records(
    engine: ReconciliationEngine, remote: InMemoryRemoteStore, cache
) -> None:
    cache.write(
        "orders",
        [
            _cached("1", "Received: 40kg"),
            _cached("2", "note", sync_state=SyncState.PENDING),
            _cached("3", "local only"),
        ],
    )
    remote.seed("orders", [_row("1", notes="Received: 45kg"), _row("2", notes="remote"), _row("4")])

    result = await engine.force_refresh("orders")

    by_id = {r.id: r for r in result.records}
    assert result.source is LoadSource.MERGED
    assert by_id["1"].raw_notes == "Received: 45kg"
    assert by_id["2"].raw_notes == "note"
    assert by_id["2"].is_pending
    assert by_id["3"].raw_notes == "local only"
    assert "4" in by_id


@pytest.mark.asyncio
async def test_force_refresh_never_erases_cache(engine: ReconciliationEngine, remote: InMemoryRemoteStore, cache) -> None:
    cache.write("orders", [_cached("1")])
    remote.return_empty = True

    result = await engine.force_refresh("orders")

    assert [r.id for r in result.records] == ["1"]
    assert result.advisory == ADVISORY_IMPLAUSIBLE


@pytest.mark.asyncio
async def test_blank_collection_key_is_rejected(engine: ReconciliationEngine) -> None:
    with pytest.raises(RecordValidationError):
        await engine.load("  ")


@pytest.mark.asyncio
async def test_load_uses_injected_cache_instance(remote: InMemoryRemoteStore, bus) -> None:
    cache = InMemoryCollectionCache()
    engine = ReconciliationEngine(cache, remote, bus)
    remote.seed("products", [_row("p1")])

    await engine.load("products")

    assert engine.cache is cache
    assert cache.keys() == ["products"]
