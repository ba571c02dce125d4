"""Tests for SyncClient wiring."""

from __future__ import annotations

import asyncio
from pathlib import Path

import pytest

import loomsync
from loomsync import SyncClient
from loomsync.core.client import create_cache, create_transport
from loomsync.core.config import BusConfig, CacheConfig, LoomSyncConfig
from loomsync.core.data.cache import DuckDBCollectionCache, InMemoryCollectionCache
from loomsync.core.data.remote import InMemoryRemoteStore, JsonFileRemoteStore
from loomsync.core.models import LoadSource, Record
from loomsync.core.services import FileJournalTransport, LocalBroadcastTransport


def _memory_config(channel: str) -> dict[str, dict[str, object]]:
    return {"cache": {"backend": "memory"}, "bus": {"channel": channel}}


def test_package_exports() -> None:
    assert loomsync.__version__ == "0.1.0"
    assert loomsync.decode_notes("Received: 1kg").received.quantity == 1
    assert "SyncClient" in loomsync.__all__


def test_factories_follow_config(tmp_path: Path) -> None:
    memory = create_cache(CacheConfig(backend="memory"))
    duck = create_cache(CacheConfig(backend="duckdb", path=str(tmp_path / "cache.duckdb")))

    assert isinstance(memory, InMemoryCollectionCache)
    assert isinstance(duck, DuckDBCollectionCache)
    assert isinstance(create_transport(BusConfig(transport="local")), LocalBroadcastTransport)
    assert isinstance(create_transport(BusConfig(transport="file", journal_path=str(tmp_path / "j.jsonl"))), FileJournalTransport)
    duck.close()


@pytest.mark.asyncio
async def test_client_saves_and_loads() -> None:
    remote = InMemoryRemoteStore({"orders": [{"id": "1", "baseQuantity": 10}]})
    async with SyncClient(remote, _memory_config("client-basic"), view_id="view-1") as client:
        snapshots: list[list[Record]] = []
        client.subscribe("orders", snapshots.append)

        loaded = await client.load("orders")
        saved = await client.update("orders", "1", {"received": {"quantity": 10, "date": "2024-03-01"}})
        refreshed = await client.refresh("orders")

        assert client.view_id == "view-1"
        assert loaded.source is LoadSource.REMOTE
        assert saved.record.raw_notes == "Received: 10kg on 2024-03-01"
        assert refreshed.records[0].raw_notes == "Received: 10kg on 2024-03-01"
        assert len(snapshots) == 2
        assert client.pending("orders").is_empty


@pytest.mark.asyncio
async def test_client_accepts_config_object() -> None:
    config = LoomSyncConfig.from_dict({"cache": {"backend": "memory", "fresh_threshold_ms": 0}})
    remote = InMemoryRemoteStore({"orders": [{"id": "1"}]})
    async with SyncClient(remote, config) as client:
        await client.load("orders")
        await client.load("orders")

    assert remote.fetch_calls == 2


@pytest.mark.asyncio
async def test_duckdb_cache_survives_restart(tmp_path: Path) -> None:
    config = {"cache": {"backend": "duckdb", "path": str(tmp_path / "cache.duckdb")}, "bus": {"channel": "restart"}}
    remote = InMemoryRemoteStore({"orders": [{"id": "1"}, {"id": "2"}]})

    async with SyncClient(remote, config) as first:
        await first.load("orders")

    remote.set_offline()
    async with SyncClient(remote, config) as second:
        result = await second.load("orders")

    assert [record.id for record in result.records] == ["1", "2"]


@pytest.mark.asyncio
async def test_pending_write_is_retried_through_client(tmp_path: Path) -> None:
    remote = JsonFileRemoteStore(tmp_path / "remote.json")
    remote_path = remote.path
    async with SyncClient(remote, _memory_config("client-retry")) as client:
        remote_path.mkdir()
        result = await client.save("orders", {"id": "1", "baseQuantity": 4})
        assert not result.confirmed
        assert [record.id for record in client.pending("orders").records] == ["1"]

        remote_path.rmdir()
        report = await client.retry_pending("orders")

    assert report.confirmed == ["1"]
    assert [row["id"] for row in await remote.fetch_all("orders")] == ["1"]


@pytest.mark.asyncio
async def test_clients_sharing_a_journal_see_each_other(tmp_path: Path) -> None:
    journal = tmp_path / "changes.jsonl"
    remote = InMemoryRemoteStore()
    config = {"cache": {"backend": "memory"}, "bus": {"transport": "file", "journal_path": str(journal), "poll_interval": 0.01}}
    async with SyncClient(remote, config, view_id="a") as writer, SyncClient(remote, config, view_id="b") as reader:
        seen: list[list[Record]] = []
        reader.subscribe("orders", seen.append)

        await writer.save("orders", {"id": "1", "baseQuantity": 2})
        for _ in range(50):
            if seen:
                break
            await asyncio.sleep(0.01)

    assert [[record.id for record in snapshot] for snapshot in seen] == [["1"]]
