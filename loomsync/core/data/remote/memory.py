"""In-process remote store with failure, latency and empty-result injection."""

from __future__ import annotations

import asyncio
import copy
from collections.abc import Iterable, Mapping
from typing import Any

from loomsync.core.data.remote.base import RemoteCollectionStore
from loomsync.core.exceptions import RemoteUnavailableError
from loomsync.core.models import Record


class InMemoryRemoteStore(RemoteCollectionStore):
    """
    Remote store kept in a dict.

    Useful for testing how the engine copes with:
    - an unreachable remote (``offline``)
    - slow responses (``latency``, in seconds)
    - a remote that answers but returns nothing (``return_empty``)
    """

    def __init__(
        self,
        rows: Mapping[str, Iterable[Mapping[str, Any]]] | None = None,
        *,
        offline: bool = False,
        latency: float = 0.0,
        return_empty: bool = False,
        name: str = "memory",
    ):
        self._name = name
        self._rows: dict[str, dict[str, dict[str, Any]]] = {}
        self.offline = offline
        self.fail_writes = False
        self.latency = latency
        self.return_empty = return_empty
        self.fetch_calls = 0
        self.upsert_calls = 0
        self.delete_calls = 0
        for key, collection in (rows or {}).items():
            self.seed(key, collection)

    @property
    def name(self) -> str:
        return self._name

    def seed(self, collection_key: str, rows: Iterable[Mapping[str, Any]]) -> None:
        """Replace the stored rows of a collection."""
        self._rows[collection_key] = {str(row.get("id", f"#{index}")): dict(row) for index, row in enumerate(rows)}

    def rows(self, collection_key: str) -> list[dict[str, Any]]:
        return [copy.deepcopy(row) for row in self._rows.get(collection_key, {}).values()]

    def set_offline(self, offline: bool = True) -> None:
        self.offline = offline

    async def _simulate(self, writing: bool = False) -> None:
        if self.latency:
            await asyncio.sleep(self.latency)
        if self.offline or (writing and self.fail_writes):
            raise RemoteUnavailableError("remote store is offline", store_name=self._name)

    async def fetch_all(self, collection_key: str) -> list[dict[str, Any]]:
        self.fetch_calls += 1
        await self._simulate()
        if self.return_empty:
            return []
        return self.rows(collection_key)

    async def upsert(self, collection_key: str, record: Record) -> dict[str, Any]:
        self.upsert_calls += 1
        await self._simulate(writing=True)
        row = record.to_remote()
        self._rows.setdefault(collection_key, {})[str(row["id"])] = row
        return copy.deepcopy(row)

    async def delete(self, collection_key: str, record_id: str) -> None:
        self.delete_calls += 1
        await self._simulate(writing=True)
        self._rows.get(collection_key, {}).pop(str(record_id), None)
