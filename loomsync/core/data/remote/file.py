"""Remote store backed by a JSON document on disk."""

from __future__ import annotations

import asyncio
import json
import os
from pathlib import Path
from typing import Any

from loomsync.core.data.remote.base import RemoteCollectionStore
from loomsync.core.exceptions import RemoteUnavailableError
from loomsync.core.logging import get_logger
from loomsync.core.models import Record

logger = get_logger(__name__)


class JsonFileRemoteStore(RemoteCollectionStore):
    """
    Remote store persisted as ``{collection_key: [row, ...]}`` in one JSON file.

    Reads and writes run in a worker thread. A missing file is an empty store.
    """

    def __init__(self, path: str | Path, name: str = "json-file"):
        self.path = Path(path)
        self._name = name
        self._lock = asyncio.Lock()

    @property
    def name(self) -> str:
        return self._name

    def _load(self) -> dict[str, list[dict[str, Any]]]:
        if not self.path.exists():
            return {}
        try:
            document = json.loads(self.path.read_text(encoding="utf-8") or "{}")
        except (OSError, json.JSONDecodeError) as exc:
            raise RemoteUnavailableError(f"cannot read {self.path}: {exc}", store_name=self._name) from exc
        if not isinstance(document, dict):
            raise RemoteUnavailableError(f"{self.path} does not hold a JSON object", store_name=self._name)
        return document

    def _dump(self, document: dict[str, list[dict[str, Any]]]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self.path.with_suffix(self.path.suffix + ".tmp")
        try:
            tmp_path.write_text(json.dumps(document, indent=2, ensure_ascii=False), encoding="utf-8")
            os.replace(tmp_path, self.path)
        except OSError as exc:
            raise RemoteUnavailableError(f"cannot write {self.path}: {exc}", store_name=self._name) from exc

    async def fetch_all(self, collection_key: str) -> list[dict[str, Any]]:
        document = await asyncio.to_thread(self._load)
        rows = document.get(collection_key, [])
        return rows if isinstance(rows, list) else []

    async def upsert(self, collection_key: str, record: Record) -> dict[str, Any]:
        row = record.to_remote()
        async with self._lock:
            document = await asyncio.to_thread(self._load)
            rows = [existing for existing in document.get(collection_key, []) if str(existing.get("id")) != row["id"]]
            rows.append(row)
            document[collection_key] = rows
            await asyncio.to_thread(self._dump, document)
        logger.debug("upserted record into json store", collection_key=collection_key, record_id=row["id"])
        return row

    async def delete(self, collection_key: str, record_id: str) -> None:
        async with self._lock:
            document = await asyncio.to_thread(self._load)
            rows = document.get(collection_key, [])
            document[collection_key] = [row for row in rows if str(row.get("id")) != str(record_id)]
            await asyncio.to_thread(self._dump, document)
