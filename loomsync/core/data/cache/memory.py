"""线程安全的内存缓存实现."""

from collections.abc import Iterable, Mapping
from dataclasses import replace
from threading import Lock

from loomsync.core.data.cache.base import CacheEntry, Clock, CollectionCache
from loomsync.core.models import Record, SyncState


class InMemoryCollectionCache(CollectionCache):
    """进程内缓存, mainly for tests and short-lived views."""

    def __init__(self, clock: Clock | None = None) -> None:
        super().__init__(clock)
        self._entries: dict[str, CacheEntry] = {}
        self._lock = Lock()

    @staticmethod
    def _copy(entry: CacheEntry) -> CacheEntry:
        return replace(
            entry,
            records=tuple(record.model_copy(deep=True) for record in entry.records),
            tombstones=dict(entry.tombstones),
        )

    def read(self, key: str) -> CacheEntry | None:
        with self._lock:
            entry = self._entries.get(key)
            return self._copy(entry) if entry is not None else None

    def write(
        self,
        key: str,
        records: Iterable[Record],
        *,
        tombstones: Mapping[str, SyncState] | None = None,
    ) -> CacheEntry:
        with self._lock:
            previous = self._entries.get(key)
            entry = self._build_entry(
                key,
                records,
                previous.version if previous else None,
                previous.tombstones if previous else None,
                tombstones,
            )
            self._entries[key] = self._copy(entry)
            return entry

    def delete(self, key: str) -> bool:
        with self._lock:
            return self._entries.pop(key, None) is not None

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def keys(self) -> list[str]:
        with self._lock:
            return sorted(self._entries)
