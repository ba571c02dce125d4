"""DuckDB缓存实现."""

import json
import time
from collections.abc import Iterable, Iterator, Mapping
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path

import duckdb
from duckdb import DuckDBPyConnection

from loomsync.core.data.cache.base import CacheEntry, Clock, CollectionCache
from loomsync.core.exceptions import CacheError
from loomsync.core.logging import get_logger
from loomsync.core.models import Record, SyncState

logger = get_logger(__name__)

_SCHEMA = """
    CREATE TABLE IF NOT EXISTS collection_cache (
        collection_key VARCHAR PRIMARY KEY,
        records JSON,
        tombstones JSON,
        written_at VARCHAR,
        version BIGINT
    )
"""

# A file shared by several views can be locked briefly by another process.
_CONNECT_ATTEMPTS = 5
_CONNECT_BACKOFF = 0.02


class DuckDBCollectionCache(CollectionCache):
    """基于DuckDB的持久化缓存.

    ``:memory:`` keeps one connection for the lifetime of the cache. A file path
    opens a short-lived connection per operation so that other processes can
    use the same file between operations.
    """

    def __init__(self, db_path: str | Path = ":memory:", clock: Clock | None = None) -> None:
        super().__init__(clock)
        self.db_path = str(db_path)
        self._conn: DuckDBPyConnection | None = None
        if self.db_path == ":memory:":
            self._conn = duckdb.connect(self.db_path)
        else:
            Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)
        with self._connection() as conn:
            conn.execute(_SCHEMA)

    @contextmanager
    def _connection(self) -> Iterator[DuckDBPyConnection]:
        if self._conn is not None:
            yield self._conn
            return
        conn = self._connect()
        try:
            yield conn
        finally:
            conn.close()

    def _connect(self) -> DuckDBPyConnection:
        attempt = 1
        while True:
            try:
                return duckdb.connect(self.db_path)
            except duckdb.IOException:
                if attempt >= _CONNECT_ATTEMPTS:
                    raise
                time.sleep(_CONNECT_BACKOFF * attempt)
                attempt += 1

    def read(self, key: str) -> CacheEntry | None:
        try:
            with self._connection() as conn:
                row = conn.execute(
                    "SELECT records, tombstones, written_at, version FROM collection_cache WHERE collection_key = ?",
                    [key],
                ).fetchone()
        except duckdb.Error as exc:
            logger.warning("cache read failed, treating entry as absent", collection_key=key, error=str(exc))
            return None
        if row is None:
            return None
        try:
            return self._decode_row(key, row)
        except (ValueError, TypeError, KeyError, AttributeError) as exc:
            logger.warning("cache entry unreadable, treating it as absent", collection_key=key, error=str(exc))
            return None

    @staticmethod
    def _decode_row(key: str, row: tuple) -> CacheEntry:
        raw_records, raw_tombstones, written_at, version = row
        records = tuple(Record.model_validate(item) for item in json.loads(raw_records))
        tombstones = {str(record_id): SyncState(state) for record_id, state in json.loads(raw_tombstones or "{}").items()}
        return CacheEntry(
            collection_key=key,
            records=records,
            written_at=datetime.fromisoformat(written_at),
            version=int(version),
            tombstones=tombstones,
        )

    def write(
        self,
        key: str,
        records: Iterable[Record],
        *,
        tombstones: Mapping[str, SyncState] | None = None,
    ) -> CacheEntry:
        try:
            with self._connection() as conn:
                previous_version, previous_tombstones = self._previous_state(conn, key)
                entry = self._build_entry(key, records, previous_version, previous_tombstones, tombstones)
                conn.execute(
                    "INSERT OR REPLACE INTO collection_cache VALUES (?, ?, ?, ?, ?)",
                    [
                        key,
                        json.dumps([record.model_dump(mode="json") for record in entry.records]),
                        json.dumps({record_id: state.value for record_id, state in entry.tombstones.items()}),
                        entry.written_at.isoformat(),
                        entry.version,
                    ],
                )
        except (duckdb.Error, TypeError, ValueError) as exc:
            raise CacheError(f"failed to write cache entry {key!r}: {exc}", cache_type="duckdb") from exc
        return entry

    @staticmethod
    def _previous_state(conn: DuckDBPyConnection, key: str) -> tuple[int | None, dict[str, SyncState]]:
        row = conn.execute(
            "SELECT version, tombstones FROM collection_cache WHERE collection_key = ?", [key]
        ).fetchone()
        if row is None:
            return None, {}
        try:
            tombstones = {str(k): SyncState(v) for k, v in json.loads(row[1] or "{}").items()}
        except (ValueError, TypeError, AttributeError):
            logger.warning("cached tombstones unreadable, dropping them", collection_key=key)
            tombstones = {}
        return int(row[0]), tombstones

    def delete(self, key: str) -> bool:
        try:
            with self._connection() as conn:
                existed = conn.execute("SELECT 1 FROM collection_cache WHERE collection_key = ?", [key]).fetchone()
                conn.execute("DELETE FROM collection_cache WHERE collection_key = ?", [key])
        except duckdb.Error as exc:
            raise CacheError(f"failed to delete cache entry {key!r}: {exc}", cache_type="duckdb") from exc
        return existed is not None

    def clear(self) -> None:
        try:
            with self._connection() as conn:
                conn.execute("DELETE FROM collection_cache")
        except duckdb.Error as exc:
            raise CacheError(f"failed to clear cache: {exc}", cache_type="duckdb") from exc

    def keys(self) -> list[str]:
        try:
            with self._connection() as conn:
                rows = conn.execute("SELECT collection_key FROM collection_cache ORDER BY collection_key").fetchall()
        except duckdb.Error as exc:
            logger.warning("cache key listing failed", error=str(exc))
            return []
        return [row[0] for row in rows]

    def close(self) -> None:
        """关闭数据库连接."""
        if self._conn is not None:
            self._conn.close()
            self._conn = None
