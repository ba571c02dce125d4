"""缓存接口定义."""

from abc import ABC, abstractmethod
from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass, field
from datetime import UTC, datetime

from loomsync.core.models import Record, SyncState

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(UTC)


def normalize_collection_key(key: str) -> str:
    """Validate and normalise a collection key."""
    if not isinstance(key, str) or not key.strip():
        raise ValueError("collection key must be a non-empty string")
    return key.strip()


@dataclass(frozen=True)
class CacheEntry:
    """One cached collection snapshot."""

    collection_key: str
    records: tuple[Record, ...]
    written_at: datetime
    version: int
    tombstones: Mapping[str, SyncState] = field(default_factory=dict)

    @property
    def is_empty(self) -> bool:
        return not self.records

    @property
    def ids(self) -> list[str]:
        return [record.id for record in self.records if record.id is not None]

    def get(self, record_id: str | None) -> Record | None:
        if record_id is None:
            return None
        for record in self.records:
            if record.id == record_id:
                return record
        return None

    def age_ms(self, now: datetime) -> float:
        return (now - self.written_at).total_seconds() * 1000


class CollectionCache(ABC):
    """本地集合缓存抽象基类.

    All operations are synchronous. ``read`` never raises: unreadable entries
    are reported as absent. ``write`` replaces the whole entry for a key.
    """

    def __init__(self, clock: Clock | None = None) -> None:
        self._clock: Clock = clock or utc_now

    def now(self) -> datetime:
        return self._clock()

    @abstractmethod
    def read(self, key: str) -> CacheEntry | None:
        """读取集合快照."""

    @abstractmethod
    def write(
        self,
        key: str,
        records: Iterable[Record],
        *,
        tombstones: Mapping[str, SyncState] | None = None,
    ) -> CacheEntry:
        """写入集合快照, tombstones=None keeps the existing tombstones."""

    @abstractmethod
    def delete(self, key: str) -> bool:
        """删除集合快照."""

    @abstractmethod
    def clear(self) -> None:
        """清空缓存."""

    @abstractmethod
    def keys(self) -> list[str]:
        """列出已缓存的集合."""

    def is_fresh(self, key: str, threshold_ms: float) -> bool:
        entry = self.read(key)
        if entry is None:
            return False
        return entry.age_ms(self.now()) < threshold_ms

    def close(self) -> None:  # noqa: B027
        """释放资源."""

    def _build_entry(
        self,
        key: str,
        records: Iterable[Record],
        previous_version: int | None,
        previous_tombstones: Mapping[str, SyncState] | None,
        tombstones: Mapping[str, SyncState] | None,
    ) -> CacheEntry:
        written_at = self.now()
        stamped = tuple(
            record if record.updated_at_local is not None else record.model_copy(update={"updated_at_local": written_at})
            for record in records
        )
        # versions are strictly increasing per key even if the clock goes backwards
        version = int(written_at.timestamp() * 1_000_000)
        if previous_version is not None:
            version = max(version, previous_version + 1)
        if tombstones is None:
            tombstones = previous_tombstones or {}
        return CacheEntry(
            collection_key=key,
            records=stamped,
            written_at=written_at,
            version=version,
            tombstones=dict(tombstones),
        )
