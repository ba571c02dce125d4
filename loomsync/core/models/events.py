"""Results returned by the reconciliation engine and events carried by the bus."""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum

from pydantic import BaseModel, Field

from loomsync.core.models.base import Record


class LoadSource(str, Enum):
    """Where the records of a load result came from."""

    CACHE = "cache"
    REMOTE = "remote"
    MERGED = "merged"
    EMPTY = "empty"


@dataclass(frozen=True)
class LoadResult:
    collection_key: str
    records: tuple[Record, ...]
    source: LoadSource
    version: int | None = None
    advisory: str | None = None
    quarantined: int = 0
    refreshing: bool = False

    @property
    def degraded(self) -> bool:
        """True when the remote could not be used and cached data is shown instead."""
        return self.advisory is not None


@dataclass(frozen=True)
class SaveResult:
    collection_key: str
    record: Record
    confirmed: bool
    version: int | None = None
    advisory: str | None = None


@dataclass(frozen=True)
class DeleteResult:
    collection_key: str
    record_id: str
    confirmed: bool
    version: int | None = None
    advisory: str | None = None


@dataclass(frozen=True)
class PendingChanges:
    """Local-only writes and deletions awaiting confirmation."""

    collection_key: str
    records: tuple[Record, ...] = ()
    deletions: tuple[str, ...] = ()

    @property
    def is_empty(self) -> bool:
        return not self.records and not self.deletions


@dataclass(frozen=True)
class RetryReport:
    collection_key: str
    confirmed: list[str] = field(default_factory=list)
    failed: list[str] = field(default_factory=list)
    version: int | None = None


class ChangeEvent(BaseModel):
    """Snapshot of one collection, broadcast after every cache write."""

    collection_key: str
    records: list[Record] = Field(default_factory=list)
    version: int
    origin: str
    published_at: datetime
