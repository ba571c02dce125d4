"""loomsync - 本地优先的集合同步引擎

Keeps a durable local cache of a remote record collection, reconciles it with
the remote store and with other open views, and carries each record's
lifecycle (received / dispatched quantities, intermediary, note) inside the
record's free-text notes.
"""

from loomsync.core.client import SyncClient
from loomsync.core.codec import decode_notes, encode_lifecycle, strip_tracking_segments
from loomsync.core.data.cache import CollectionCache, DuckDBCollectionCache, InMemoryCollectionCache
from loomsync.core.data.remote import InMemoryRemoteStore, JsonFileRemoteStore, RemoteCollectionStore
from loomsync.core.exceptions import LoomSyncError, RecordValidationError
from loomsync.core.models import (
    DIRECT,
    Lifecycle,
    LifecyclePatch,
    LoadResult,
    LoadSource,
    Record,
    SaveResult,
    StageEntry,
    SyncState,
)
from loomsync.core.services import ChangeBus, ReconciliationEngine, SyncSettings

__version__ = "0.1.0"

__all__ = [
    "DIRECT",
    "ChangeBus",
    "CollectionCache",
    "DuckDBCollectionCache",
    "InMemoryCollectionCache",
    "InMemoryRemoteStore",
    "JsonFileRemoteStore",
    "Lifecycle",
    "LifecyclePatch",
    "LoadResult",
    "LoadSource",
    "LoomSyncError",
    "Record",
    "RecordValidationError",
    "ReconciliationEngine",
    "RemoteCollectionStore",
    "SaveResult",
    "StageEntry",
    "SyncClient",
    "SyncSettings",
    "SyncState",
    "__version__",
    "decode_notes",
    "encode_lifecycle",
    "strip_tracking_segments",
]
