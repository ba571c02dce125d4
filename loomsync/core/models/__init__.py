"""Data models."""

from loomsync.core.models.base import LOCAL_FIELDS, Record, SyncState
from loomsync.core.models.events import (
    ChangeEvent,
    DeleteResult,
    LoadResult,
    LoadSource,
    PendingChanges,
    RetryReport,
    SaveResult,
)
from loomsync.core.models.lifecycle import DIRECT, Lifecycle, LifecyclePatch, StageEntry, normalize_note

__all__ = [
    "DIRECT",
    "LOCAL_FIELDS",
    "ChangeEvent",
    "DeleteResult",
    "Lifecycle",
    "LifecyclePatch",
    "LoadResult",
    "LoadSource",
    "PendingChanges",
    "Record",
    "RetryReport",
    "SaveResult",
    "StageEntry",
    "SyncState",
    "normalize_note",
]
