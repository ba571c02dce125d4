"""Sync services: reconciliation engine and change propagation."""

from loomsync.core.services.bus import ChangeBus, Handler
from loomsync.core.services.reconciliation import (
    ADVISORY_CACHED,
    ADVISORY_DELETED_LOCALLY,
    ADVISORY_DELETED_MEANWHILE,
    ADVISORY_IMPLAUSIBLE,
    ADVISORY_NOTHING_CACHED,
    ADVISORY_SAVED_LOCALLY,
    PendingListener,
    ReconciliationEngine,
    SyncSettings,
)
from loomsync.core.services.transports import BroadcastTransport, FileJournalTransport, LocalBroadcastTransport

__all__ = [
    "ADVISORY_CACHED",
    "ADVISORY_DELETED_LOCALLY",
    "ADVISORY_DELETED_MEANWHILE",
    "ADVISORY_IMPLAUSIBLE",
    "ADVISORY_NOTHING_CACHED",
    "ADVISORY_SAVED_LOCALLY",
    "BroadcastTransport",
    "ChangeBus",
    "FileJournalTransport",
    "Handler",
    "LocalBroadcastTransport",
    "PendingListener",
    "ReconciliationEngine",
    "SyncSettings",
]
