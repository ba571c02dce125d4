"""loomsync client."""

from loomsync.core.client.client import SyncClient, create_cache, create_transport

__all__ = ["SyncClient", "create_cache", "create_transport"]
