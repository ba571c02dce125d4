"""Remote collection stores."""

from loomsync.core.data.remote.base import RemoteCollectionStore, RemoteRow
from loomsync.core.data.remote.file import JsonFileRemoteStore
from loomsync.core.data.remote.memory import InMemoryRemoteStore

__all__ = ["InMemoryRemoteStore", "JsonFileRemoteStore", "RemoteCollectionStore", "RemoteRow"]
