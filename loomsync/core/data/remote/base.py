"""
Remote collection store contract.

The engine only talks to the remote through this interface. Rows may come
back as plain mappings (any JSON-like payload) or as :class:`Record`
instances; the engine validates them on ingress.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Mapping, Sequence
from typing import Any

from loomsync.core.models import Record

RemoteRow = Mapping[str, Any] | Record


class RemoteCollectionStore(ABC):
    """Abstract base class for remote collection stores."""

    @property
    def name(self) -> str:
        """Store name used in logs and error payloads."""
        return type(self).__name__

    @abstractmethod
    async def fetch_all(self, collection_key: str) -> Sequence[RemoteRow]:
        """Return every row of the collection."""
        pass

    @abstractmethod
    async def upsert(self, collection_key: str, record: Record) -> RemoteRow | None:
        """
        Insert or replace a record.

        Returns:
            The row as stored by the remote, or None when the store does not echo it
        """
        pass

    @abstractmethod
    async def delete(self, collection_key: str, record_id: str) -> None:
        """Delete a record by id. Deleting an unknown id is not an error."""
        pass
