"""Change propagation between the views of a collection."""

from __future__ import annotations

import time
from collections import defaultdict
from collections.abc import Callable, Iterable
from datetime import UTC, datetime
from uuid import uuid4

from loomsync.core.logging import get_logger
from loomsync.core.models import ChangeEvent, Record
from loomsync.core.services.transports import BroadcastTransport

logger = get_logger(__name__)

Handler = Callable[[list[Record]], None]


class ChangeBus:
    """Publishes full collection snapshots to local subscribers and to other views.

    Each event carries the cache write version it was produced from. Per key,
    an event that is not newer than the last one delivered is dropped, so a
    late snapshot never replaces a newer one.

    Events from other views reach this view's subscribers only; the bus never
    writes to a cache. Views therefore converge through a shared cache (a
    DuckDB file opened by every view). Views with separate caches, such as one
    in-memory cache per client, keep their own cached copy until their next load.
    """

    def __init__(self, transport: BroadcastTransport | None = None, *, view_id: str | None = None):
        self.view_id = view_id or uuid4().hex
        self._transport = transport
        self._subscribers: dict[str, list[Handler]] = defaultdict(list)
        self._versions: dict[str, int] = {}
        if transport is not None:
            transport.start(self._on_transport_event)

    def subscribe(self, collection_key: str, handler: Handler) -> Callable[[], None]:
        """Register ``handler`` for snapshots of ``collection_key`` and return an unsubscribe function."""
        handlers = self._subscribers[collection_key]
        handlers.append(handler)

        def unsubscribe() -> None:
            if handler in handlers:
                handlers.remove(handler)

        return unsubscribe

    def subscriber_count(self, collection_key: str) -> int:
        return len(self._subscribers.get(collection_key, ()))

    def last_version(self, collection_key: str) -> int | None:
        return self._versions.get(collection_key)

    def publish(self, collection_key: str, records: Iterable[Record], *, version: int | None = None) -> ChangeEvent:
        event = ChangeEvent(
            collection_key=collection_key,
            records=list(records),
            version=version if version is not None else time.time_ns() // 1000,
            origin=self.view_id,
            published_at=datetime.now(UTC),
        )
        self._dispatch(event)
        if self._transport is not None:
            try:
                self._transport.send(event)
            except Exception:
                logger.opt(exception=True).warning("change event could not be broadcast", collection_key=collection_key)
        return event

    def _on_transport_event(self, event: ChangeEvent) -> None:
        if event.origin == self.view_id:
            return
        self._dispatch(event)

    def _dispatch(self, event: ChangeEvent) -> None:
        key = event.collection_key
        last = self._versions.get(key)
        if last is not None and event.version <= last:
            logger.debug(
                "dropping stale change event",
                collection_key=key,
                version=event.version,
                last_version=last,
            )
            return
        self._versions[key] = event.version
        for handler in list(self._subscribers.get(key, ())):
            try:
                handler(list(event.records))
            except Exception:
                logger.opt(exception=True).error("change subscriber failed", collection_key=key)

    def close(self) -> None:
        if self._transport is not None:
            self._transport.stop()
        self._subscribers.clear()
