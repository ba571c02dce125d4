"""Transports carrying change events between views."""

from __future__ import annotations

import asyncio
import contextlib
from abc import ABC, abstractmethod
from collections.abc import Callable
from pathlib import Path
from typing import ClassVar

from pydantic import ValidationError

from loomsync.core.logging import get_logger
from loomsync.core.models import ChangeEvent

logger = get_logger(__name__)

Deliver = Callable[[ChangeEvent], None]


class BroadcastTransport(ABC):
    """Fire-and-forget channel to the other views of a collection."""

    @abstractmethod
    def start(self, deliver: Deliver) -> None:
        """Begin delivering events from other views to ``deliver``."""

    @abstractmethod
    def send(self, event: ChangeEvent) -> None:
        """Send an event to the other views. Must not block on them."""

    @abstractmethod
    def stop(self) -> None:
        """Stop receiving events."""


class LocalBroadcastTransport(BroadcastTransport):
    """Views living in the same process and sharing a channel name.

    Delivery is scheduled on the receiver's event loop, so peers observe a
    change eventually rather than during ``send``.
    """

    _channels: ClassVar[dict[str, list[LocalBroadcastTransport]]] = {}

    def __init__(self, channel: str = "loomsync"):
        self.channel = channel
        self._deliver: Deliver | None = None
        self._loop: asyncio.AbstractEventLoop | None = None

    def start(self, deliver: Deliver) -> None:
        self._deliver = deliver
        with contextlib.suppress(RuntimeError):
            self._loop = asyncio.get_running_loop()
        peers = self._channels.setdefault(self.channel, [])
        if self not in peers:
            peers.append(self)

    def send(self, event: ChangeEvent) -> None:
        for peer in list(self._channels.get(self.channel, ())):
            if peer is not self:
                peer._schedule(event.model_copy(deep=True))

    def _schedule(self, event: ChangeEvent) -> None:
        loop = self._loop
        if loop is None:
            with contextlib.suppress(RuntimeError):
                loop = asyncio.get_running_loop()
        if loop is None or loop.is_closed():
            self._receive(event)
        else:
            loop.call_soon_threadsafe(self._receive, event)

    def _receive(self, event: ChangeEvent) -> None:
        if self._deliver is not None:
            self._deliver(event)

    def stop(self) -> None:
        self._deliver = None
        peers = self._channels.get(self.channel, [])
        if self in peers:
            peers.remove(self)
        if not peers:
            self._channels.pop(self.channel, None)


class FileJournalTransport(BroadcastTransport):
    """Views in separate processes sharing an append-only JSON-lines journal.

    Every view appends the events it publishes and polls the journal for lines
    written by others. Readers start at the end of the file, so nothing is
    replayed across restarts. When the journal grows past ``max_bytes`` the
    next writer truncates it and readers reset to the beginning.
    """

    def __init__(self, path: str | Path, poll_interval: float = 0.5, max_bytes: int = 1_048_576):
        self.path = Path(path)
        self.poll_interval = poll_interval
        self.max_bytes = max_bytes
        self._deliver: Deliver | None = None
        self._offset = 0
        self._task: asyncio.Task[None] | None = None

    def start(self, deliver: Deliver) -> None:
        self._deliver = deliver
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self._offset = self._size()
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.debug("no running event loop, journal will only be read by poll_once()")
            return
        self._task = loop.create_task(self._poll_loop())

    def _size(self) -> int:
        try:
            return self.path.stat().st_size
        except FileNotFoundError:
            return 0

    def send(self, event: ChangeEvent) -> None:
        line = event.model_dump_json() + "\n"
        mode = "a"
        if self._size() + len(line) > self.max_bytes:
            mode = "w"
        try:
            with self.path.open(mode, encoding="utf-8") as handle:
                handle.write(line)
        except OSError as exc:
            logger.warning("failed to append change event to journal", path=str(self.path), error=str(exc))
            return
        if mode == "w" or self._offset > self._size():
            self._offset = 0
        # our own line is skipped by origin on the next poll

    def poll_once(self) -> int:
        """Deliver complete lines appended since the last poll. Returns the number delivered."""
        size = self._size()
        if size < self._offset:
            self._offset = 0
        if size == self._offset:
            return 0
        with self.path.open("rb") as handle:
            handle.seek(self._offset)
            chunk = handle.read(size - self._offset)
        end = chunk.rfind(b"\n")
        if end < 0:
            return 0
        self._offset += end + 1

        delivered = 0
        for line in chunk[: end + 1].splitlines():
            if not line.strip():
                continue
            try:
                event = ChangeEvent.model_validate_json(line)
            except ValidationError as exc:
                logger.warning("skipping unreadable journal line", path=str(self.path), error=str(exc))
                continue
            if self._deliver is not None:
                self._deliver(event)
                delivered += 1
        return delivered

    async def _poll_loop(self) -> None:
        while True:
            try:
                self.poll_once()
            except OSError as exc:
                logger.warning("journal poll failed", path=str(self.path), error=str(exc))
            await asyncio.sleep(self.poll_interval)

    def stop(self) -> None:
        if self._task is not None:
            self._task.cancel()
            self._task = None
        self._deliver = None
