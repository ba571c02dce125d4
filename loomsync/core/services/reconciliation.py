"""Reconciliation of a local collection cache with a remote store and other views."""

from __future__ import annotations

import asyncio
from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass, field, replace
from functools import partial
from typing import TYPE_CHECKING, Any
from uuid import uuid4

from pydantic import ValidationError

from loomsync.core.codec import contains_tracking_segments, decode_notes, encode_lifecycle, overlay_notes
from loomsync.core.data.cache import CacheEntry, CollectionCache, normalize_collection_key
from loomsync.core.data.remote import RemoteCollectionStore, RemoteRow
from loomsync.core.exceptions import (
    ErrorCode,
    ErrorTracker,
    RecordValidationError,
    RemoteStoreError,
    map_remote_error,
)
from loomsync.core.logging import get_logger, log_context
from loomsync.core.models import (
    DeleteResult,
    LifecyclePatch,
    LoadResult,
    LoadSource,
    PendingChanges,
    Record,
    RetryReport,
    SaveResult,
    SyncState,
)
from loomsync.core.patterns import ExponentialBackoffRetry, RetryConfig
from loomsync.core.services.bus import ChangeBus

if TYPE_CHECKING:
    from loomsync.core.config import LoomSyncConfig

logger = get_logger(__name__)

PendingListener = Callable[[str, str], None]

ADVISORY_CACHED = "Remote store unavailable, showing cached data."
ADVISORY_NOTHING_CACHED = "Remote store unavailable and nothing is cached yet."
ADVISORY_IMPLAUSIBLE = "Remote store returned fewer records than are cached, showing cached data."
ADVISORY_SAVED_LOCALLY = "Remote store unavailable, the change was saved locally and is pending."
ADVISORY_DELETED_LOCALLY = "Remote store unavailable, the deletion was recorded locally and is pending."
ADVISORY_DELETED_MEANWHILE = "The record was deleted by another view while saving."

_LOCAL_KEYS = ("updated_at_local", "updatedAtLocal", "sync_state", "syncState")


@dataclass(frozen=True)
class SyncSettings:
    """Tunables for :class:`ReconciliationEngine`."""

    fresh_threshold_ms: float = 30_000
    remote_timeout: float = 30.0
    retry: RetryConfig = field(default_factory=RetryConfig)

    @classmethod
    def from_config(cls, config: LoomSyncConfig) -> SyncSettings:
        return cls(
            fresh_threshold_ms=config.cache.fresh_threshold_ms,
            remote_timeout=config.remote.timeout,
            retry=RetryConfig(
                max_attempts=config.remote.max_retries,
                base_delay=config.remote.base_delay,
                max_delay=config.remote.max_delay,
            ),
        )


def _validation_errors(exc: ValidationError) -> dict[str, str]:
    return {".".join(str(part) for part in error["loc"]) or "record": error["msg"] for error in exc.errors()}


class ReconciliationEngine:
    """Keeps one view's cache consistent with the remote store.

    Cache reads and writes are synchronous; the only suspension points are
    remote calls, each bounded by ``settings.remote_timeout``. Every cache
    write that changes a collection is published on the bus with the write's
    version.
    """

    def __init__(
        self,
        cache: CollectionCache,
        remote: RemoteCollectionStore,
        bus: ChangeBus | None = None,
        settings: SyncSettings | None = None,
        *,
        id_factory: Callable[[], str] | None = None,
    ) -> None:
        self._cache = cache
        self._remote = remote
        self._bus = bus or ChangeBus()
        self._settings = settings or SyncSettings()
        self._id_factory = id_factory or (lambda: uuid4().hex)
        self._inflight: dict[str, asyncio.Task[LoadResult]] = {}
        self._pending_listeners: list[PendingListener] = []
        self._errors = ErrorTracker()

    @property
    def view_id(self) -> str:
        return self._bus.view_id

    @property
    def bus(self) -> ChangeBus:
        return self._bus

    @property
    def cache(self) -> CollectionCache:
        return self._cache

    # ------------------------------------------------------------------ load

    async def load(self, collection_key: str, *, force: bool = False, background: bool = False) -> LoadResult:
        """Return the collection, reconciling with the remote store when the cache is not fresh.

        Args:
            collection_key: Collection to load
            force: Skip the freshness check and always consult the remote
            background: Return a stale cache immediately and reconcile in a background task
        """
        key = self._key(collection_key)
        with log_context(collection_key=key, view_id=self.view_id):
            if not force:
                cached = self._cache.read(key)
                if cached is not None and not cached.is_empty:
                    if self._cache.is_fresh(key, self._settings.fresh_threshold_ms):
                        logger.debug("cache is fresh, skipping remote fetch", version=cached.version)
                        return self._result(cached, LoadSource.CACHE)
                    if background:
                        self._inflight_task(key)
                        return replace(self._result(cached, LoadSource.CACHE), refreshing=True)
            return await asyncio.shield(self._inflight_task(key))

    def _inflight_task(self, key: str) -> asyncio.Task[LoadResult]:
        task = self._inflight.get(key)
        if task is None or task.done():
            task = asyncio.create_task(self._reconcile(key))
            self._inflight[key] = task
            task.add_done_callback(partial(self._finish_inflight, key))
        return task

    def _finish_inflight(self, key: str, task: asyncio.Task[LoadResult]) -> None:
        if self._inflight.get(key) is task:
            del self._inflight[key]
        if not task.cancelled() and task.exception() is not None:
            logger.opt(exception=task.exception()).error("reconciliation failed", collection_key=key)

    async def _reconcile(self, key: str) -> LoadResult:
        try:
            rows = await self._call_remote("fetch_all", key, self._remote.fetch_all, key)
        except RemoteStoreError:
            return self._fallback(key)

        # read after the await so writes made meanwhile are kept
        cached = self._cache.read(key)
        fetched, quarantined = self._ingest(key, rows, cached.tombstones if cached else {})

        if cached is None or cached.is_empty:
            return self._adopt(key, cached, fetched, quarantined)

        if len(fetched) < len(cached.records):
            self._errors.record_error(ErrorCode.REMOTE_IMPLAUSIBLE.value, self._remote.name, "fetch_all")
            logger.warning(
                "remote returned fewer records than the cache, keeping the cache",
                remote_count=len(fetched),
                cached_count=len(cached.records),
            )
            return self._result(cached, LoadSource.CACHE, advisory=ADVISORY_IMPLAUSIBLE, quarantined=quarantined)

        known = set(cached.ids)
        additions = [record for record in fetched if record.id not in known]
        entry = self._cache.write(key, [*cached.records, *additions])
        if not additions:
            return self._result(entry, LoadSource.CACHE, quarantined=quarantined)
        logger.info("merged remote-only records into the cache", added=len(additions))
        self._publish(entry)
        return self._result(entry, LoadSource.MERGED, quarantined=quarantined)

    def _adopt(self, key: str, cached: CacheEntry | None, fetched: list[Record], quarantined: int) -> LoadResult:
        if not fetched:
            return LoadResult(
                collection_key=key,
                records=(),
                source=LoadSource.EMPTY,
                version=cached.version if cached else None,
                quarantined=quarantined,
            )
        entry = self._cache.write(key, fetched)
        logger.info("adopted remote collection", count=len(entry.records))
        self._publish(entry)
        return self._result(entry, LoadSource.REMOTE, quarantined=quarantined)

    def _fallback(self, key: str) -> LoadResult:
        cached = self._cache.read(key)
        if cached is None or cached.is_empty:
            return LoadResult(
                collection_key=key,
                records=(),
                source=LoadSource.EMPTY,
                version=cached.version if cached else None,
                advisory=ADVISORY_NOTHING_CACHED,
            )
        return self._result(cached, LoadSource.CACHE, advisory=ADVISORY_CACHED)

    async def force_refresh(self, collection_key: str) -> LoadResult:
        """Reload from the remote store, letting remote values win for confirmed records.

        Pending local records keep their local values and an empty or failed
        remote response never erases the cache.
        """
        key = self._key(collection_key)
        with log_context(collection_key=key, view_id=self.view_id):
            try:
                rows = await self._call_remote("fetch_all", key, self._remote.fetch_all, key)
            except RemoteStoreError:
                return self._fallback(key)

            cached = self._cache.read(key)
            fetched, quarantined = self._ingest(key, rows, cached.tombstones if cached else {})
            if cached is None or cached.is_empty:
                return self._adopt(key, cached, fetched, quarantined)
            if not fetched:
                logger.warning("remote returned nothing on refresh, keeping the cache")
                return self._result(cached, LoadSource.CACHE, advisory=ADVISORY_IMPLAUSIBLE, quarantined=quarantined)

            incoming = {record.id: record for record in fetched}
            merged: list[Record] = []
            changed = False
            for existing in cached.records:
                remote_copy = incoming.pop(existing.id, None)
                if remote_copy is None or existing.is_pending or self._same_content(existing, remote_copy):
                    merged.append(existing)
                else:
                    merged.append(remote_copy)
                    changed = True
            if incoming:
                merged.extend(incoming.values())
                changed = True

            entry = self._cache.write(key, merged)
            if changed:
                self._publish(entry)
            return self._result(entry, LoadSource.MERGED if changed else LoadSource.CACHE, quarantined=quarantined)

    # ----------------------------------------------------------------- write

    async def save(
        self,
        collection_key: str,
        record: Record | Mapping[str, Any],
        patch: LifecyclePatch | Mapping[str, Any] | None = None,
    ) -> SaveResult:
        """Create or update a record.

        The lifecycle is re-encoded from the cached copy of the record (when
        one exists), overlaid with any tags or note text the caller wrote into
        ``record.raw_notes``, and ``patch`` is applied last. If the remote store
        cannot be reached the record is kept locally as pending.

        Raises:
            RecordValidationError: The input is invalid. Nothing is written.
        """
        key = self._key(collection_key)
        draft = self._coerce_draft(key, record)
        lifecycle_patch = self._coerce_patch(patch)
        with log_context(collection_key=key, view_id=self.view_id):
            cached = self._cache.read(key)
            if draft.id is not None and cached is not None and draft.id in cached.tombstones:
                raise RecordValidationError(
                    f"record {draft.id!r} has been deleted",
                    error_code=ErrorCode.RECORD_DELETED.value,
                    details={"collection_key": key, "record_id": draft.id},
                )
            stored = cached.get(draft.id) if cached is not None else None
            try:
                outgoing = self._prepare(draft, stored, lifecycle_patch)
            except ValidationError as exc:
                raise RecordValidationError("record failed validation", _validation_errors(exc)) from exc
            return await self._push(key, outgoing)

    async def update(
        self,
        collection_key: str,
        record_id: str,
        patch: LifecyclePatch | Mapping[str, Any] | None = None,
        **fields: Any,
    ) -> SaveResult:
        """Update a cached record by id, applying ``patch`` and plain field changes."""
        key = self._key(collection_key)
        record_id = self._record_id(record_id)
        cached = self._cache.read(key)
        stored = cached.get(record_id) if cached is not None else None
        if stored is None:
            raise RecordValidationError(
                f"record {record_id!r} not found in {key!r}",
                error_code=ErrorCode.RECORD_NOT_FOUND.value,
                details={"collection_key": key, "record_id": record_id},
            )
        try:
            draft = Record.model_validate({**stored.model_dump(), **fields})
        except ValidationError as exc:
            raise RecordValidationError("record update failed validation", _validation_errors(exc)) from exc
        return await self.save(key, draft, patch)

    def _coerce_draft(self, key: str, record: Record | Mapping[str, Any]) -> Record:
        if isinstance(record, Record):
            draft = record
        elif isinstance(record, Mapping):
            data = dict(record)
            if "collection_key" not in data and "collectionKey" not in data:
                data["collection_key"] = key
            try:
                draft = Record.model_validate(data)
            except ValidationError as exc:
                raise RecordValidationError("record failed validation", _validation_errors(exc)) from exc
        else:
            raise RecordValidationError(f"cannot save a {type(record).__name__}, expected a Record or a mapping")
        if draft.collection_key != key:
            raise RecordValidationError(
                f"record belongs to {draft.collection_key!r}, not {key!r}",
                {"collection_key": "does not match the target collection"},
            )
        return draft

    @staticmethod
    def _coerce_patch(patch: LifecyclePatch | Mapping[str, Any] | None) -> LifecyclePatch | None:
        if patch is None or isinstance(patch, LifecyclePatch):
            result = patch
        elif isinstance(patch, Mapping):
            try:
                result = LifecyclePatch.model_validate(dict(patch))
            except ValidationError as exc:
                raise RecordValidationError("lifecycle patch failed validation", _validation_errors(exc)) from exc
        else:
            raise RecordValidationError(f"cannot apply a {type(patch).__name__} as a lifecycle patch")
        if result is not None and contains_tracking_segments(result.user_note):
            raise RecordValidationError(
                "note text must not contain tracking segments",
                {"user_note": "contains a Received / Dispatched / OriginalQty / Middleman segment"},
            )
        return result

    def _prepare(self, draft: Record, stored: Record | None, patch: LifecyclePatch | None) -> Record:
        if stored is None:
            lifecycle = decode_notes(draft.raw_notes)
        else:
            lifecycle = overlay_notes(stored.raw_notes, draft.raw_notes)
        updates: dict[str, Any] = {
            "id": draft.id or self._id_factory(),
            "updated_at_local": None,
            "sync_state": SyncState.SYNCED,
        }
        if patch is not None:
            lifecycle = lifecycle.apply(patch)
            # the sent stage is stored in structured columns
            if "sent" in patch.model_fields_set:
                if patch.sent is not None:
                    updates["base_quantity"] = patch.sent.quantity
                    updates["sent_date"] = patch.sent.date
                else:
                    updates["sent_date"] = None
        updates["raw_notes"] = encode_lifecycle(lifecycle)
        return draft.model_copy(update=updates)

    async def _push(self, key: str, outgoing: Record) -> SaveResult:
        try:
            echoed = await self._call_remote("upsert", key, self._remote.upsert, key, outgoing)
        except RemoteStoreError:
            local = outgoing.model_copy(update={"sync_state": SyncState.PENDING})
            entry, stored = self._merge_record(key, local)
            if stored is not None:
                self._notify_pending(key, local.id)
            return SaveResult(
                collection_key=key,
                record=stored or local,
                confirmed=False,
                version=entry.version if entry else None,
                advisory=ADVISORY_SAVED_LOCALLY if stored is not None else ADVISORY_DELETED_MEANWHILE,
            )

        confirmed = self._confirmed(key, echoed, outgoing)
        entry, stored = self._merge_record(key, confirmed, replace_ids=(outgoing.id,))
        logger.info("record saved", record_id=confirmed.id)
        return SaveResult(
            collection_key=key,
            record=stored or confirmed,
            confirmed=True,
            version=entry.version if entry else None,
            advisory=None if stored is not None else ADVISORY_DELETED_MEANWHILE,
        )

    def _confirmed(self, key: str, echoed: RemoteRow | None, outgoing: Record) -> Record:
        if echoed is None:
            return outgoing
        try:
            return self._from_remote(key, echoed)
        except (ValidationError, TypeError, ValueError) as exc:
            logger.warning("remote echoed an unreadable row, keeping the sent copy", error=str(exc))
            return outgoing

    def _merge_record(
        self,
        key: str,
        record: Record,
        replace_ids: Iterable[str | None] = (),
    ) -> tuple[CacheEntry | None, Record | None]:
        """Insert or replace ``record`` in a fresh read of the cache and publish the result."""
        current = self._cache.read(key)
        if current is not None and record.id in current.tombstones:
            logger.warning("record was deleted while saving, not restoring it", record_id=record.id)
            return current, None

        ids = {record.id, *replace_ids}
        records: list[Record] = []
        placed = False
        for existing in current.records if current is not None else ():
            if existing.id in ids:
                if not placed:
                    records.append(record)
                    placed = True
            else:
                records.append(existing)
        if not placed:
            records.append(record)

        entry = self._cache.write(key, records)
        self._publish(entry)
        return entry, entry.get(record.id)

    # ---------------------------------------------------------------- delete

    async def delete(self, collection_key: str, record_id: str) -> DeleteResult:
        """Delete a record remotely and locally; the id is tombstoned either way."""
        key = self._key(collection_key)
        record_id = self._record_id(record_id)
        with log_context(collection_key=key, view_id=self.view_id):
            try:
                await self._call_remote("delete", key, self._remote.delete, key, record_id)
            except RemoteStoreError:
                entry = self._tombstone(key, record_id, SyncState.PENDING)
                self._notify_pending(key, record_id)
                return DeleteResult(key, record_id, confirmed=False, version=entry.version, advisory=ADVISORY_DELETED_LOCALLY)
            entry = self._tombstone(key, record_id, SyncState.SYNCED)
            return DeleteResult(key, record_id, confirmed=True, version=entry.version)

    def mark_deleted(self, collection_key: str, record_id: str) -> DeleteResult:
        """Record a deletion that already happened on the remote store."""
        key = self._key(collection_key)
        record_id = self._record_id(record_id)
        entry = self._tombstone(key, record_id, SyncState.SYNCED)
        return DeleteResult(key, record_id, confirmed=True, version=entry.version)

    def _tombstone(self, key: str, record_id: str, state: SyncState) -> CacheEntry:
        current = self._cache.read(key)
        records = [record for record in (current.records if current else ()) if record.id != record_id]
        tombstones = {**(current.tombstones if current else {}), record_id: state}
        entry = self._cache.write(key, records, tombstones=tombstones)
        self._publish(entry)
        return entry

    # --------------------------------------------------------------- pending

    def pending(self, collection_key: str) -> PendingChanges:
        """Writes and deletions the remote store has not confirmed yet."""
        key = self._key(collection_key)
        entry = self._cache.read(key)
        if entry is None:
            return PendingChanges(collection_key=key)
        return PendingChanges(
            collection_key=key,
            records=tuple(record for record in entry.records if record.is_pending),
            deletions=tuple(record_id for record_id, state in entry.tombstones.items() if state is SyncState.PENDING),
        )

    async def retry_pending(self, collection_key: str) -> RetryReport:
        """Replay pending writes and deletions with exponential backoff.

        Only runs when called; the engine never retries on its own.
        """
        key = self._key(collection_key)
        changes = self.pending(key)
        confirmed: list[str] = []
        failed: list[str] = []
        version: int | None = None

        with log_context(collection_key=key, view_id=self.view_id):
            for record in changes.records:
                outgoing = record.model_copy(update={"sync_state": SyncState.SYNCED, "updated_at_local": None})
                retry = ExponentialBackoffRetry(self._settings.retry)
                try:
                    echoed = await retry.execute(self._call_remote, "upsert", key, self._remote.upsert, key, outgoing)
                except RemoteStoreError:
                    failed.append(record.id)
                    continue
                confirmed.append(record.id)
                current = self._cache.read(key)
                if current is not None and current.get(record.id) != record:
                    logger.info("record changed locally while retrying, keeping the newer copy", record_id=record.id)
                    continue
                entry, _ = self._merge_record(key, self._confirmed(key, echoed, outgoing), replace_ids=(record.id,))
                version = entry.version if entry else version

            for record_id in changes.deletions:
                retry = ExponentialBackoffRetry(self._settings.retry)
                try:
                    await retry.execute(self._call_remote, "delete", key, self._remote.delete, key, record_id)
                except RemoteStoreError:
                    failed.append(record_id)
                    continue
                confirmed.append(record_id)
                version = self._tombstone(key, record_id, SyncState.SYNCED).version

            if confirmed or failed:
                logger.info("pending changes replayed", confirmed=len(confirmed), failed=len(failed))
        return RetryReport(collection_key=key, confirmed=confirmed, failed=failed, version=version)

    def add_pending_listener(self, listener: PendingListener) -> Callable[[], None]:
        """Call ``listener(collection_key, record_id)`` whenever a change falls back to local-only."""
        self._pending_listeners.append(listener)

        def remove() -> None:
            if listener in self._pending_listeners:
                self._pending_listeners.remove(listener)

        return remove

    def _notify_pending(self, key: str, record_id: str) -> None:
        for listener in list(self._pending_listeners):
            try:
                listener(key, record_id)
            except Exception:
                logger.opt(exception=True).error("pending listener failed", record_id=record_id)

    def error_stats(self) -> dict[str, Any]:
        return self._errors.get_error_stats()

    async def close(self) -> None:
        """Cancel background reconciliations."""
        tasks = list(self._inflight.values())
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self._inflight.clear()

    # --------------------------------------------------------------- helpers

    async def _call_remote(self, operation: str, key: str, func: Callable[..., Any], *args: Any) -> Any:
        timeout = self._settings.remote_timeout
        try:
            return await asyncio.wait_for(func(*args), timeout=timeout)
        except Exception as exc:
            error = map_remote_error(exc, self._remote.name, operation, timeout=timeout, collection_key=key)
            self._errors.record_error(error.error_code, self._remote.name, operation)
            logger.warning("remote call failed", operation=operation, error_code=error.error_code, error=error.message)
            if error is exc:
                raise
            raise error from exc

    def _ingest(self, key: str, rows: Any, tombstones: Mapping[str, SyncState]) -> tuple[list[Record], int]:
        """Validate remote rows. Malformed rows are quarantined, tombstoned ids dropped."""
        if rows is None:
            return [], 0
        if isinstance(rows, (str, bytes, Mapping)) or not isinstance(rows, Iterable):
            logger.warning("remote returned an unexpected payload", payload_type=type(rows).__name__)
            return [], 1

        records: list[Record] = []
        seen: set[str] = set()
        quarantined = 0
        for index, row in enumerate(rows):
            try:
                record = self._from_remote(key, row)
            except (ValidationError, TypeError, ValueError) as exc:
                quarantined += 1
                logger.warning("quarantined malformed remote row", index=index, error=str(exc))
                continue
            if record.id in tombstones:
                continue
            if record.id in seen:
                quarantined += 1
                logger.warning("quarantined duplicate remote row", index=index, record_id=record.id)
                continue
            seen.add(record.id)
            records.append(record)
        if quarantined:
            self._errors.record_error(ErrorCode.VALIDATION_ERROR.value, self._remote.name, "fetch_all")
        return records, quarantined

    @staticmethod
    def _from_remote(key: str, row: RemoteRow) -> Record:
        if isinstance(row, Record):
            data = row.model_dump()
        elif isinstance(row, Mapping):
            data = dict(row)
        else:
            raise TypeError(f"unexpected remote row of type {type(row).__name__}")
        for local_key in _LOCAL_KEYS:
            data.pop(local_key, None)
        if "collection_key" not in data and "collectionKey" not in data:
            data["collection_key"] = key
        record = Record.model_validate(data)
        if record.id is None:
            raise ValueError("remote row has no id")
        if record.collection_key != key:
            raise ValueError(f"remote row belongs to {record.collection_key!r}")
        return record

    @staticmethod
    def _same_content(cached: Record, remote: Record) -> bool:
        return cached.model_copy(update={"updated_at_local": None}) == remote

    @staticmethod
    def _key(collection_key: str) -> str:
        try:
            return normalize_collection_key(collection_key)
        except ValueError as exc:
            raise RecordValidationError(str(exc), {"collection_key": str(exc)}) from exc

    @staticmethod
    def _record_id(record_id: Any) -> str:
        if record_id is None or isinstance(record_id, bool) or not str(record_id).strip():
            raise RecordValidationError("record id is required", {"id": "missing"})
        return str(record_id).strip()

    def _publish(self, entry: CacheEntry) -> None:
        self._bus.publish(entry.collection_key, entry.records, version=entry.version)

    @staticmethod
    def _result(entry: CacheEntry, source: LoadSource, **extra: Any) -> LoadResult:
        return LoadResult(
            collection_key=entry.collection_key,
            records=entry.records,
            source=source if not entry.is_empty else LoadSource.EMPTY,
            version=entry.version,
            **extra,
        )
