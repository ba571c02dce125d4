"""loomsync主客户端 - 组装缓存, 变更总线和同步引擎"""

from collections.abc import Callable, Mapping
from pathlib import Path
from typing import Any

from loomsync.core.config import BusConfig, CacheConfig, ConfigManager, LoomSyncConfig
from loomsync.core.data.cache import Clock, CollectionCache, DuckDBCollectionCache, InMemoryCollectionCache
from loomsync.core.data.remote import RemoteCollectionStore
from loomsync.core.logging import get_logger
from loomsync.core.models import DeleteResult, LifecyclePatch, LoadResult, PendingChanges, Record, RetryReport, SaveResult
from loomsync.core.services import (
    BroadcastTransport,
    ChangeBus,
    FileJournalTransport,
    LocalBroadcastTransport,
    ReconciliationEngine,
    SyncSettings,
)

logger = get_logger(__name__)


def create_cache(config: CacheConfig, clock: Clock | None = None) -> CollectionCache:
    """按配置创建本地缓存"""
    if config.backend == "memory":
        return InMemoryCollectionCache(clock=clock)
    return DuckDBCollectionCache(Path(config.path).expanduser(), clock=clock)


def create_transport(config: BusConfig) -> BroadcastTransport:
    """按配置创建广播通道"""
    if config.transport == "file":
        return FileJournalTransport(
            Path(config.journal_path).expanduser(),
            poll_interval=config.poll_interval,
            max_bytes=config.max_journal_bytes,
        )
    return LocalBroadcastTransport(config.channel)


class SyncClient:
    """loomsync主客户端

    One client is one view: it owns a cache handle, a bus endpoint and an
    engine. Create it inside a running event loop when the bus uses the file
    journal, so the journal poller can start.
    """

    def __init__(
        self,
        remote: RemoteCollectionStore,
        config: LoomSyncConfig | Mapping[str, Any] | None = None,
        *,
        cache: CollectionCache | None = None,
        transport: BroadcastTransport | None = None,
        clock: Clock | None = None,
        view_id: str | None = None,
    ) -> None:
        """初始化客户端

        Args:
            remote: 远程集合存储
            config: 配置对象, 或覆盖默认配置的嵌套字典
            cache: 自定义缓存 (默认按配置创建)
            transport: 自定义广播通道 (默认按配置创建)
            clock: 缓存使用的时钟
            view_id: 视图标识
        """
        if isinstance(config, LoomSyncConfig):
            self.config = config
        else:
            manager = ConfigManager()
            if config:
                manager.update_config(**config)
            self.config = manager.get_config()

        self.remote = remote
        self.cache = cache or create_cache(self.config.cache, clock)
        self.bus = ChangeBus(transport or create_transport(self.config.bus), view_id=view_id)
        self.engine = ReconciliationEngine(
            self.cache,
            remote,
            self.bus,
            SyncSettings.from_config(self.config),
        )
        logger.debug("sync client ready", view_id=self.bus.view_id, cache_backend=self.config.cache.backend)

    @property
    def view_id(self) -> str:
        return self.bus.view_id

    async def load(self, collection_key: str, *, force: bool = False, background: bool = False) -> LoadResult:
        return await self.engine.load(collection_key, force=force, background=background)

    async def refresh(self, collection_key: str) -> LoadResult:
        return await self.engine.force_refresh(collection_key)

    async def save(
        self,
        collection_key: str,
        record: Record | Mapping[str, Any],
        patch: LifecyclePatch | Mapping[str, Any] | None = None,
    ) -> SaveResult:
        return await self.engine.save(collection_key, record, patch)

    async def update(
        self,
        collection_key: str,
        record_id: str,
        patch: LifecyclePatch | Mapping[str, Any] | None = None,
        **fields: Any,
    ) -> SaveResult:
        return await self.engine.update(collection_key, record_id, patch, **fields)

    async def delete(self, collection_key: str, record_id: str) -> DeleteResult:
        return await self.engine.delete(collection_key, record_id)

    def subscribe(self, collection_key: str, handler: Callable[[list[Record]], None]) -> Callable[[], None]:
        return self.bus.subscribe(collection_key, handler)

    def pending(self, collection_key: str) -> PendingChanges:
        return self.engine.pending(collection_key)

    async def retry_pending(self, collection_key: str) -> RetryReport:
        return await self.engine.retry_pending(collection_key)

    async def close(self) -> None:
        await self.engine.close()
        self.bus.close()
        self.cache.close()

    async def __aenter__(self) -> "SyncClient":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()
