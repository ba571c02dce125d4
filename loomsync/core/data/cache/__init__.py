"""Local cache store."""

from loomsync.core.data.cache.base import CacheEntry, Clock, CollectionCache, normalize_collection_key, utc_now
from loomsync.core.data.cache.duckdb import DuckDBCollectionCache
from loomsync.core.data.cache.memory import InMemoryCollectionCache

__all__ = [
    "CacheEntry",
    "Clock",
    "CollectionCache",
    "DuckDBCollectionCache",
    "InMemoryCollectionCache",
    "normalize_collection_key",
    "utc_now",
]
