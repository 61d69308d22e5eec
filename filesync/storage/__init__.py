"""Local persistence: namespaced key-value store, sync state and binary cache."""

from filesync.storage.kv_store import BinaryCache, CacheWriteResult, KeyValueStore
from filesync.storage.sync_store import SnapshotStore, VersionCursorStore

__all__ = [
    "BinaryCache",
    "CacheWriteResult",
    "KeyValueStore",
    "SnapshotStore",
    "VersionCursorStore",
]
