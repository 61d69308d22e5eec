"""SQLAlchemy ORM models for filesync."""

from filesync.models.base import Base
from filesync.models.kv import BlobCacheEntry, KeyValueEntry

__all__ = [
    "Base",
    "BlobCacheEntry",
    "KeyValueEntry",
]
