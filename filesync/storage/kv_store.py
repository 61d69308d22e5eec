"""Namespaced async key-value and blob stores on top of SQLAlchemy."""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from sqlalchemy import delete, select
from sqlalchemy.exc import SQLAlchemyError

from filesync.exceptions import PersistFailed
from filesync.models import BlobCacheEntry, KeyValueEntry

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker


class KeyValueStore:
    """JSON values under string keys, isolated by namespace.

    Every call runs in its own session and commits before returning, so a
    successful ``set`` is durable once awaited.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession], namespace: str) -> None:
        self._session_factory = session_factory
        self.namespace = namespace

    async def get(self, key: str) -> Any | None:
        """Return the stored value, or None if the key is absent."""
        try:
            async with self._session_factory() as session:
                row = await session.get(KeyValueEntry, (self.namespace, key))
        except SQLAlchemyError as exc:
            msg = f"Failed to read {self.namespace}/{key}"
            raise PersistFailed(msg) from exc
        if row is None:
            return None
        return json.loads(row.value)

    async def set(self, key: str, value: Any) -> None:
        """Insert or overwrite ``key``."""
        payload = json.dumps(value, separators=(",", ":"))
        try:
            async with self._session_factory() as session:
                await session.merge(KeyValueEntry(namespace=self.namespace, key=key, value=payload))
                await session.commit()
        except SQLAlchemyError as exc:
            msg = f"Failed to write {self.namespace}/{key}"
            raise PersistFailed(msg) from exc

    async def delete(self, key: str) -> None:
        """Remove ``key`` if present."""
        try:
            async with self._session_factory() as session:
                await session.execute(
                    delete(KeyValueEntry).where(
                        KeyValueEntry.namespace == self.namespace,
                        KeyValueEntry.key == key,
                    )
                )
                await session.commit()
        except SQLAlchemyError as exc:
            msg = f"Failed to delete {self.namespace}/{key}"
            raise PersistFailed(msg) from exc

    async def keys(self) -> list[str]:
        """List all keys in this namespace."""
        try:
            async with self._session_factory() as session:
                result = await session.execute(
                    select(KeyValueEntry.key).where(KeyValueEntry.namespace == self.namespace)
                )
        except SQLAlchemyError as exc:
            msg = f"Failed to list keys in {self.namespace}"
            raise PersistFailed(msg) from exc
        return sorted(result.scalars().all())


@dataclass
class CacheWriteResult:
    """Outcome of a best-effort cache write."""

    key: str
    success: bool
    error: str | None = None


class BinaryCache:
    """Byte payloads keyed by string, isolated by cache name.

    Writes never raise: they report failure through ``CacheWriteResult`` and it
    is up to the caller to log or act on it. Concurrent writes to the same key
    are idempotent overwrites.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession], name: str) -> None:
        self._session_factory = session_factory
        self.name = name

    async def match(self, key: str) -> bytes | None:
        """Return cached bytes for ``key`` or None on a miss."""
        try:
            async with self._session_factory() as session:
                row = await session.get(BlobCacheEntry, (self.name, key))
        except SQLAlchemyError as exc:
            msg = f"Failed to read cache entry {self.name}/{key}"
            raise PersistFailed(msg) from exc
        return None if row is None else row.data

    async def put(self, key: str, data: bytes) -> CacheWriteResult:
        """Store ``data`` under ``key``, overwriting any existing entry."""
        try:
            async with self._session_factory() as session:
                await session.merge(BlobCacheEntry(namespace=self.name, key=key, data=data))
                await session.commit()
        except SQLAlchemyError as exc:
            return CacheWriteResult(key=key, success=False, error=str(exc))
        return CacheWriteResult(key=key, success=True)

    async def delete(self, key: str) -> None:
        """Drop ``key`` from the cache if present."""
        try:
            async with self._session_factory() as session:
                await session.execute(
                    delete(BlobCacheEntry).where(
                        BlobCacheEntry.namespace == self.name,
                        BlobCacheEntry.key == key,
                    )
                )
                await session.commit()
        except SQLAlchemyError as exc:
            msg = f"Failed to delete cache entry {self.name}/{key}"
            raise PersistFailed(msg) from exc
