"""Persistent sync state: per-collection watermarks and the file snapshot."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from filesync.schemas.file import EnteFile

if TYPE_CHECKING:
    from filesync.storage.kv_store import KeyValueStore

logger = logging.getLogger(__name__)

SNAPSHOT_KEY = "files"


def cursor_key(collection_id: int) -> str:
    """Storage key holding the watermark of ``collection_id``."""
    return f"{collection_id}-time"


class VersionCursorStore:
    """Last merged version per collection."""

    def __init__(self, store: KeyValueStore) -> None:
        self._store = store

    async def get(self, collection_id: int) -> int | None:
        """Return the stored watermark, or None if the collection was never merged."""
        value = await self._store.get(cursor_key(collection_id))
        return None if value is None else int(value)

    async def advance(self, collection_id: int, version: int) -> int:
        """Move the watermark forward to ``version``.

        The watermark never decreases: a lower ``version`` leaves the stored
        value untouched. Returns the watermark in effect after the call.
        """
        current = await self.get(collection_id)
        if current is not None and version <= current:
            if version < current:
                logger.warning(
                    "Ignoring watermark regression for collection %d: %d -> %d",
                    collection_id,
                    current,
                    version,
                )
            return current
        await self._store.set(cursor_key(collection_id), version)
        return version


class SnapshotStore:
    """The single deduplicated, tombstone-free, sorted list of files."""

    def __init__(self, store: KeyValueStore) -> None:
        self._store = store

    async def load(self) -> list[EnteFile]:
        data = await self._store.get(SNAPSHOT_KEY)
        if not data:
            return []
        return [EnteFile.model_validate(item) for item in data]

    async def save(self, files: list[EnteFile]) -> None:
        await self._store.set(SNAPSHOT_KEY, [f.to_storage() for f in files])
