"""Reconciler: merge fetched files into the local snapshot."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Iterable

    from filesync.schemas.collection import Collection
    from filesync.schemas.file import EnteFile
    from filesync.storage.sync_store import SnapshotStore, VersionCursorStore

logger = logging.getLogger(__name__)


def merge_files(existing: Iterable[EnteFile], incoming: Iterable[EnteFile]) -> list[EnteFile]:
    """Merge ``incoming`` into ``existing`` by file id and version.

    For each id only the copy with the greatest ``updation_time`` survives (on a
    tie, the one seen last). Surviving tombstones are dropped and the result is
    sorted by descending creation time. Re-merging the same records is a no-op.
    """
    latest: dict[int, EnteFile] = {}
    for file in (*existing, *incoming):
        current = latest.get(file.id)
        if current is None or current.updation_time <= file.updation_time:
            latest[file.id] = file

    kept = [file for file in latest.values() if not file.is_deleted]
    return sorted(kept, key=lambda file: file.creation_time, reverse=True)


def remove_deleted_collection_files(
    collections: Iterable[Collection], files: Iterable[EnteFile]
) -> list[EnteFile]:
    """Drop files whose collection is not among ``collections``."""
    known = {collection.id for collection in collections}
    return [file for file in files if file.collection_id in known]


def next_watermark(collection: Collection, incoming: list[EnteFile]) -> int:
    """Version to record for ``collection`` once ``incoming`` is merged.

    The last fetched record's version, or the collection's declared version
    when the diff came back empty.
    """
    if incoming:
        return incoming[-1].updation_time
    return collection.updation_time


class Reconciler:
    """Apply merged pages to the persisted snapshot, then advance the watermark."""

    def __init__(self, snapshots: SnapshotStore, cursors: VersionCursorStore) -> None:
        self.snapshots = snapshots
        self.cursors = cursors

    async def apply(
        self,
        collection: Collection,
        existing: list[EnteFile],
        incoming: list[EnteFile],
    ) -> tuple[list[EnteFile], int]:
        """Merge, persist the snapshot, then persist the collection's watermark.

        Returns the merged snapshot and the watermark now in effect.

        Raises PersistFailed. If the snapshot write fails the watermark is left
        untouched, so the same records are fetched again on the next pass.
        """
        merged = merge_files(existing, incoming)
        await self.snapshots.save(merged)
        watermark = await self.cursors.advance(collection.id, next_watermark(collection, incoming))
        logger.debug(
            "Collection %d merged %d file(s); snapshot has %d, watermark %d",
            collection.id,
            len(incoming),
            len(merged),
            watermark,
        )
        return merged, watermark
