"""Sync orchestrator: bring the local snapshot up to date with every collection."""

from __future__ import annotations

import asyncio

import logging
from dataclasses import dataclass, field, replace
from enum import StrEnum
from typing import TYPE_CHECKING

from filesync.exceptions import DecryptFailed, FetchFailed, PersistFailed
from filesync.services.decryption_service import decorate_page
from filesync.services.diff_service import fetch_diff
from filesync.services.reconcile_service import Reconciler, remove_deleted_collection_files

if TYPE_CHECKING:
    from collections.abc import Sequence

    from filesync.schemas.collection import Collection
    from filesync.schemas.file import EnteFile
    from filesync.services.crypto_service import CryptoWorker
    from filesync.services.http_service import HTTPService
    from filesync.storage.sync_store import SnapshotStore, VersionCursorStore

logger = logging.getLogger(__name__)


class CollectionState(StrEnum):
    """Where a collection got to during one sync pass."""

    PENDING = "pending"
    SKIPPED = "skipped"
    FETCHING = "fetching"
    DECRYPTING = "decrypting"
    MERGING = "merging"
    DONE = "done"
    FAILED = "failed"


@dataclass
class CollectionOutcome:
    """Per-collection report of a sync pass."""

    collection_id: int
    state: CollectionState = CollectionState.PENDING
    fetched: int = 0
    watermark: int | None = None
    error: str | None = None
    failed_during: CollectionState | None = None


@dataclass
class SyncResult:
    """Snapshot after a pass plus what happened to each collection."""

    files: list[EnteFile]
    is_updated: bool
    outcomes: dict[int, CollectionOutcome] = field(default_factory=dict)

    @property
    def failed(self) -> list[CollectionOutcome]:
        return [o for o in self.outcomes.values() if o.state == CollectionState.FAILED]


class SyncService:
    """Drive fetch, decrypt and merge for each collection in turn.

    One instance must own its stores: overlapping ``sync`` calls on the same
    instance are serialized, and separate instances must not share stores.
    """

    def __init__(
        self,
        http: HTTPService,
        worker: CryptoWorker,
        snapshots: SnapshotStore,
        cursors: VersionCursorStore,
        *,
        page_size: int = 100,
        max_pages: int = 10_000,
    ) -> None:
        self.http = http
        self.worker = worker
        self.snapshots = snapshots
        self.cursors = cursors
        self.reconciler = Reconciler(snapshots, cursors)
        self.page_size = page_size
        self.max_pages = max_pages
        self._lock = asyncio.Lock()

    async def local_files(self) -> list[EnteFile]:
        """Return the persisted snapshot."""
        return await self.snapshots.load()

    async def sync_data(
        self, token: str, collections: Sequence[Collection], width: int, height: int
    ) -> SyncResult:
        """Run ``sync`` and tag every returned file with display dimensions.

        The dimensions are attached to the returned copies only; the persisted
        snapshot never carries them.
        """
        result = await self.sync(token, collections)
        annotated = [file.model_copy(update={"w": width, "h": height}) for file in result.files]
        return replace(result, files=annotated)

    async def sync(self, token: str, collections: Sequence[Collection]) -> SyncResult:
        """Sync every collection and return the reconciled snapshot.

        Files of collections missing from ``collections`` are purged first.
        Failures are confined to their collection and reported in
        ``SyncResult.outcomes``; a failure to load the snapshot itself raises
        PersistFailed.
        """
        async with self._lock:
            files = await self.snapshots.load()
            files = await self._purge_stale_collections(collections, files)

            outcomes: dict[int, CollectionOutcome] = {}
            is_updated = False
            for collection in collections:
                outcome = CollectionOutcome(collection_id=collection.id)
                outcomes[collection.id] = outcome
                files = await self._sync_collection(token, collection, files, outcome)
                if outcome.state != CollectionState.SKIPPED:
                    is_updated = True

            result = SyncResult(files=files, is_updated=is_updated, outcomes=outcomes)
            logger.info(
                "Sync pass finished: %d collection(s), %d failed, %d file(s) in snapshot",
                len(outcomes),
                len(result.failed),
                len(files),
            )
            return result

    async def _purge_stale_collections(
        self, collections: Sequence[Collection], files: list[EnteFile]
    ) -> list[EnteFile]:
        kept = remove_deleted_collection_files(collections, files)
        if len(kept) == len(files):
            return kept
        logger.info("Purging %d file(s) of removed collections", len(files) - len(kept))
        try:
            await self.snapshots.save(kept)
        except PersistFailed as exc:
            # The next successful merge persists the purged list anyway.
            logger.warning("Failed to persist purged snapshot: %s", exc)
        return kept

    async def _sync_collection(
        self,
        token: str,
        collection: Collection,
        files: list[EnteFile],
        outcome: CollectionOutcome,
    ) -> list[EnteFile]:
        """Run one collection through the state machine; return the new snapshot."""
        try:
            last_sync_time = await self.cursors.get(collection.id) or 0
            if collection.updation_time == last_sync_time:
                outcome.state = CollectionState.SKIPPED
                outcome.watermark = last_sync_time
                return files

            incoming: list[EnteFile] = []
            outcome.state = CollectionState.FETCHING
            async for page in fetch_diff(
                self.http,
                self.cursors,
                collection,
                last_sync_time,
                self.page_size,
                token,
                max_pages=self.max_pages,
            ):
                outcome.state = CollectionState.DECRYPTING
                incoming.extend(await decorate_page(self.worker, page, collection.key))
                outcome.fetched = len(incoming)
                outcome.state = CollectionState.FETCHING

            outcome.state = CollectionState.MERGING
            merged, outcome.watermark = await self.reconciler.apply(collection, files, incoming)
            outcome.state = CollectionState.DONE
            logger.info(
                "Collection %d synced: %d change(s), watermark %d",
                collection.id,
                len(incoming),
                outcome.watermark,
            )
            return merged
        except (FetchFailed, DecryptFailed, PersistFailed) as exc:
            outcome.failed_during = outcome.state
            outcome.state = CollectionState.FAILED
            outcome.error = f"{type(exc).__name__}: {exc}"
            logger.warning(
                "Collection %d failed while %s: %s",
                collection.id,
                outcome.failed_during,
                exc,
            )
            return files
