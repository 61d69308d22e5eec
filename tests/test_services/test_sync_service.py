"""Tests for the sync orchestrator."""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING
from unittest.mock import AsyncMock, patch

import pytest

from filesync.exceptions import PersistFailed
from filesync.services.sync_service import CollectionState, SyncService
from tests.factories import (
    TOKEN,
    StubCryptoWorker,
    decorated_file,
    file_payload,
    make_collection,
)

if TYPE_CHECKING:
    from filesync.services.http_service import HTTPService
    from filesync.storage import SnapshotStore, VersionCursorStore
    from tests.factories import FakeFileServer


class TestFirstSync:
    async def test_empty_snapshot_single_page(
        self,
        sync_service: SyncService,
        file_server: FakeFileServer,
        cursor_store: VersionCursorStore,
        snapshot_store: SnapshotStore,
    ) -> None:
        file_server.add(file_payload(1, 10, creation_time=200))
        file_server.add(file_payload(2, 11, creation_time=300))
        file_server.add(file_payload(3, 12, creation_time=100))

        result = await sync_service.sync(TOKEN, [make_collection(1, 12)])

        assert [f.id for f in result.files] == [2, 1, 3]
        assert all(f.key == f"key-{f.id}" for f in result.files)
        assert result.is_updated is True
        assert await cursor_store.get(1) == 12
        assert await snapshot_store.load() == result.files

        outcome = result.outcomes[1]
        assert outcome.state == CollectionState.DONE
        assert outcome.fetched == 3
        assert outcome.watermark == 12
        assert outcome.error is None

    async def test_multiple_pages_are_merged(
        self,
        http_service: HTTPService,
        file_server: FakeFileServer,
        snapshot_store: SnapshotStore,
        cursor_store: VersionCursorStore,
    ) -> None:
        for file_id in range(1, 6):
            file_server.add(file_payload(file_id, 10 + file_id))
        service = SyncService(
            http_service, StubCryptoWorker(), snapshot_store, cursor_store, page_size=2
        )

        result = await service.sync(TOKEN, [make_collection(1, 15)])

        assert sorted(f.id for f in result.files) == [1, 2, 3, 4, 5]
        assert len(file_server.diff_requests(1)) == 3
        assert await cursor_store.get(1) == 15

    async def test_local_files_starts_empty(self, sync_service: SyncService) -> None:
        assert await sync_service.local_files() == []


class TestIncrementalSync:
    async def test_newer_version_replaces_existing(
        self,
        sync_service: SyncService,
        file_server: FakeFileServer,
        snapshot_store: SnapshotStore,
        cursor_store: VersionCursorStore,
    ) -> None:
        await snapshot_store.save([decorated_file(5, 10)])
        await cursor_store.advance(1, 10)
        file_server.add(file_payload(5, 15))

        result = await sync_service.sync(TOKEN, [make_collection(1, 15)])

        assert [(f.id, f.updation_time) for f in result.files] == [(5, 15)]
        assert file_server.diff_requests(1)[0].url.params["sinceTime"] == "10"

    async def test_tombstone_removes_existing(
        self,
        sync_service: SyncService,
        file_server: FakeFileServer,
        snapshot_store: SnapshotStore,
        cursor_store: VersionCursorStore,
    ) -> None:
        await snapshot_store.save([decorated_file(7, 10), decorated_file(8, 9)])
        await cursor_store.advance(1, 10)
        file_server.add(file_payload(7, 20, is_deleted=True))

        result = await sync_service.sync(TOKEN, [make_collection(1, 20)])

        assert [f.id for f in result.files] == [8]
        assert [f.id for f in await snapshot_store.load()] == [8]

    async def test_up_to_date_collection_is_skipped(
        self,
        sync_service: SyncService,
        file_server: FakeFileServer,
        cursor_store: VersionCursorStore,
    ) -> None:
        await cursor_store.advance(1, 12)
        file_server.add(file_payload(1, 13))

        result = await sync_service.sync(TOKEN, [make_collection(1, 12)])

        assert file_server.diff_requests() == []
        assert result.is_updated is False
        assert result.outcomes[1].state == CollectionState.SKIPPED

    async def test_never_synced_empty_collection_is_skipped(
        self, sync_service: SyncService, file_server: FakeFileServer
    ) -> None:
        result = await sync_service.sync(TOKEN, [make_collection(1, 0)])
        assert result.outcomes[1].state == CollectionState.SKIPPED
        assert file_server.diff_requests() == []

    async def test_empty_diff_advances_to_declared_version(
        self,
        sync_service: SyncService,
        cursor_store: VersionCursorStore,
    ) -> None:
        await cursor_store.advance(1, 12)

        result = await sync_service.sync(TOKEN, [make_collection(1, 20)])

        assert result.outcomes[1].state == CollectionState.DONE
        assert await cursor_store.get(1) == 20

    async def test_watermark_grows_across_passes(
        self,
        sync_service: SyncService,
        file_server: FakeFileServer,
        cursor_store: VersionCursorStore,
    ) -> None:
        file_server.add(file_payload(1, 10))
        await sync_service.sync(TOKEN, [make_collection(1, 10)])
        assert await cursor_store.get(1) == 10

        file_server.add(file_payload(2, 18))
        result = await sync_service.sync(TOKEN, [make_collection(1, 18)])

        assert await cursor_store.get(1) == 18
        assert sorted(f.id for f in result.files) == [1, 2]
        assert file_server.diff_requests()[-1].url.params["sinceTime"] == "10"


class TestPurge:
    async def test_files_of_removed_collections_are_purged(
        self,
        sync_service: SyncService,
        snapshot_store: SnapshotStore,
        cursor_store: VersionCursorStore,
    ) -> None:
        await snapshot_store.save(
            [
                decorated_file(1, 10, collection_id=1),
                decorated_file(2, 10, collection_id=2),
            ]
        )
        await cursor_store.advance(1, 10)

        result = await sync_service.sync(TOKEN, [make_collection(1, 10)])

        assert [f.collection_id for f in result.files] == [1]
        assert [f.id for f in await snapshot_store.load()] == [1]
        assert result.is_updated is False

    async def test_purge_happens_even_when_every_collection_fails(
        self,
        sync_service: SyncService,
        file_server: FakeFileServer,
        snapshot_store: SnapshotStore,
    ) -> None:
        await snapshot_store.save([decorated_file(2, 10, collection_id=2)])
        file_server.failing_collections.add(1)

        result = await sync_service.sync(TOKEN, [make_collection(1, 10)])

        assert result.files == []
        assert await snapshot_store.load() == []


class TestFailureIsolation:
    async def test_fetch_failure_does_not_block_other_collections(
        self,
        sync_service: SyncService,
        file_server: FakeFileServer,
        cursor_store: VersionCursorStore,
    ) -> None:
        file_server.failing_collections.add(1)
        file_server.add(file_payload(1, 10, collection_id=1))
        file_server.add(file_payload(2, 11, collection_id=2))

        result = await sync_service.sync(TOKEN, [make_collection(1, 10), make_collection(2, 11)])

        failed = result.outcomes[1]
        assert failed.state == CollectionState.FAILED
        assert failed.failed_during == CollectionState.FETCHING
        assert failed.error is not None
        assert failed.error.startswith("FetchFailed")
        assert result.failed == [failed]
        assert await cursor_store.get(1) is None

        assert result.outcomes[2].state == CollectionState.DONE
        assert [f.id for f in result.files] == [2]
        assert result.is_updated is True

    async def test_decrypt_failure_on_later_page_discards_whole_collection(
        self,
        http_service: HTTPService,
        file_server: FakeFileServer,
        snapshot_store: SnapshotStore,
        cursor_store: VersionCursorStore,
    ) -> None:
        await snapshot_store.save([decorated_file(9, 5)])
        await cursor_store.advance(1, 5)
        for file_id in (1, 2, 3):
            file_server.add(file_payload(file_id, 10 + file_id))
        service = SyncService(
            http_service, StubCryptoWorker(fail_ids={3}), snapshot_store, cursor_store, page_size=2
        )

        result = await service.sync(TOKEN, [make_collection(1, 13)])

        outcome = result.outcomes[1]
        assert outcome.state == CollectionState.FAILED
        assert outcome.failed_during == CollectionState.DECRYPTING
        assert [f.id for f in result.files] == [9]
        assert [f.id for f in await snapshot_store.load()] == [9]
        assert await cursor_store.get(1) == 5

    async def test_persist_failure_keeps_previous_snapshot_and_watermark(
        self,
        sync_service: SyncService,
        file_server: FakeFileServer,
        snapshot_store: SnapshotStore,
        cursor_store: VersionCursorStore,
    ) -> None:
        await snapshot_store.save([decorated_file(9, 5)])
        await cursor_store.advance(1, 5)
        file_server.add(file_payload(1, 10))

        with patch.object(
            snapshot_store, "save", AsyncMock(side_effect=PersistFailed("quota exceeded"))
        ):
            result = await sync_service.sync(TOKEN, [make_collection(1, 10)])

        outcome = result.outcomes[1]
        assert outcome.state == CollectionState.FAILED
        assert outcome.failed_during == CollectionState.MERGING
        assert "quota exceeded" in (outcome.error or "")
        assert [f.id for f in result.files] == [9]
        assert await cursor_store.get(1) == 5

    async def test_snapshot_load_failure_raises(
        self, sync_service: SyncService, snapshot_store: SnapshotStore
    ) -> None:
        with (
            patch.object(snapshot_store, "load", AsyncMock(side_effect=PersistFailed("locked"))),
            pytest.raises(PersistFailed),
        ):
            await sync_service.sync(TOKEN, [make_collection(1, 10)])

    async def test_retry_after_failure_converges(
        self,
        sync_service: SyncService,
        file_server: FakeFileServer,
        cursor_store: VersionCursorStore,
    ) -> None:
        file_server.add(file_payload(1, 10))
        file_server.failing_collections.add(1)
        first = await sync_service.sync(TOKEN, [make_collection(1, 10)])
        assert first.outcomes[1].state == CollectionState.FAILED

        file_server.failing_collections.clear()
        second = await sync_service.sync(TOKEN, [make_collection(1, 10)])

        assert second.outcomes[1].state == CollectionState.DONE
        assert [f.id for f in second.files] == [1]
        assert await cursor_store.get(1) == 10


class TestSyncData:
    async def test_annotates_dimensions_without_persisting_them(
        self,
        sync_service: SyncService,
        file_server: FakeFileServer,
    ) -> None:
        file_server.add(file_payload(1, 10))

        result = await sync_service.sync_data(TOKEN, [make_collection(1, 10)], 1280, 720)

        assert [(f.w, f.h) for f in result.files] == [(1280, 720)]
        assert result.is_updated is True
        (stored,) = await sync_service.local_files()
        assert stored.w is None
        assert stored.h is None

    async def test_concurrent_passes_are_serialized(
        self,
        sync_service: SyncService,
        file_server: FakeFileServer,
    ) -> None:
        file_server.add(file_payload(1, 10))
        collections = [make_collection(1, 10)]

        first, second = await asyncio.gather(
            sync_service.sync(TOKEN, collections), sync_service.sync(TOKEN, collections)
        )

        assert first.is_updated is True
        assert second.is_updated is False
        assert len(file_server.diff_requests()) == 1
        assert [f.id for f in second.files] == [1]
