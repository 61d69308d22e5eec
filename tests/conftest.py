"""Shared test fixtures for filesync."""

from __future__ import annotations

from typing import TYPE_CHECKING

import pytest
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from filesync.config import Settings
from filesync.database import ensure_tables
from filesync.services.content_service import ContentService
from filesync.services.http_service import HTTPService
from filesync.services.sync_service import SyncService
from filesync.storage import BinaryCache, KeyValueStore, SnapshotStore, VersionCursorStore
from tests.factories import API_BASE, FakeFileServer, StubCryptoWorker

if TYPE_CHECKING:
    from collections.abc import AsyncGenerator
    from pathlib import Path


@pytest.fixture
def test_settings(tmp_path: Path) -> Settings:
    """Create test settings with a temporary database."""
    db_path = tmp_path / "test.db"
    return Settings(
        _env_file=None,
        api_endpoint=API_BASE,
        database_url=f"sqlite+aiosqlite:///{db_path}",
        diff_page_size=100,
    )


@pytest.fixture
async def db_engine(test_settings: Settings) -> AsyncGenerator[AsyncEngine]:
    """Create a test database engine with all tables."""
    engine = create_async_engine(
        test_settings.database_url,
        echo=False,
    )
    await ensure_tables(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(db_engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        db_engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )


@pytest.fixture
def snapshot_store(session_factory: async_sessionmaker[AsyncSession]) -> SnapshotStore:
    return SnapshotStore(KeyValueStore(session_factory, "snapshot"))


@pytest.fixture
def cursor_store(session_factory: async_sessionmaker[AsyncSession]) -> VersionCursorStore:
    return VersionCursorStore(KeyValueStore(session_factory, "cursors"))


@pytest.fixture
def blob_cache(session_factory: async_sessionmaker[AsyncSession]) -> BinaryCache:
    return BinaryCache(session_factory, "thumbs")


@pytest.fixture
def file_server() -> FakeFileServer:
    return FakeFileServer()


@pytest.fixture
def worker() -> StubCryptoWorker:
    return StubCryptoWorker()


@pytest.fixture
async def http_service(file_server: FakeFileServer) -> AsyncGenerator[HTTPService]:
    """HTTP service routed to the in-memory file server."""
    async with HTTPService(API_BASE, transport=file_server.transport()) as http:
        yield http


@pytest.fixture
def sync_service(
    http_service: HTTPService,
    worker: StubCryptoWorker,
    snapshot_store: SnapshotStore,
    cursor_store: VersionCursorStore,
) -> SyncService:
    return SyncService(http_service, worker, snapshot_store, cursor_store, page_size=100)


@pytest.fixture
def content_service(
    http_service: HTTPService,
    worker: StubCryptoWorker,
    blob_cache: BinaryCache,
) -> ContentService:
    return ContentService(http_service, worker, blob_cache)
