"""Wiring of the sync and content services for a host application."""

from __future__ import annotations

import logging
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING

from sqlalchemy.engine import make_url

from filesync.config import Settings
from filesync.database import create_engine, ensure_tables
from filesync.services.content_service import ContentService
from filesync.services.crypto_service import LocalCryptoWorker
from filesync.services.http_service import HTTPService
from filesync.services.sync_service import SyncService
from filesync.storage import BinaryCache, KeyValueStore, SnapshotStore, VersionCursorStore

if TYPE_CHECKING:
    import httpx
    from sqlalchemy.ext.asyncio import AsyncEngine

    from filesync.services.crypto_service import CryptoWorker

logger = logging.getLogger(__name__)

SNAPSHOT_NAMESPACE = "ente-files"
CURSOR_NAMESPACE = "collection-sync-times"


def configure_logging(debug: bool) -> None:
    """Configure library logging for standalone use."""
    level = logging.DEBUG if debug else logging.INFO
    fmt = "%(asctime)s %(levelname)-8s %(name)s: %(message)s"
    logging.basicConfig(
        level=level,
        format=fmt,
        stream=sys.stdout,
        force=True,
    )
    # Quiet noisy libraries
    logging.getLogger("httpx").setLevel(logging.INFO if debug else logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(logging.INFO if debug else logging.WARNING)


def ensure_database_dir(database_url: str) -> None:
    """Create the parent directory of a file-backed SQLite database."""
    url = make_url(database_url)
    if not url.get_backend_name().startswith("sqlite"):
        return
    if not url.database or url.database == ":memory:":
        return
    parent = Path(url.database).parent
    if not parent.exists():
        logger.info("Creating database directory at %s", parent)
        parent.mkdir(parents=True, exist_ok=True)


@dataclass
class FileSyncContext:
    """Everything a host needs: sync, content retrieval, and their resources."""

    settings: Settings
    engine: AsyncEngine
    http: HTTPService
    sync: SyncService
    content: ContentService

    async def aclose(self) -> None:
        try:
            await self.http.close()
        finally:
            await self.engine.dispose()

    async def __aenter__(self) -> FileSyncContext:
        return self

    async def __aexit__(self, *args: object) -> None:
        await self.aclose()


async def create_context(
    settings: Settings | None = None,
    *,
    worker: CryptoWorker | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
) -> FileSyncContext:
    """Open the local store and build the sync and content services.

    ``worker`` defaults to an in-process ``LocalCryptoWorker``; ``transport``
    lets tests substitute an ``httpx.MockTransport``.
    """
    settings = settings or Settings()
    ensure_database_dir(settings.database_url)
    engine, session_factory = create_engine(settings)
    await ensure_tables(engine)

    worker = worker or LocalCryptoWorker()
    http = HTTPService.from_settings(settings, transport=transport)

    sync_service = SyncService(
        http,
        worker,
        SnapshotStore(KeyValueStore(session_factory, SNAPSHOT_NAMESPACE)),
        VersionCursorStore(KeyValueStore(session_factory, CURSOR_NAMESPACE)),
        page_size=settings.diff_page_size,
        max_pages=settings.max_diff_pages,
    )
    content_service = ContentService(
        http,
        worker,
        BinaryCache(session_factory, settings.thumbnail_cache_name),
    )
    logger.info("filesync ready (endpoint=%s)", settings.api_endpoint)
    return FileSyncContext(
        settings=settings,
        engine=engine,
        http=http,
        sync=sync_service,
        content=content_service,
    )
