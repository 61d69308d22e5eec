"""Diff fetcher: paginated retrieval of changed and deleted files per collection."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from pydantic import ValidationError

from filesync.exceptions import FetchFailed
from filesync.schemas.file import EnteFile

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

    from filesync.schemas.collection import Collection
    from filesync.services.http_service import HTTPService
    from filesync.storage.sync_store import VersionCursorStore

logger = logging.getLogger(__name__)

DIFF_PATH = "/collections/diff"


def parse_diff_page(body: Any) -> list[EnteFile]:
    """Validate a ``{"diff": [...]}`` response body into file records."""
    if not isinstance(body, dict) or not isinstance(body.get("diff"), list):
        msg = "Diff response is missing the 'diff' list"
        raise FetchFailed(msg)
    try:
        return [EnteFile.model_validate(item) for item in body["diff"]]
    except ValidationError as exc:
        msg = f"Diff response contains an invalid file record: {exc.error_count()} error(s)"
        raise FetchFailed(msg) from exc


async def fetch_diff(
    http: HTTPService,
    cursors: VersionCursorStore,
    collection: Collection,
    since_time: int | None,
    limit: int,
    token: str,
    *,
    max_pages: int = 10_000,
) -> AsyncIterator[list[EnteFile]]:
    """Yield pages of files changed in ``collection`` after ``since_time``.

    Without an explicit ``since_time`` the collection's stored watermark is used
    (0 if it has never been synced). Each request asks for at most ``limit``
    records newer than the cursor, and the cursor moves to the ``updationTime``
    of the last record returned. Iteration stops after the first page holding
    fewer than ``limit`` records, which may be empty.

    Raises FetchFailed on transport errors, malformed pages, a cursor that does
    not move forward, or more than ``max_pages`` full pages.
    """
    if limit < 1:
        msg = f"limit must be positive, got {limit}"
        raise ValueError(msg)

    cursor = since_time or await cursors.get(collection.id) or 0
    for page_number in range(1, max_pages + 1):
        body = await http.get_json(
            DIFF_PATH,
            {
                "collectionID": str(collection.id),
                "sinceTime": str(cursor),
                "limit": str(limit),
            },
            token,
        )
        page = parse_diff_page(body)
        logger.debug(
            "Collection %d page %d: %d file(s) since %d",
            collection.id,
            page_number,
            len(page),
            cursor,
        )
        yield page

        if len(page) < limit:
            return
        next_cursor = page[-1].updation_time
        if next_cursor <= cursor:
            msg = f"Diff cursor for collection {collection.id} did not advance past {cursor}"
            raise FetchFailed(msg)
        cursor = next_cursor

    msg = f"Diff for collection {collection.id} exceeded {max_pages} pages"
    raise FetchFailed(msg)
