"""Decryption pipeline: turn fetched file records into decorated ones."""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING

from filesync.exceptions import DecryptFailed

if TYPE_CHECKING:
    from filesync.schemas.file import EnteFile
    from filesync.services.crypto_service import CryptoWorker

logger = logging.getLogger(__name__)


async def decorate_file(worker: CryptoWorker, file: EnteFile, collection_key: str) -> EnteFile:
    """Decrypt a file's key and metadata, returning a new record.

    Tombstones are returned unchanged; their encrypted payload is never read.
    """
    if file.is_deleted:
        return file
    if file.encrypted_key is None or file.key_decryption_nonce is None:
        msg = f"File {file.id} is missing its encrypted key or nonce"
        raise DecryptFailed(msg)

    key = await worker.decrypt_key(file.encrypted_key, file.key_decryption_nonce, collection_key)
    keyed = file.model_copy(update={"key": key})
    metadata = await worker.decrypt_metadata(keyed)
    return keyed.model_copy(update={"metadata": metadata})


async def decorate_page(
    worker: CryptoWorker, page: list[EnteFile], collection_key: str
) -> list[EnteFile]:
    """Decorate every file of a page concurrently, preserving order.

    The page is all-or-nothing: if any file fails, DecryptFailed is raised and
    none of the page's decorated records are returned.
    """
    results = await asyncio.gather(
        *(decorate_file(worker, file, collection_key) for file in page),
        return_exceptions=True,
    )

    failures: list[tuple[EnteFile, BaseException]] = []
    decorated: list[EnteFile] = []
    for file, result in zip(page, results, strict=True):
        if isinstance(result, BaseException):
            if not isinstance(result, Exception):
                raise result
            failures.append((file, result))
        else:
            decorated.append(result)

    if failures:
        for file, exc in failures:
            logger.debug("Failed to decrypt file %d: %s", file.id, exc)
        first_file, first_exc = failures[0]
        msg = (
            f"{len(failures)} of {len(page)} file(s) failed to decrypt "
            f"(first: file {first_file.id}: {first_exc})"
        )
        raise DecryptFailed(msg) from first_exc
    return decorated
