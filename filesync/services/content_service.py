"""Content retrieval: fetch, decrypt and hand out preview or full file bytes."""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from enum import StrEnum
from typing import TYPE_CHECKING

from filesync.exceptions import DecryptFailed, FetchFailed, PersistFailed, RetrievalFailed

if TYPE_CHECKING:
    from filesync.schemas.file import EnteFile, FileAttribute
    from filesync.services.crypto_service import CryptoWorker
    from filesync.services.http_service import HTTPService
    from filesync.storage.kv_store import BinaryCache

logger = logging.getLogger(__name__)

PREVIEW_PATH = "/files/preview/{file_id}"
DOWNLOAD_PATH = "/files/download/{file_id}"


class ContentKind(StrEnum):
    PREVIEW = "preview"
    FULL = "full"


class ObjectURLRegistry:
    """Holds decrypted payloads behind opaque ``blob:`` URLs until revoked."""

    def __init__(self) -> None:
        self._objects: dict[str, bytes] = {}

    def create_object_url(self, data: bytes) -> str:
        url = f"blob:{uuid.uuid4()}"
        self._objects[url] = data
        return url

    def get(self, url: str) -> bytes:
        """Return the bytes behind ``url``. Raises LookupError once revoked."""
        try:
            return self._objects[url]
        except KeyError:
            msg = f"Object URL {url} is unknown or has been revoked"
            raise LookupError(msg) from None

    def revoke_object_url(self, url: str) -> None:
        self._objects.pop(url, None)

    def __contains__(self, url: object) -> bool:
        return url in self._objects

    def __len__(self) -> int:
        return len(self._objects)


@dataclass
class ContentReference:
    """Transient handle to decrypted bytes; call ``revoke`` when done."""

    url: str
    registry: ObjectURLRegistry

    def read(self) -> bytes:
        return self.registry.get(self.url)

    def revoke(self) -> None:
        self.registry.revoke_object_url(self.url)

    @property
    def revoked(self) -> bool:
        return self.url not in self.registry

    def __enter__(self) -> ContentReference:
        return self

    def __exit__(self, *args: object) -> None:
        self.revoke()


class ContentService:
    """Resolve a file's preview or full content to a ContentReference.

    Previews go through a binary cache keyed by file id; full content is always
    fetched. Nothing is retried here.
    """

    def __init__(
        self,
        http: HTTPService,
        worker: CryptoWorker,
        cache: BinaryCache,
        registry: ObjectURLRegistry | None = None,
    ) -> None:
        self.http = http
        self.worker = worker
        self.cache = cache
        self.registry = registry if registry is not None else ObjectURLRegistry()

    async def resolve(self, token: str, file: EnteFile, kind: ContentKind) -> ContentReference:
        """Return a reference to the decrypted ``kind`` content of ``file``.

        Raises RetrievalFailed if the payload cannot be fetched or decrypted.
        """
        if kind == ContentKind.PREVIEW:
            return await self.get_preview(token, file)
        return await self.get_file(token, file)

    async def get_preview(self, token: str, file: EnteFile) -> ContentReference:
        cache_key = str(file.id)
        try:
            cached = await self.cache.match(cache_key)
        except PersistFailed as exc:
            logger.warning("Preview cache lookup failed for file %d: %s", file.id, exc)
            cached = None
        if cached is not None:
            logger.debug("Preview cache hit for file %d", file.id)
            return self._reference(cached)

        decrypted = await self._fetch_and_decrypt(
            token, file, file.thumbnail, PREVIEW_PATH.format(file_id=file.id), "thumbnail"
        )
        result = await self.cache.put(cache_key, decrypted)
        if not result.success:
            logger.warning("Could not cache preview for file %d: %s", file.id, result.error)
        return self._reference(decrypted)

    async def get_file(self, token: str, file: EnteFile) -> ContentReference:
        decrypted = await self._fetch_and_decrypt(
            token, file, file.file, DOWNLOAD_PATH.format(file_id=file.id), "file"
        )
        return self._reference(decrypted)

    async def _fetch_and_decrypt(
        self,
        token: str,
        file: EnteFile,
        attrs: FileAttribute | None,
        path: str,
        label: str,
    ) -> bytes:
        if file.key is None:
            msg = f"File {file.id} has no decrypted key"
            raise RetrievalFailed(msg)
        if attrs is None:
            msg = f"File {file.id} has no {label} attributes"
            raise RetrievalFailed(msg)
        try:
            encrypted = await self.http.get_bytes(path, token)
            header = await self.worker.decode_header(attrs.decryption_header)
            return await self.worker.decrypt_content(encrypted, header, file.key)
        except (FetchFailed, DecryptFailed) as exc:
            msg = f"Failed to retrieve {label} of file {file.id}: {exc}"
            raise RetrievalFailed(msg) from exc

    def _reference(self, data: bytes) -> ContentReference:
        return ContentReference(url=self.registry.create_object_url(data), registry=self.registry)
