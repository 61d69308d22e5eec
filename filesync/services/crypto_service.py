"""Decrypt capability used by the sync and content pipelines.

The pipelines only depend on the ``CryptoWorker`` protocol. ``LocalCryptoWorker``
binds it to ChaCha20-Poly1305 from ``cryptography``, running each primitive in
a worker thread so the event loop never blocks on bulk decryption.

Wire conventions: keys, nonces and headers are standard base64 strings; the
content header doubles as the AEAD nonce of the payload it describes.
"""

from __future__ import annotations

import asyncio
import base64
import binascii
from typing import TYPE_CHECKING, Protocol, runtime_checkable

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import ChaCha20Poly1305
from pydantic import ValidationError

from filesync.exceptions import DecryptFailed
from filesync.schemas.file import FileMetadata

if TYPE_CHECKING:
    from filesync.schemas.file import EnteFile


@runtime_checkable
class CryptoWorker(Protocol):
    """Opaque decrypt capability. Implementations raise ``DecryptFailed``."""

    async def decrypt_key(self, encrypted_key: str, nonce: str, collection_key: str) -> str:
        """Decrypt a per-file key with its collection key. Returns base64."""
        ...

    async def decrypt_metadata(self, file: EnteFile) -> FileMetadata:
        """Decrypt ``file.encrypted_metadata`` using the already decrypted ``file.key``."""
        ...

    async def decrypt_content(self, data: bytes, header: bytes, key: str) -> bytes:
        """Decrypt a preview or full content payload."""
        ...

    async def decode_header(self, header_b64: str) -> bytes:
        """Decode a base64 decryption header."""
        ...


def from_b64(value: str) -> bytes:
    """Decode standard base64, raising DecryptFailed on malformed input."""
    try:
        return base64.b64decode(value, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise DecryptFailed("Malformed base64 input") from exc


def to_b64(value: bytes) -> str:
    return base64.b64encode(value).decode()


def _open(ciphertext: bytes, nonce: bytes, key: bytes) -> bytes:
    try:
        return ChaCha20Poly1305(key).decrypt(nonce, ciphertext, None)
    except InvalidTag as exc:
        raise DecryptFailed("Authentication tag mismatch") from exc
    except ValueError as exc:
        raise DecryptFailed(f"Invalid key or nonce: {exc}") from exc


class LocalCryptoWorker:
    """In-process ``CryptoWorker`` offloading each operation to a thread."""

    async def decrypt_key(self, encrypted_key: str, nonce: str, collection_key: str) -> str:
        plaintext = await asyncio.to_thread(
            _open, from_b64(encrypted_key), from_b64(nonce), from_b64(collection_key)
        )
        return to_b64(plaintext)

    async def decrypt_metadata(self, file: EnteFile) -> FileMetadata:
        attrs = file.encrypted_metadata
        if attrs is None or attrs.encrypted_data is None:
            msg = f"File {file.id} has no encrypted metadata"
            raise DecryptFailed(msg)
        if file.key is None:
            msg = f"File {file.id} key must be decrypted before its metadata"
            raise DecryptFailed(msg)
        plaintext = await asyncio.to_thread(
            _open,
            from_b64(attrs.encrypted_data),
            from_b64(attrs.decryption_header),
            from_b64(file.key),
        )
        try:
            return FileMetadata.model_validate_json(plaintext)
        except ValidationError as exc:
            msg = f"File {file.id} metadata is not valid JSON metadata"
            raise DecryptFailed(msg) from exc

    async def decrypt_content(self, data: bytes, header: bytes, key: str) -> bytes:
        return await asyncio.to_thread(_open, data, header, from_b64(key))

    async def decode_header(self, header_b64: str) -> bytes:
        return from_b64(header_b64)
