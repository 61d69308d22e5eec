"""File (record) schemas shared by the diff wire format and the local snapshot."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field

_WIRE_CONFIG = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")


class FileAttribute(BaseModel):
    """Where an encrypted payload lives and the header needed to decrypt it."""

    model_config = _WIRE_CONFIG

    decryption_header: str = Field(alias="decryptionHeader")
    object_key: str | None = Field(default=None, alias="objectKey")
    encrypted_data: str | None = Field(default=None, alias="encryptedData")


class FileMetadata(BaseModel):
    """Decrypted, application-defined file metadata.

    Only ``creation_time`` (microseconds since epoch) is interpreted here; it
    drives snapshot ordering. Unknown fields are kept as-is.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="allow")

    creation_time: int = Field(alias="creationTime")
    modification_time: int | None = Field(default=None, alias="modificationTime")
    title: str | None = None
    latitude: float | None = None
    longitude: float | None = None
    file_type: int | None = Field(default=None, alias="fileType")


class EnteFile(BaseModel):
    """A file record as returned by the collection diff endpoint.

    Records are immutable. The decryption pipeline produces a new record with
    ``key`` and ``metadata`` populated; merges replace whole records.
    ``w``/``h`` are display dimensions attached on output only.

    Input is validated by alias only: the wire name ``metadata`` holds the
    encrypted attributes, while the decrypted ``metadata`` field is stored as
    ``decryptedMetadata``.
    """

    model_config = ConfigDict(frozen=True, extra="ignore")

    id: int
    collection_id: int = Field(alias="collectionID")
    owner_id: int | None = Field(default=None, alias="ownerID")
    updation_time: int = Field(default=0, alias="updationTime")
    is_deleted: bool = Field(default=False, alias="isDeleted")

    encrypted_key: str | None = Field(default=None, alias="encryptedKey")
    key_decryption_nonce: str | None = Field(default=None, alias="keyDecryptionNonce")
    key: str | None = None

    encrypted_metadata: FileAttribute | None = Field(default=None, alias="metadata")
    metadata: FileMetadata | None = Field(default=None, alias="decryptedMetadata")

    file: FileAttribute | None = None
    thumbnail: FileAttribute | None = None

    w: int | None = None
    h: int | None = None

    @property
    def creation_time(self) -> int:
        """Display ordering key; 0 for records that were never decrypted."""
        return self.metadata.creation_time if self.metadata is not None else 0

    def to_storage(self) -> dict[str, Any]:
        """Serialize for the local snapshot (wire aliases, no display fields)."""
        return self.model_dump(mode="json", by_alias=True, exclude={"w", "h"})
