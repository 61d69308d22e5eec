"""Key-value tables backing the local stores."""

from __future__ import annotations

from sqlalchemy import LargeBinary, Text
from sqlalchemy.orm import Mapped, mapped_column

from filesync.models.base import Base


class KeyValueEntry(Base):
    """JSON-encoded value stored under a (namespace, key) pair."""

    __tablename__ = "kv_entries"

    namespace: Mapped[str] = mapped_column(Text, primary_key=True)
    key: Mapped[str] = mapped_column(Text, primary_key=True)
    value: Mapped[str] = mapped_column(Text, nullable=False)


class BlobCacheEntry(Base):
    """Decrypted binary content cached under a (namespace, key) pair."""

    __tablename__ = "blob_cache"

    namespace: Mapped[str] = mapped_column(Text, primary_key=True)
    key: Mapped[str] = mapped_column(Text, primary_key=True)
    data: Mapped[bytes] = mapped_column(LargeBinary, nullable=False)
