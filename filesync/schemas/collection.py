"""Collection schemas."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field


class Collection(BaseModel):
    """A remote collection: an independently versioned group of files.

    ``key`` is the base64 collection key, already decrypted by the host.
    ``updation_time`` is the server-side version used as the sync watermark.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")

    id: int
    key: str
    updation_time: int = Field(default=0, ge=0, alias="updationTime")
