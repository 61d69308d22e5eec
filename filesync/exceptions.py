"""Library-level exception types.

Convention:
- Lower layers translate third-party errors at their boundary
  (``httpx.HTTPError``, ``cryptography.exceptions.InvalidTag``,
  ``sqlalchemy.exc.SQLAlchemyError``) into one of the types below, chaining the
  original with ``raise ... from exc``.
- ``FetchFailed``, ``DecryptFailed`` and ``PersistFailed`` are scoped to one
  collection within a sync pass. ``SyncService`` records them per collection and
  never lets them abort the whole pass.
- ``RetrievalFailed`` is scoped to a single file's content request and is raised
  to the caller of ``ContentService``.
"""

from __future__ import annotations


class FileSyncError(Exception):
    """Base class for all filesync errors."""


class FetchFailed(FileSyncError):
    """Raised when the remote source cannot be reached or returns a bad response."""


class DecryptFailed(FileSyncError):
    """Raised when a key, metadata or content payload cannot be decrypted."""


class PersistFailed(FileSyncError):
    """Raised when the local store fails a read or write (quota, locked database, ...)."""


class RetrievalFailed(FileSyncError):
    """Raised when preview or full content for a file cannot be produced."""
