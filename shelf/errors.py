"""Exceptions shared by the library and the reader."""

from __future__ import annotations


class ShelfError(Exception):
    """Base class for every error raised by mangashelf."""


class CorruptArchiveError(ShelfError):
    """The supplied bytes are not a readable zip container."""


class EmptyArchiveError(ShelfError):
    """The container is valid but holds no recognised page images."""


class UnsupportedArchiveError(ShelfError):
    """The file name does not carry the .cbz extension."""


class ArchiveUnavailableError(ShelfError):
    """The archive bytes for a known manga are no longer cached."""

    def __init__(self, manga_id: str, message: str | None = None):
        super().__init__(message or f"Archive for manga {manga_id} is not available")
        self.manga_id = manga_id


class StorageError(ShelfError):
    """The persistence layer is unavailable, full, or returned unreadable data."""


class ResourceReleasedError(ShelfError):
    """A page resource was read after it had been released."""


class StoredValueError(ShelfError):
    """A stored value could not be decoded. The backend itself is working."""
