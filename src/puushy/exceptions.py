"""Domain level exceptions shared by the storage, ingest and retrieval layers."""

from __future__ import annotations

__all__ = [
    "PuushyError",
    "UploadError",
    "MalformedUploadError",
    "NoFileProvidedError",
    "SizeLimitExceededError",
    "UploadTimeoutError",
    "BlobNotFoundError",
    "StorageError",
    "MetadataPersistError",
    "BlobIOError",
]


class PuushyError(Exception):
    """Base class for application specific errors."""


class UploadError(PuushyError):
    """Base class for errors raised while ingesting an upload."""


class MalformedUploadError(UploadError):
    """Raised when the multipart framing of a request body is invalid."""


class NoFileProvidedError(UploadError):
    """Raised when the request carries no file or an empty one."""


class SizeLimitExceededError(UploadError):
    """Raised when the uploaded file exceeds the configured maximum."""

    def __init__(self, size_bytes: int, limit_bytes: int) -> None:
        super().__init__(f"upload of {size_bytes} bytes exceeds limit of {limit_bytes} bytes")
        self.size_bytes = size_bytes
        self.limit_bytes = limit_bytes


class UploadTimeoutError(UploadError):
    """Raised when the client stalls past the upload deadline."""


class BlobNotFoundError(PuushyError):
    """Raised when an identifier is unknown, expired or its blob vanished."""

    def __init__(self, blob_id: str) -> None:
        super().__init__(f"blob '{blob_id}' not found")
        self.blob_id = blob_id


class StorageError(PuushyError):
    """Base class for persistence layer failures."""


class MetadataPersistError(StorageError):
    """Raised when the metadata document could not be written."""


class BlobIOError(StorageError):
    """Raised when reading or writing blob bytes fails."""

