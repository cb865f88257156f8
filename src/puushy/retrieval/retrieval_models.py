"""Read models returned by the retrieval service."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any

from ..blobs.blob_repository import BlobReader
from ..metadata.metadata_models import to_epoch_ms


@dataclass(slots=True, frozen=True)
class BlobInfo:
    id: str
    filename: str
    downloads: int
    created_at: datetime
    expires_at: datetime

    def to_payload(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "filename": self.filename,
            "downloads": self.downloads,
            "createdAt": to_epoch_ms(self.created_at),
            "expiresAt": to_epoch_ms(self.expires_at),
        }


@dataclass(slots=True)
class BlobDownload:
    """An opened blob plus the name the client should save it under."""

    id: str
    filename: str
    downloads: int
    reader: BlobReader

    @property
    def size_bytes(self) -> int:
        return self.reader.size_bytes


__all__ = ["BlobDownload", "BlobInfo"]
