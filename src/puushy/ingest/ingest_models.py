"""Data structures for the upload pipeline."""

from __future__ import annotations

import re
import secrets
from dataclasses import dataclass
from pathlib import PurePosixPath
from typing import TYPE_CHECKING

from .multipart_parser import MultipartStreamParser

if TYPE_CHECKING:  # pragma: no cover - type checking only
    from ..blobs.blob_repository import BlobWriter

BLOB_ID_PATTERN = re.compile(r"^[A-Za-z0-9_-]{1,64}$")
_EXTENSION_PATTERN = re.compile(r"^[A-Za-z0-9]{1,16}$")


def generate_blob_id() -> str:
    """Return a 12-character URL-safe identifier."""
    return secrets.token_urlsafe(9)


def is_valid_blob_id(value: str) -> bool:
    return bool(BLOB_ID_PATTERN.match(value))


def stored_name_for(blob_id: str, original_name: str) -> str:
    """Derive the repository name from the id and the advisory extension."""
    suffix = PurePosixPath(original_name).suffix.lstrip(".")
    if suffix and _EXTENSION_PATTERN.match(suffix):
        return f"{blob_id}.{suffix}"
    return blob_id


@dataclass(slots=True, frozen=True)
class UploadReceipt:
    """What the client gets back after a successful upload."""

    id: str
    filename: str
    size_bytes: int
    metadata_persisted: bool = True

    @property
    def link(self) -> str:
        return f"/f/{self.id}"

    def to_payload(self) -> dict[str, str]:
        return {"id": self.id, "filename": self.filename, "link": self.link}


@dataclass(slots=True)
class UploadSession:
    """Mutable state of one in-flight upload."""

    parser: MultipartStreamParser
    blob_id: str | None = None
    original_name: str | None = None
    stored_name: str | None = None
    writer: "BlobWriter | None" = None
    bytes_received: int = 0
    completed: bool = False

    @property
    def bytes_written(self) -> int:
        return self.writer.bytes_written if self.writer is not None else 0

    async def abort(self) -> None:
        if self.writer is not None:
            await self.writer.abort()


__all__ = [
    "BLOB_ID_PATTERN",
    "UploadReceipt",
    "UploadSession",
    "generate_blob_id",
    "is_valid_blob_id",
    "stored_name_for",
]
