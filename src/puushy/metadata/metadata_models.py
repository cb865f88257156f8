"""Metadata records describing stored blobs."""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime, timedelta, timezone
from typing import Any, Mapping

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


def to_epoch_ms(value: datetime) -> int:
    return (value - _EPOCH) // timedelta(milliseconds=1)


def from_epoch_ms(value: int) -> datetime:
    return _EPOCH + timedelta(milliseconds=value)


def truncate_to_ms(value: datetime) -> datetime:
    """Drop sub-millisecond precision so the value survives serialization."""
    return value.replace(microsecond=value.microsecond - value.microsecond % 1000)


def utcnow() -> datetime:
    return truncate_to_ms(datetime.now(timezone.utc))


@dataclass(slots=True, frozen=True)
class BlobRecord:
    """One stored blob as tracked by the metadata document."""

    id: str
    original_name: str
    stored_name: str
    created_at: datetime
    downloads: int = 0

    def expires_at(self, ttl: timedelta) -> datetime:
        return self.created_at + ttl

    def is_expired(self, now: datetime, ttl: timedelta) -> bool:
        return now - self.created_at > ttl

    def with_download(self) -> "BlobRecord":
        return replace(self, downloads=self.downloads + 1)

    def to_document(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "originalName": self.original_name,
            "filename": self.stored_name,
            "downloads": self.downloads,
            "createdAt": to_epoch_ms(self.created_at),
        }

    @classmethod
    def from_document(cls, payload: Mapping[str, Any]) -> "BlobRecord":
        """Build a record from its document form; raises on malformed entries."""
        record_id = payload["id"]
        stored_name = payload["filename"]
        created_at = payload["createdAt"]
        downloads = payload.get("downloads", 0)
        if not isinstance(record_id, str) or not record_id:
            raise ValueError("record id must be a non-empty string")
        if not isinstance(stored_name, str) or not stored_name:
            raise ValueError("record filename must be a non-empty string")
        if isinstance(created_at, bool) or not isinstance(created_at, (int, float)):
            raise ValueError("record createdAt must be a number")
        if isinstance(downloads, bool) or not isinstance(downloads, int) or downloads < 0:
            raise ValueError("record downloads must be a non-negative integer")
        try:
            created = from_epoch_ms(int(created_at))
        except (OverflowError, ValueError) as exc:
            raise ValueError("record createdAt is out of range") from exc
        original_name = payload.get("originalName")
        return cls(
            id=record_id,
            original_name=str(original_name) if original_name else stored_name,
            stored_name=stored_name,
            created_at=created,
            downloads=downloads,
        )


__all__ = [
    "BlobRecord",
    "from_epoch_ms",
    "to_epoch_ms",
    "truncate_to_ms",
    "utcnow",
]
