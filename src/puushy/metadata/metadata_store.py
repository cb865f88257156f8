"""Durable metadata document listing every stored blob.

The whole collection lives in a single JSON document that is read fully
before an operation and rewritten fully after a mutation. Mutations go
through :meth:`MetadataStore.transaction`, which holds one lock across the
complete load-mutate-save cycle so concurrent writers never lose updates.
"""

from __future__ import annotations

import asyncio
import json
import logging
import os
import tempfile
from contextlib import asynccontextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import AsyncIterator, Iterable

from ..exceptions import MetadataPersistError
from .metadata_models import BlobRecord

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class MetadataTransaction:
    """Records loaded under the store lock, plus helpers to mutate them."""

    store: "MetadataStore"
    records: list[BlobRecord]
    dirty: bool = False

    def get(self, blob_id: str) -> BlobRecord | None:
        for record in self.records:
            if record.id == blob_id:
                return record
        return None

    def append(self, record: BlobRecord) -> None:
        if self.get(record.id) is not None:
            raise ValueError(f"record '{record.id}' already registered")
        self.records.append(record)
        self.dirty = True

    def replace(self, record: BlobRecord) -> None:
        for index, existing in enumerate(self.records):
            if existing.id == record.id:
                self.records[index] = record
                self.dirty = True
                return
        raise KeyError(record.id)

    def remove(self, blob_id: str) -> BlobRecord | None:
        for index, existing in enumerate(self.records):
            if existing.id == blob_id:
                self.dirty = True
                return self.records.pop(index)
        return None

    def retain(self, records: Iterable[BlobRecord]) -> None:
        kept = list(records)
        if len(kept) != len(self.records):
            self.dirty = True
        self.records = kept

    async def commit(self) -> None:
        """Persist the current collection; raises :class:`MetadataPersistError`."""
        await asyncio.to_thread(self.store.save, self.records)
        self.dirty = False


class MetadataStore:
    """Whole-document persistence for :class:`BlobRecord` collections."""

    def __init__(self, path: Path) -> None:
        self.path = Path(path)
        self._lock = asyncio.Lock()

    def load(self) -> list[BlobRecord]:
        """Return all records; a missing or corrupt document yields an empty list."""
        try:
            raw = self.path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return []
        except OSError:
            logger.warning("metadata.load.unreadable", extra={"path": str(self.path)}, exc_info=True)
            return []

        try:
            document = json.loads(raw)
        except json.JSONDecodeError:
            logger.warning("metadata.load.corrupt", extra={"path": str(self.path)})
            return []

        entries = document.get("files") if isinstance(document, dict) else None
        if not isinstance(entries, list):
            logger.warning("metadata.load.unexpected_shape", extra={"path": str(self.path)})
            return []

        records: list[BlobRecord] = []
        seen: set[str] = set()
        for entry in entries:
            if not isinstance(entry, dict):
                logger.warning("metadata.load.skipped_entry", extra={"entry": repr(entry)})
                continue
            try:
                record = BlobRecord.from_document(entry)
            except (KeyError, TypeError, ValueError, OverflowError) as exc:
                logger.warning(
                    "metadata.load.skipped_entry",
                    extra={"entry": repr(entry), "error": str(exc)},
                )
                continue
            if record.id in seen:
                logger.warning("metadata.load.duplicate_id", extra={"blob_id": record.id})
                continue
            seen.add(record.id)
            records.append(record)
        return records

    def save(self, records: Iterable[BlobRecord]) -> None:
        """Rewrite the document atomically."""
        document = {"files": [record.to_document() for record in records]}
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(
                prefix=f".{self.path.name}.", suffix=".tmp", dir=self.path.parent
            )
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as handle:
                    json.dump(document, handle, indent=2)
                    handle.flush()
                    os.fsync(handle.fileno())
                os.replace(tmp_name, self.path)
            except BaseException:
                Path(tmp_name).unlink(missing_ok=True)
                raise
        except (OSError, TypeError, ValueError) as exc:
            raise MetadataPersistError(f"failed to write metadata document {self.path}") from exc

    async def snapshot(self) -> list[BlobRecord]:
        """Load the document without taking the mutation lock."""
        return await asyncio.to_thread(self.load)

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[MetadataTransaction]:
        """Hold the mutation lock across one load-mutate-save cycle."""
        async with self._lock:
            records = await asyncio.to_thread(self.load)
            yield MetadataTransaction(store=self, records=records)


__all__ = ["MetadataStore", "MetadataTransaction"]
