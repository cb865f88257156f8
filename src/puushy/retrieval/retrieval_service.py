"""Resolve identifiers to stored blobs and account for downloads."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import timedelta
from typing import Any

import structlog

from ..blobs.blob_repository import BlobRepository
from ..exceptions import BlobNotFoundError, MetadataPersistError
from ..ingest.ingest_models import is_valid_blob_id
from ..metadata.metadata_store import MetadataStore, MetadataTransaction
from .retrieval_models import BlobDownload, BlobInfo

logger = structlog.get_logger(__name__)


@dataclass(slots=True)
class RetrievalService:
    """Serve blob descriptions and downloads, healing index divergence on the way."""

    blob_repo: BlobRepository
    metadata_store: MetadataStore
    ttl: timedelta
    persist_attempts: int = 2
    log: Any = field(default_factory=lambda: logger)

    async def describe(self, blob_id: str) -> BlobInfo:
        """Return metadata for ``blob_id``; raises :class:`BlobNotFoundError`."""
        self._validate_id(blob_id)
        records = await self.metadata_store.snapshot()
        record = next((item for item in records if item.id == blob_id), None)
        if record is None:
            raise BlobNotFoundError(blob_id)

        if not self.blob_repo.exists(record.stored_name):
            await self._forget_vanished(blob_id)
            raise BlobNotFoundError(blob_id)

        return BlobInfo(
            id=record.id,
            filename=record.original_name,
            downloads=record.downloads,
            created_at=record.created_at,
            expires_at=record.expires_at(self.ttl),
        )

    async def fetch(self, blob_id: str) -> BlobDownload:
        """Open the blob for streaming and record one download.

        The blob is opened while the metadata lock is held, so a concurrent
        sweep cannot delete it between the bookkeeping and the response.
        """
        self._validate_id(blob_id)
        async with self.metadata_store.transaction() as tx:
            record = tx.get(blob_id)
            if record is None:
                raise BlobNotFoundError(blob_id)

            reader = await self.blob_repo.open_reader(record.stored_name)
            if reader is None:
                tx.remove(blob_id)
                await self._commit_best_effort(tx, blob_id)
                self.log.info("retrieval.blob.vanished", blob_id=blob_id, stored_name=record.stored_name)
                raise BlobNotFoundError(blob_id)

            updated = record.with_download()
            tx.replace(updated)
            try:
                await self._commit_with_retry(tx, blob_id)
            except MetadataPersistError:
                await reader.aclose()
                raise

        self.log.info(
            "retrieval.blob.download",
            blob_id=blob_id,
            downloads=updated.downloads,
            size_bytes=reader.size_bytes,
        )
        return BlobDownload(
            id=updated.id,
            filename=updated.original_name,
            downloads=updated.downloads,
            reader=reader,
        )

    async def _forget_vanished(self, blob_id: str) -> None:
        async with self.metadata_store.transaction() as tx:
            record = tx.get(blob_id)
            if record is None or self.blob_repo.exists(record.stored_name):
                return
            tx.remove(blob_id)
            await self._commit_best_effort(tx, blob_id)
        self.log.info("retrieval.blob.vanished", blob_id=blob_id, stored_name=record.stored_name)

    async def _commit_with_retry(self, tx: MetadataTransaction, blob_id: str) -> None:
        attempts = max(1, self.persist_attempts)
        for attempt in range(1, attempts + 1):
            try:
                await tx.commit()
                return
            except MetadataPersistError:
                if attempt == attempts:
                    self.log.error(
                        "retrieval.metadata.persist_failed",
                        blob_id=blob_id,
                        attempts=attempts,
                        exc_info=True,
                    )
                    raise
                self.log.warning("retrieval.metadata.persist_retry", blob_id=blob_id, attempt=attempt)

    async def _commit_best_effort(self, tx: MetadataTransaction, blob_id: str) -> None:
        try:
            await tx.commit()
        except MetadataPersistError:
            # The next access or sweep removes the record again.
            self.log.warning("retrieval.metadata.heal_deferred", blob_id=blob_id, exc_info=True)

    @staticmethod
    def _validate_id(blob_id: str) -> None:
        if not is_valid_blob_id(blob_id):
            raise BlobNotFoundError(blob_id)


__all__ = ["RetrievalService"]
