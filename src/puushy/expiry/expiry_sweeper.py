"""Age-based deletion and index reconciliation for stored blobs."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta

from ..blobs.blob_repository import BlobRepository, StoredBlob
from ..exceptions import BlobIOError
from ..ingest.ingest_models import is_valid_blob_id
from ..metadata.metadata_models import BlobRecord, truncate_to_ms, utcnow
from ..metadata.metadata_store import MetadataStore

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class SweepReport:
    """What one sweep changed (or would change, for a dry run)."""

    expired: list[str] = field(default_factory=list)
    vanished: list[str] = field(default_factory=list)
    backfilled: list[str] = field(default_factory=list)
    stale_parts: list[str] = field(default_factory=list)
    persisted: bool = False

    @property
    def changed(self) -> bool:
        return bool(self.expired or self.vanished or self.backfilled or self.stale_parts)


@dataclass(slots=True)
class ExpirySweeper:
    """Delete blobs older than ``ttl`` and reconcile the index with the disk."""

    blob_repo: BlobRepository
    metadata_store: MetadataStore
    ttl: timedelta
    stale_part_age: timedelta | None = None
    log: logging.Logger = field(default_factory=lambda: logger)

    async def sweep_once(self, now: datetime | None = None, *, dry_run: bool = False) -> SweepReport:
        """Run one sweep; the whole pass holds the metadata lock.

        Records are partitioned into expired (``now - created_at > ttl``) and
        live. The document is rewritten only when the partition removed or
        backfilled something, so a second run with nothing new is a no-op.
        """
        current = now or utcnow()
        async with self.metadata_store.transaction() as tx:
            live, report = await asyncio.to_thread(
                self._reconcile, list(tx.records), current, dry_run
            )
            if not dry_run and (report.expired or report.vanished or report.backfilled):
                tx.retain(live)
                await tx.commit()
                report.persisted = True

        if report.changed and not dry_run:
            self.log.info(
                "expiry.sweep.completed",
                extra={
                    "expired": len(report.expired),
                    "vanished": len(report.vanished),
                    "backfilled": len(report.backfilled),
                    "stale_parts": len(report.stale_parts),
                },
            )
        return report

    def _reconcile(
        self, records: list[BlobRecord], now: datetime, dry_run: bool
    ) -> tuple[list[BlobRecord], SweepReport]:
        report = SweepReport()
        live: list[BlobRecord] = []
        for record in records:
            if record.is_expired(now, self.ttl):
                report.expired.append(record.id)
                if not dry_run:
                    self._delete_blob(record)
            elif not self.blob_repo.exists(record.stored_name):
                report.vanished.append(record.id)
            else:
                live.append(record)

        known_ids = {record.id for record in records}
        for blob in self.blob_repo.list_blobs():
            blob_id = blob.blob_id
            if blob_id in known_ids or not is_valid_blob_id(blob_id):
                continue
            # Only adopt files the vanished-record check above will also see.
            if not self.blob_repo.exists(blob.stored_name):
                continue
            known_ids.add(blob_id)
            orphan = self._backfill_record(blob)
            if orphan.is_expired(now, self.ttl):
                report.expired.append(orphan.id)
                if not dry_run:
                    self._delete_blob(orphan)
                continue
            report.backfilled.append(orphan.id)
            live.append(orphan)

        self._collect_stale_parts(now, report, dry_run=dry_run)
        return live, report

    def _delete_blob(self, record: BlobRecord) -> None:
        try:
            removed = self.blob_repo.delete(record.stored_name)
        except BlobIOError:
            self.log.warning(
                "expiry.blob.delete_failed",
                extra={"blob_id": record.id, "stored_name": record.stored_name},
                exc_info=True,
            )
            return
        if removed:
            self.log.info(
                "expiry.blob.deleted",
                extra={"blob_id": record.id, "filename": record.original_name},
            )

    def _collect_stale_parts(self, now: datetime, report: SweepReport, *, dry_run: bool) -> None:
        max_age = self.stale_part_age or self.ttl
        for staged in self.blob_repo.list_staged():
            if now - staged.modified_at <= max_age:
                continue
            report.stale_parts.append(staged.stored_name)
            if dry_run:
                continue
            try:
                self.blob_repo.remove_staged(staged)
            except BlobIOError:
                self.log.warning(
                    "expiry.staged.delete_failed",
                    extra={"stored_name": staged.stored_name},
                    exc_info=True,
                )

    @staticmethod
    def _backfill_record(blob: StoredBlob) -> BlobRecord:
        return BlobRecord(
            id=blob.blob_id,
            original_name=blob.stored_name,
            stored_name=blob.stored_name,
            created_at=truncate_to_ms(blob.modified_at),
            downloads=0,
        )


__all__ = ["ExpirySweeper", "SweepReport"]
