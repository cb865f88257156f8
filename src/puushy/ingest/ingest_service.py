"""Domain service for streaming uploads into the blob repository."""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterable, Callable
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

import structlog

from ..blobs.blob_repository import BlobRepository
from ..exceptions import (
    BlobIOError,
    MetadataPersistError,
    NoFileProvidedError,
    SizeLimitExceededError,
    UploadTimeoutError,
)
from ..metadata.metadata_models import BlobRecord, utcnow
from ..metadata.metadata_store import MetadataStore
from .ingest_models import UploadReceipt, UploadSession, generate_blob_id, stored_name_for
from .multipart_parser import (
    BodyChunk,
    MultipartStreamParser,
    ParserState,
    PartCompleted,
    PartStarted,
    parse_boundary,
)

logger = structlog.get_logger(__name__)

# Room for the part headers and delimiters around the file body.
FRAMING_ALLOWANCE_BYTES = 64 * 1024
ID_ALLOCATION_ATTEMPTS = 5


@dataclass(slots=True)
class IngestService:
    """Consume a multipart body, store the file part and register its record."""

    blob_repo: BlobRepository
    metadata_store: MetadataStore
    max_upload_bytes: int
    upload_timeout_seconds: float
    idle_timeout_seconds: float
    tolerate_metadata_failures: bool = True
    id_factory: Callable[[], str] = field(default_factory=lambda: generate_blob_id)
    clock: Callable[[], datetime] = field(default_factory=lambda: utcnow)
    log: Any = field(default_factory=lambda: logger)

    async def ingest(
        self,
        *,
        content_type: str | None,
        body: AsyncIterable[bytes],
        content_length: int | None = None,
    ) -> UploadReceipt:
        """Stream ``body`` into storage and return the receipt for the new blob."""
        boundary = parse_boundary(content_type)
        if content_length is not None and content_length > self.max_upload_bytes + FRAMING_ALLOWANCE_BYTES:
            self.log.warning(
                "ingest.upload.rejected_by_length",
                content_length=content_length,
                limit_bytes=self.max_upload_bytes,
            )
            raise SizeLimitExceededError(content_length, self.max_upload_bytes)

        session = UploadSession(parser=MultipartStreamParser(boundary))
        try:
            await asyncio.wait_for(
                self._consume(session, body), timeout=self.upload_timeout_seconds
            )
        except asyncio.TimeoutError as exc:
            await session.abort()
            self.log.warning(
                "ingest.upload.timeout",
                blob_id=session.blob_id,
                bytes_received=session.bytes_received,
                timeout_seconds=self.upload_timeout_seconds,
            )
            raise UploadTimeoutError(
                f"upload did not finish within {self.upload_timeout_seconds:g}s"
            ) from exc
        except BaseException:
            await session.abort()
            self.log.info(
                "ingest.upload.aborted",
                blob_id=session.blob_id,
                bytes_received=session.bytes_received,
            )
            raise

        return await self._register(session)

    async def _consume(self, session: UploadSession, body: AsyncIterable[bytes]) -> None:
        iterator = body.__aiter__()
        parser = session.parser
        while parser.state is not ParserState.TERMINATED:
            try:
                chunk = await asyncio.wait_for(
                    iterator.__anext__(), timeout=self.idle_timeout_seconds
                )
            except StopAsyncIteration:
                break
            except asyncio.TimeoutError as exc:
                self.log.warning(
                    "ingest.upload.stalled",
                    blob_id=session.blob_id,
                    bytes_received=session.bytes_received,
                    idle_timeout_seconds=self.idle_timeout_seconds,
                )
                raise UploadTimeoutError(
                    f"no data received for {self.idle_timeout_seconds:g}s"
                ) from exc
            session.bytes_received += len(chunk)
            for event in parser.feed(chunk):
                await self._apply(session, event)

        parser.finish()
        if session.bytes_written == 0:
            raise NoFileProvidedError("uploaded file is empty")

    async def _apply(self, session: UploadSession, event: object) -> None:
        if isinstance(event, PartStarted):
            session.blob_id, session.stored_name = await self._allocate_name(event.filename)
            session.original_name = event.filename
            session.writer = await self.blob_repo.open_writer(session.stored_name)
            self.log.info(
                "ingest.upload.started",
                blob_id=session.blob_id,
                filename=event.filename,
                stored_name=session.stored_name,
            )
        elif isinstance(event, BodyChunk):
            writer = session.writer
            if writer is None:
                raise BlobIOError("body data arrived before a write target was opened")
            size = writer.bytes_written + len(event.data)
            if size > self.max_upload_bytes:
                self.log.warning(
                    "ingest.upload.payload_too_large",
                    blob_id=session.blob_id,
                    size_bytes=size,
                    limit_bytes=self.max_upload_bytes,
                )
                raise SizeLimitExceededError(size, self.max_upload_bytes)
            await writer.write(event.data)
        elif isinstance(event, PartCompleted):
            writer = session.writer
            if writer is None:
                raise BlobIOError("part completed without a write target")
            if writer.bytes_written == 0:
                raise NoFileProvidedError("uploaded file is empty")
            await writer.finalize()
            session.completed = True

    async def _allocate_name(self, filename: str) -> tuple[str, str]:
        for _ in range(ID_ALLOCATION_ATTEMPTS):
            candidate = self.id_factory()
            stored_name = stored_name_for(candidate, filename)
            if not await self.blob_repo.name_in_use(stored_name):
                return candidate, stored_name
        raise BlobIOError("could not allocate a unique blob identifier")

    async def _register(self, session: UploadSession) -> UploadReceipt:
        if session.blob_id is None or session.stored_name is None or session.original_name is None:
            raise RuntimeError("UploadSession is not fully initialized")
        record = BlobRecord(
            id=session.blob_id,
            original_name=session.original_name,
            stored_name=session.stored_name,
            created_at=self.clock(),
            downloads=0,
        )
        persisted = True
        try:
            async with self.metadata_store.transaction() as tx:
                existing = tx.get(record.id)
                if existing is None:
                    tx.append(record)
                elif existing.stored_name == record.stored_name:
                    # A sweep may have backfilled the finalized blob already.
                    tx.replace(record)
                else:
                    await asyncio.to_thread(self.blob_repo.delete, record.stored_name)
                    raise BlobIOError(f"identifier '{record.id}' is already registered")
                await tx.commit()
        except MetadataPersistError:
            if not self.tolerate_metadata_failures:
                self.log.error("ingest.upload.metadata_failed", blob_id=record.id, exc_info=True)
                await asyncio.to_thread(self.blob_repo.delete, record.stored_name)
                raise
            persisted = False
            self.log.warning(
                "ingest.upload.metadata_deferred",
                blob_id=record.id,
                stored_name=record.stored_name,
                exc_info=True,
            )

        size = session.bytes_written
        self.log.info(
            "ingest.upload.completed",
            blob_id=record.id,
            filename=record.original_name,
            size_bytes=size,
            metadata_persisted=persisted,
        )
        return UploadReceipt(
            id=record.id,
            filename=record.original_name,
            size_bytes=size,
            metadata_persisted=persisted,
        )


__all__ = ["IngestService", "FRAMING_ALLOWANCE_BYTES"]
