"""Filesystem storage for uploaded blobs.

Each blob lives in a single file named ``<id><ext>`` under the uploads
directory. Writers stage bytes in ``<name>.part`` and rename the file into
place on finalize, so a partially received upload is never visible as a blob.
"""

from __future__ import annotations

import asyncio
import logging
import os
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import AsyncIterator, BinaryIO

from ..exceptions import BlobIOError

PART_SUFFIX = ".part"
DEFAULT_READ_CHUNK = 1024 * 1024
_FORBIDDEN_NAME_CHARS = frozenset("/\\\x00")

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class StoredBlob:
    """A finalized blob file found on disk."""

    stored_name: str
    path: Path
    size_bytes: int
    modified_at: datetime

    @property
    def blob_id(self) -> str:
        return blob_id_from_stored_name(self.stored_name)


def blob_id_from_stored_name(stored_name: str) -> str:
    return stored_name.split(".", 1)[0]


class BlobWriter:
    """Write target for one upload, owned by a single ingestion."""

    def __init__(self, stored_name: str, final_path: Path, handle: BinaryIO) -> None:
        self.stored_name = stored_name
        self.final_path = final_path
        self.part_path = final_path.with_name(final_path.name + PART_SUFFIX)
        self.bytes_written = 0
        self._handle: BinaryIO | None = handle
        self._finalized = False

    @property
    def closed(self) -> bool:
        return self._handle is None

    async def write(self, data: bytes) -> None:
        if not data:
            return
        handle = self._require_handle()
        try:
            await asyncio.to_thread(handle.write, data)
        except OSError as exc:
            raise BlobIOError(f"failed to write blob '{self.stored_name}'") from exc
        self.bytes_written += len(data)

    async def finalize(self) -> Path:
        """Flush, close and move the staged file to its final name."""
        handle = self._require_handle()
        self._handle = None
        try:
            await asyncio.to_thread(self._close_and_publish, handle)
        except OSError as exc:
            await self._discard_part()
            raise BlobIOError(f"failed to finalize blob '{self.stored_name}'") from exc
        self._finalized = True
        return self.final_path

    async def abort(self) -> None:
        """Close the handle and remove whatever was staged. Safe to call twice."""
        handle, self._handle = self._handle, None
        if handle is not None:
            try:
                await asyncio.to_thread(handle.close)
            except OSError:
                logger.warning("blob.writer.close_failed", extra={"stored_name": self.stored_name})
        if not self._finalized:
            await self._discard_part()

    def _close_and_publish(self, handle: BinaryIO) -> None:
        try:
            handle.flush()
            os.fsync(handle.fileno())
        finally:
            handle.close()
        os.replace(self.part_path, self.final_path)

    async def _discard_part(self) -> None:
        try:
            await asyncio.to_thread(self.part_path.unlink, missing_ok=True)
        except OSError:
            logger.warning(
                "blob.writer.discard_failed",
                extra={"path": str(self.part_path)},
                exc_info=True,
            )

    def _require_handle(self) -> BinaryIO:
        if self._handle is None:
            raise BlobIOError(f"write target for '{self.stored_name}' is closed")
        return self._handle


class BlobReader:
    """Open handle on a finalized blob, streamed in fixed-size chunks."""

    def __init__(self, path: Path, handle: BinaryIO, size_bytes: int, chunk_size: int) -> None:
        self.path = path
        self.size_bytes = size_bytes
        self._handle = handle
        self._chunk_size = chunk_size

    async def iter_chunks(self) -> AsyncIterator[bytes]:
        try:
            while True:
                chunk = await asyncio.to_thread(self._handle.read, self._chunk_size)
                if not chunk:
                    break
                yield chunk
        except OSError as exc:
            raise BlobIOError(f"failed to read blob '{self.path.name}'") from exc
        finally:
            await self.aclose()

    @property
    def closed(self) -> bool:
        return self._handle.closed

    async def aclose(self) -> None:
        if not self._handle.closed:
            await asyncio.to_thread(self._handle.close)


@dataclass(slots=True)
class BlobRepository:
    """Map stored names to files inside ``root``."""

    root: Path
    read_chunk_size: int = DEFAULT_READ_CHUNK
    log: logging.Logger = field(default_factory=lambda: logger)

    def path_for(self, stored_name: str) -> Path:
        """Resolve ``stored_name`` and ensure it stays under the repository root."""
        if (
            stored_name in {"", ".", ".."}
            or any(ch in _FORBIDDEN_NAME_CHARS for ch in stored_name)
        ):
            raise BlobIOError(f"invalid stored name '{stored_name}'")
        root = self.root.resolve()
        candidate = (root / stored_name).resolve()
        if candidate.parent != root:
            raise BlobIOError(f"stored name '{stored_name}' escapes the repository root")
        return candidate

    def exists(self, stored_name: str) -> bool:
        try:
            return self.path_for(stored_name).is_file()
        except BlobIOError:
            return False

    async def name_in_use(self, stored_name: str) -> bool:
        """Return True when ``stored_name`` exists finalized or staged."""
        path = self.path_for(stored_name)
        part_path = path.with_name(path.name + PART_SUFFIX)
        return await asyncio.to_thread(lambda: path.exists() or part_path.exists())

    async def open_writer(self, stored_name: str) -> BlobWriter:
        final_path = self.path_for(stored_name)
        part_path = final_path.with_name(final_path.name + PART_SUFFIX)
        try:
            await asyncio.to_thread(self.root.mkdir, parents=True, exist_ok=True)
            handle = await asyncio.to_thread(open, part_path, "xb")
        except OSError as exc:
            raise BlobIOError(f"failed to open write target for '{stored_name}'") from exc
        self.log.debug("blob.writer.opened", extra={"stored_name": stored_name})
        return BlobWriter(stored_name, final_path, handle)

    async def open_reader(self, stored_name: str) -> BlobReader | None:
        """Open a finalized blob for streaming, or return None when it is gone."""
        path = self.path_for(stored_name)
        try:
            handle = await asyncio.to_thread(open, path, "rb")
        except FileNotFoundError:
            return None
        except OSError as exc:
            raise BlobIOError(f"failed to open blob '{stored_name}'") from exc
        size = os.fstat(handle.fileno()).st_size
        return BlobReader(path, handle, size, self.read_chunk_size)

    def delete(self, stored_name: str) -> bool:
        """Remove a blob; return False when it was already missing."""
        path = self.path_for(stored_name)
        try:
            path.unlink()
        except FileNotFoundError:
            return False
        except OSError as exc:
            raise BlobIOError(f"failed to delete blob '{stored_name}'") from exc
        return True

    def list_blobs(self) -> list[StoredBlob]:
        """Return all finalized blobs, skipping staged ``.part`` files."""
        return [
            blob for blob in self._scan() if not blob.stored_name.endswith(PART_SUFFIX)
        ]

    def list_staged(self) -> list[StoredBlob]:
        return [blob for blob in self._scan() if blob.stored_name.endswith(PART_SUFFIX)]

    def remove_staged(self, staged: StoredBlob) -> None:
        try:
            staged.path.unlink(missing_ok=True)
        except OSError as exc:
            raise BlobIOError(f"failed to remove staged file '{staged.stored_name}'") from exc

    def _scan(self) -> list[StoredBlob]:
        if not self.root.exists():
            return []
        blobs: list[StoredBlob] = []
        for entry in sorted(self.root.iterdir()):
            try:
                stat = entry.stat()
            except FileNotFoundError:
                continue
            if not entry.is_file():
                continue
            blobs.append(
                StoredBlob(
                    stored_name=entry.name,
                    path=entry,
                    size_bytes=stat.st_size,
                    modified_at=datetime.fromtimestamp(stat.st_mtime, tz=timezone.utc),
                )
            )
        return blobs


__all__ = [
    "BlobReader",
    "BlobRepository",
    "BlobWriter",
    "PART_SUFFIX",
    "StoredBlob",
    "blob_id_from_stored_name",
]
