"""Incremental ``multipart/form-data`` parser for single-file uploads.

The parser never holds more than the part header block plus a trailing
window of ``len(marker) - 1`` bytes, so bodies of any size stream through in
bounded memory. Each call to :meth:`MultipartStreamParser.feed` returns the
events produced by that chunk; the caller owns all I/O.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum
from pathlib import PureWindowsPath

from python_multipart.multipart import parse_options_header

from ..exceptions import MalformedUploadError, NoFileProvidedError

MAX_HEADER_BYTES = 16 * 1024
MAX_BOUNDARY_LENGTH = 200
_CRLF = b"\r\n"
_HEADER_TERMINATOR = b"\r\n\r\n"


class ParserState(StrEnum):
    AWAITING_HEADERS = "awaiting_headers"
    STREAMING_BODY = "streaming_body"
    TERMINATED = "terminated"


@dataclass(slots=True, frozen=True)
class PartStarted:
    """Header block of the file part was parsed."""

    filename: str
    content_type: str | None = None


@dataclass(slots=True, frozen=True)
class BodyChunk:
    data: bytes


@dataclass(slots=True, frozen=True)
class PartCompleted:
    """Closing delimiter of the file part was found."""


ParserEvent = PartStarted | BodyChunk | PartCompleted


def parse_boundary(content_type: str | None) -> bytes:
    """Extract the boundary token from a request ``Content-Type`` header."""
    if not content_type:
        raise MalformedUploadError("missing content type")
    media_type, params = parse_options_header(content_type)
    if media_type.lower() != b"multipart/form-data":
        raise MalformedUploadError("content type must be multipart/form-data")
    boundary = params.get(b"boundary", b"").strip()
    if not boundary:
        raise MalformedUploadError("content type has no boundary parameter")
    if len(boundary) > MAX_BOUNDARY_LENGTH:
        raise MalformedUploadError("boundary parameter is too long")
    return boundary


def sanitize_filename(raw: str) -> str:
    """Strip directory components and control characters from a client name."""
    name = PureWindowsPath(raw).name
    name = "".join(ch for ch in name if ch.isprintable()).strip()
    if name in {"", ".", ".."}:
        return "file"
    return name


@dataclass(slots=True)
class MultipartStreamParser:
    """Three-state parser: AWAITING_HEADERS -> STREAMING_BODY -> TERMINATED."""

    boundary: bytes
    state: ParserState = ParserState.AWAITING_HEADERS
    header_buffer: bytearray = field(default_factory=bytearray)
    tail: bytes = b""
    max_header_bytes: int = MAX_HEADER_BYTES

    @property
    def delimiter(self) -> bytes:
        return b"--" + self.boundary

    @property
    def marker(self) -> bytes:
        # The CRLF before a delimiter belongs to the delimiter, not the content.
        return _CRLF + self.delimiter

    def feed(self, chunk: bytes) -> list[ParserEvent]:
        if self.state is ParserState.TERMINATED or not chunk:
            return []
        if self.state is ParserState.STREAMING_BODY:
            return self._scan_body(chunk)

        self.header_buffer.extend(chunk)
        parsed = self._parse_header_block()
        if parsed is None:
            return []
        started, body_start = parsed
        remainder = bytes(self.header_buffer[body_start:])
        self.header_buffer.clear()
        self.state = ParserState.STREAMING_BODY
        events: list[ParserEvent] = [started]
        events.extend(self._scan_body(remainder))
        return events

    def finish(self) -> None:
        """Validate end of stream; raises when the part never completed."""
        if self.state is ParserState.TERMINATED:
            return
        if self.state is ParserState.STREAMING_BODY:
            raise MalformedUploadError("request body ended before the closing boundary")
        raise NoFileProvidedError("request body ended before a file part started")

    def _scan_body(self, data: bytes) -> list[ParserEvent]:
        window = self.tail + data if self.tail else data
        marker = self.marker
        index = window.find(marker)
        if index != -1:
            self.tail = b""
            self.state = ParserState.TERMINATED
            if index:
                return [BodyChunk(window[:index]), PartCompleted()]
            return [PartCompleted()]

        keep = len(marker) - 1
        if len(window) <= keep:
            self.tail = window
            return []
        self.tail = window[-keep:]
        return [BodyChunk(window[:-keep])]

    def _parse_header_block(self) -> tuple[PartStarted, int] | None:
        buffer = self.header_buffer
        delimiter = self.delimiter
        start = buffer.find(delimiter)
        if start == -1:
            self._check_header_size()
            return None

        after = start + len(delimiter)
        if len(buffer) < after + 2:
            return None
        if buffer[after : after + 2] == b"--":
            raise NoFileProvidedError("request body contains no file part")
        if buffer[after : after + 2] != _CRLF:
            raise MalformedUploadError("boundary delimiter is not followed by CRLF")

        headers_start = after + 2
        terminator = buffer.find(_HEADER_TERMINATOR, headers_start - 2)
        if terminator == -1:
            self._check_header_size()
            return None

        header_block = bytes(buffer[headers_start:terminator]) if terminator >= headers_start else b""
        started = self._part_from_headers(header_block)
        return started, terminator + len(_HEADER_TERMINATOR)

    def _check_header_size(self) -> None:
        if len(self.header_buffer) > self.max_header_bytes:
            raise MalformedUploadError("part headers exceed the maximum size")

    @staticmethod
    def _part_from_headers(header_block: bytes) -> PartStarted:
        headers: dict[str, bytes] = {}
        for line in header_block.split(_CRLF):
            if not line:
                continue
            name, sep, value = line.partition(b":")
            if not sep:
                raise MalformedUploadError("malformed part header line")
            headers[name.strip().decode("latin-1").lower()] = value.strip()

        disposition = headers.get("content-disposition")
        if disposition is None:
            raise MalformedUploadError("part has no Content-Disposition header")
        kind, params = parse_options_header(disposition)
        if kind.lower() != b"form-data":
            raise MalformedUploadError("part disposition must be form-data")
        raw_filename = params.get(b"filename")
        if raw_filename is None:
            raise MalformedUploadError("part has no file name")
        filename = raw_filename.decode("utf-8", errors="replace")
        if not filename:
            raise NoFileProvidedError("no file selected")

        content_type = headers.get("content-type")
        return PartStarted(
            filename=sanitize_filename(filename),
            content_type=content_type.decode("latin-1") if content_type else None,
        )


__all__ = [
    "BodyChunk",
    "MultipartStreamParser",
    "ParserEvent",
    "ParserState",
    "PartCompleted",
    "PartStarted",
    "parse_boundary",
    "sanitize_filename",
]
