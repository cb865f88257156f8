"""Translate domain errors into ``{"error": ...}`` JSON responses."""

from __future__ import annotations

import logging

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

from .exceptions import (
    BlobIOError,
    BlobNotFoundError,
    MalformedUploadError,
    MetadataPersistError,
    NoFileProvidedError,
    PuushyError,
    SizeLimitExceededError,
    UploadTimeoutError,
)

logger = logging.getLogger(__name__)

# Most specific classes first; the first isinstance match wins.
ERROR_STATUS: tuple[tuple[type[PuushyError], int, str], ...] = (
    (MalformedUploadError, status.HTTP_400_BAD_REQUEST, "Malformed upload"),
    (NoFileProvidedError, status.HTTP_400_BAD_REQUEST, "No file provided"),
    (SizeLimitExceededError, status.HTTP_400_BAD_REQUEST, "File too large"),
    (UploadTimeoutError, status.HTTP_408_REQUEST_TIMEOUT, "Upload timed out"),
    (BlobNotFoundError, status.HTTP_404_NOT_FOUND, "File not found"),
    (MetadataPersistError, status.HTTP_500_INTERNAL_SERVER_ERROR, "Could not save file metadata"),
    (BlobIOError, status.HTTP_500_INTERNAL_SERVER_ERROR, "Storage failure"),
)


def error_response(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": message})


def resolve_error(exc: PuushyError) -> tuple[int, str]:
    for error_cls, status_code, message in ERROR_STATUS:
        if isinstance(exc, error_cls):
            if status_code == status.HTTP_400_BAD_REQUEST:
                return status_code, f"{message}: {exc}"
            return status_code, message
    return status.HTTP_500_INTERNAL_SERVER_ERROR, "Internal server error"


async def puushy_error_handler(request: Request, exc: Exception) -> JSONResponse:
    """Convert :class:`PuushyError` exceptions into JSON payloads."""
    if not isinstance(exc, PuushyError):  # pragma: no cover - registered for PuushyError only
        raise exc
    status_code, message = resolve_error(exc)
    if status_code >= 500:
        logger.error(
            "http.request.failed",
            extra={"path": request.url.path, "error": str(exc)},
            exc_info=exc,
        )
    else:
        logger.info(
            "http.request.rejected",
            extra={"path": request.url.path, "status_code": status_code, "error": str(exc)},
        )
    return error_response(status_code, message)


def register_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(PuushyError, puushy_error_handler)


__all__ = [
    "ERROR_STATUS",
    "error_response",
    "puushy_error_handler",
    "register_error_handlers",
    "resolve_error",
]
