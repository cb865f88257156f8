"""HTTP route for uploads."""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Request, status
from fastapi.responses import JSONResponse
from starlette.requests import ClientDisconnect

from ..exceptions import PuushyError
from ..http_errors import error_response
from .ingest_service import IngestService

router = APIRouter(tags=["upload"])
logger = logging.getLogger(__name__)


def get_ingest_service(request: Request) -> IngestService:
    """Fetch ingest service from application state."""
    try:
        return request.app.state.ingest_service  # type: ignore[attr-defined]
    except AttributeError as exc:  # pragma: no cover - defensive path
        raise RuntimeError("IngestService is not configured") from exc


def _content_length(raw: str | None) -> int | None:
    if raw is None:
        return None
    try:
        value = int(raw)
    except ValueError:
        return None
    return value if value >= 0 else None


@router.post("/upload")
async def upload_file(
    request: Request,
    service: IngestService = Depends(get_ingest_service),
) -> JSONResponse:
    """Stream a ``multipart/form-data`` body straight into blob storage."""
    content_length = _content_length(request.headers.get("content-length"))
    logger.info("upload.request.start", extra={"content_length": content_length})
    try:
        receipt = await service.ingest(
            content_type=request.headers.get("content-type"),
            body=request.stream(),
            content_length=content_length,
        )
    except PuushyError:
        raise
    except ClientDisconnect:
        logger.info("upload.request.client_disconnected")
        return error_response(status.HTTP_400_BAD_REQUEST, "Client disconnected")
    except Exception:
        logger.exception("upload.request.unexpected_error")
        return error_response(status.HTTP_500_INTERNAL_SERVER_ERROR, "Upload failed")
    return JSONResponse(receipt.to_payload())
