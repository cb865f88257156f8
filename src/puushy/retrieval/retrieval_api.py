"""JSON info and download endpoints."""

from __future__ import annotations

import mimetypes
from urllib.parse import quote

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse, StreamingResponse
from starlette.background import BackgroundTask

from .retrieval_service import RetrievalService

router = APIRouter(prefix="/api", tags=["retrieval"])


def get_retrieval_service(request: Request) -> RetrievalService:
    """Fetch retrieval service from application state."""
    try:
        return request.app.state.retrieval_service  # type: ignore[attr-defined]
    except AttributeError as exc:  # pragma: no cover - defensive path
        raise RuntimeError("RetrievalService is not configured") from exc


def content_disposition(filename: str, disposition: str = "attachment") -> str:
    quoted = quote(filename)
    if quoted != filename:
        return f"{disposition}; filename*=utf-8''{quoted}"
    return f'{disposition}; filename="{filename}"'


@router.get("/info/{blob_id}")
async def get_info(
    blob_id: str,
    service: RetrievalService = Depends(get_retrieval_service),
) -> JSONResponse:
    info = await service.describe(blob_id)
    return JSONResponse(info.to_payload())


@router.get("/download/{blob_id}")
async def download(
    blob_id: str,
    service: RetrievalService = Depends(get_retrieval_service),
) -> StreamingResponse:
    blob = await service.fetch(blob_id)
    media_type = mimetypes.guess_type(blob.filename)[0] or "application/octet-stream"
    return StreamingResponse(
        blob.reader.iter_chunks(),
        media_type=media_type,
        headers={
            "Content-Disposition": content_disposition(blob.filename),
            "Content-Length": str(blob.size_bytes),
        },
        background=BackgroundTask(blob.reader.aclose),
    )
