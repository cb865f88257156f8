"""Human-facing pages: the upload form and the download landing page."""

from __future__ import annotations

import logging
from pathlib import Path

from fastapi import APIRouter, status
from fastapi.responses import FileResponse

from ..exceptions import BlobNotFoundError
from ..retrieval.retrieval_service import RetrievalService

STATIC_ROOT = Path(__file__).resolve().parent / "static"

logger = logging.getLogger(__name__)


def build_public_pages_router(
    service: RetrievalService, static_root: Path = STATIC_ROOT
) -> APIRouter:
    router = APIRouter(tags=["pages"])

    @router.get("/", include_in_schema=False)
    def index() -> FileResponse:
        return FileResponse(static_root / "index.html", media_type="text/html")

    @router.get("/f/{blob_id}", include_in_schema=False)
    async def landing(blob_id: str) -> FileResponse:
        try:
            await service.describe(blob_id)
        except BlobNotFoundError:
            logger.debug("pages.landing.not_found", extra={"blob_id": blob_id})
            return FileResponse(
                static_root / "404.html",
                status_code=status.HTTP_404_NOT_FOUND,
                media_type="text/html",
            )
        return FileResponse(static_root / "download.html", media_type="text/html")

    return router
