"""Dependency wiring helpers."""

from datetime import timedelta

from fastapi import FastAPI
from fastapi.staticfiles import StaticFiles

from .blobs.blob_repository import BlobRepository
from .config import AppConfig
from .expiry.expiry_sweeper import ExpirySweeper
from .http_errors import register_error_handlers
from .ingest.ingest_api import router as ingest_router
from .ingest.ingest_service import IngestService
from .metadata.metadata_store import MetadataStore
from .public.public_pages_router import STATIC_ROOT, build_public_pages_router
from .retrieval.retrieval_api import router as retrieval_router
from .retrieval.retrieval_service import RetrievalService


def include_routers(app: FastAPI, config: AppConfig) -> None:
    """Mount module routers and attach services."""
    ttl = timedelta(seconds=config.ttl_seconds)
    blob_repo = BlobRepository(config.uploads_dir, read_chunk_size=config.chunk_size_bytes)
    metadata_store = MetadataStore(config.metadata_path)

    ingest_service = IngestService(
        blob_repo=blob_repo,
        metadata_store=metadata_store,
        max_upload_bytes=config.max_upload_bytes,
        upload_timeout_seconds=config.upload_timeout_seconds,
        idle_timeout_seconds=config.upload_idle_timeout_seconds,
        tolerate_metadata_failures=config.tolerate_metadata_failures,
    )
    retrieval_service = RetrievalService(
        blob_repo=blob_repo,
        metadata_store=metadata_store,
        ttl=ttl,
    )
    # Staged parts younger than the upload deadline may still be in flight.
    sweeper = ExpirySweeper(
        blob_repo=blob_repo,
        metadata_store=metadata_store,
        ttl=ttl,
        stale_part_age=max(ttl, timedelta(seconds=config.upload_timeout_seconds)),
    )

    app.state.config = config
    app.state.blob_repo = blob_repo
    app.state.metadata_store = metadata_store
    app.state.ingest_service = ingest_service
    app.state.retrieval_service = retrieval_service
    app.state.expiry_sweeper = sweeper

    register_error_handlers(app)
    app.include_router(ingest_router)
    app.include_router(retrieval_router)
    app.include_router(build_public_pages_router(retrieval_service))
    app.mount("/static", StaticFiles(directory=STATIC_ROOT), name="static")
