from __future__ import annotations

from datetime import timedelta

from fastapi import FastAPI
from fastapi.testclient import TestClient

from src.puushy.metadata.metadata_models import BlobRecord, utcnow
from src.puushy.public.public_pages_router import build_public_pages_router
from src.puushy.retrieval.retrieval_service import RetrievalService


def build_client(blob_repo, metadata_store) -> TestClient:
    service = RetrievalService(blob_repo=blob_repo, metadata_store=metadata_store, ttl=timedelta(hours=1))
    app = FastAPI()
    app.include_router(build_public_pages_router(service))
    return TestClient(app)


def test_index_serves_upload_form(blob_repo, metadata_store) -> None:
    response = build_client(blob_repo, metadata_store).get("/")

    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/html")
    assert 'id="drop-zone"' in response.text


def test_landing_page_for_known_blob(blob_repo, metadata_store) -> None:
    (blob_repo.root / "abc123.txt").write_bytes(b"x")
    metadata_store.save(
        [BlobRecord(id="abc123", original_name="a.txt", stored_name="abc123.txt", created_at=utcnow())]
    )

    response = build_client(blob_repo, metadata_store).get("/f/abc123")

    assert response.status_code == 200
    assert "/static/download.js" in response.text


def test_landing_page_for_unknown_blob_is_404_page(blob_repo, metadata_store) -> None:
    response = build_client(blob_repo, metadata_store).get("/f/nope")

    assert response.status_code == 404
    assert "File not found" in response.text
