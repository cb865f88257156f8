from __future__ import annotations

from datetime import timedelta

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from src.puushy.http_errors import register_error_handlers
from src.puushy.metadata.metadata_models import BlobRecord, to_epoch_ms, utcnow
from src.puushy.retrieval.retrieval_api import content_disposition, download, router
from src.puushy.retrieval.retrieval_service import RetrievalService


@pytest.fixture
def client(blob_repo, metadata_store):
    app = FastAPI()
    app.state.retrieval_service = RetrievalService(
        blob_repo=blob_repo, metadata_store=metadata_store, ttl=timedelta(hours=1)
    )
    register_error_handlers(app)
    app.include_router(router)
    with TestClient(app) as test_client:
        yield test_client


def put_blob(blob_repo, metadata_store, original_name: str, content: bytes) -> BlobRecord:
    record = BlobRecord(
        id="abc123",
        original_name=original_name,
        stored_name="abc123.txt",
        created_at=utcnow(),
    )
    (blob_repo.root / record.stored_name).write_bytes(content)
    metadata_store.save([record])
    return record


def test_info_returns_epoch_millisecond_timestamps(client, blob_repo, metadata_store) -> None:
    record = put_blob(blob_repo, metadata_store, "a.txt", b"hello")

    response = client.get("/api/info/abc123")

    assert response.status_code == 200
    assert response.json() == {
        "id": "abc123",
        "filename": "a.txt",
        "downloads": 0,
        "createdAt": to_epoch_ms(record.created_at),
        "expiresAt": to_epoch_ms(record.created_at) + 3600 * 1000,
    }


def test_download_streams_blob_with_headers(client, blob_repo, metadata_store) -> None:
    put_blob(blob_repo, metadata_store, "a.txt", b"hello world")

    response = client.get("/api/download/abc123")

    assert response.status_code == 200
    assert response.content == b"hello world"
    assert response.headers["content-length"] == "11"
    assert response.headers["content-type"].startswith("text/plain")
    assert response.headers["content-disposition"] == 'attachment; filename="a.txt"'
    assert client.get("/api/info/abc123").json()["downloads"] == 1


def test_download_encodes_non_ascii_filenames(client, blob_repo, metadata_store) -> None:
    put_blob(blob_repo, metadata_store, "отчёт 2025.txt", b"data")

    response = client.get("/api/download/abc123")

    assert response.headers["content-disposition"].startswith("attachment; filename*=utf-8''")
    assert "%D0%BE" in response.headers["content-disposition"]


@pytest.mark.parametrize("path", ["/api/info/missing", "/api/download/missing"])
def test_unknown_blob_returns_json_404(client, path: str) -> None:
    response = client.get(path)

    assert response.status_code == 404
    assert response.json() == {"error": "File not found"}


def test_content_disposition_quotes_plain_names() -> None:
    assert content_disposition("report.pdf") == 'attachment; filename="report.pdf"'
    assert content_disposition('say "hi".txt') == "attachment; filename*=utf-8''say%20%22hi%22.txt"


@pytest.mark.asyncio
async def test_download_closes_reader_when_stream_is_never_consumed(blob_repo, metadata_store) -> None:
    put_blob(blob_repo, metadata_store, "a.txt", b"hello")
    service = RetrievalService(blob_repo=blob_repo, metadata_store=metadata_store, ttl=timedelta(hours=1))

    response = await download("abc123", service=service)
    reader = response.background.func.__self__
    assert reader.closed is False

    await response.background()

    assert reader.closed is True
