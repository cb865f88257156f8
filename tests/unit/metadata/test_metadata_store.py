from __future__ import annotations

import asyncio
import json
from datetime import datetime, timedelta, timezone

import pytest

from src.puushy.exceptions import MetadataPersistError
from src.puushy.metadata.metadata_models import BlobRecord, from_epoch_ms, to_epoch_ms
from src.puushy.metadata.metadata_store import MetadataStore

CREATED = datetime(2025, 3, 1, 8, 30, 15, 123000, tzinfo=timezone.utc)


def make_record(blob_id: str = "abc123", downloads: int = 0) -> BlobRecord:
    return BlobRecord(
        id=blob_id,
        original_name="holiday photo.jpg",
        stored_name=f"{blob_id}.jpg",
        created_at=CREATED,
        downloads=downloads,
    )


def test_epoch_conversion_keeps_milliseconds() -> None:
    assert from_epoch_ms(to_epoch_ms(CREATED)) == CREATED
    assert to_epoch_ms(datetime(1970, 1, 1, 0, 0, 1, tzinfo=timezone.utc)) == 1000


def test_record_expiry_is_strictly_after_ttl() -> None:
    record = make_record()
    ttl = timedelta(hours=1)

    assert record.expires_at(ttl) == CREATED + ttl
    assert not record.is_expired(CREATED + ttl, ttl)
    assert record.is_expired(CREATED + ttl + timedelta(milliseconds=1), ttl)


def test_load_missing_document_returns_empty(tmp_path) -> None:
    store = MetadataStore(tmp_path / "data" / "metadata.json")

    assert store.load() == []


@pytest.mark.parametrize("content", ["{not json", "[]", '{"files": {}}', ""])
def test_load_unusable_document_returns_empty(tmp_path, content: str) -> None:
    path = tmp_path / "metadata.json"
    path.write_text(content, encoding="utf-8")

    assert MetadataStore(path).load() == []


def test_load_skips_invalid_and_duplicate_entries(tmp_path) -> None:
    path = tmp_path / "metadata.json"
    valid = make_record().to_document()
    path.write_text(
        json.dumps(
            {
                "files": [
                    valid,
                    {"id": 5},
                    "junk",
                    dict(valid, downloads=9),
                    dict(valid, id="huge", createdAt=1e20),
                    dict(valid, id="endless", createdAt=float("inf")),
                    dict(valid, id="undefined", createdAt=float("nan")),
                ]
            }
        ),
        encoding="utf-8",
    )

    assert MetadataStore(path).load() == [make_record()]


def test_save_writes_document_format(tmp_path) -> None:
    path = tmp_path / "data" / "metadata.json"
    store = MetadataStore(path)

    store.save([make_record(downloads=2)])

    document = json.loads(path.read_text(encoding="utf-8"))
    assert document == {
        "files": [
            {
                "id": "abc123",
                "originalName": "holiday photo.jpg",
                "filename": "abc123.jpg",
                "downloads": 2,
                "createdAt": to_epoch_ms(CREATED),
            }
        ]
    }
    assert sorted(p.name for p in path.parent.iterdir()) == ["metadata.json"]
    assert store.load() == [make_record(downloads=2)]


def test_save_failure_raises_persist_error(tmp_path) -> None:
    blocker = tmp_path / "blocker"
    blocker.write_text("not a directory", encoding="utf-8")
    store = MetadataStore(blocker / "metadata.json")

    with pytest.raises(MetadataPersistError):
        store.save([make_record()])


def test_record_without_original_name_falls_back_to_stored_name() -> None:
    document = make_record().to_document()
    del document["originalName"]

    assert BlobRecord.from_document(document).original_name == "abc123.jpg"


@pytest.mark.asyncio
async def test_transaction_commit_persists_changes(tmp_path) -> None:
    store = MetadataStore(tmp_path / "metadata.json")

    async with store.transaction() as tx:
        tx.append(make_record("first"))
        tx.append(make_record("second"))
        assert tx.dirty is True
        await tx.commit()
        assert tx.dirty is False

    async with store.transaction() as tx:
        removed = tx.remove("first")
        await tx.commit()

    assert removed is not None and removed.id == "first"
    assert [record.id for record in await store.snapshot()] == ["second"]


@pytest.mark.asyncio
async def test_transaction_rejects_duplicate_ids(tmp_path) -> None:
    store = MetadataStore(tmp_path / "metadata.json")

    async with store.transaction() as tx:
        tx.append(make_record())
        with pytest.raises(ValueError):
            tx.append(make_record())


@pytest.mark.asyncio
async def test_concurrent_transactions_never_lose_updates(tmp_path) -> None:
    store = MetadataStore(tmp_path / "metadata.json")
    store.save([make_record()])

    async def bump() -> None:
        async with store.transaction() as tx:
            record = tx.get("abc123")
            await asyncio.sleep(0)
            tx.replace(record.with_download())
            await tx.commit()

    await asyncio.gather(*(bump() for _ in range(25)))

    [record] = store.load()
    assert record.downloads == 25
