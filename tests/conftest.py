from __future__ import annotations

from collections.abc import Iterator
from pathlib import Path

import pytest
from fastapi.testclient import TestClient

from src.puushy.blobs.blob_repository import BlobRepository
from src.puushy.config import AppConfig
from src.puushy.main import create_app
from src.puushy.metadata.metadata_store import MetadataStore


@pytest.fixture
def app_config(tmp_path: Path) -> AppConfig:
    config = AppConfig(
        data_root=tmp_path / "var",
        ttl_seconds=3600,
        sweep_interval_seconds=3600,
        upload_timeout_seconds=5,
        upload_idle_timeout_seconds=5,
    )
    config.ensure_directories()
    return config


@pytest.fixture
def blob_repo(app_config: AppConfig) -> BlobRepository:
    # Small read chunks so streaming code paths iterate more than once.
    return BlobRepository(app_config.uploads_dir, read_chunk_size=4)


@pytest.fixture
def metadata_store(app_config: AppConfig) -> MetadataStore:
    return MetadataStore(app_config.metadata_path)


@pytest.fixture
def contract_app(app_config: AppConfig):
    return create_app(app_config, enable_expiry_sweep=False)


@pytest.fixture
def contract_client(contract_app) -> Iterator[TestClient]:
    with TestClient(contract_app) as client:
        yield client
