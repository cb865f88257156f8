from __future__ import annotations

import pytest
from pydantic import ValidationError

from src.puushy.config import AppConfig, load_config


def test_defaults(monkeypatch) -> None:
    for name in ("PUUSHY_PORT", "PUUSHY_TTL_SECONDS", "PUUSHY_DATA_ROOT"):
        monkeypatch.delenv(name, raising=False)

    config = AppConfig()

    assert config.port == 3000
    assert config.ttl_seconds == 3600
    assert config.sweep_interval_seconds == 60
    assert config.max_upload_bytes == 15 * 1024**3
    assert config.tolerate_metadata_failures is True
    assert config.cors_allow_origins == ["*"]


def test_environment_overrides(monkeypatch, tmp_path) -> None:
    monkeypatch.setenv("PUUSHY_TTL_SECONDS", "90")
    monkeypatch.setenv("PUUSHY_DATA_ROOT", str(tmp_path / "store"))
    monkeypatch.setenv("PUUSHY_TOLERATE_METADATA_FAILURES", "false")

    config = AppConfig()

    assert config.ttl_seconds == 90
    assert config.tolerate_metadata_failures is False
    assert config.uploads_dir == tmp_path / "store" / "uploads"
    assert config.metadata_path == tmp_path / "store" / "data" / "metadata.json"


@pytest.mark.parametrize("field", ["ttl_seconds", "sweep_interval_seconds", "upload_timeout_seconds"])
def test_non_positive_durations_are_rejected(field: str) -> None:
    with pytest.raises(ValidationError):
        AppConfig(**{field: 0})


def test_load_config_creates_storage_directories(monkeypatch, tmp_path) -> None:
    monkeypatch.setenv("PUUSHY_DATA_ROOT", str(tmp_path / "fresh"))

    config = load_config()

    assert config.uploads_dir.is_dir()
    assert config.metadata_path.parent.is_dir()


def test_cors_origins_are_read_as_json_list(monkeypatch) -> None:
    monkeypatch.setenv("PUUSHY_CORS_ALLOW_ORIGINS", '["https://example.com", "http://localhost:5173"]')

    config = AppConfig()

    assert config.cors_allow_origins == ["https://example.com", "http://localhost:5173"]
