"""Application configuration for puushy.

Values are read from ``PUUSHY_*`` environment variables. Defaults give a one
hour TTL, a sweep every minute and a ten minute upload deadline.
"""

from __future__ import annotations

from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


def _default_data_root() -> Path:
    return Path("./var")


class AppConfig(BaseSettings):
    """Pydantic settings container for the service layer."""

    model_config = SettingsConfigDict(env_prefix="PUUSHY_")

    host: str = Field(default="0.0.0.0", description="Address the HTTP server binds to.")
    port: int = Field(default=3000, ge=1, le=65535, description="HTTP listen port.")
    data_root: Path = Field(
        default_factory=_default_data_root,
        description="Filesystem root holding uploads/ and data/metadata.json.",
    )
    ttl_seconds: float = Field(
        default=60 * 60,
        gt=0,
        description="Time-to-live of an uploaded blob in seconds.",
    )
    sweep_interval_seconds: float = Field(
        default=60,
        gt=0,
        description="Period of the background expiry sweep in seconds.",
    )
    max_upload_bytes: int = Field(
        default=15 * 1024 * 1024 * 1024,
        ge=1,
        description="Maximum accepted size of an uploaded file in bytes.",
    )
    upload_timeout_seconds: float = Field(
        default=600.0,
        gt=0,
        description="Upper bound on the total duration of one upload.",
    )
    upload_idle_timeout_seconds: float = Field(
        default=60.0,
        gt=0,
        description="Maximum time to wait for the next chunk of an upload.",
    )
    chunk_size_bytes: int = Field(
        default=1024 * 1024,
        ge=1024,
        description="Read size used when streaming blobs back to clients.",
    )
    tolerate_metadata_failures: bool = Field(
        default=True,
        description=(
            "Report upload success even when the metadata document could not be "
            "written; the blob is backfilled by the next sweep."
        ),
    )
    cors_allow_origins: list[str] = Field(
        default_factory=lambda: ["*"],
        description="Origins allowed to call the API from a browser (JSON list).",
    )
    log_level: str = Field(default="INFO", description="Root log level.")

    @property
    def uploads_dir(self) -> Path:
        return self.data_root / "uploads"

    @property
    def metadata_path(self) -> Path:
        return self.data_root / "data" / "metadata.json"

    def ensure_directories(self) -> None:
        self.uploads_dir.mkdir(parents=True, exist_ok=True)
        self.metadata_path.parent.mkdir(parents=True, exist_ok=True)


def load_config() -> AppConfig:
    """Load configuration from the environment and prepare storage directories."""
    config = AppConfig()
    config.ensure_directories()
    return config


__all__ = ["AppConfig", "load_config"]
