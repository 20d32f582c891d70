from __future__ import annotations

import os
from functools import lru_cache
from pathlib import Path
from typing import Literal, Optional

from dotenv import load_dotenv
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict
from sqlalchemy.engine import URL, make_url


class Settings(BaseSettings):
    """Runtime configuration for the carspace image importer."""

    model_config = SettingsConfigDict(
        env_prefix="CARSPACE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    log_level: str = Field(default="info")
    log_format: Literal["json", "console"] = Field(default="json", description="structlog renderer.")

    source_root: Path = Field(default=Path("/root/CarImages"), description="Default tree of source photographs.")
    images_dir: Path = Field(default=Path("/var/www/images"), description="Primary renditions, one per asset id.")
    thumbnails_dir: Path = Field(default=Path("/var/www/thumbnails"), description="Square thumbnails, one per asset id.")
    api_dir: Path = Field(default=Path("/var/www/api"), description="Directory holding the published catalog.")
    catalog_filename: str = Field(default="images.json")

    size_policy: str = Field(default="1200x800", description="Default primary size preset.")
    thumbnail_size: int = Field(default=300, gt=0, description="Edge of the square thumbnail in pixels.")
    output_extension: str = Field(default="webp", description="Extension of every derived image.")
    webp_quality: int = Field(default=90, ge=1, le=100)
    renderers: tuple[str, ...] = Field(
        default=("magick", "convert", "opencv"),
        description="Rendering providers in priority order.",
    )
    strict_renderer: bool = Field(
        default=False,
        description="Fail a file instead of copying raw bytes when no renderer is available.",
    )
    max_workers: int = Field(default=4, ge=1, description="Concurrency ceiling for per-file work.")
    public_url_prefix: str = Field(default="", description="Prefix applied to catalog URLs.")

    pg_host: str = Field(default="localhost")
    pg_port: int = Field(default=5432)
    pg_user: str = Field(default="postgres")
    pg_password: Optional[str] = None
    pg_database: str = Field(default="carspace")
    database_url: Optional[str] = Field(
        default=None,
        description="SQLAlchemy async DSN; overrides the pg_* fields when set.",
    )

    @field_validator("size_policy")
    @classmethod
    def _validate_size_policy(cls, value: str) -> str:
        from carspace.ingest.size_policy import SizePolicy

        return SizePolicy.parse(value).label

    @field_validator("output_extension")
    @classmethod
    def _normalise_extension(cls, value: str) -> str:
        return value.lstrip(".").lower()

    @property
    def catalog_path(self) -> Path:
        return self.api_dir / self.catalog_filename

    @property
    def store_url(self) -> URL:
        if self.database_url:
            return make_url(self.database_url)
        return URL.create(
            "postgresql+asyncpg",
            username=self.pg_user,
            password=self.pg_password,
            host=self.pg_host,
            port=self.pg_port,
            database=self.pg_database,
        )

    @property
    def store_label(self) -> str:
        return self.store_url.render_as_string(hide_password=True)


_PG_ALIAS_MAP = {
    "PGHOST": "CARSPACE_PG_HOST",
    "PGPORT": "CARSPACE_PG_PORT",
    "PGUSER": "CARSPACE_PG_USER",
    "PGPASSWORD": "CARSPACE_PG_PASSWORD",
    "PGDATABASE": "CARSPACE_PG_DATABASE",
    "CARSPACE_DB_URL": "CARSPACE_DATABASE_URL",
}


@lru_cache()
def get_settings() -> Settings:
    load_dotenv(".env", override=False)

    for source, target in _PG_ALIAS_MAP.items():
        value = os.getenv(source)
        if value and not os.getenv(target):
            os.environ[target] = value

    return Settings()


__all__ = ["Settings", "get_settings"]
