"""Catalog document model and its atomic publisher.

The catalog (``images.json``) is the index consumed by the API layer. It is
regenerated from the full record set on every import and is also the only
place the fingerprint to asset id mapping survives between runs.
"""

from __future__ import annotations

import json
import os
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterable, Iterator, List, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from carspace.core.errors import CatalogReadError, CatalogWriteError
from carspace.core.logging import get_logger

__all__ = [
    "CatalogRecord",
    "Catalog",
    "CatalogWriter",
    "build_record",
    "dedupe_records",
    "read_catalog",
    "recover_identifier_pairs",
    "write_catalog",
    "utc_timestamp",
]

CATALOG_MODE = 0o644


class CatalogRecord(BaseModel):
    """One published asset."""

    model_config = ConfigDict(extra="allow")

    id: str
    original_name: str
    filename: str
    extension: str
    url: str
    direct_url: str
    thumbnail_url: str
    hash: Optional[str] = None
    folder: str


class Catalog(BaseModel):
    model_config = ConfigDict(extra="allow")

    images: List[CatalogRecord] = Field(default_factory=list)
    total: int = 0
    generated_at: str = ""

    def without(self, asset_id: str) -> "Catalog":
        kept = [record for record in self.images if record.id != asset_id]
        return self.model_copy(update={"images": kept, "total": len(kept)})

    def ids(self) -> set[str]:
        return {record.id for record in self.images}


def utc_timestamp(moment: Optional[datetime] = None) -> str:
    """ISO-8601 UTC timestamp with a trailing ``Z``."""
    moment = moment or datetime.now(timezone.utc)
    return moment.astimezone(timezone.utc).replace(tzinfo=None).isoformat() + "Z"


def build_record(
    *,
    asset_id: str,
    original_name: str,
    folder: str,
    fingerprint: str,
    extension: str,
    url_prefix: str = "",
) -> CatalogRecord:
    prefix = url_prefix.rstrip("/")
    return CatalogRecord(
        id=asset_id,
        original_name=original_name,
        filename=f"{asset_id}.{extension}",
        extension=extension,
        url=f"{prefix}/{folder}/{asset_id}",
        direct_url=f"{prefix}/{folder}/{asset_id}.{extension}",
        thumbnail_url=f"{prefix}/thumbnails/{asset_id}.{extension}",
        hash=fingerprint,
        folder=folder,
    )


def dedupe_records(records: Iterable[CatalogRecord]) -> list[CatalogRecord]:
    """Keep the first record per content hash, preserving order."""
    seen: set[str] = set()
    unique: list[CatalogRecord] = []
    for record in records:
        key = record.hash if record.hash is not None else f"id:{record.id}"
        if key in seen:
            continue
        seen.add(key)
        unique.append(record)
    return unique


def read_catalog(path: Path) -> Catalog:
    try:
        payload = path.read_text(encoding="utf-8")
    except FileNotFoundError as exc:
        raise CatalogReadError(f"Catalog not found: {path}") from exc
    except OSError as exc:
        raise CatalogReadError(f"Unable to read catalog {path}: {exc}") from exc
    try:
        return Catalog.model_validate_json(payload)
    except ValidationError as exc:
        raise CatalogReadError(f"Invalid catalog data in {path}") from exc


def recover_identifier_pairs(path: Path) -> Iterator[tuple[str, str]]:
    """Yield ``(hash, id)`` for every hashed entry of an existing catalog.

    Fails open: a missing or unreadable catalog yields nothing.
    """
    logger = get_logger(component="catalog")
    try:
        document = json.loads(path.read_text(encoding="utf-8"))
    except FileNotFoundError:
        return
    except (OSError, ValueError) as exc:
        logger.warning("catalog_recovery_skipped", path=str(path), error=str(exc))
        return
    images = document.get("images") if isinstance(document, dict) else None
    for entry in images or []:
        if not isinstance(entry, dict):
            continue
        fingerprint, asset_id = entry.get("hash"), entry.get("id")
        if isinstance(fingerprint, str) and fingerprint and isinstance(asset_id, str) and asset_id:
            yield fingerprint, asset_id


def _atomic_write_text(path: Path, data: str) -> None:
    tmp_path = path.with_suffix(path.suffix + ".tmp")
    path.parent.mkdir(parents=True, exist_ok=True)
    try:
        with tmp_path.open("w", encoding="utf-8") as handle:
            handle.write(data)
            handle.flush()
            os.fsync(handle.fileno())
        tmp_path.replace(path)
    except OSError:
        tmp_path.unlink(missing_ok=True)
        raise


def write_catalog(path: Path, catalog: Catalog) -> None:
    """Publish *catalog* at *path*, replacing any previous document."""
    payload = json.dumps(catalog.model_dump(mode="json"), ensure_ascii=False, indent=2)
    try:
        _atomic_write_text(path, payload + "\n")
        os.chmod(path, CATALOG_MODE)
    except OSError as exc:
        raise CatalogWriteError(f"JSON write error for {path}: {exc}") from exc


class CatalogWriter:
    def __init__(self, path: Path):
        self.path = path
        self.logger = get_logger(component="catalog_writer", path=str(path))

    def write(self, records: Iterable[CatalogRecord]) -> Catalog:
        images = dedupe_records(records)
        catalog = Catalog(images=images, total=len(images), generated_at=utc_timestamp())
        write_catalog(self.path, catalog)
        self.logger.info("catalog_published", total=catalog.total)
        return catalog
