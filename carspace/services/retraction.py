from __future__ import annotations

import re
import shutil
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Optional

from carspace.core.errors import CarspaceError, NotFound, RetractionAborted
from carspace.core.logging import get_logger
from carspace.core.store import CatalogStore
from carspace.ingest.catalog import read_catalog, write_catalog

__all__ = ["CONFIRMATION_TOKEN", "RetractionReport", "RetractionManager"]

CONFIRMATION_TOKEN = "YES"
_ASSET_ID = re.compile(r"[A-Za-z0-9_-]+")


@dataclass(slots=True)
class RetractionReport:
    """Outcome per location: ``removed`` holds what was found and deleted."""

    asset_id: Optional[str] = None
    removed: Dict[str, int] = field(default_factory=dict)
    missing: list[str] = field(default_factory=list)
    errors: Dict[str, str] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return not self.errors


class RetractionManager:
    def __init__(
        self,
        store: CatalogStore,
        *,
        images_dir: Path,
        thumbnails_dir: Path,
        catalog_path: Path,
    ):
        self.store = store
        self.images_dir = images_dir
        self.thumbnails_dir = thumbnails_dir
        self.catalog_path = catalog_path
        self.logger = get_logger(component="retraction")

    async def retract_one(self, asset_id: str) -> RetractionReport:
        if not _ASSET_ID.fullmatch(asset_id):
            raise ValueError(f"Invalid asset id: {asset_id!r}")
        report = RetractionReport(asset_id=asset_id)
        steps = {
            "image": lambda: self._remove_matching(self.images_dir, asset_id),
            "thumbnail": lambda: self._remove_matching(self.thumbnails_dir, asset_id),
            "catalog": lambda: self._remove_from_catalog(asset_id),
        }
        for step, action in steps.items():
            try:
                report.removed[step] = action()
            except NotFound as exc:
                self.logger.info("retract_target_missing", step=step, asset_id=asset_id, detail=str(exc))
                report.missing.append(step)
            except (CarspaceError, OSError) as exc:
                self.logger.error("retract_step_failed", step=step, asset_id=asset_id, error=str(exc))
                report.errors[step] = str(exc)

        try:
            await self.store.ensure_schema()
            deleted = await self.store.delete(asset_id)
        except CarspaceError as exc:
            self.logger.error("retract_step_failed", step="store", asset_id=asset_id, error=str(exc))
            report.errors["store"] = str(exc)
        else:
            if deleted:
                report.removed["store"] = deleted
            else:
                self.logger.info("retract_target_missing", step="store", asset_id=asset_id)
                report.missing.append("store")
        return report

    async def retract_all(self, confirmation: str) -> RetractionReport:
        if confirmation != CONFIRMATION_TOKEN:
            raise RetractionAborted("Aborted. No images or database records were deleted.")
        report = RetractionReport()
        for step, directory in (("image", self.images_dir), ("thumbnail", self.thumbnails_dir)):
            try:
                report.removed[step] = _clear_directory(directory)
            except OSError as exc:
                self.logger.error("retract_step_failed", step=step, error=str(exc))
                report.errors[step] = str(exc)

        try:
            self.catalog_path.unlink()
            report.removed["catalog"] = 1
        except FileNotFoundError:
            report.missing.append("catalog")
        except OSError as exc:
            report.errors["catalog"] = str(exc)

        try:
            await self.store.ensure_schema()
            report.removed["store"] = await self.store.delete_all()
        except CarspaceError as exc:
            self.logger.error("retract_step_failed", step="store", error=str(exc))
            report.errors["store"] = str(exc)

        self.logger.warning("retracted_all", removed=report.removed, errors=report.errors)
        return report

    def _remove_matching(self, directory: Path, asset_id: str) -> int:
        matches = [path for path in directory.glob(f"{asset_id}.*") if path.is_file()]
        if not matches:
            raise NotFound(f"No file for {asset_id} in {directory}")
        for path in matches:
            path.unlink()
            self.logger.info("retracted_file", path=str(path))
        return len(matches)

    def _remove_from_catalog(self, asset_id: str) -> int:
        if not self.catalog_path.exists():
            raise NotFound(f"Catalog {self.catalog_path} does not exist")
        catalog = read_catalog(self.catalog_path)
        if asset_id not in catalog.ids():
            raise NotFound(f"{asset_id} is not in {self.catalog_path}")
        trimmed = catalog.without(asset_id)
        write_catalog(self.catalog_path, trimmed)
        return len(catalog.images) - len(trimmed.images)


def _clear_directory(directory: Path) -> int:
    if not directory.exists():
        return 0
    removed = 0
    for entry in directory.iterdir():
        if entry.is_dir() and not entry.is_symlink():
            shutil.rmtree(entry)
        else:
            entry.unlink()
        removed += 1
    return removed
