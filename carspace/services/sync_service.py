from __future__ import annotations

import re
from dataclasses import dataclass, field
from pathlib import PurePath
from typing import List, Optional

from carspace.core.errors import StoreRowError
from carspace.core.logging import get_logger
from carspace.core.store import CatalogStore, StoreRow
from carspace.ingest.catalog import Catalog, CatalogRecord
from carspace.ingest.pipeline import ORPHAN_FOLDER

__all__ = ["SyncReport", "StoreSynchronizer", "parse_store_row", "split_model_year"]

MODEL_SEPARATOR = "_"
_NON_ALNUM = re.compile(r"[^A-Za-z0-9]")
_YEAR = re.compile(r"[0-9]{4}")


@dataclass(slots=True)
class SyncReport:
    upserted: int = 0
    failures: List[StoreRowError] = field(default_factory=list)

    @property
    def degraded(self) -> bool:
        return bool(self.failures)


def split_model_year(original_name: str) -> tuple[Optional[str], Optional[int]]:
    """Split ``Civic_2016_red.jpg`` into ``("Civic", 2016)``.

    The model is the text before the first underscore with anything outside
    ``[A-Za-z0-9]`` removed. The year is the first run of four digits after
    the underscore, or ``None``.
    """
    stem = PurePath(original_name).stem
    model_part, _, year_fragment = stem.partition(MODEL_SEPARATOR)
    model = _NON_ALNUM.sub("", model_part) or None
    match = _YEAR.search(year_fragment)
    return model, int(match.group(0)) if match else None


def parse_store_row(record: CatalogRecord) -> StoreRow:
    model, year = split_model_year(record.original_name)
    return StoreRow(
        make=record.folder or ORPHAN_FOLDER,
        model=model,
        year=year,
        asset_id=record.id,
        url=record.direct_url,
    )


class StoreSynchronizer:
    def __init__(self, store: CatalogStore):
        self.store = store
        self._connected = False
        self.logger = get_logger(component="store_synchronizer")

    async def connect(self) -> None:
        """Fail fast with ``StoreUnavailable`` without writing to the store."""
        if self._connected:
            return
        await self.store.ping()
        self._connected = True

    async def sync(self, catalog: Catalog) -> SyncReport:
        await self.connect()
        await self.store.ensure_schema()
        report = SyncReport()
        for record in catalog.images:
            row = parse_store_row(record)
            try:
                await self.store.upsert(row)
            except StoreRowError as exc:
                self.logger.warning("row_upsert_failed", asset_id=row.asset_id, make=row.make, error=exc.message)
                report.failures.append(exc)
                continue
            report.upserted += 1
        self.logger.info("store_synced", upserted=report.upserted, failed=len(report.failures))
        return report
