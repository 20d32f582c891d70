from __future__ import annotations

import asyncio
from collections import defaultdict
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterator, List

from carspace.core.errors import CarspaceError, SourceMissing
from carspace.core.logging import get_logger

from .asset_id import ContentIdentifier
from .catalog import CatalogRecord, build_record
from .size_policy import SizePolicy
from .transform import TransformEngine

__all__ = [
    "ACCEPTED_EXTENSIONS",
    "ORPHAN_FOLDER",
    "FileFailure",
    "RecordSet",
    "IngestionPipeline",
    "iter_source_files",
    "folder_label",
]

ACCEPTED_EXTENSIONS = frozenset({".jpg", ".jpeg", ".png", ".gif"})
ORPHAN_FOLDER = "orphan"


@dataclass(slots=True)
class FileFailure:
    path: Path
    error: str


@dataclass(slots=True)
class RecordSet:
    """Per-file results of one import, in source walk order.

    Records may share a content hash; deduplication happens on publish.
    """

    records: List[CatalogRecord] = field(default_factory=list)
    failures: List[FileFailure] = field(default_factory=list)
    degraded: int = 0

    def __len__(self) -> int:
        return len(self.records)

    @property
    def is_empty(self) -> bool:
        return not self.records


def iter_source_files(root: Path) -> Iterator[Path]:
    """Yield accepted image files under *root*, sorted for a stable order."""
    for path in sorted(root.rglob("*")):
        if path.suffix.lower() in ACCEPTED_EXTENSIONS and path.is_file():
            yield path


def folder_label(path: Path, root: Path) -> str:
    if path.parent == root:
        return ORPHAN_FOLDER
    return path.parent.name or ORPHAN_FOLDER


class IngestionPipeline:
    def __init__(
        self,
        identifier: ContentIdentifier,
        engine: TransformEngine,
        *,
        max_workers: int = 4,
        url_prefix: str = "",
    ):
        self.identifier = identifier
        self.engine = engine
        self.max_workers = max_workers
        self.url_prefix = url_prefix
        self.logger = get_logger(component="ingestion_pipeline")

    async def run(self, source_root: Path, policy: SizePolicy) -> RecordSet:
        if not source_root.is_dir():
            raise SourceMissing(source_root)
        root = source_root.resolve()
        files = list(iter_source_files(root))
        self.logger.info("ingestion_started", source_root=str(root), files=len(files), size_policy=policy.label)

        semaphore = asyncio.Semaphore(self.max_workers)
        asset_locks: defaultdict[str, asyncio.Lock] = defaultdict(asyncio.Lock)

        async def _process(path: Path) -> tuple[CatalogRecord, bool] | FileFailure:
            async with semaphore:
                try:
                    identity = await asyncio.to_thread(self.identifier.resolve, path)
                    # identical content shares an asset id and therefore output paths
                    async with asset_locks[identity.asset_id]:
                        result = await asyncio.to_thread(self.engine.render, path, identity.asset_id, policy)
                except (CarspaceError, OSError) as exc:
                    self.logger.error("file_failed", path=str(path), error=str(exc))
                    return FileFailure(path=path, error=str(exc))
            if result.degraded:
                self.logger.warning("file_degraded", path=str(path), asset_id=identity.asset_id)
            return build_record(
                asset_id=identity.asset_id,
                original_name=path.name,
                folder=folder_label(path, root),
                fingerprint=identity.fingerprint,
                extension=self.engine.extension,
                url_prefix=self.url_prefix,
            ), result.degraded

        outcomes = await asyncio.gather(*(_process(path) for path in files))

        record_set = RecordSet()
        for outcome in outcomes:
            if isinstance(outcome, FileFailure):
                record_set.failures.append(outcome)
                continue
            record, degraded = outcome
            record_set.records.append(record)
            record_set.degraded += int(degraded)

        self.logger.info(
            "ingestion_finished",
            records=len(record_set.records),
            failures=len(record_set.failures),
            degraded=record_set.degraded,
        )
        return record_set
