from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional

from carspace.core.config import Settings
from carspace.core.errors import RendererUnavailable, SourceMissing
from carspace.core.logging import get_logger
from carspace.core.store import CatalogStore
from carspace.ingest.asset_id import ContentIdentifier
from carspace.ingest.catalog import Catalog, CatalogWriter, recover_identifier_pairs
from carspace.ingest.pipeline import FileFailure, IngestionPipeline
from carspace.ingest.renderers import Renderer, build_renderers
from carspace.ingest.size_policy import SizePolicy
from carspace.ingest.transform import TransformEngine

from .retraction import RetractionManager
from .sync_service import StoreSynchronizer, SyncReport

__all__ = ["ImportReport", "ImportService"]


@dataclass(slots=True)
class ImportReport:
    processed: int = 0
    published: int = 0
    degraded: int = 0
    failures: List[FileFailure] = field(default_factory=list)
    catalog: Optional[Catalog] = None
    sync: Optional[SyncReport] = None

    @property
    def nothing_to_publish(self) -> bool:
        return self.catalog is None


class ImportService:
    """Wires the import, publish and retraction components from settings."""

    def __init__(
        self,
        settings: Settings,
        store: CatalogStore,
        *,
        renderers: Optional[List[Renderer]] = None,
    ):
        self.settings = settings
        self.store = store
        self.renderers = (
            renderers
            if renderers is not None
            else build_renderers(settings.renderers, quality=settings.webp_quality)
        )
        self.logger = get_logger(component="import_service")

    def build_engine(self) -> TransformEngine:
        return TransformEngine(
            self.renderers,
            images_dir=self.settings.images_dir,
            thumbnails_dir=self.settings.thumbnails_dir,
            extension=self.settings.output_extension,
            thumbnail_edge=self.settings.thumbnail_size,
            strict=self.settings.strict_renderer,
        )

    def build_pipeline(self, engine: Optional[TransformEngine] = None) -> IngestionPipeline:
        identifier = ContentIdentifier.from_pairs(recover_identifier_pairs(self.settings.catalog_path))
        self.logger.info("identifiers_recovered", known=len(identifier))
        return IngestionPipeline(
            identifier,
            engine or self.build_engine(),
            max_workers=self.settings.max_workers,
            url_prefix=self.settings.public_url_prefix,
        )

    def build_retraction(self) -> RetractionManager:
        return RetractionManager(
            self.store,
            images_dir=self.settings.images_dir,
            thumbnails_dir=self.settings.thumbnails_dir,
            catalog_path=self.settings.catalog_path,
        )

    async def process(self, source_root: Path, policy: SizePolicy) -> ImportReport:
        """Import *source_root*, publish the catalog and sync the store.

        Raises ``SourceMissing``, ``RendererUnavailable`` (strict mode) or
        ``StoreUnavailable`` before any file is touched and
        ``CatalogWriteError`` when the catalog cannot be published. Nothing
        is published for an empty tree.
        """
        if not source_root.is_dir():
            raise SourceMissing(source_root)
        engine = self.build_engine()
        if self.settings.strict_renderer and not engine.usable_renderers():
            raise RendererUnavailable("No renderer available: " + ", ".join(r.name for r in self.renderers))
        synchronizer = StoreSynchronizer(self.store)
        await synchronizer.connect()

        record_set = await self.build_pipeline(engine).run(source_root, policy)
        report = ImportReport(
            processed=len(record_set),
            degraded=record_set.degraded,
            failures=list(record_set.failures),
        )
        if record_set.is_empty:
            self.logger.info("nothing_to_publish", source_root=str(source_root))
            return report

        catalog = CatalogWriter(self.settings.catalog_path).write(record_set.records)
        report.catalog = catalog
        report.published = catalog.total

        report.sync = await synchronizer.sync(catalog)
        return report
