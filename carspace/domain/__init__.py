"""Domain entities and ingest utilities reused by the services and CLI."""

from carspace.ingest.asset_id import AssetIdentity, ContentIdentifier, compute_sha256
from carspace.ingest.catalog import Catalog, CatalogRecord, CatalogWriter, read_catalog
from carspace.ingest.pipeline import IngestionPipeline, RecordSet
from carspace.ingest.size_policy import PRESETS, SizePolicy
from carspace.ingest.transform import RenderResult, TransformEngine

__all__ = [
    "AssetIdentity",
    "ContentIdentifier",
    "compute_sha256",
    "Catalog",
    "CatalogRecord",
    "CatalogWriter",
    "read_catalog",
    "IngestionPipeline",
    "RecordSet",
    "PRESETS",
    "SizePolicy",
    "RenderResult",
    "TransformEngine",
]
