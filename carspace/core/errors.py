"""Error taxonomy shared by the import, publish and retraction stages."""

from __future__ import annotations

from pathlib import Path


class CarspaceError(Exception):
    """Base class for every error raised deliberately by carspace."""


class SourceMissing(CarspaceError):
    def __init__(self, path: Path):
        super().__init__(f"Missing source dir: {path}")
        self.path = path


class RendererUnavailable(CarspaceError):
    """No rendering provider could be used for a file."""


class RenderError(CarspaceError):
    """A provider failed to produce an output for a single file."""


class CatalogReadError(CarspaceError):
    pass


class CatalogWriteError(CarspaceError):
    pass


class StoreUnavailable(CarspaceError):
    pass


class StoreRowError(CarspaceError):
    def __init__(self, asset_id: str, message: str):
        super().__init__(f"{asset_id}: {message}")
        self.asset_id = asset_id
        self.message = message


class NotFound(CarspaceError):
    pass


class RetractionAborted(CarspaceError):
    pass


__all__ = [
    "CarspaceError",
    "SourceMissing",
    "RendererUnavailable",
    "RenderError",
    "CatalogReadError",
    "CatalogWriteError",
    "StoreUnavailable",
    "StoreRowError",
    "NotFound",
    "RetractionAborted",
]
