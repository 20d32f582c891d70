from __future__ import annotations

import shutil
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Sequence

from carspace.core.errors import RenderError, RendererUnavailable
from carspace.core.logging import get_logger

from .renderers import Renderer, image_dimensions, partial_path
from .size_policy import SizePolicy

__all__ = ["RenderResult", "TransformEngine"]


@dataclass(slots=True)
class RenderResult:
    primary_path: Path
    thumbnail_path: Optional[Path]
    primary_cached: bool
    renderer: Optional[str]

    @property
    def degraded(self) -> bool:
        return self.renderer is None or self.thumbnail_path is None


class TransformEngine:
    """Derive the primary rendition and thumbnail for one asset id.

    Providers are tried in priority order. When none is available the source
    bytes are copied as the primary and the thumbnail is skipped, unless
    ``strict`` is set, in which case :class:`RendererUnavailable` is raised.
    """

    def __init__(
        self,
        renderers: Sequence[Renderer],
        *,
        images_dir: Path,
        thumbnails_dir: Path,
        extension: str = "webp",
        thumbnail_edge: int = 300,
        strict: bool = False,
    ):
        self.renderers = list(renderers)
        self.images_dir = images_dir
        self.thumbnails_dir = thumbnails_dir
        self.extension = extension
        self.thumbnail_edge = thumbnail_edge
        self.strict = strict
        self.logger = get_logger(component="transform_engine")

    def primary_path(self, asset_id: str) -> Path:
        return self.images_dir / f"{asset_id}.{self.extension}"

    def thumbnail_path(self, asset_id: str) -> Path:
        return self.thumbnails_dir / f"{asset_id}.{self.extension}"

    def usable_renderers(self) -> list[Renderer]:
        return [renderer for renderer in self.renderers if renderer.available()]

    def render(self, source: Path, asset_id: str, policy: SizePolicy) -> RenderResult:
        self.images_dir.mkdir(parents=True, exist_ok=True)
        self.thumbnails_dir.mkdir(parents=True, exist_ok=True)

        primary = self.primary_path(asset_id)
        thumbnail = self.thumbnail_path(asset_id)
        providers = self.usable_renderers()

        if not providers:
            if self.strict:
                raise RendererUnavailable(f"No renderer available for {source.name}")
            return self._degraded_render(source, primary, asset_id)

        cached = primary.exists()
        used: Optional[str] = None
        if not cached:
            before = _describe(source)
            used = self._attempt(providers, lambda r: r.render_primary(source, primary, policy), source)
            after = _describe(primary)
            self.logger.info(
                "primary_rendered",
                original_name=source.name,
                asset_id=asset_id,
                renderer=used,
                before_size=before[0],
                before_kb=before[1],
                after_size=after[0],
                after_kb=after[1],
            )

        thumb_source = primary if primary.exists() else source
        thumb_renderer: Optional[str] = None
        try:
            thumb_renderer = self._attempt(
                providers,
                lambda r: r.render_thumbnail(thumb_source, thumbnail, self.thumbnail_edge),
                source,
            )
        except RenderError as exc:
            # the primary is already published, so the asset stays cataloged
            self.logger.warning("thumbnail_failed", original_name=source.name, asset_id=asset_id, error=str(exc))
        return RenderResult(
            primary_path=primary,
            thumbnail_path=thumbnail if thumb_renderer else None,
            primary_cached=cached,
            renderer=used or thumb_renderer,
        )

    def _attempt(self, providers: Sequence[Renderer], action, source: Path) -> str:
        errors: list[str] = []
        for renderer in providers:
            try:
                action(renderer)
                return renderer.name
            except RenderError as exc:
                self.logger.warning("renderer_failed", renderer=renderer.name, source=source.name, error=str(exc))
                errors.append(f"{renderer.name}: {exc}")
        raise RenderError(f"All renderers failed for {source.name}: " + "; ".join(errors))

    def _degraded_render(self, source: Path, primary: Path, asset_id: str) -> RenderResult:
        cached = primary.exists()
        if not cached:
            tmp_path = partial_path(primary)
            try:
                shutil.copyfile(source, tmp_path)
                tmp_path.replace(primary)
            except OSError as exc:
                tmp_path.unlink(missing_ok=True)
                raise RenderError(f"Raw copy failed for {source.name}: {exc}") from exc
        self.logger.warning(
            "renderer_unavailable",
            original_name=source.name,
            asset_id=asset_id,
            detail="primary copied without conversion; thumbnail not generated",
        )
        return RenderResult(primary_path=primary, thumbnail_path=None, primary_cached=cached, renderer=None)


def _describe(path: Path) -> tuple[str, str]:
    dims = image_dimensions(path) if path.exists() else None
    size = f"{dims[0]}x{dims[1]}" if dims else "unknown"
    try:
        kb = str(-(-path.stat().st_size // 1024))
    except OSError:
        kb = "unknown"
    return size, kb
