from __future__ import annotations

import os
import shutil
import subprocess
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Sequence, Tuple

import cv2  # type: ignore
import numpy as np

from carspace.core.errors import RenderError

from .size_policy import SizePolicy

__all__ = [
    "Renderer",
    "ImageMagickRenderer",
    "OpenCVRenderer",
    "build_renderers",
    "image_dimensions",
    "partial_path",
]

WHITE = (255, 255, 255)


def partial_path(target: Path) -> Path:
    """Sibling path renders are written to before being moved into place.

    Keeps the real extension last so format detection by suffix still works.
    """
    return target.with_name(f".{target.stem}.partial{target.suffix}")


def _publish(tmp_path: Path, target: Path) -> None:
    os.replace(tmp_path, target)


class Renderer(ABC):
    name: str

    @abstractmethod
    def available(self) -> bool: ...

    @abstractmethod
    def render_primary(self, source: Path, target: Path, policy: SizePolicy) -> None: ...

    @abstractmethod
    def render_thumbnail(self, source: Path, target: Path, edge: int) -> None: ...


class ImageMagickRenderer(Renderer):
    """Shells out to ImageMagick (``magick`` on v7, ``convert`` on v6)."""

    def __init__(self, binary: str = "magick", *, quality: int = 90):
        self.name = binary
        self.binary = binary
        self.quality = quality

    def available(self) -> bool:
        return shutil.which(self.binary) is not None

    def render_primary(self, source: Path, target: Path, policy: SizePolicy) -> None:
        args: list[str] = []
        if not policy.is_original:
            geometry = policy.label
            args = ["-resize", f"{geometry}>", "-background", "white", "-gravity", "center", "-extent", geometry]
        self._run(source, target, args)

    def render_thumbnail(self, source: Path, target: Path, edge: int) -> None:
        geometry = f"{edge}x{edge}"
        self._run(source, target, ["-resize", f"{geometry}^", "-gravity", "center", "-extent", geometry])

    def _run(self, source: Path, target: Path, operations: Sequence[str]) -> None:
        tmp_path = partial_path(target)
        command = [
            self.binary,
            str(source),
            *operations,
            "-quality",
            str(self.quality),
            str(tmp_path),
        ]
        try:
            subprocess.run(command, check=True, stdout=subprocess.PIPE, stderr=subprocess.PIPE, text=True)
            _publish(tmp_path, target)
        except subprocess.CalledProcessError as exc:
            tmp_path.unlink(missing_ok=True)
            raise RenderError(f"{self.binary} failed for {source.name}: {exc.stderr.strip()}") from exc
        except OSError as exc:
            tmp_path.unlink(missing_ok=True)
            raise RenderError(f"{self.binary} could not render {source.name}: {exc}") from exc


class OpenCVRenderer(Renderer):
    """In-process renderer with the same geometry as the ImageMagick recipe."""

    name = "opencv"

    def __init__(self, *, quality: int = 90):
        self.quality = quality

    def available(self) -> bool:
        return cv2.haveImageWriter("probe.webp")

    def render_primary(self, source: Path, target: Path, policy: SizePolicy) -> None:
        image = self._read(source)
        if policy.box is not None:
            image = fit_and_pad(image, policy.box)
        self._write(image, target)

    def render_thumbnail(self, source: Path, target: Path, edge: int) -> None:
        self._write(fill_and_crop(self._read(source), edge), target)

    def _read(self, source: Path) -> np.ndarray:
        image = cv2.imread(str(source), cv2.IMREAD_UNCHANGED)
        if image is None:
            raise RenderError(f"OpenCV could not decode {source.name}")
        return _flatten(image)

    def _write(self, image: np.ndarray, target: Path) -> None:
        tmp_path = partial_path(target)
        params = [cv2.IMWRITE_WEBP_QUALITY, self.quality] if target.suffix.lower() == ".webp" else []
        try:
            ok = cv2.imwrite(str(tmp_path), image, params)
        except cv2.error as exc:
            tmp_path.unlink(missing_ok=True)
            raise RenderError(f"OpenCV could not encode {target.name}: {exc}") from exc
        if not ok:
            tmp_path.unlink(missing_ok=True)
            raise RenderError(f"OpenCV could not encode {target.name}")
        _publish(tmp_path, target)


def _flatten(image: np.ndarray) -> np.ndarray:
    """Return a 3-channel BGR image, compositing alpha onto white."""
    if image.ndim == 2:
        return cv2.cvtColor(image, cv2.COLOR_GRAY2BGR)
    if image.shape[2] == 4:
        if image.dtype != np.uint8:
            image = cv2.convertScaleAbs(image, alpha=255.0 / 65535.0)
        alpha = image[:, :, 3:4].astype(np.float32) / 255.0
        rgb = image[:, :, :3].astype(np.float32)
        return (rgb * alpha + 255.0 * (1.0 - alpha)).astype(np.uint8)
    if image.dtype != np.uint8:
        image = cv2.convertScaleAbs(image, alpha=255.0 / 65535.0)
    return image


def fit_and_pad(image: np.ndarray, box: Tuple[int, int]) -> np.ndarray:
    """Shrink to fit inside *box* (never enlarge), then pad centred on white."""
    box_w, box_h = box
    height, width = image.shape[:2]
    scale = min(box_w / width, box_h / height, 1.0)
    if scale < 1.0:
        new_size = (max(1, round(width * scale)), max(1, round(height * scale)))
        image = cv2.resize(image, new_size, interpolation=cv2.INTER_AREA)
        height, width = image.shape[:2]
    # a dimension larger than the box (rounding) is cropped centred
    if width > box_w or height > box_h:
        top = max(0, (height - box_h) // 2)
        left = max(0, (width - box_w) // 2)
        image = image[top : top + box_h, left : left + box_w]
        height, width = image.shape[:2]
    top = (box_h - height) // 2
    left = (box_w - width) // 2
    return cv2.copyMakeBorder(
        image,
        top,
        box_h - height - top,
        left,
        box_w - width - left,
        cv2.BORDER_CONSTANT,
        value=WHITE,
    )


def fill_and_crop(image: np.ndarray, edge: int) -> np.ndarray:
    """Scale so the square *edge* is covered, then centre-crop to it."""
    height, width = image.shape[:2]
    scale = max(edge / width, edge / height)
    new_w, new_h = max(edge, round(width * scale)), max(edge, round(height * scale))
    interpolation = cv2.INTER_AREA if scale < 1.0 else cv2.INTER_CUBIC
    resized = cv2.resize(image, (new_w, new_h), interpolation=interpolation)
    top = (new_h - edge) // 2
    left = (new_w - edge) // 2
    return resized[top : top + edge, left : left + edge]


def image_dimensions(image_path: Path) -> Tuple[int, int] | None:
    image = cv2.imread(str(image_path), cv2.IMREAD_UNCHANGED)
    if image is None:
        return None
    height, width = image.shape[:2]
    return width, height


def build_renderers(names: Sequence[str], *, quality: int = 90) -> list[Renderer]:
    renderers: list[Renderer] = []
    for name in names:
        if name in {"magick", "convert"}:
            renderers.append(ImageMagickRenderer(name, quality=quality))
        elif name == "opencv":
            renderers.append(OpenCVRenderer(quality=quality))
        else:
            raise ValueError(f"Unknown renderer: {name}")
    return renderers
