from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

__all__ = ["SizePolicy", "PRESETS", "DEFAULT_PRESET"]


@dataclass(frozen=True, slots=True)
class SizePolicy:
    """Geometry applied to primary renditions.

    ``box`` is ``None`` for the ``original`` policy, otherwise the exact
    ``(width, height)`` every primary rendition is padded to.
    """

    name: str
    box: Optional[tuple[int, int]]

    @property
    def is_original(self) -> bool:
        return self.box is None

    @property
    def label(self) -> str:
        if self.box is None:
            return "original"
        width, height = self.box
        return f"{width}x{height}"

    @classmethod
    def parse(cls, value: str) -> "SizePolicy":
        """Resolve a preset name (``medium``) or geometry (``1200x800``).

        Only the enumerated presets are accepted.
        """
        key = value.strip().lower()
        for preset in PRESETS:
            if key in (preset.name, preset.label):
                return preset
        choices = ", ".join(f"{p.name} ({p.label})" for p in PRESETS)
        raise ValueError(f"Unsupported size policy {value!r}; expected one of {choices}")


PRESETS: tuple[SizePolicy, ...] = (
    SizePolicy("original", None),
    SizePolicy("logo", (250, 150)),
    SizePolicy("small", (512, 512)),
    SizePolicy("medium", (1200, 800)),
    SizePolicy("large", (1280, 1920)),
)

DEFAULT_PRESET = PRESETS[3]
