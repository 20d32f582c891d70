from __future__ import annotations

import secrets
import threading
from dataclasses import dataclass
from hashlib import sha256
from pathlib import Path
from typing import Iterable, Mapping, Optional

from carspace.core.logging import get_logger

__all__ = [
    "AssetIdentity",
    "ContentIdentifier",
    "compute_sha256",
    "mint_asset_id",
]

ASSET_ID_BYTES = 16


@dataclass(frozen=True, slots=True)
class AssetIdentity:
    """Fingerprint of a source file and the asset id assigned to it."""

    fingerprint: str
    asset_id: str
    reused: bool


def compute_sha256(path: Path, *, chunk_size: int = 8 * 1024 * 1024) -> str:
    """Return a hexadecimal SHA256 digest for the file.

    Args:
        path: The path to the file.
        chunk_size: The chunk size to use when reading the file.

    Returns:
        The hexadecimal SHA256 digest.
    """
    digest = sha256()
    with path.open("rb") as handle:
        while chunk := handle.read(chunk_size):
            digest.update(chunk)
    return digest.hexdigest()


def mint_asset_id() -> str:
    """Return a fresh 128-bit random identifier, hex encoded."""
    return secrets.token_hex(ASSET_ID_BYTES)


class ContentIdentifier:
    """Resolve files to stable asset ids by content.

    ``known`` is the fingerprint to id table recovered from the previously
    published catalog. Ids minted during a run are remembered so identical
    files seen later in the same run resolve to the same id. Lookup and
    minting share one lock, which makes :meth:`resolve` safe to call from
    worker threads.
    """

    def __init__(self, known: Optional[Mapping[str, str]] = None):
        self._table: dict[str, str] = dict(known or {})
        self._lock = threading.Lock()
        self.logger = get_logger(component="content_identifier")

    @classmethod
    def from_pairs(cls, pairs: Iterable[tuple[str, str]]) -> "ContentIdentifier":
        table: dict[str, str] = {}
        for fingerprint, asset_id in pairs:
            # first catalog entry for a fingerprint wins
            table.setdefault(fingerprint, asset_id)
        return cls(table)

    def __len__(self) -> int:
        return len(self._table)

    def assign(self, fingerprint: str) -> AssetIdentity:
        with self._lock:
            existing = self._table.get(fingerprint)
            if existing is not None:
                return AssetIdentity(fingerprint=fingerprint, asset_id=existing, reused=True)
            asset_id = mint_asset_id()
            self._table[fingerprint] = asset_id
        self.logger.debug("asset_id_minted", fingerprint=fingerprint, asset_id=asset_id)
        return AssetIdentity(fingerprint=fingerprint, asset_id=asset_id, reused=False)

    def resolve(self, path: Path) -> AssetIdentity:
        return self.assign(compute_sha256(path))
