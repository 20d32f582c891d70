from __future__ import annotations

import re
from concurrent.futures import ThreadPoolExecutor
from hashlib import sha256
from pathlib import Path

from carspace.ingest.asset_id import ContentIdentifier, compute_sha256, mint_asset_id


def test_compute_sha256_matches_hashlib(tmp_path: Path):
    sample = tmp_path / "sample.bin"
    sample.write_bytes(b"hello world" * 1000)

    assert compute_sha256(sample, chunk_size=7) == sha256(b"hello world" * 1000).hexdigest()


def test_mint_asset_id_is_128_bit_hex():
    first, second = mint_asset_id(), mint_asset_id()
    assert re.fullmatch(r"[0-9a-f]{32}", first)
    assert first != second


def test_resolve_reuses_recovered_identifier(tmp_path: Path):
    sample = tmp_path / "Civic_2016.jpg"
    sample.write_bytes(b"pixels")
    fingerprint = compute_sha256(sample)

    identifier = ContentIdentifier({fingerprint: "0123456789abcdef"})
    identity = identifier.resolve(sample)

    assert identity.asset_id == "0123456789abcdef"
    assert identity.fingerprint == fingerprint
    assert identity.reused is True


def test_identical_bytes_resolve_to_same_identifier(tmp_path: Path):
    first = tmp_path / "Honda" / "a.jpg"
    second = tmp_path / "Toyota" / "b.png"
    for path in (first, second):
        path.parent.mkdir(parents=True)
        path.write_bytes(b"same bytes")
    other = tmp_path / "other.jpg"
    other.write_bytes(b"different bytes")

    identifier = ContentIdentifier()
    a, b, c = identifier.resolve(first), identifier.resolve(second), identifier.resolve(other)

    assert a.asset_id == b.asset_id
    assert a.reused is False and b.reused is True
    assert c.asset_id != a.asset_id
    assert len(identifier) == 2


def test_from_pairs_keeps_first_mapping():
    identifier = ContentIdentifier.from_pairs([("hash-a", "id-1"), ("hash-a", "id-2"), ("hash-b", "id-3")])

    assert identifier.assign("hash-a").asset_id == "id-1"
    assert identifier.assign("hash-b").asset_id == "id-3"
    fresh = identifier.assign("hash-c")
    assert fresh.reused is False
    assert fresh.asset_id not in {"id-1", "id-2", "id-3"}
    assert len(identifier) == 3


def test_concurrent_resolution_mints_one_identifier(tmp_path: Path):
    sample = tmp_path / "dup.jpg"
    sample.write_bytes(b"x" * 4096)
    identifier = ContentIdentifier()

    with ThreadPoolExecutor(max_workers=8) as pool:
        identities = list(pool.map(lambda _: identifier.resolve(sample), range(32)))

    assert len({identity.asset_id for identity in identities}) == 1
    assert sum(not identity.reused for identity in identities) == 1
