from __future__ import annotations

import asyncio
import shutil
from pathlib import Path

import pytest

from carspace.core.errors import RenderError, SourceMissing
from carspace.domain import CatalogWriter, ContentIdentifier, IngestionPipeline, SizePolicy, TransformEngine
from carspace.ingest.catalog import dedupe_records, recover_identifier_pairs
from carspace.ingest.pipeline import folder_label, iter_source_files
from carspace.ingest.renderers import OpenCVRenderer

MEDIUM = SizePolicy.parse("medium")


def _pipeline(tmp_path: Path, catalog_path: Path | None = None) -> IngestionPipeline:
    pairs = recover_identifier_pairs(catalog_path) if catalog_path else []
    engine = TransformEngine(
        [OpenCVRenderer()],
        images_dir=tmp_path / "out" / "images",
        thumbnails_dir=tmp_path / "out" / "thumbnails",
    )
    return IngestionPipeline(ContentIdentifier.from_pairs(pairs), engine, max_workers=3)


def test_missing_source_root_raises(tmp_path: Path):
    with pytest.raises(SourceMissing):
        asyncio.run(_pipeline(tmp_path).run(tmp_path / "nope", MEDIUM))


def test_empty_tree_returns_empty_record_set(tmp_path: Path):
    root = tmp_path / "src"
    (root / "Honda").mkdir(parents=True)
    (root / "Honda" / "notes.txt").write_text("no images here")

    record_set = asyncio.run(_pipeline(tmp_path).run(root, MEDIUM))

    assert record_set.is_empty
    assert record_set.failures == []
    assert not (tmp_path / "out" / "images").exists() or not any((tmp_path / "out" / "images").iterdir())


def test_extension_filter_is_case_insensitive(tmp_path: Path, image_factory):
    root = tmp_path / "src"
    image_factory(root / "Honda" / "A.JPG", 10, 10)
    image_factory(root / "Honda" / "b.jpeg", 10, 10)
    image_factory(root / "Honda" / "c.Png", 10, 10)
    (root / "Honda" / "d.txt").write_text("x")
    (root / "Honda" / "e.bmp").write_bytes(b"BM")

    names = [path.name for path in iter_source_files(root)]

    assert names == ["A.JPG", "b.jpeg", "c.Png"]


def test_folder_label(tmp_path: Path):
    assert folder_label(tmp_path / "Civic.jpg", tmp_path) == "orphan"
    assert folder_label(tmp_path / "Honda" / "Civic.jpg", tmp_path) == "Honda"
    assert folder_label(tmp_path / "Honda" / "2016" / "Civic.jpg", tmp_path) == "2016"


def test_duplicate_content_shares_identifier(tmp_path: Path, image_factory):
    root = tmp_path / "src"
    original = image_factory(root / "Honda" / "Civic_2016.jpg", 640, 480)
    (root / "Toyota").mkdir()
    shutil.copyfile(original, root / "Toyota" / "Corolla_2018.jpg")
    image_factory(root / "Civic_2020.png", 300, 200, color=(0, 200, 0))

    record_set = asyncio.run(_pipeline(tmp_path).run(root, MEDIUM))

    assert len(record_set) == 3
    by_name = {record.original_name: record for record in record_set.records}
    assert by_name["Civic_2016.jpg"].id == by_name["Corolla_2018.jpg"].id
    assert by_name["Civic_2020.png"].folder == "orphan"
    assert by_name["Civic_2020.png"].id != by_name["Civic_2016.jpg"].id
    assert len(dedupe_records(record_set.records)) == 2
    assert (tmp_path / "out" / "images" / f"{by_name['Civic_2016.jpg'].id}.webp").exists()
    assert (tmp_path / "out" / "thumbnails" / f"{by_name['Civic_2020.png'].id}.webp").exists()


def test_rerun_recovers_identifiers_from_catalog(tmp_path: Path, image_factory):
    root = tmp_path / "src"
    image_factory(root / "Honda" / "Civic_2016.jpg", 640, 480)
    image_factory(root / "Ford" / "Focus_2012.png", 500, 400, color=(9, 9, 9))
    catalog_path = tmp_path / "out" / "api" / "images.json"

    first = asyncio.run(_pipeline(tmp_path).run(root, MEDIUM))
    first_catalog = CatalogWriter(catalog_path).write(first.records)
    second = asyncio.run(_pipeline(tmp_path, catalog_path).run(root, MEDIUM))
    second_catalog = CatalogWriter(catalog_path).write(second.records)

    assert [r.id for r in first.records] == [r.id for r in second.records]
    assert first_catalog.model_dump(exclude={"generated_at"}) == second_catalog.model_dump(exclude={"generated_at"})


def test_per_file_failure_is_isolated(tmp_path: Path, image_factory):
    root = tmp_path / "src"
    image_factory(root / "Honda" / "Civic_2016.jpg", 64, 64)
    broken = root / "Honda" / "Broken_2001.jpg"
    broken.write_bytes(b"definitely not a jpeg")

    record_set = asyncio.run(_pipeline(tmp_path).run(root, MEDIUM))

    assert [record.original_name for record in record_set.records] == ["Civic_2016.jpg"]
    assert [failure.path.name for failure in record_set.failures] == ["Broken_2001.jpg"]


def test_thumbnail_failure_still_records_asset(tmp_path: Path, image_factory):
    class ThumbnaillessRenderer(OpenCVRenderer):
        def render_thumbnail(self, source, target, edge):
            raise RenderError("thumbnail encoder missing")

    root = tmp_path / "src"
    image_factory(root / "Honda" / "Civic_2016.jpg", 320, 240)
    engine = TransformEngine(
        [ThumbnaillessRenderer()],
        images_dir=tmp_path / "out" / "images",
        thumbnails_dir=tmp_path / "out" / "thumbnails",
    )

    record_set = asyncio.run(IngestionPipeline(ContentIdentifier(), engine).run(root, MEDIUM))

    assert len(record_set) == 1
    assert record_set.failures == []
    assert record_set.degraded == 1
    primaries = [path.name for path in (tmp_path / "out" / "images").iterdir()]
    assert primaries == [record_set.records[0].filename]
