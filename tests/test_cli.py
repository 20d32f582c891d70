from __future__ import annotations

import json
from pathlib import Path

import pytest

from carspace import cli
from carspace.core.config import Settings


def _answers(monkeypatch, *answers: str) -> list[str]:
    prompts: list[str] = []
    queue = list(answers)

    def fake_ask(prompt, *args, **kwargs):
        prompts.append(prompt)
        return queue.pop(0)

    monkeypatch.setattr(cli.Prompt, "ask", fake_ask)
    return prompts


def test_process_with_arguments(settings: Settings, source_root: Path, image_factory):
    image_factory(source_root / "Honda" / "Civic_2016.jpg", 400, 300)

    cli.main(["process", str(source_root), "--size", "logo"])

    document = json.loads(settings.catalog_path.read_text())
    assert document["total"] == 1
    assert document["images"][0]["folder"] == "Honda"


def test_process_prompts_for_missing_values(monkeypatch, settings: Settings, source_root: Path, image_factory):
    image_factory(source_root / "Ford" / "Focus.png", 64, 64)
    prompts = _answers(monkeypatch, str(source_root), "1")

    cli.main(["process"])

    assert len(prompts) == 2
    assert settings.catalog_path.exists()


def test_bare_invocation_runs_process(monkeypatch, settings: Settings, source_root: Path, image_factory):
    image_factory(source_root / "Ford" / "Focus.png", 64, 64)
    _answers(monkeypatch, str(source_root), "4")

    cli.main([])

    assert settings.catalog_path.exists()


def test_missing_source_exits_with_status(tmp_path: Path):
    with pytest.raises(SystemExit) as excinfo:
        cli.main(["process", str(tmp_path / "missing"), "--size", "original"])
    assert excinfo.value.code == cli.EXIT_SOURCE_MISSING


def test_invalid_size_is_a_usage_error(source_root: Path):
    with pytest.raises(SystemExit) as excinfo:
        cli.main(["process", str(source_root), "--size", "1024x768"])
    assert excinfo.value.code == 2


def test_unreachable_store_exits_with_status(monkeypatch, tmp_path: Path, source_root: Path):
    monkeypatch.setenv("CARSPACE_DATABASE_URL", f"sqlite+aiosqlite:///{tmp_path / 'gone' / 'db.sqlite'}")
    cli.get_settings.cache_clear()

    with pytest.raises(SystemExit) as excinfo:
        cli.main(["process", str(source_root), "--size", "small"])
    assert excinfo.value.code == cli.EXIT_STORE_UNAVAILABLE


def test_delete_one_and_delete_all(monkeypatch, settings: Settings, source_root: Path, image_factory):
    image_factory(source_root / "Honda" / "Civic_2016.jpg", 100, 100)
    image_factory(source_root / "Honda" / "Accord_2019.jpg", 100, 100, color=(0, 0, 0))
    cli.main(["process", str(source_root), "--size", "small"])
    first, second = json.loads(settings.catalog_path.read_text())["images"]

    cli.main(["delete-one", first["id"]])
    cli.main(["delete-one", first["id"]])

    remaining = json.loads(settings.catalog_path.read_text())
    assert [image["id"] for image in remaining["images"]] == [second["id"]]

    _answers(monkeypatch, "no")
    with pytest.raises(SystemExit) as excinfo:
        cli.main(["delete-all"])
    assert excinfo.value.code == cli.EXIT_USAGE
    assert settings.catalog_path.exists()

    _answers(monkeypatch, "YES")
    cli.main(["delete-all"])
    assert not settings.catalog_path.exists()
    assert list(settings.images_dir.iterdir()) == []


def test_help(capsys):
    cli.main(["help"])
    assert "delete-one" in capsys.readouterr().out


def test_strict_mode_without_renderer_exits_with_status(monkeypatch, source_root: Path, image_factory):
    image_factory(source_root / "Honda" / "Civic_2016.jpg", 100, 100)
    monkeypatch.setenv("CARSPACE_STRICT_RENDERER", "true")
    monkeypatch.setattr("carspace.ingest.renderers.OpenCVRenderer.available", lambda self: False)
    cli.get_settings.cache_clear()

    with pytest.raises(SystemExit) as excinfo:
        cli.main(["process", str(source_root), "--size", "small"])
    assert excinfo.value.code == cli.EXIT_RENDERER_UNAVAILABLE
    assert not (source_root.parent / "www" / "api").exists()
