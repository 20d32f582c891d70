from __future__ import annotations

from pathlib import Path
from typing import Callable

import cv2
import numpy as np
import pytest

from carspace.core.config import Settings, get_settings

_ALIASED_ENV = (
    "CARSPACE_PG_HOST",
    "CARSPACE_PG_PORT",
    "CARSPACE_PG_USER",
    "CARSPACE_PG_PASSWORD",
    "CARSPACE_PG_DATABASE",
    "CARSPACE_DATABASE_URL",
)


@pytest.fixture(autouse=True)
def configure_environment(monkeypatch, tmp_path):
    for name in ("PGHOST", "PGPORT", "PGUSER", "PGPASSWORD", "PGDATABASE", "CARSPACE_DB_URL"):
        monkeypatch.delenv(name, raising=False)
    # get_settings writes alias targets straight into os.environ; recording
    # them here makes monkeypatch remove them again on teardown.
    for name in _ALIASED_ENV:
        monkeypatch.setenv(name, "")
        monkeypatch.delenv(name)

    monkeypatch.chdir(tmp_path)
    www = tmp_path / "www"
    monkeypatch.setenv("CARSPACE_LOG_LEVEL", "warning")
    monkeypatch.setenv("CARSPACE_SOURCE_ROOT", str(tmp_path / "CarImages"))
    monkeypatch.setenv("CARSPACE_IMAGES_DIR", str(www / "images"))
    monkeypatch.setenv("CARSPACE_THUMBNAILS_DIR", str(www / "thumbnails"))
    monkeypatch.setenv("CARSPACE_API_DIR", str(www / "api"))
    monkeypatch.setenv("CARSPACE_RENDERERS", '["opencv"]')
    monkeypatch.setenv("CARSPACE_MAX_WORKERS", "2")
    monkeypatch.setenv("CARSPACE_DATABASE_URL", f"sqlite+aiosqlite:///{tmp_path / 'carspace_test.db'}")

    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture()
def settings(configure_environment) -> Settings:
    return get_settings()


@pytest.fixture()
def source_root(settings) -> Path:
    settings.source_root.mkdir(parents=True, exist_ok=True)
    return settings.source_root


def write_image(path: Path, width: int, height: int, color: tuple[int, int, int] = (40, 80, 160)) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    image = np.zeros((height, width, 3), dtype=np.uint8)
    image[:, :] = color
    # a diagonal stripe keeps each colour/size combination visually distinct
    cv2.line(image, (0, 0), (width - 1, height - 1), (255, 255, 255), 3)
    assert cv2.imwrite(str(path), image)
    return path


@pytest.fixture()
def image_factory() -> Callable[..., Path]:
    return write_image
