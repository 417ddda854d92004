from __future__ import annotations

from datetime import datetime
from pathlib import Path  # noqa: TC003

import pytest  # noqa: TC002

from satregistry.config import storage


def test_storage_config_prefers_explicit_env(
    monkeypatch: pytest.MonkeyPatch, tmp_path: Path
) -> None:
    monkeypatch.setenv("SATREGISTRY_REPORT_DIR", str(tmp_path / "reports"))
    monkeypatch.setenv("SATREGISTRY_DATA_DIR", str(tmp_path / "data"))

    config = storage.get_storage_config()

    assert config.report_dir == tmp_path / "reports"
    assert config.data_dir == tmp_path / "data"


def test_report_path_is_timestamped(tmp_path: Path) -> None:
    config = storage.StorageConfig(report_dir=tmp_path / "reports", data_dir=tmp_path)
    now = datetime(2025, 1, 31, 9, 5, 7)  # noqa: DTZ001

    path = config.report_path("true-bitmaps", ".txt", now=now)

    assert path == (tmp_path / "reports" / "true-bitmaps-2025-01-31_09-05-07.txt").resolve()
    assert path.parent.is_dir()


def test_http_cache_path_creates_data_dir(
    monkeypatch: pytest.MonkeyPatch, tmp_path: Path
) -> None:
    monkeypatch.setenv("SATREGISTRY_DATA_DIR", str(tmp_path / "data-dir"))

    path = storage.get_http_cache_path()

    assert path == (tmp_path / "data-dir" / storage.HTTP_CACHE_FILENAME).resolve()
    assert path.parent.exists()
