from __future__ import annotations

from typing import TYPE_CHECKING

import pytest

if TYPE_CHECKING:
    from pathlib import Path


@pytest.fixture(autouse=True)
def isolated_storage(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> Path:
    """Keep reports and the HTTP cache of every test inside its own temp directory."""

    monkeypatch.setenv("SATREGISTRY_REPORT_DIR", str(tmp_path / "reports"))
    monkeypatch.setenv("SATREGISTRY_DATA_DIR", str(tmp_path / "data"))
    return tmp_path
