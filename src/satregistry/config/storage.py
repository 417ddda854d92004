"""Report and cache storage configuration helpers."""

from __future__ import annotations

import os
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Final

APP_DIR_NAME: Final[str] = "satregistry"
HTTP_CACHE_FILENAME: Final[str] = "http_cache.db"
REPORT_TIMESTAMP_FORMAT: Final[str] = "%Y-%m-%d_%H-%M-%S"


@dataclass(frozen=True, slots=True)
class StorageConfig:
    report_dir: Path
    data_dir: Path
    http_cache_filename: str = HTTP_CACHE_FILENAME

    def ensure_report_dir(self) -> Path:
        report_dir = self.report_dir.expanduser().resolve()
        report_dir.mkdir(parents=True, exist_ok=True)
        return report_dir

    def http_cache_path(self, *, ensure: bool = True) -> Path:
        base = self.data_dir.expanduser().resolve()
        if ensure:
            base.mkdir(parents=True, exist_ok=True)
        return base / self.http_cache_filename

    def report_path(self, prefix: str, suffix: str, *, now: datetime | None = None) -> Path:
        """Return a timestamped report path such as ``true-bitmaps-2025-01-31_12-00-00.txt``."""

        stamp = (now or datetime.now()).strftime(REPORT_TIMESTAMP_FORMAT)  # noqa: DTZ005
        return self.ensure_report_dir() / f"{prefix}-{stamp}{suffix}"


def _default_data_dir() -> Path:
    if os.name == "nt":
        base = os.getenv("LOCALAPPDATA")
        base_path = Path(base) if base else (Path.home() / "AppData" / "Local")
    else:
        base = os.getenv("XDG_DATA_HOME")
        base_path = Path(base) if base else (Path.home() / ".local" / "share")
    return (base_path / APP_DIR_NAME).expanduser().resolve()


def get_storage_config() -> StorageConfig:
    env_report_dir = os.getenv("SATREGISTRY_REPORT_DIR")
    env_data_dir = os.getenv("SATREGISTRY_DATA_DIR")
    report_dir = Path(env_report_dir) if env_report_dir else Path.cwd()
    data_dir = Path(env_data_dir) if env_data_dir else _default_data_dir()
    return StorageConfig(report_dir=report_dir, data_dir=data_dir)


def get_http_cache_path() -> Path:
    return get_storage_config().http_cache_path()
