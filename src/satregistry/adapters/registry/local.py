"""Registry stored as a directory of JSON partition files."""

from __future__ import annotations

import json
from dataclasses import dataclass
from logging import getLogger
from pathlib import Path

from satregistry.common.jsonio import read_json
from satregistry.domain.errors import RegistryReadError

log = getLogger(__name__)


@dataclass(slots=True)
class LocalRegistrySource:
    directory: Path
    label: str = "local"

    async def list_files(self, pattern: str) -> list[str]:
        if not self.directory.is_dir():
            raise RegistryReadError(
                f"Registry directory not found: {self.directory}", location=str(self.directory)
            )
        names = sorted(path.name for path in self.directory.glob(pattern) if path.is_file())
        log.info("Found %d %s files in %s", len(names), pattern, self.label)
        return names

    async def read_records(self, filename: str) -> object:
        path = self.directory / filename
        try:
            return read_json(path)
        except OSError as exc:
            raise RegistryReadError(f"Failed to read {path}: {exc}", location=str(path)) from exc
        except (UnicodeDecodeError, json.JSONDecodeError) as exc:
            raise RegistryReadError(f"Failed to parse {path}: {exc}", location=str(path)) from exc
