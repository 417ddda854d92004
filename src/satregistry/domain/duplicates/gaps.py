"""Unregistered blocks inside one canonical partition file."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from logging import getLogger
from pathlib import Path
from typing import TYPE_CHECKING

from satregistry.common.jsonio import read_json
from satregistry.domain.diff import block_of
from satregistry.domain.errors import RegistryReadError, ShapeError

from .competition import PARTITION_FILENAME

if TYPE_CHECKING:
    from collections.abc import Iterable

    from satregistry.domain.types import BlockHeight

log = getLogger(__name__)


@dataclass(slots=True, frozen=True)
class BlockRun:
    start: BlockHeight
    end: BlockHeight

    def __len__(self) -> int:
        return self.end - self.start + 1

    def __str__(self) -> str:
        return str(self.start) if self.start == self.end else f"{self.start}-{self.end}"


@dataclass(slots=True, frozen=True)
class GapReport:
    file: str
    start: BlockHeight
    end: BlockHeight
    registered: int
    missing: tuple[BlockHeight, ...]
    runs: tuple[BlockRun, ...]

    @property
    def checked(self) -> int:
        return self.end - self.start + 1

    @property
    def coverage(self) -> float:
        return (self.checked - len(self.missing)) / self.checked if self.checked else 1.0


def group_runs(blocks: Iterable[BlockHeight]) -> tuple[BlockRun, ...]:
    """Collapse ascending block heights into contiguous runs."""

    runs: list[BlockRun] = []
    for block in blocks:
        if runs and block == runs[-1].end + 1:
            runs[-1] = BlockRun(runs[-1].start, block)
        else:
            runs.append(BlockRun(block, block))
    return tuple(runs)


def find_partition_gaps(path: Path) -> GapReport:
    path = Path(path)
    match = PARTITION_FILENAME.match(path.name)
    if match is None:
        raise ShapeError(f"Could not parse partition range from {path.name}")
    start, end = int(match.group(1)), int(match.group(2))
    try:
        payload = read_json(path)
    except (OSError, ValueError) as exc:
        raise RegistryReadError(f"Could not read {path}: {exc}", location=str(path)) from exc
    if not isinstance(payload, list):
        raise ShapeError(f"{path.name} does not contain a JSON array")

    registered: set[BlockHeight] = set()
    for entry in payload:
        block = block_of(entry) if isinstance(entry, Mapping) else None
        if block is not None:
            registered.add(block)

    missing = tuple(block for block in range(start, end + 1) if block not in registered)
    report = GapReport(
        file=path.name,
        start=start,
        end=end,
        registered=sum(1 for block in registered if start <= block <= end),
        missing=missing,
        runs=group_runs(missing),
    )
    log.info(
        "%s: %d of %d blocks registered, %d missing",
        path.name,
        report.registered,
        report.checked,
        len(missing),
    )
    return report
