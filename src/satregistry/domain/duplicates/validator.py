"""Scan lookup files for duplicate blocks, duplicate sats and gaps."""

from __future__ import annotations

from collections import defaultdict
from collections.abc import Mapping
from dataclasses import dataclass, field
from logging import getLogger
from pathlib import Path
from typing import TYPE_CHECKING

from satregistry.common.jsonio import read_json
from satregistry.domain.diff import KEY_FIELD, block_of, coerce_int
from satregistry.domain.errors import RegistryReadError

if TYPE_CHECKING:
    from satregistry.domain.types import BlockHeight, SatNumber

log = getLogger(__name__)

MISSING_BLOCK = "Missing block field"
MISSING_SAT = "Missing or invalid sat field"
NOT_AN_OBJECT = "Entry is not an object"
NOT_AN_ARRAY = "File does not contain a JSON array"


@dataclass(slots=True, frozen=True)
class InvalidEntry:
    file: str
    reason: str
    index: int | None = None
    entry: object = None


@dataclass(slots=True, frozen=True)
class BlockOccurrence:
    file: str
    sat: SatNumber
    index: int


@dataclass(slots=True, frozen=True)
class SatOccurrence:
    file: str
    block: BlockHeight
    index: int


@dataclass(slots=True, frozen=True)
class ValidationReport:
    directory: Path
    files: tuple[str, ...]
    total_entries: int
    invalid_entries: tuple[InvalidEntry, ...]
    duplicate_blocks: dict[BlockHeight, tuple[BlockOccurrence, ...]]
    duplicate_sats: dict[SatNumber, tuple[SatOccurrence, ...]]
    missing_blocks: tuple[BlockHeight, ...]
    unique_blocks: int
    unique_sats: int
    expected_range: tuple[int, int] | None = None

    @property
    def has_issues(self) -> bool:
        return bool(
            self.invalid_entries
            or self.duplicate_blocks
            or self.duplicate_sats
            or self.missing_blocks
        )

    def duplicate_block_sats(self) -> dict[BlockHeight, list[SatNumber]]:
        """Block -> sats claimed for it, in occurrence order."""

        return {
            block: [item.sat for item in occurrences]
            for block, occurrences in sorted(self.duplicate_blocks.items())
        }


@dataclass(slots=True)
class _Scan:
    total: int = 0
    invalid: list[InvalidEntry] = field(default_factory=list)
    blocks: defaultdict[BlockHeight, list[BlockOccurrence]] = field(
        default_factory=lambda: defaultdict(list)
    )
    sats: defaultdict[SatNumber, list[SatOccurrence]] = field(
        default_factory=lambda: defaultdict(list)
    )

    def add(self, filename: str, index: int, entry: object) -> None:
        self.total += 1
        if not isinstance(entry, Mapping):
            self.invalid.append(InvalidEntry(filename, NOT_AN_OBJECT, index, entry))
            return
        block = block_of(entry)
        if block is None:
            self.invalid.append(InvalidEntry(filename, MISSING_BLOCK, index, dict(entry)))
            return
        sat = coerce_int(entry.get(KEY_FIELD))
        if sat is None:
            self.invalid.append(InvalidEntry(filename, MISSING_SAT, index, dict(entry)))
            return
        self.blocks[block].append(BlockOccurrence(filename, sat, index))
        self.sats[sat].append(SatOccurrence(filename, block, index))


def _missing(
    observed: set[BlockHeight], expected_range: tuple[int, int] | None
) -> tuple[BlockHeight, ...]:
    if expected_range is None:
        if not observed:
            return ()
        expected_range = (0, max(observed))
    start, end = expected_range
    return tuple(block for block in range(start, end + 1) if block not in observed)


def validate_registry(
    directory: Path,
    *,
    pattern: str = "sat_*.json",
    expected_range: tuple[int, int] | None = None,
) -> ValidationReport:
    """Read every lookup file once, in lexical order, and collect integrity issues.

    Duplicate groups list every occurrence, the first one included, so the
    competition step sees all claimants of a block.
    """

    directory = Path(directory)
    if not directory.is_dir():
        raise RegistryReadError(f"Registry path not found: {directory}", location=str(directory))

    files = sorted(path.name for path in directory.glob(pattern) if path.is_file())
    log.info("Scanning %d files in %s", len(files), directory)

    scan = _Scan()
    for position, filename in enumerate(files, start=1):
        try:
            payload = read_json(directory / filename)
        except (OSError, ValueError) as exc:
            log.warning("Could not read %s: %s", filename, exc)
            scan.invalid.append(InvalidEntry(filename, f"Unreadable file: {exc}"))
            continue
        if not isinstance(payload, list):
            log.warning("%s: %s", filename, NOT_AN_ARRAY)
            scan.invalid.append(InvalidEntry(filename, NOT_AN_ARRAY))
            continue
        for index, entry in enumerate(payload):
            scan.add(filename, index, entry)
        if position % 10 == 0:
            log.info("[%d/%d] scanned %s", position, len(files), filename)

    duplicate_blocks = {
        block: tuple(items) for block, items in sorted(scan.blocks.items()) if len(items) > 1
    }
    duplicate_sats = {
        sat: tuple(items) for sat, items in sorted(scan.sats.items()) if len(items) > 1
    }
    missing = _missing(set(scan.blocks), expected_range)
    log.info(
        "Scanned %d entries: %d invalid, %d duplicate blocks, %d duplicate sats, %d missing",
        scan.total,
        len(scan.invalid),
        len(duplicate_blocks),
        len(duplicate_sats),
        len(missing),
    )
    return ValidationReport(
        directory=directory,
        files=tuple(files),
        total_entries=scan.total,
        invalid_entries=tuple(scan.invalid),
        duplicate_blocks=duplicate_blocks,
        duplicate_sats=duplicate_sats,
        missing_blocks=missing,
        unique_blocks=len(scan.blocks),
        unique_sats=len(scan.sats),
        expected_range=expected_range,
    )
