"""Remove losing claims from the lookup files."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from logging import getLogger
from pathlib import Path
from typing import TYPE_CHECKING

from satregistry.common.jsonio import read_json, write_json_atomic
from satregistry.domain.diff import KEY_FIELD, block_of, coerce_int
from satregistry.domain.errors import RegistryReadError

if TYPE_CHECKING:
    from collections.abc import Iterable

    from satregistry.domain.types import BlockHeight, SatNumber

    from .competition import Placement

log = getLogger(__name__)

NOT_FOUND_REASON = "sat_not_found_in_any_file"


@dataclass(slots=True, frozen=True)
class Removed:
    block: BlockHeight
    sat: SatNumber
    files: tuple[str, ...]
    entries_before: int
    entries_after: int


@dataclass(slots=True, frozen=True)
class FailedRemoval:
    block: BlockHeight
    sat: SatNumber
    file: str | None
    reason: str


@dataclass(slots=True, frozen=True)
class NotFound:
    block: BlockHeight
    sat: SatNumber
    reason: str = NOT_FOUND_REASON


@dataclass(slots=True)
class RemovalReport:
    total_losers: int = 0
    removed: list[Removed] = field(default_factory=list)
    failed: list[FailedRemoval] = field(default_factory=list)
    not_found: list[NotFound] = field(default_factory=list)

    @property
    def complete(self) -> bool:
        return len(self.removed) == self.total_losers


def _matches(entry: object, sat: SatNumber, block: BlockHeight) -> bool:
    if not isinstance(entry, Mapping) or coerce_int(entry.get(KEY_FIELD)) != sat:
        return False
    return block_of(entry) == block


class _LookupFiles:
    """Lookup file contents loaded on first use and kept in step with rewrites."""

    def __init__(self, directory: Path, pattern: str) -> None:
        self.directory = directory
        self.names = sorted(path.name for path in directory.glob(pattern) if path.is_file())
        self._contents: dict[str, list[object] | None] = {}

    def contents(self, name: str) -> list[object] | None:
        if name not in self._contents:
            try:
                payload = read_json(self.directory / name)
            except (OSError, ValueError) as exc:
                log.warning("Skipping unreadable lookup file %s: %s", name, exc)
                payload = None
            self._contents[name] = payload if isinstance(payload, list) else None
        return self._contents[name]

    def locate(self, sat: SatNumber, block: BlockHeight) -> list[str]:
        """Every lookup file holding ``(sat, block)``, in lexical order."""

        return [
            name
            for name in self.names
            if any(_matches(entry, sat, block) for entry in self.contents(name) or ())
        ]

    def store(self, name: str, records: list[object]) -> None:
        write_json_atomic(self.directory / name, records)
        self._contents[name] = records


def remove_losers(
    directory: Path,
    losers: Iterable[Placement],
    *,
    pattern: str = "sat_*.json",
) -> RemovalReport:
    """Drop every record equal to a loser's ``(sat, block)`` from every file holding it.

    Running it again over the same losers changes nothing and reports them as
    not found.
    """

    directory = Path(directory)
    if not directory.is_dir():
        raise RegistryReadError(f"Registry path not found: {directory}", location=str(directory))

    lookup = _LookupFiles(directory, pattern)
    losers = list(losers)
    report = RemovalReport(total_losers=len(losers))
    log.info("Removing %d losing claims from %d files", len(losers), len(lookup.names))

    for position, loser in enumerate(losers, start=1):
        names = lookup.locate(loser.sat, loser.block)
        if not names:
            log.warning("Sat %d (block %d) not found in registry", loser.sat, loser.block)
            report.not_found.append(NotFound(loser.block, loser.sat))
            continue
        rewritten: list[str] = []
        before = after = 0
        for name in names:
            records = lookup.contents(name) or []
            kept = [entry for entry in records if not _matches(entry, loser.sat, loser.block)]
            try:
                lookup.store(name, kept)
            except OSError as exc:
                log.error("Failed to remove sat %d from %s: %s", loser.sat, name, exc)
                report.failed.append(FailedRemoval(loser.block, loser.sat, name, str(exc)))
                continue
            log.info("Removed sat %d from %s", loser.sat, name)
            rewritten.append(name)
            before += len(records)
            after += len(kept)
        if rewritten:
            report.removed.append(
                Removed(loser.block, loser.sat, tuple(rewritten), before, after)
            )
        if position % 100 == 0:
            log.info("Progress: %d/%d processed", position, len(losers))

    if report.failed:
        log.warning("%d removals failed; review the removal report", len(report.failed))
    if report.not_found:
        log.warning("%d sats not found; they may already be removed", len(report.not_found))
    return report
