"""Batch reconciliation of two partitioned registries.

Every lookup file present in both registries is diffed; block conflicts are
aggregated registry-wide and annotated with the inscription id each registry
records for the disputed block.
"""

from __future__ import annotations

import asyncio
from collections.abc import Mapping
from dataclasses import dataclass, field
from logging import getLogger
from typing import TYPE_CHECKING, Final

from .diff import block_of, build_dataset, diff
from .errors import LookupNotFoundError, ReconciliationError
from .types import BlockConflictEntry, Conflict, OnlyInAEntry, OnlyInBEntry

if TYPE_CHECKING:
    from satregistry.config.registry import ReconcileConfig

    from .diff import DiffResult
    from .ports import RegistrySource
    from .types import BlockHeight, InscriptionId, SatNumber

log = getLogger(__name__)

MAX_BLOCK: Final[int] = 999_999_999
IDENTITY_FIELDS: Final[tuple[str, ...]] = ("iD", "inscriptionID", "id")
PROGRESS_EVERY: Final[int] = 10


@dataclass(slots=True, frozen=True)
class PartitionRange:
    start: int
    end: int

    @property
    def filename(self) -> str:
        return f"{self.start}-{self.end}.json"

    def __contains__(self, block: object) -> bool:
        return isinstance(block, int) and self.start <= block <= self.end


def partition_for(block: int, size: int = 10_000) -> PartitionRange | None:
    """Canonical partition covering ``block``; ``None`` outside ``0..999,999,999``."""

    if block < 0 or block > MAX_BLOCK:
        return None
    start = (block // size) * size
    return PartitionRange(start=start, end=start + size - 1)


@dataclass(slots=True, frozen=True)
class FileResult:
    filename: str
    result: DiffResult | None = None
    error: str | None = None

    @property
    def has_differences(self) -> bool:
        return self.result is not None and self.result.has_differences


@dataclass(slots=True, frozen=True)
class FailedLookup:
    block: BlockHeight
    identity_a: InscriptionId | None
    identity_b: InscriptionId | None


@dataclass(slots=True, frozen=True)
class BatchReport:
    label_a: str
    label_b: str
    files: tuple[FileResult, ...]
    conflicts: tuple[Conflict, ...]
    only_in_a_files: tuple[str, ...] = ()
    only_in_b_files: tuple[str, ...] = ()
    failed_lookups: tuple[FailedLookup, ...] = ()

    @property
    def files_with_differences(self) -> tuple[FileResult, ...]:
        return tuple(item for item in self.files if item.has_differences)

    @property
    def files_with_errors(self) -> tuple[FileResult, ...]:
        return tuple(item for item in self.files if item.error is not None)

    @property
    def has_differences(self) -> bool:
        return bool(self.conflicts or self.files_with_differences or self.files_with_errors)


@dataclass(slots=True)
class PartitionCache:
    """Canonical partitions fetched during one run, keyed by (source label, filename)."""

    fetch_delay: float = 0.0
    _entries: dict[tuple[str, str], list[object]] = field(default_factory=dict)

    async def records(self, source: RegistrySource, filename: str) -> list[object]:
        key = (source.label, filename)
        cached = self._entries.get(key)
        if cached is not None:
            return cached
        if self.fetch_delay > 0:
            await asyncio.sleep(self.fetch_delay)
        try:
            payload = await source.read_records(filename)
        except ReconciliationError as exc:
            log.warning("Could not load %s from %s: %s", filename, source.label, exc)
            payload = []
        if not isinstance(payload, list):
            log.warning("Partition %s from %s is not a JSON array", filename, source.label)
            payload = []
        self._entries[key] = payload
        return payload

    def __len__(self) -> int:
        return len(self._entries)


def _identity_in(records: list[object], block: int, filename: str) -> InscriptionId:
    for record in records:
        if not isinstance(record, Mapping):
            continue
        if block_of(record) != block:
            continue
        for name in IDENTITY_FIELDS:
            value = record.get(name)
            if isinstance(value, str) and value.strip():
                return value.strip()
    raise LookupNotFoundError(block, filename)


class BatchReconciler:
    def __init__(
        self,
        source_a: RegistrySource,
        source_b: RegistrySource,
        *,
        config: ReconcileConfig,
    ) -> None:
        self.source_a = source_a
        self.source_b = source_b
        self.config = config
        self.partitions = PartitionCache(fetch_delay=config.partition_fetch_delay)

    async def run(self) -> BatchReport:
        pattern = self.config.lookup_pattern
        files_a = set(await self.source_a.list_files(pattern))
        files_b = set(await self.source_b.list_files(pattern))
        common = sorted(files_a & files_b)
        only_a = tuple(sorted(files_a - files_b))
        only_b = tuple(sorted(files_b - files_a))
        log.info(
            "Comparing %d files (%d only in %s, %d only in %s)",
            len(common),
            len(only_a),
            self.source_a.label,
            len(only_b),
            self.source_b.label,
        )
        for name in only_a:
            log.warning("%s exists only in %s; not compared", name, self.source_a.label)
        for name in only_b:
            log.warning("%s exists only in %s; not compared", name, self.source_b.label)

        results: list[FileResult] = []
        for position, filename in enumerate(common, start=1):
            results.append(await self.compare_file(filename))
            if position % PROGRESS_EVERY == 0:
                log.info("[%d/%d] compared %s", position, len(common), filename)

        entries = aggregate_block_conflicts(results)
        conflicts: list[Conflict] = []
        failed: list[FailedLookup] = []
        for position, entry in enumerate(entries, start=1):
            conflict = await self.identify(entry)
            conflicts.append(conflict)
            if conflict.claimant_a is None or conflict.claimant_b is None:
                log.warning(
                    "Block %d: incomplete identity lookup (%s=%s, %s=%s)",
                    entry.block,
                    self.source_a.label,
                    "found" if conflict.claimant_a else "missing",
                    self.source_b.label,
                    "found" if conflict.claimant_b else "missing",
                )
                failed.append(FailedLookup(entry.block, conflict.claimant_a, conflict.claimant_b))
            if position % PROGRESS_EVERY == 0:
                log.info(
                    "[%d/%d] looked up identities for block %d",
                    position,
                    len(entries),
                    entry.block,
                )

        return BatchReport(
            label_a=self.source_a.label,
            label_b=self.source_b.label,
            files=tuple(results),
            conflicts=tuple(conflicts),
            only_in_a_files=only_a,
            only_in_b_files=only_b,
            failed_lookups=tuple(failed),
        )

    async def compare_file(self, filename: str) -> FileResult:
        try:
            records_a = await self.source_a.read_records(filename)
            records_b = await self.source_b.read_records(filename)
            result = diff(
                build_dataset(records_a, label=f"{self.source_a.label}/{filename}"),
                build_dataset(records_b, label=f"{self.source_b.label}/{filename}"),
            )
        except ReconciliationError as exc:
            log.error("Failed to compare %s: %s", filename, exc)
            return FileResult(filename=filename, error=str(exc))
        return FileResult(filename=filename, result=result)

    async def identity(self, source: RegistrySource, block: int) -> InscriptionId | None:
        partition = partition_for(block, self.config.partition_size)
        if partition is None:
            log.warning("Block %d is outside the partitioned range", block)
            return None
        records = await self.partitions.records(source, partition.filename)
        try:
            return _identity_in(records, block, partition.filename)
        except LookupNotFoundError as exc:
            log.warning("%s: %s", source.label, exc)
            return None

    async def identify(self, entry: BlockConflictEntry) -> Conflict:
        return Conflict(
            block=entry.block,
            claimant_a=await self.identity(self.source_a, entry.block),
            claimant_b=await self.identity(self.source_b, entry.block),
            sat_a=entry.sat_a,
            sat_b=entry.sat_b,
            inter_file=entry.inter_file,
        )


def aggregate_block_conflicts(results: list[FileResult]) -> list[BlockConflictEntry]:
    """Registry-wide block conflicts, deduplicated by block, sorted by block.

    Per-file conflicts keep the first occurrence in file order. One-sided
    entries from all files are folded into block -> sat maps so a block claimed
    by different sats in different files also surfaces, flagged ``inter_file``.
    """

    by_block: dict[BlockHeight, BlockConflictEntry] = {}
    sats_a: dict[BlockHeight, SatNumber] = {}
    sats_b: dict[BlockHeight, SatNumber] = {}
    for item in results:
        if item.result is None:
            continue
        for entry in item.result.entries:
            if isinstance(entry, BlockConflictEntry):
                by_block.setdefault(entry.block, entry)
            elif isinstance(entry, OnlyInAEntry):
                sats_a.setdefault(entry.block, entry.sat)
            elif isinstance(entry, OnlyInBEntry):
                sats_b.setdefault(entry.block, entry.sat)

    for block in sats_a.keys() & sats_b.keys():
        if block in by_block or sats_a[block] == sats_b[block]:
            continue
        by_block[block] = BlockConflictEntry(
            block=block, sat_a=sats_a[block], sat_b=sats_b[block], inter_file=True
        )

    return [by_block[block] for block in sorted(by_block)]
