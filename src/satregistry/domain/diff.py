"""Bidirectional comparison of two sat-keyed registry datasets."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from logging import getLogger
from typing import TYPE_CHECKING

from .errors import FieldError, ShapeError
from .types import (
    BlockConflictEntry,
    Claim,
    DiffKind,
    KeyedDataset,
    MatchEntry,
    OnlyInAEntry,
    OnlyInBEntry,
    SatConflictEntry,
)

if TYPE_CHECKING:
    from .types import DiffEntry, KeyedEntry, SatNumber

log = getLogger(__name__)

KEY_FIELD = "sat"
VALUE_FIELDS = ("block", "blockheight")


def coerce_int(value: object) -> int | None:
    """Return ``value`` as a non-negative int, accepting numeric strings; ``None`` otherwise."""

    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value if value >= 0 else None
    if isinstance(value, float):
        return int(value) if value.is_integer() and value >= 0 else None
    if isinstance(value, str):
        text = value.strip()
        if text.isdigit():
            return int(text)
    return None


def block_of(record: Mapping[str, object]) -> int | None:
    """First usable block height among the accepted value fields."""

    for name in VALUE_FIELDS:
        block = coerce_int(record.get(name))
        if block is not None:
            return block
    return None


def parse_claim(record: object, *, index: int, source: str) -> Claim:
    if not isinstance(record, Mapping):
        raise FieldError(f"record is not an object: {record!r}", index=index, record=record)
    sat = coerce_int(record.get(KEY_FIELD))
    if sat is None:
        raise FieldError("missing or invalid 'sat'", index=index, record=record)
    block = block_of(record)
    if block is None:
        raise FieldError("missing or invalid 'block'/'blockheight'", index=index, record=record)
    return Claim(key=sat, value=block, source=source)


def build_dataset(records: object, *, label: str) -> KeyedDataset:
    """Index a decoded JSON array by sat, skipping (and logging) malformed records."""

    if not isinstance(records, list):
        raise ShapeError(f"{label}: expected a JSON array, got {type(records).__name__}")

    claims: dict[SatNumber, Claim] = {}
    for index, record in enumerate(records):
        try:
            claim = parse_claim(record, index=index, source=label)
        except FieldError as exc:
            log.warning("Skipping record %d in %s: %s (%r)", exc.index, label, exc, exc.record)
            continue
        if claim.key in claims:
            log.debug(
                "Sat %d repeated in %s; block %d replaces %d",
                claim.key,
                label,
                claim.value,
                claims[claim.key].value,
            )
        claims[claim.key] = claim
    return KeyedDataset(label=label, claims=claims)


@dataclass(slots=True, frozen=True)
class DiffStats:
    file1_count: int = 0
    file2_count: int = 0
    matches: int = 0
    conflicts: int = 0
    block_conflicts: int = 0
    file1_only: int = 0
    file2_only: int = 0


@dataclass(slots=True, frozen=True)
class DiffResult:
    label_a: str
    label_b: str
    entries: tuple[DiffEntry, ...]
    stats: DiffStats

    @property
    def differences(self) -> tuple[DiffEntry, ...]:
        return tuple(entry for entry in self.entries if entry.kind is not DiffKind.MATCH)

    @property
    def block_conflicts(self) -> tuple[BlockConflictEntry, ...]:
        return tuple(entry for entry in self.entries if isinstance(entry, BlockConflictEntry))

    @property
    def has_differences(self) -> bool:
        return any(entry.kind is not DiffKind.MATCH for entry in self.entries)

    def of_kind(self, kind: DiffKind) -> tuple[DiffEntry, ...]:
        return tuple(entry for entry in self.entries if entry.kind is kind)


def _keyed_entries(a: KeyedDataset, b: KeyedDataset) -> list[KeyedEntry]:
    entries: list[KeyedEntry] = []
    for sat in sorted(set(a.claims) | set(b.claims)):
        block_a = a.block_for(sat)
        block_b = b.block_for(sat)
        if block_a is not None and block_b is not None:
            if block_a == block_b:
                entries.append(MatchEntry(sat=sat, block=block_a))
            else:
                entries.append(SatConflictEntry(sat=sat, block_a=block_a, block_b=block_b))
        elif block_a is not None:
            entries.append(OnlyInAEntry(sat=sat, block=block_a))
        elif block_b is not None:
            entries.append(OnlyInBEntry(sat=sat, block=block_b))
    return entries


def _block_conflicts(a: KeyedDataset, b: KeyedDataset) -> list[BlockConflictEntry]:
    sats_a = a.by_block()
    sats_b = b.by_block()
    return [
        BlockConflictEntry(block=block, sat_a=sats_a[block], sat_b=sats_b[block])
        for block in sorted(sats_a.keys() & sats_b.keys())
        if sats_a[block] != sats_b[block]
    ]


def diff(a: KeyedDataset, b: KeyedDataset) -> DiffResult:
    """Classify every sat of ``a`` and ``b`` and surface blocks claimed by different sats.

    Keyed entries come first ordered by sat, followed by block conflicts ordered
    by block. Sat and block conflicts are independent views: one disagreement
    can appear in both.
    """

    keyed = _keyed_entries(a, b)
    block_conflicts = _block_conflicts(a, b)

    counts = dict.fromkeys(DiffKind, 0)
    for entry in keyed:
        counts[entry.kind] += 1

    stats = DiffStats(
        file1_count=len(a),
        file2_count=len(b),
        matches=counts[DiffKind.MATCH],
        conflicts=counts[DiffKind.SAT_CONFLICT],
        block_conflicts=len(block_conflicts),
        file1_only=counts[DiffKind.ONLY_IN_A],
        file2_only=counts[DiffKind.ONLY_IN_B],
    )
    return DiffResult(
        label_a=a.label,
        label_b=b.label,
        entries=(*keyed, *block_conflicts),
        stats=stats,
    )


def diff_records(
    records_a: object,
    records_b: object,
    *,
    label_a: str = "File1",
    label_b: str = "File2",
) -> DiffResult:
    return diff(build_dataset(records_a, label=label_a), build_dataset(records_b, label=label_b))
