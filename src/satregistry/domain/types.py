"""Core value types shared by the diff engine, reconciler and resolver."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum
from types import MappingProxyType
from typing import TYPE_CHECKING, Literal, TypeAlias

if TYPE_CHECKING:
    from collections.abc import Iterator, Mapping


SatNumber: TypeAlias = int
BlockHeight: TypeAlias = int
InscriptionId: TypeAlias = str


@dataclass(slots=True, frozen=True)
class Claim:
    """One registry record: ``key`` (sat) claims ``value`` (block)."""

    key: SatNumber
    value: BlockHeight
    source: str


@dataclass(slots=True, frozen=True)
class KeyedDataset:
    """Sat-keyed view of one registry file; read-only once built."""

    label: str
    claims: Mapping[SatNumber, Claim] = field(default_factory=lambda: MappingProxyType({}))

    def __post_init__(self) -> None:
        if not isinstance(self.claims, MappingProxyType):
            object.__setattr__(self, "claims", MappingProxyType(dict(self.claims)))

    def __len__(self) -> int:
        return len(self.claims)

    def __iter__(self) -> Iterator[SatNumber]:
        return iter(self.claims)

    def __contains__(self, key: object) -> bool:
        return key in self.claims

    def block_for(self, sat: SatNumber) -> BlockHeight | None:
        claim = self.claims.get(sat)
        return None if claim is None else claim.value

    def by_block(self) -> dict[BlockHeight, SatNumber]:
        """Inverse index block -> sat; the highest sat wins when a block repeats."""

        index: dict[BlockHeight, SatNumber] = {}
        for sat in sorted(self.claims):
            index[self.claims[sat].value] = sat
        return index


class DiffKind(StrEnum):
    MATCH = "MATCH"
    SAT_CONFLICT = "CONFLICT"
    BLOCK_CONFLICT = "BLOCK_CONFLICT"
    ONLY_IN_A = "FILE1_ONLY"
    ONLY_IN_B = "FILE2_ONLY"


@dataclass(slots=True, frozen=True)
class MatchEntry:
    sat: SatNumber
    block: BlockHeight
    kind: Literal[DiffKind.MATCH] = DiffKind.MATCH

    @property
    def description(self) -> str:
        return f"Sat {self.sat} matches block {self.block} in both files"


@dataclass(slots=True, frozen=True)
class SatConflictEntry:
    """Same sat, different blocks."""

    sat: SatNumber
    block_a: BlockHeight
    block_b: BlockHeight
    kind: Literal[DiffKind.SAT_CONFLICT] = DiffKind.SAT_CONFLICT

    @property
    def description(self) -> str:
        return f"Sat {self.sat} has different blocks: File1={self.block_a}, File2={self.block_b}"


@dataclass(slots=True, frozen=True)
class BlockConflictEntry:
    """Same block, different sats."""

    block: BlockHeight
    sat_a: SatNumber
    sat_b: SatNumber
    kind: Literal[DiffKind.BLOCK_CONFLICT] = DiffKind.BLOCK_CONFLICT
    inter_file: bool = False

    @property
    def description(self) -> str:
        return f"Block {self.block} has different sats: File1→{self.sat_a}, File2→{self.sat_b}"


@dataclass(slots=True, frozen=True)
class OnlyInAEntry:
    sat: SatNumber
    block: BlockHeight
    kind: Literal[DiffKind.ONLY_IN_A] = DiffKind.ONLY_IN_A

    @property
    def description(self) -> str:
        return f"Sat {self.sat} only exists in File1 (block {self.block})"


@dataclass(slots=True, frozen=True)
class OnlyInBEntry:
    sat: SatNumber
    block: BlockHeight
    kind: Literal[DiffKind.ONLY_IN_B] = DiffKind.ONLY_IN_B

    @property
    def description(self) -> str:
        return f"Sat {self.sat} only exists in File2 (block {self.block})"


KeyedEntry: TypeAlias = MatchEntry | SatConflictEntry | OnlyInAEntry | OnlyInBEntry
DiffEntry: TypeAlias = KeyedEntry | BlockConflictEntry


@dataclass(slots=True, frozen=True)
class Conflict:
    """A disputed block; ``None`` claimants mean the identity was not found."""

    block: BlockHeight
    claimant_a: InscriptionId | None
    claimant_b: InscriptionId | None
    sat_a: SatNumber
    sat_b: SatNumber
    inter_file: bool = False


@dataclass(slots=True, frozen=True)
class LedgerPosition:
    block_height: int | None = None
    block_position: int | None = None

    @property
    def confirmed(self) -> bool:
        return self.block_height is not None


@dataclass(slots=True, frozen=True)
class TxStatus:
    """Confirmation status of a transaction as reported by a chain provider."""

    confirmed: bool
    block_height: int | None = None
    block_hash: str | None = None


class Winner(StrEnum):
    A = "A"
    B = "B"
    BOTH = "BOTH"
    NEITHER = "NEITHER"
    UNKNOWN = "UNKNOWN"

    @property
    def other(self) -> Winner:
        if self is Winner.A:
            return Winner.B
        if self is Winner.B:
            return Winner.A
        return self


@dataclass(slots=True, frozen=True)
class Verdict:
    block: BlockHeight
    winner: Winner
    reason: str
    winning_identity: InscriptionId | None = None
    winning_sat: SatNumber | None = None
    losing_sat: SatNumber | None = None
