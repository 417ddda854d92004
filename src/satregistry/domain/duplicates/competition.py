"""Decide which claimant of a duplicated block stays, using the canonical partitions."""

from __future__ import annotations

import re
from collections.abc import Mapping
from dataclasses import dataclass
from logging import getLogger
from pathlib import Path
from typing import TYPE_CHECKING, Final

from satregistry.common.jsonio import read_json
from satregistry.domain.diff import KEY_FIELD, block_of, coerce_int
from satregistry.domain.errors import RegistryReadError

if TYPE_CHECKING:
    from collections.abc import Sequence

    from satregistry.domain.types import BlockHeight, SatNumber

log = getLogger(__name__)

PARTITION_FILENAME: Final[re.Pattern[str]] = re.compile(r"^(\d+)-(\d+)\.json$")

NOT_IN_REGISTRY = "not_in_registry"
REGISTERED_SAT_NOT_CLAIMED = "registered_sat_not_claimed"


@dataclass(slots=True, frozen=True)
class Placement:
    block: BlockHeight
    sat: SatNumber


@dataclass(slots=True, frozen=True)
class UnresolvedBlock:
    block: BlockHeight
    duplicate_sats: tuple[SatNumber, ...]
    reason: str
    registered_sat: SatNumber | None = None


@dataclass(slots=True, frozen=True)
class CompetitionResult:
    winners: tuple[Placement, ...]
    losers: tuple[Placement, ...]
    unresolved: tuple[UnresolvedBlock, ...]


def _distinct(sats: Sequence[SatNumber]) -> tuple[SatNumber, ...]:
    return tuple(dict.fromkeys(sats))


def resolve_competition(
    duplicates: Mapping[BlockHeight, Sequence[SatNumber]],
    canonical_index: Mapping[BlockHeight, SatNumber],
) -> CompetitionResult:
    """Split duplicated blocks into the registered winner and its losers.

    A block whose canonical entry is missing, or names a sat none of the
    claimants hold, is reported as unresolved and left untouched. Blocks whose
    occurrences all carry the same sat are not a competition and are skipped.
    """

    winners: list[Placement] = []
    losers: list[Placement] = []
    unresolved: list[UnresolvedBlock] = []

    for block in sorted(duplicates):
        sats = _distinct(duplicates[block])
        if len(sats) < 2:
            log.debug("Block %d repeats sat %s only; nothing to resolve", block, sats)
            continue
        registered = canonical_index.get(block)
        if registered is None:
            unresolved.append(UnresolvedBlock(block, sats, NOT_IN_REGISTRY))
            continue
        if registered not in sats:
            unresolved.append(
                UnresolvedBlock(block, sats, REGISTERED_SAT_NOT_CLAIMED, registered_sat=registered)
            )
            continue
        winners.append(Placement(block, registered))
        losers.extend(Placement(block, sat) for sat in sats if sat != registered)

    if unresolved:
        log.warning("%d blocks could not be resolved from the registry", len(unresolved))
    return CompetitionResult(tuple(winners), tuple(losers), tuple(unresolved))


def _partition_start(path: Path) -> int:
    match = PARTITION_FILENAME.match(path.name)
    return int(match.group(1)) if match else -1


def load_canonical_index(directory: Path) -> dict[BlockHeight, SatNumber]:
    """Block -> sat index built from ``{start}-{end}.json`` partitions in numeric order."""

    directory = Path(directory)
    if not directory.is_dir():
        raise RegistryReadError(f"Registry path not found: {directory}", location=str(directory))

    files = sorted(
        (path for path in directory.iterdir() if PARTITION_FILENAME.match(path.name)),
        key=_partition_start,
    )
    index: dict[BlockHeight, SatNumber] = {}
    loaded = 0
    for path in files:
        try:
            payload = read_json(path)
        except (OSError, ValueError) as exc:
            log.warning("Failed to load registry file %s: %s", path.name, exc)
            continue
        if not isinstance(payload, list):
            log.warning("Registry file %s is not a JSON array", path.name)
            continue
        for entry in payload:
            if not isinstance(entry, Mapping):
                continue
            sat = coerce_int(entry.get(KEY_FIELD))
            block = block_of(entry)
            if sat is not None and block is not None:
                index[block] = sat
        loaded += 1
        if loaded % 10 == 0:
            log.debug("Registry files loaded: %d/%d", loaded, len(files))
    log.info("Loaded %d registry files (%d blocks)", loaded, len(index))
    return index
