"""Duplicate detection, resolution and removal for lookup files."""

from __future__ import annotations

from .competition import (
    CompetitionResult,
    Placement,
    UnresolvedBlock,
    load_canonical_index,
    resolve_competition,
)
from .gaps import BlockRun, GapReport, find_partition_gaps, group_runs
from .remover import FailedRemoval, NotFound, RemovalReport, Removed, remove_losers
from .validator import (
    BlockOccurrence,
    InvalidEntry,
    SatOccurrence,
    ValidationReport,
    validate_registry,
)

__all__ = [
    "BlockOccurrence",
    "BlockRun",
    "CompetitionResult",
    "FailedRemoval",
    "GapReport",
    "InvalidEntry",
    "NotFound",
    "Placement",
    "RemovalReport",
    "Removed",
    "SatOccurrence",
    "UnresolvedBlock",
    "ValidationReport",
    "find_partition_gaps",
    "group_runs",
    "load_canonical_index",
    "remove_losers",
    "resolve_competition",
    "validate_registry",
]
