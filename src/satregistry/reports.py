"""Rendering and parsing of the reports written by each run."""

from __future__ import annotations

import csv
from datetime import UTC, datetime
from logging import getLogger
from pathlib import Path
from typing import TYPE_CHECKING, Final, TypeVar

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from satregistry.common.jsonio import write_json_atomic
from satregistry.domain.duplicates.competition import Placement
from satregistry.domain.errors import MalformedReportError
from satregistry.domain.types import (
    BlockConflictEntry,
    DiffKind,
    MatchEntry,
    OnlyInAEntry,
    OnlyInBEntry,
    SatConflictEntry,
    Winner,
)

if TYPE_CHECKING:
    from collections.abc import Iterable, Sequence

    from satregistry.domain.diff import DiffResult
    from satregistry.domain.duplicates.competition import CompetitionResult
    from satregistry.domain.duplicates.remover import RemovalReport
    from satregistry.domain.duplicates.validator import ValidationReport
    from satregistry.domain.reconcile import BatchReport, FileResult
    from satregistry.domain.types import BlockHeight, DiffEntry, SatNumber, Verdict

log = getLogger(__name__)

WIDTH: Final[int] = 80
RULE: Final[str] = "─" * WIDTH
HEAVY_RULE: Final[str] = "═" * WIDTH
CSV_HEADER: Final[tuple[str, ...]] = ("Type", "Sat", "File1_Block", "File2_Block", "Description")
ONE_SIDED_PREVIEW: Final[int] = 20
COLUMNS: Final[int] = 4
COLUMN_WIDTH: Final[int] = 18
NOT_FOUND: Final[str] = "NOT FOUND"

SAT_COMPARISON_PREFIX: Final[str] = "sat-comparison"
TRUE_BITMAPS_PREFIX: Final[str] = "true-bitmaps"
DUPLICATE_VALIDATION_PREFIX: Final[str] = "duplicate-validation"
DUPLICATE_COMPETITION_PREFIX: Final[str] = "duplicate-competition"
DUPLICATE_REMOVAL_PREFIX: Final[str] = "duplicate-removal"


def _now(now: datetime | None) -> datetime:
    return now or datetime.now(UTC)


def _section(lines: list[str], title: str) -> None:
    lines.extend((RULE, f"  {title}", RULE))


# --- Pairwise diff ------------------------------------------------------------


def _blocks(entry: DiffEntry) -> tuple[SatNumber, BlockHeight | None, BlockHeight | None]:
    if isinstance(entry, MatchEntry):
        return entry.sat, entry.block, entry.block
    if isinstance(entry, SatConflictEntry):
        return entry.sat, entry.block_a, entry.block_b
    if isinstance(entry, OnlyInAEntry):
        return entry.sat, entry.block, None
    if isinstance(entry, OnlyInBEntry):
        return entry.sat, None, entry.block
    return entry.sat_a, entry.block, entry.block


def difference_payload(entry: DiffEntry) -> dict[str, object]:
    sat, block_a, block_b = _blocks(entry)
    payload: dict[str, object] = {
        "type": entry.kind.value,
        "sat": sat,
        "file1Block": block_a,
        "file2Block": block_b,
        "description": entry.description,
    }
    if isinstance(entry, BlockConflictEntry):
        payload["file1Sat"] = entry.sat_a
        payload["file2Sat"] = entry.sat_b
    return payload


def diff_payload(result: DiffResult, *, now: datetime | None = None) -> dict[str, object]:
    stats = result.stats
    return {
        "timestamp": _now(now).isoformat(),
        "file1": result.label_a,
        "file2": result.label_b,
        "summary": {
            "file1Count": stats.file1_count,
            "file2Count": stats.file2_count,
            "matches": stats.matches,
            "conflicts": stats.conflicts,
            "blockConflicts": stats.block_conflicts,
            "file1Only": stats.file1_only,
            "file2Only": stats.file2_only,
        },
        "differences": [difference_payload(entry) for entry in result.differences],
    }


def write_diff_json(path: Path, result: DiffResult, *, now: datetime | None = None) -> Path:
    write_json_atomic(Path(path), diff_payload(result, now=now))
    log.info("Detailed report exported to %s", path)
    return Path(path)


def write_diff_csv(path: Path, result: DiffResult) -> Path | None:
    """Write the differences as CSV; nothing is written when the files agree."""

    differences = result.differences
    if not differences:
        log.info("No differences to export to CSV")
        return None
    path = Path(path)
    with path.open("w", encoding="utf-8", newline="") as handle:
        writer = csv.writer(handle, lineterminator="\n")
        writer.writerow(CSV_HEADER)
        for entry in differences:
            sat, block_a, block_b = _blocks(entry)
            writer.writerow(
                (
                    entry.kind.value,
                    sat,
                    "N/A" if block_a is None else block_a,
                    "N/A" if block_b is None else block_b,
                    entry.description,
                )
            )
    log.info("Differences exported to CSV: %s", path)
    return path


# --- Batch reconciliation -----------------------------------------------------


def _file_detail(lines: list[str], item: FileResult, label_a: str, label_b: str) -> None:
    if item.result is None:
        lines.extend((f"ERROR: {item.error}", ""))
        return
    stats = item.result.stats
    lines.extend(
        (
            f"{label_a} entries: {stats.file1_count}",
            f"{label_b} entries: {stats.file2_count}",
            f"Matches: {stats.matches}",
            f"Conflicts: {stats.conflicts}",
            f"Block conflicts: {stats.block_conflicts}",
            f"{label_a} only: {stats.file1_only}",
            f"{label_b} only: {stats.file2_only}",
            f"Total differences: {len(item.result.differences)}",
            "",
        )
    )
    block_conflicts = item.result.block_conflicts
    if block_conflicts:
        lines.append(f"  Block Conflicts ({len(block_conflicts)}):")
        lines.extend(
            f"    - Block {entry.block}: "
            f"{label_a}→Sat {entry.sat_a}, {label_b}→Sat {entry.sat_b}"
            for entry in block_conflicts
        )
    for kind, label in ((DiffKind.ONLY_IN_A, label_a), (DiffKind.ONLY_IN_B, label_b)):
        one_sided = item.result.of_kind(kind)
        if not one_sided:
            continue
        lines.append(f"  Entries only in {label} ({len(one_sided)}):")
        for entry in one_sided[:ONE_SIDED_PREVIEW]:
            sat, block_a, block_b = _blocks(entry)
            lines.append(f"    - Sat {sat} → Block {block_a if block_b is None else block_b}")
        if len(one_sided) > ONE_SIDED_PREVIEW:
            lines.append(f"    ... and {len(one_sided) - ONE_SIDED_PREVIEW} more")
    lines.append("")


def batch_text(report: BatchReport, *, now: datetime | None = None) -> str:
    label_a, label_b = report.label_a, report.label_b
    compared = [item.result for item in report.files if item.result is not None]
    total_differences = sum(len(result.differences) for result in compared)

    lines = [
        HEAVY_RULE,
        "    BITCOIN SAT REGISTRY VALIDATION REPORT",
        HEAVY_RULE,
        "",
        f"Generated: {_now(now).isoformat()}",
        f"Repository 1: {label_a}",
        f"Repository 2: {label_b}",
        f"Total Files Compared: {len(report.files)}",
        "",
    ]
    _section(lines, "OVERALL SUMMARY")
    lines.extend(
        (
            f"Files with differences: {len(report.files_with_differences)} / {len(report.files)}",
            f"Files with errors: {len(report.files_with_errors)}",
            f"Total differences found: {total_differences}",
            "  - Sat conflicts (same sat, different blocks): "
            f"{sum(result.stats.conflicts for result in compared)}",
            f"  - Block conflicts (same block, different sats): {len(report.conflicts)}",
            f"  - Entries only in {label_a}: {sum(r.stats.file1_only for r in compared)}",
            f"  - Entries only in {label_b}: {sum(r.stats.file2_only for r in compared)}",
            "",
        )
    )

    if report.conflicts:
        _section(lines, "ALL BLOCK CONFLICTS (SORTED BY BLOCK HEIGHT)")
        lines.extend((f"Total: {len(report.conflicts)} block conflicts found across all files", ""))
        for index, conflict in enumerate(report.conflicts, start=1):
            lines.extend(
                (
                    f"  {index:>3}. Block {conflict.block}:",
                    f"       {label_a}→ID: {conflict.claimant_a or NOT_FOUND}",
                    f"       {label_b}→ID: {conflict.claimant_b or NOT_FOUND}",
                    f"       (Sat conflict: {conflict.sat_a} vs {conflict.sat_b})",
                )
            )
            if conflict.inter_file:
                lines.append("       (claims sit in different lookup files)")
        lines.append("")

    if report.only_in_a_files or report.only_in_b_files:
        _section(lines, "FILES PRESENT IN ONE REPOSITORY ONLY")
        for label, names in ((label_a, report.only_in_a_files), (label_b, report.only_in_b_files)):
            if names:
                lines.append(f"Only in {label} ({len(names)}):")
                lines.extend(f"  - {name}" for name in names)
        lines.append("")

    if report.failed_lookups:
        _section(lines, "FAILED IDENTITY LOOKUPS")
        lines.extend(
            f"  Block {failed.block}: {label_a}={failed.identity_a or NOT_FOUND}, "
            f"{label_b}={failed.identity_b or NOT_FOUND}"
            for failed in report.failed_lookups
        )
        lines.append("")

    _section(lines, "DETAILED FILE-BY-FILE RESULTS")
    lines.append("")
    for index, item in enumerate(report.files, start=1):
        lines.extend((f"[{index}/{len(report.files)}] {item.filename}", RULE))
        _file_detail(lines, item, label_a, label_b)

    lines.extend((HEAVY_RULE, "END OF REPORT", HEAVY_RULE))
    return "\n".join(lines) + "\n"


# --- FiF verdicts -------------------------------------------------------------


def _winner_label(winner: Winner, label_a: str, label_b: str) -> str:
    if winner is Winner.A:
        return label_a
    if winner is Winner.B:
        return label_b
    return winner.value


def columns(values: Sequence[int], *, count: int = COLUMNS, width: int = COLUMN_WIDTH) -> list[str]:
    """Lay ``values`` out column-major in ``count`` columns of ``width`` characters."""

    if not values:
        return []
    rows = -(-len(values) // count)
    lines: list[str] = []
    for row in range(rows):
        cells = [str(values[index]).ljust(width) for index in range(row, len(values), rows)]
        lines.append(("  " + "".join(cells)).rstrip())
    return lines


def verdict_text(
    verdicts: Iterable[Verdict],
    *,
    label_a: str,
    label_b: str,
    now: datetime | None = None,
) -> str:
    results = sorted(verdicts, key=lambda verdict: verdict.block)
    stamp = _now(now).isoformat()
    counts = dict.fromkeys(Winner, 0)
    for verdict in results:
        counts[verdict.winner] += 1

    lines = [
        HEAVY_RULE,
        "    TRUE BITMAP WINNERS - FIRST-IS-FIRST RESOLUTION",
        HEAVY_RULE,
        "",
        f"Generated: {stamp}",
        f"Total Conflicts Resolved: {len(results)}",
        "",
    ]
    _section(lines, "SUMMARY")
    lines.extend(
        (
            f"{label_a} Wins: {counts[Winner.A]}",
            f"{label_b} Wins: {counts[Winner.B]}",
            f"Both Match: {counts[Winner.BOTH]}",
            f"Neither Found: {counts[Winner.NEITHER]}",
            f"Unknown: {counts[Winner.UNKNOWN]}",
            "",
        )
    )

    _section(lines, "BLOCKS BY WINNER (4 COLUMNS)")
    lines.append("")
    categories = (
        (f"{label_a.upper()} WINS", {Winner.A}),
        (f"{label_b.upper()} WINS", {Winner.B}),
        ("BOTH MATCH", {Winner.BOTH}),
        ("NEITHER/UNKNOWN", {Winner.NEITHER, Winner.UNKNOWN}),
    )
    for title, winners in categories:
        blocks = sorted(verdict.block for verdict in results if verdict.winner in winners)
        if not blocks:
            lines.extend((f"{title}: None", ""))
            continue
        lines.append(f"{title} ({len(blocks)} blocks):")
        lines.extend(columns(blocks))
        lines.append("")

    _section(lines, "WINNERS BY BLOCK HEIGHT")
    lines.append("")
    for index, verdict in enumerate(results, start=1):
        lines.append(f"{index:>3}. Block {verdict.block}:")
        lines.append(f"     Winner: {_winner_label(verdict.winner, label_a, label_b)}")
        if verdict.winning_identity:
            lines.append(f"     ID: {verdict.winning_identity}")
        if verdict.winning_sat is not None and verdict.losing_sat is not None:
            lines.append(
                f"     Sats: {verdict.winning_sat} (winner) > {verdict.losing_sat} (loser)"
            )
        lines.extend((f"     Reason: {verdict.reason}", ""))

    lines.extend(
        (HEAVY_RULE, "Report: True Bitmap Resolver", f"Timestamp: {stamp}", HEAVY_RULE)
    )
    return "\n".join(lines) + "\n"


# --- Duplicate pipeline -------------------------------------------------------


def validation_payload(
    report: ValidationReport, *, now: datetime | None = None
) -> dict[str, object]:
    return {
        "generated": _now(now).isoformat(),
        "registryPath": str(report.directory),
        "summary": {
            "filesScanned": len(report.files),
            "totalEntries": report.total_entries,
            "uniqueBlocks": report.unique_blocks,
            "uniqueSats": report.unique_sats,
            "invalidEntries": len(report.invalid_entries),
            "duplicateBlocks": len(report.duplicate_blocks),
            "duplicateSats": len(report.duplicate_sats),
            "missingBlocks": len(report.missing_blocks),
        },
        "expectedRange": list(report.expected_range) if report.expected_range else None,
        "invalidEntries": [
            {"file": item.file, "index": item.index, "reason": item.reason, "entry": item.entry}
            for item in report.invalid_entries
        ],
        "duplicateBlocks": {
            str(block): [
                {"file": item.file, "sat": item.sat, "index": item.index} for item in occurrences
            ]
            for block, occurrences in report.duplicate_blocks.items()
        },
        "duplicateSats": {
            str(sat): [
                {"file": item.file, "block": item.block, "index": item.index}
                for item in occurrences
            ]
            for sat, occurrences in report.duplicate_sats.items()
        },
        "missingBlocks": list(report.missing_blocks),
    }


def competition_payload(
    result: CompetitionResult,
    *,
    input_report: Path | None = None,
    registry_path: Path | None = None,
    total_duplicate_blocks: int | None = None,
    now: datetime | None = None,
) -> dict[str, object]:
    return {
        "generated": _now(now).isoformat(),
        "inputReport": None if input_report is None else str(input_report),
        "registryPath": None if registry_path is None else str(registry_path),
        "summary": {
            "totalDuplicateBlocks": total_duplicate_blocks,
            "winnersResolved": len(result.winners),
            "losersIdentified": len(result.losers),
            "unresolvedBlocks": len(result.unresolved),
        },
        "results": {
            "winners": [{"block": item.block, "sat": item.sat} for item in result.winners],
            "losers": [{"block": item.block, "sat": item.sat} for item in result.losers],
            "unresolved": [
                {
                    "block": item.block,
                    "duplicateSats": list(item.duplicate_sats),
                    "reason": item.reason,
                    "registeredSat": item.registered_sat,
                }
                for item in result.unresolved
            ],
        },
    }


def removal_payload(
    report: RemovalReport,
    *,
    competition_report: Path | None = None,
    registry_path: Path | None = None,
    now: datetime | None = None,
) -> dict[str, object]:
    return {
        "timestamp": _now(now).isoformat(),
        "competitionReport": None if competition_report is None else str(competition_report),
        "registryPath": None if registry_path is None else str(registry_path),
        "totalLosers": report.total_losers,
        "removed": [
            {
                "block": item.block,
                "sat": item.sat,
                "files": list(item.files),
                "entriesBefore": item.entries_before,
                "entriesAfter": item.entries_after,
            }
            for item in report.removed
        ],
        "failed": [
            {"block": item.block, "sat": item.sat, "file": item.file, "reason": item.reason}
            for item in report.failed
        ],
        "notFound": [
            {"block": item.block, "sat": item.sat, "reason": item.reason}
            for item in report.not_found
        ],
    }


class _BlockOccurrenceRecord(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    file: str
    sat: int


class ValidationReportFile(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    duplicate_blocks: dict[int, list[_BlockOccurrenceRecord]] = Field(alias="duplicateBlocks")


class _PlacementRecord(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    block: int
    sat: int


class _CompetitionResults(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    losers: list[_PlacementRecord]


class CompetitionReportFile(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    results: _CompetitionResults


M = TypeVar("M", bound=BaseModel)


def _read_report(path: Path, model: type[M]) -> M:
    path = Path(path)
    try:
        return model.model_validate_json(path.read_bytes())
    except OSError as exc:
        raise MalformedReportError(f"Report not readable: {path}: {exc}") from exc
    except ValidationError as exc:
        raise MalformedReportError(f"Invalid report format in {path}: {exc}") from exc


def load_duplicate_blocks(path: Path) -> dict[BlockHeight, list[SatNumber]]:
    """Block -> claimed sats from a duplicate validation report."""

    parsed = _read_report(path, ValidationReportFile)
    return {
        block: [item.sat for item in occurrences]
        for block, occurrences in parsed.duplicate_blocks.items()
    }


def load_losers(path: Path) -> list[Placement]:
    """Losing ``(block, sat)`` pairs from a duplicate competition report."""

    parsed = _read_report(path, CompetitionReportFile)
    return [Placement(block=item.block, sat=item.sat) for item in parsed.results.losers]


def write_text(path: Path, text: str) -> Path:
    path = Path(path)
    path.write_text(text, encoding="utf-8")
    log.info("Report saved: %s", path)
    return path


def write_json(path: Path, payload: object) -> Path:
    path = Path(path)
    write_json_atomic(path, payload)
    log.info("Report saved: %s", path)
    return path
