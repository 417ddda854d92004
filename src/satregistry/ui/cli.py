from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path
from signal import SIGINT, signal
from typing import TYPE_CHECKING

from dotenv import load_dotenv

from satregistry.app import (
    check_partition_gaps,
    compare_files,
    compete_duplicates,
    reconcile_registries,
    recover_registry,
    remove_duplicates,
    resolve_conflicts,
    validate_duplicates,
)
from satregistry.config import DuplicateConfig, configure_logging, get_duplicate_config

if TYPE_CHECKING:
    from collections.abc import Sequence
    from types import FrameType

log = logging.getLogger(__name__)


class UsageError(ValueError):
    """Command line arguments that parse but cannot be acted on."""


def _add_registry_options(parser: argparse.ArgumentParser, *, canonical: bool = False) -> None:
    parser.add_argument(
        "--registry-dir",
        type=Path,
        help="Directory holding the sat_*.json lookup files (defaults to REGISTRY_DIR)",
    )
    parser.add_argument(
        "--pattern",
        type=str,
        default=None,
        help="Glob selecting lookup files (default: sat_*.json)",
    )
    if canonical:
        parser.add_argument(
            "--canonical-dir",
            type=Path,
            help="Directory holding the {start}-{end}.json partitions (defaults to CANONICAL_DIR)",
        )


def _parse_args(argv: Sequence[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Reconcile Bitcoin sat registries")
    parser.add_argument("--verbose", action="store_true", help="Enable debug logging")
    subparsers = parser.add_subparsers(dest="command", required=True)

    compare = subparsers.add_parser("compare", help="Compare two registry files")
    compare.add_argument("first", type=str, help="Path or URL of the first file")
    compare.add_argument("second", type=str, help="Path or URL of the second file")
    compare.add_argument("--export-report", action="store_true", help="Export a JSON report")
    compare.add_argument("--export-csv", action="store_true", help="Export differences as CSV")
    compare.add_argument("--export-all", action="store_true", help="Export JSON and CSV")

    subparsers.add_parser(
        "reconcile",
        help="Compare every lookup file of the two configured registries",
    )

    resolve = subparsers.add_parser(
        "resolve",
        help="Resolve block conflicts between the registries by first-is-first",
    )
    resolve.add_argument(
        "--log",
        dest="write_comparison",
        action="store_true",
        help="Also write the sat-comparison report",
    )

    duplicates = subparsers.add_parser("duplicates", help="Duplicate pipeline stages")
    duplicates_sub = duplicates.add_subparsers(dest="duplicates_command", required=True)
    validate = duplicates_sub.add_parser("validate", help="Scan lookup files for duplicates")
    _add_registry_options(validate)
    validate.add_argument(
        "--expected-range",
        type=int,
        nargs=2,
        metavar=("START", "END"),
        help="Inclusive block range expected to be present (default: 0..highest block)",
    )
    compete = duplicates_sub.add_parser("compete", help="Pick winners from a validation report")
    compete.add_argument("report", type=Path, help="duplicate-validation-*.json report")
    _add_registry_options(compete, canonical=True)
    remove = duplicates_sub.add_parser("remove", help="Remove losers from a competition report")
    remove.add_argument("report", type=Path, help="duplicate-competition-*.json report")
    _add_registry_options(remove)

    recover = subparsers.add_parser("recover", help="Run validate, compete and remove in order")
    _add_registry_options(recover, canonical=True)

    gaps = subparsers.add_parser("gaps", help="List unregistered blocks of a partition file")
    gaps.add_argument("path", type=Path, help="Partition file such as 850000-859999.json")

    return parser.parse_args(list(argv))


def _duplicate_config(args: argparse.Namespace) -> DuplicateConfig:
    config = get_duplicate_config(
        registry_dir=args.registry_dir,
        canonical_dir=getattr(args, "canonical_dir", None),
    )
    expected_range = config.expected_range
    if getattr(args, "expected_range", None) is not None:
        start, end = args.expected_range
        if start < 0 or end < start:
            raise UsageError(f"Invalid expected range: {start}..{end}")
        expected_range = (start, end)
    return DuplicateConfig(
        registry_dir=config.registry_dir,
        canonical_dir=config.canonical_dir,
        lookup_pattern=args.pattern or config.lookup_pattern,
        expected_range=expected_range,
    )


def _run_duplicates(args: argparse.Namespace) -> int:
    config = _duplicate_config(args)
    if args.duplicates_command == "validate":
        report, path = validate_duplicates(config)
        log.info(
            "Validation: entries=%d, invalid=%d, duplicate_blocks=%d, duplicate_sats=%d, "
            "missing=%d (%s)",
            report.total_entries,
            len(report.invalid_entries),
            len(report.duplicate_blocks),
            len(report.duplicate_sats),
            len(report.missing_blocks),
            path,
        )
        return 1 if report.has_issues else 0
    if args.duplicates_command == "compete":
        result, path = compete_duplicates(args.report, config)
        log.info(
            "Competition: winners=%d, losers=%d, unresolved=%d (%s)",
            len(result.winners),
            len(result.losers),
            len(result.unresolved),
            path,
        )
        return 1 if result.unresolved else 0
    if args.duplicates_command == "remove":
        removal, path = remove_duplicates(args.report, config)
        log.info(
            "Removal: removed=%d, failed=%d, not_found=%d (%s)",
            len(removal.removed),
            len(removal.failed),
            len(removal.not_found),
            path,
        )
        return 1 if removal.failed else 0
    raise UsageError(f"Unsupported duplicates command: {args.duplicates_command}")


def _run(args: argparse.Namespace) -> int:  # noqa: PLR0911
    if args.command == "compare":
        comparison = compare_files(
            args.first,
            args.second,
            export_json=args.export_report or args.export_all,
            export_csv=args.export_csv or args.export_all,
        )
        if comparison.result.has_differences:
            log.warning(
                "Exiting with code 1: %d differences found", len(comparison.result.differences)
            )
            return 1
        return 0
    if args.command == "reconcile":
        reconciled = reconcile_registries()
        return 1 if reconciled.report.has_differences else 0
    if args.command == "resolve":
        resolution = resolve_conflicts(write_comparison=args.write_comparison)
        return 1 if resolution.verdicts else 0
    if args.command == "duplicates":
        return _run_duplicates(args)
    if args.command == "recover":
        recovery = recover_registry(_duplicate_config(args))
        return 1 if recovery.removal.failed else 0
    if args.command == "gaps":
        gaps = check_partition_gaps(args.path)
        for block_run in gaps.runs:
            log.info("Missing %s (%d blocks)", block_run, len(block_run))
        log.info("Coverage of %s: %.2f%%", gaps.file, gaps.coverage * 100)
        return 1 if gaps.missing else 0
    raise UsageError(f"Unsupported command: {args.command}")


def main(argv: Sequence[str] | None = None) -> None:
    """Main application entry point."""
    args_list = list(argv) if argv is not None else list(sys.argv[1:])
    parsed_args = _parse_args(args_list)
    configure_logging(level=logging.DEBUG if parsed_args.verbose else logging.INFO)

    try:
        exit_code = _run(parsed_args)
    except UsageError:
        log.exception("Invalid arguments")
        sys.exit(2)
    except Exception:
        log.exception("Fatal error")
        sys.exit(1)
    if exit_code:
        sys.exit(exit_code)


def sigint_handler(_signal_received: int, _frame: FrameType | None) -> None:
    """Handle SIGINT (Ctrl+C) gracefully."""
    log.info("Closed by user (Ctrl+C)")
    sys.exit(0)


def run() -> None:
    load_dotenv()
    signal(SIGINT, sigint_handler)
    main()


if __name__ == "__main__":
    run()
