"""Validate, resolve and remove duplicates, handing each stage's report to the next."""

from __future__ import annotations

from dataclasses import dataclass
from logging import getLogger
from typing import TYPE_CHECKING

from satregistry import reports
from satregistry.domain.errors import RegistryReadError

from .competition import load_canonical_index, resolve_competition
from .remover import remove_losers
from .validator import validate_registry

if TYPE_CHECKING:
    from datetime import datetime
    from pathlib import Path

    from satregistry.config.registry import DuplicateConfig
    from satregistry.config.storage import StorageConfig

    from .competition import CompetitionResult
    from .remover import RemovalReport
    from .validator import ValidationReport

log = getLogger(__name__)


@dataclass(slots=True, frozen=True)
class RecoveryResult:
    validation: ValidationReport
    competition: CompetitionResult
    removal: RemovalReport
    validation_report: Path
    competition_report: Path
    removal_report: Path


def run_validation(
    config: DuplicateConfig, storage: StorageConfig, *, now: datetime | None = None
) -> tuple[ValidationReport, Path]:
    validation = validate_registry(
        config.registry_dir,
        pattern=config.lookup_pattern,
        expected_range=config.expected_range,
    )
    path = reports.write_json(
        storage.report_path(reports.DUPLICATE_VALIDATION_PREFIX, ".json", now=now),
        reports.validation_payload(validation, now=now),
    )
    return validation, path


def run_competition(
    validation_report: Path,
    config: DuplicateConfig,
    storage: StorageConfig,
    *,
    now: datetime | None = None,
) -> tuple[CompetitionResult, Path]:
    duplicates = reports.load_duplicate_blocks(validation_report)
    log.info("Found %d duplicate blocks in %s", len(duplicates), validation_report.name)
    result = resolve_competition(duplicates, load_canonical_index(config.canonical_dir))
    path = reports.write_json(
        storage.report_path(reports.DUPLICATE_COMPETITION_PREFIX, ".json", now=now),
        reports.competition_payload(
            result,
            input_report=validation_report,
            registry_path=config.canonical_dir,
            total_duplicate_blocks=len(duplicates),
            now=now,
        ),
    )
    return result, path


def run_removal(
    competition_report: Path,
    config: DuplicateConfig,
    storage: StorageConfig,
    *,
    now: datetime | None = None,
) -> tuple[RemovalReport, Path]:
    losers = reports.load_losers(competition_report)
    log.info("Found %d loser sats to remove", len(losers))
    removal = remove_losers(config.registry_dir, losers, pattern=config.lookup_pattern)
    path = reports.write_json(
        storage.report_path(reports.DUPLICATE_REMOVAL_PREFIX, ".json", now=now),
        reports.removal_payload(
            removal,
            competition_report=competition_report,
            registry_path=config.registry_dir,
            now=now,
        ),
    )
    return removal, path


def run_recovery(
    config: DuplicateConfig, storage: StorageConfig, *, now: datetime | None = None
) -> RecoveryResult:
    """Run the three duplicate stages; each one reads the report the previous one wrote."""

    for path in (config.registry_dir, config.canonical_dir):
        if not path.is_dir():
            raise RegistryReadError(f"Registry path not found: {path}", location=str(path))

    log.info("Step 1/3: scanning %s for duplicate blocks and sats", config.registry_dir)
    validation, validation_path = run_validation(config, storage, now=now)

    log.info("Step 2/3: resolving winners from %s", config.canonical_dir)
    competition, competition_path = run_competition(validation_path, config, storage, now=now)

    log.info("Step 3/3: removing %d losers", len(competition.losers))
    removal, removal_path = run_removal(competition_path, config, storage, now=now)

    log.info(
        "Recovery finished: removed=%d, failed=%d, not_found=%d, unresolved=%d",
        len(removal.removed),
        len(removal.failed),
        len(removal.not_found),
        len(competition.unresolved),
    )
    return RecoveryResult(
        validation=validation,
        competition=competition,
        removal=removal,
        validation_report=validation_path,
        competition_report=competition_path,
        removal_report=removal_path,
    )
