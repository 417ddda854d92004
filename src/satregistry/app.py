"""Application orchestration entry points."""

from __future__ import annotations

import asyncio
from contextlib import AsyncExitStack
from dataclasses import dataclass
from logging import getLogger
from typing import TYPE_CHECKING

import httpx

from satregistry import reports
from satregistry.adapters.chain import ProviderRouter
from satregistry.adapters.http_resilience import http_get_json
from satregistry.adapters.ordinals import OrdinalsClient
from satregistry.adapters.registry import RemoteRegistrySource, source_for
from satregistry.adapters.registry.remote import default_resilience
from satregistry.common.jsonio import read_json
from satregistry.config import (
    get_duplicate_config,
    get_ordinals_config,
    get_provider_config,
    get_reconcile_config,
    get_storage_config,
)
from satregistry.config.registry import is_remote, local_path
from satregistry.domain.diff import diff_records
from satregistry.domain.duplicates import find_partition_gaps
from satregistry.domain.duplicates.pipeline import (
    run_competition,
    run_recovery,
    run_removal,
    run_validation,
)
from satregistry.domain.errors import RegistryReadError
from satregistry.domain.reconcile import BatchReconciler
from satregistry.domain.resolver import FiFResolver

if TYPE_CHECKING:
    from pathlib import Path

    from satregistry.config import (
        DuplicateConfig,
        OrdinalsConfig,
        ProviderConfig,
        ReconcileConfig,
        StorageConfig,
    )
    from satregistry.domain.diff import DiffResult
    from satregistry.domain.duplicates import (
        CompetitionResult,
        GapReport,
        RemovalReport,
        ValidationReport,
    )
    from satregistry.domain.duplicates.pipeline import RecoveryResult
    from satregistry.domain.ports import InscriptionMetadataPort, LedgerPort, RegistrySource
    from satregistry.domain.reconcile import BatchReport
    from satregistry.domain.types import Verdict


log = getLogger(__name__)


@dataclass(slots=True, frozen=True)
class ComparisonResult:
    result: DiffResult
    json_report: Path | None = None
    csv_report: Path | None = None


@dataclass(slots=True, frozen=True)
class ReconcileResult:
    report: BatchReport
    report_path: Path | None = None


@dataclass(slots=True, frozen=True)
class ResolutionResult:
    batch: BatchReport
    verdicts: list[Verdict]
    report_path: Path | None = None
    comparison_path: Path | None = None


def load_records(location: str) -> object:
    """Decoded JSON array from a local path or an http(s) URL."""

    if is_remote(location):
        try:
            return asyncio.run(http_get_json(default_resilience("compare"), location))
        except (httpx.HTTPError, ValueError) as exc:
            msg = f"Could not fetch {location}: {exc}"
            raise RegistryReadError(msg, location=location) from exc
    path = local_path(location)
    try:
        return read_json(path)
    except (OSError, ValueError) as exc:
        raise RegistryReadError(f"Could not read {path}: {exc}", location=location) from exc


def compare_files(
    first: str,
    second: str,
    *,
    export_json: bool = False,
    export_csv: bool = False,
    storage: StorageConfig | None = None,
) -> ComparisonResult:
    """Diff two registry files, optionally exporting the JSON and CSV reports."""

    result = diff_records(load_records(first), load_records(second))
    stats = result.stats
    log.info(
        "Compared %s (%d) with %s (%d): matches=%d, conflicts=%d, block_conflicts=%d, "
        "file1_only=%d, file2_only=%d",
        first,
        stats.file1_count,
        second,
        stats.file2_count,
        stats.matches,
        stats.conflicts,
        stats.block_conflicts,
        stats.file1_only,
        stats.file2_only,
    )
    json_report = csv_report = None
    if export_json or export_csv:
        storage = storage or get_storage_config()
        if export_json:
            json_report = reports.write_diff_json(
                storage.ensure_report_dir() / "sat-comparison-report.json", result
            )
        if export_csv:
            csv_report = reports.write_diff_csv(
                storage.ensure_report_dir() / "sat-differences.csv", result
            )
    return ComparisonResult(result=result, json_report=json_report, csv_report=csv_report)


async def _reconcile(
    config: ReconcileConfig,
    sources: tuple[RegistrySource, RegistrySource] | None,
) -> BatchReport:
    async with AsyncExitStack() as stack:
        if sources is None:
            source_a = source_for(config.source_a)
            source_b = source_for(config.source_b)
            for source in (source_a, source_b):
                if isinstance(source, RemoteRegistrySource):
                    stack.push_async_callback(source.aclose)
            sources = (source_a, source_b)
        reconciler = BatchReconciler(sources[0], sources[1], config=config)
        return await reconciler.run()


def reconcile_registries(
    config: ReconcileConfig | None = None,
    *,
    sources: tuple[RegistrySource, RegistrySource] | None = None,
    storage: StorageConfig | None = None,
    write_report: bool = True,
) -> ReconcileResult:
    """Compare every lookup file the two registries share and write the text report."""

    config = config or get_reconcile_config()
    log.info("Reconciling %s with %s", config.source_a.label, config.source_b.label)
    batch = asyncio.run(_reconcile(config, sources))
    report_path = None
    if write_report:
        storage = storage or get_storage_config()
        report_path = reports.write_text(
            storage.report_path(reports.SAT_COMPARISON_PREFIX, ".txt"), reports.batch_text(batch)
        )
    log.info(
        "Finished reconciliation: files=%d, with_differences=%d, block_conflicts=%d",
        len(batch.files),
        len(batch.files_with_differences),
        len(batch.conflicts),
    )
    return ReconcileResult(report=batch, report_path=report_path)


async def _resolve(
    config: ReconcileConfig,
    provider_config: ProviderConfig,
    ordinals_config: OrdinalsConfig,
    sources: tuple[RegistrySource, RegistrySource] | None,
    ledger: LedgerPort | None,
    inscriptions: InscriptionMetadataPort | None,
) -> tuple[BatchReport, list[Verdict]]:
    batch = await _reconcile(config, sources)
    if not batch.conflicts:
        log.info("No block conflicts to resolve")
        return batch, []
    log.info("Resolving %d block conflicts", len(batch.conflicts))
    async with AsyncExitStack() as stack:
        if ledger is None:
            router = await stack.enter_async_context(ProviderRouter(provider_config))
            router.begin_run()
            ledger = router
        if inscriptions is None:
            inscriptions = await stack.enter_async_context(OrdinalsClient(ordinals_config))
        resolver = FiFResolver(ledger, inscriptions, delay=config.resolve_delay)
        verdicts = await resolver.resolve_all(batch.conflicts)
    return batch, verdicts


def resolve_conflicts(
    config: ReconcileConfig | None = None,
    *,
    provider_config: ProviderConfig | None = None,
    ordinals_config: OrdinalsConfig | None = None,
    sources: tuple[RegistrySource, RegistrySource] | None = None,
    ledger: LedgerPort | None = None,
    inscriptions: InscriptionMetadataPort | None = None,
    storage: StorageConfig | None = None,
    write_comparison: bool = False,
    write_report: bool = True,
) -> ResolutionResult:
    """Reconcile both registries and decide every block conflict by first-is-first."""

    config = config or get_reconcile_config()
    provider_config = provider_config or get_provider_config()
    ordinals_config = ordinals_config or get_ordinals_config()
    batch, verdicts = asyncio.run(
        _resolve(config, provider_config, ordinals_config, sources, ledger, inscriptions)
    )

    report_path = comparison_path = None
    if write_report or write_comparison:
        storage = storage or get_storage_config()
        if write_comparison:
            comparison_path = reports.write_text(
                storage.report_path(reports.SAT_COMPARISON_PREFIX, ".txt"),
                reports.batch_text(batch),
            )
        if write_report and verdicts:
            report_path = reports.write_text(
                storage.report_path(reports.TRUE_BITMAPS_PREFIX, ".txt"),
                reports.verdict_text(
                    verdicts, label_a=config.source_a.label, label_b=config.source_b.label
                ),
            )
    return ResolutionResult(
        batch=batch,
        verdicts=verdicts,
        report_path=report_path,
        comparison_path=comparison_path,
    )


def validate_duplicates(
    config: DuplicateConfig | None = None, *, storage: StorageConfig | None = None
) -> tuple[ValidationReport, Path]:
    return run_validation(config or get_duplicate_config(), storage or get_storage_config())


def compete_duplicates(
    validation_report: Path,
    config: DuplicateConfig | None = None,
    *,
    storage: StorageConfig | None = None,
) -> tuple[CompetitionResult, Path]:
    return run_competition(
        validation_report, config or get_duplicate_config(), storage or get_storage_config()
    )


def remove_duplicates(
    competition_report: Path,
    config: DuplicateConfig | None = None,
    *,
    storage: StorageConfig | None = None,
) -> tuple[RemovalReport, Path]:
    return run_removal(
        competition_report, config or get_duplicate_config(), storage or get_storage_config()
    )


def recover_registry(
    config: DuplicateConfig | None = None, *, storage: StorageConfig | None = None
) -> RecoveryResult:
    return run_recovery(config or get_duplicate_config(), storage or get_storage_config())


def check_partition_gaps(path: Path) -> GapReport:
    return find_partition_gaps(path)
