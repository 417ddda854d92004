from __future__ import annotations

import asyncio

import pytest

from satregistry.config.registry import ReconcileConfig, RegistryLocation
from satregistry.domain.reconcile import (
    BatchReconciler,
    BatchReport,
    PartitionRange,
    partition_for,
)
from satregistry.domain.types import Conflict
from tests.helpers.registry import FakeSource


def _config() -> ReconcileConfig:
    return ReconcileConfig(
        source_a=RegistryLocation(label="Repo1", base="a"),
        source_b=RegistryLocation(label="Repo2", base="b"),
    )


def _run(a: FakeSource, b: FakeSource) -> BatchReport:
    return asyncio.run(BatchReconciler(a, b, config=_config()).run())


@pytest.mark.parametrize(
    ("block", "expected"),
    [
        (0, PartitionRange(0, 9999)),
        (9999, PartitionRange(0, 9999)),
        (10000, PartitionRange(10000, 19999)),
        (845123, PartitionRange(840000, 849999)),
        (-1, None),
        (1_000_000_000, None),
    ],
)
def test_partition_for(block: int, expected: PartitionRange | None) -> None:
    assert partition_for(block) == expected


def test_partition_filename() -> None:
    partition = partition_for(845123)

    assert partition is not None
    assert partition.filename == "840000-849999.json"
    assert 845123 in partition


def test_block_conflicts_are_annotated_with_identities() -> None:
    a = FakeSource(
        "Repo1",
        {
            "sat_1.json": [{"sat": 100, "block": 5}, {"sat": 101, "block": 6}],
            "0-9999.json": [{"block": 5, "iD": "aa" * 32 + "i0", "sat": 100}],
        },
    )
    b = FakeSource(
        "Repo2",
        {
            "sat_1.json": [{"sat": 200, "block": 5}, {"sat": 101, "block": 6}],
            "0-9999.json": [{"block": 5, "inscriptionID": "bb" * 32 + "i0", "sat": 200}],
        },
    )

    report = _run(a, b)

    assert report.conflicts == (
        Conflict(
            block=5,
            claimant_a="aa" * 32 + "i0",
            claimant_b="bb" * 32 + "i0",
            sat_a=100,
            sat_b=200,
        ),
    )
    assert report.failed_lookups == ()
    assert report.has_differences


def test_partition_fetched_once_per_source_and_file() -> None:
    lookup_a = [{"sat": 100 + n, "block": n} for n in range(3)]
    lookup_b = [{"sat": 200 + n, "block": n} for n in range(3)]
    a = FakeSource("Repo1", {"sat_1.json": lookup_a, "0-9999.json": []})
    b = FakeSource("Repo2", {"sat_1.json": lookup_b})

    report = _run(a, b)

    assert [conflict.block for conflict in report.conflicts] == [0, 1, 2]
    assert a.reads["0-9999.json"] == 1
    assert b.reads["0-9999.json"] == 1
    assert all(conflict.claimant_a is None for conflict in report.conflicts)
    assert len(report.failed_lookups) == 3


def test_one_sided_files_are_reported_not_compared() -> None:
    a = FakeSource("Repo1", {"sat_1.json": [], "sat_2.json": [{"sat": 1, "block": 1}]})
    b = FakeSource("Repo2", {"sat_1.json": [], "sat_3.json": [{"sat": 1, "block": 1}]})

    report = _run(a, b)

    assert [item.filename for item in report.files] == ["sat_1.json"]
    assert report.only_in_a_files == ("sat_2.json",)
    assert report.only_in_b_files == ("sat_3.json",)
    assert a.reads["sat_2.json"] == 0


def test_failing_file_is_marked_and_batch_continues() -> None:
    a = FakeSource(
        "Repo1",
        {"sat_1.json": {"not": "a list"}, "sat_2.json": [{"sat": 1, "block": 1}]},
    )
    b = FakeSource("Repo2", {"sat_1.json": [], "sat_2.json": [{"sat": 1, "block": 1}]})

    report = _run(a, b)

    first, second = report.files
    assert first.error is not None
    assert second.result is not None
    assert second.result.stats.matches == 1
    assert report.files_with_errors == (first,)


def test_inter_file_conflicts_are_detected_once() -> None:
    a = FakeSource(
        "Repo1",
        {"sat_1.json": [{"sat": 100, "block": 7}], "sat_2.json": []},
    )
    b = FakeSource(
        "Repo2",
        {"sat_1.json": [], "sat_2.json": [{"sat": 300, "block": 7}]},
    )

    report = _run(a, b)

    assert len(report.conflicts) == 1
    conflict = report.conflicts[0]
    assert (conflict.block, conflict.sat_a, conflict.sat_b) == (7, 100, 300)
    assert conflict.inter_file


def test_block_conflict_keeps_first_file_occurrence() -> None:
    a = FakeSource(
        "Repo1",
        {"sat_1.json": [{"sat": 1, "block": 9}], "sat_2.json": [{"sat": 5, "block": 9}]},
    )
    b = FakeSource(
        "Repo2",
        {"sat_1.json": [{"sat": 2, "block": 9}], "sat_2.json": [{"sat": 6, "block": 9}]},
    )

    report = _run(a, b)

    assert [(c.block, c.sat_a, c.sat_b, c.inter_file) for c in report.conflicts] == [
        (9, 1, 2, False)
    ]
