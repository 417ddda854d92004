from __future__ import annotations

import csv
import json
from datetime import UTC, datetime
from pathlib import Path

import pytest

from satregistry import reports
from satregistry.domain.diff import diff_records
from satregistry.domain.duplicates import Placement
from satregistry.domain.errors import MalformedReportError
from satregistry.domain.reconcile import BatchReport, FailedLookup, FileResult
from satregistry.domain.types import Conflict, Verdict, Winner

NOW = datetime(2025, 1, 31, 12, 0, tzinfo=UTC)


def _sample_diff():
    return diff_records(
        [{"sat": 1, "block": 10}, {"sat": 2, "block": 20}, {"sat": 3, "block": 30}],
        [{"sat": 1, "block": 10}, {"sat": 2, "block": 21}, {"sat": 4, "block": 30}],
    )


def test_diff_payload_summary_uses_camel_case() -> None:
    payload = reports.diff_payload(_sample_diff(), now=NOW)

    assert payload["timestamp"] == "2025-01-31T12:00:00+00:00"
    assert payload["summary"] == {
        "file1Count": 3,
        "file2Count": 3,
        "matches": 1,
        "conflicts": 1,
        "blockConflicts": 1,
        "file1Only": 1,
        "file2Only": 1,
    }
    differences = payload["differences"]
    assert isinstance(differences, list)
    assert [item["type"] for item in differences] == [
        "CONFLICT",
        "FILE1_ONLY",
        "FILE2_ONLY",
        "BLOCK_CONFLICT",
    ]
    assert differences[1] == {
        "type": "FILE1_ONLY",
        "sat": 3,
        "file1Block": 30,
        "file2Block": None,
        "description": "Sat 3 only exists in File1 (block 30)",
    }
    assert differences[3]["file1Sat"] == 3
    assert differences[3]["file2Sat"] == 4


def test_write_diff_csv(tmp_path: Path) -> None:
    path = reports.write_diff_csv(tmp_path / "diff.csv", _sample_diff())

    assert path is not None
    with path.open(encoding="utf-8", newline="") as handle:
        rows = list(csv.reader(handle))
    assert rows[0] == ["Type", "Sat", "File1_Block", "File2_Block", "Description"]
    assert rows[1] == [
        "CONFLICT",
        "2",
        "20",
        "21",
        "Sat 2 has different blocks: File1=20, File2=21",
    ]
    assert rows[2][:4] == ["FILE1_ONLY", "3", "30", "N/A"]
    assert rows[3][:4] == ["FILE2_ONLY", "4", "N/A", "30"]


def test_write_diff_csv_skips_identical_files(tmp_path: Path) -> None:
    result = diff_records([{"sat": 1, "block": 1}], [{"sat": 1, "block": 1}])

    assert reports.write_diff_csv(tmp_path / "diff.csv", result) is None
    assert not (tmp_path / "diff.csv").exists()


def test_batch_text_lists_conflicts_and_anomalies() -> None:
    batch = BatchReport(
        label_a="Repo1",
        label_b="Repo2",
        files=(
            FileResult("sat_1.json", result=_sample_diff()),
            FileResult("sat_2.json", error="sat_2.json: expected a JSON array, got dict"),
        ),
        conflicts=(Conflict(30, "a" * 64 + "i0", None, 3, 4),),
        only_in_a_files=("sat_9.json",),
        failed_lookups=(FailedLookup(30, "a" * 64 + "i0", None),),
    )

    text = reports.batch_text(batch, now=NOW)

    assert "Files with differences: 1 / 2" in text
    assert "Files with errors: 1" in text
    assert "    1. Block 30:" in text
    assert "Repo2→ID: NOT FOUND" in text
    assert "(Sat conflict: 3 vs 4)" in text
    assert "Only in Repo1 (1):" in text
    assert "FAILED IDENTITY LOOKUPS" in text
    assert "ERROR: sat_2.json: expected a JSON array, got dict" in text
    assert "    - Sat 3 → Block 30" in text


def test_columns_are_column_major() -> None:
    lines = reports.columns([1, 2, 3, 4, 5, 6, 7, 8])

    assert lines == [
        "  1" + " " * 17 + "3" + " " * 17 + "5" + " " * 17 + "7",
        "  2" + " " * 17 + "4" + " " * 17 + "6" + " " * 17 + "8",
    ]
    assert reports.columns([]) == []


def test_verdict_text_uses_configured_labels() -> None:
    verdicts = [
        Verdict(
            20,
            Winner.B,
            "Inscribed in block 800000 (before block 800001)",
            winning_identity="b" * 64 + "i0",
            winning_sat=7,
            losing_sat=6,
        ),
        Verdict(10, Winner.A, "Same block 800000, tx position 1 before 2"),
        Verdict(30, Winner.UNKNOWN, "Could not determine winner"),
    ]

    text = reports.verdict_text(verdicts, label_a="Indexer", label_b="BNS", now=NOW)

    assert "Indexer Wins: 1" in text
    assert "BNS Wins: 1" in text
    assert "Unknown: 1" in text
    assert "INDEXER WINS (1 blocks):\n  10\n" in text
    assert "BOTH MATCH: None" in text
    assert "NEITHER/UNKNOWN (1 blocks):\n  30\n" in text
    assert text.index("  1. Block 10:") < text.index("  2. Block 20:")
    assert "     Winner: BNS" in text
    assert "     Sats: 7 (winner) > 6 (loser)" in text


def test_load_duplicate_blocks_round_trips_validation_report(tmp_path: Path) -> None:
    path = tmp_path / "validation.json"
    path.write_text(
        json.dumps(
            {
                "duplicateBlocks": {
                    "5": [
                        {"file": "sat_1.json", "sat": 50, "index": 0},
                        {"file": "sat_2.json", "sat": 51, "index": 3},
                    ]
                }
            }
        )
    )

    assert reports.load_duplicate_blocks(path) == {5: [50, 51]}


def test_load_losers(tmp_path: Path) -> None:
    path = tmp_path / "competition.json"
    path.write_text(json.dumps({"results": {"losers": [{"block": 1, "sat": 2}]}}))

    assert reports.load_losers(path) == [Placement(1, 2)]


@pytest.mark.parametrize("content", ["not json", "[]", '{"results": {}}'])
def test_load_losers_rejects_malformed_reports(tmp_path: Path, content: str) -> None:
    path = tmp_path / "competition.json"
    path.write_text(content)

    with pytest.raises(MalformedReportError):
        reports.load_losers(path)


def test_load_losers_rejects_missing_file(tmp_path: Path) -> None:
    with pytest.raises(MalformedReportError):
        reports.load_losers(tmp_path / "missing.json")
