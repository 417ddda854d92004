from __future__ import annotations

from pathlib import Path

import pytest

from satregistry.app import ComparisonResult
from satregistry.config.registry import DuplicateConfig
from satregistry.domain.diff import diff_records
from satregistry.domain.duplicates import CompetitionResult, Placement, UnresolvedBlock
from satregistry.ui import cli


def _comparison(first: object, second: object) -> ComparisonResult:
    return ComparisonResult(result=diff_records(first, second))


def test_compare_passes_export_flags(monkeypatch: pytest.MonkeyPatch) -> None:
    captured: dict[str, object] = {}

    def fake_compare(first: str, second: str, **kwargs: object) -> ComparisonResult:
        captured.update(kwargs, first=first, second=second)
        return _comparison([{"sat": 1, "block": 1}], [{"sat": 1, "block": 1}])

    monkeypatch.setattr(cli, "compare_files", fake_compare)

    cli.main(["compare", "a.json", "https://example.test/b.json", "--export-all"])

    assert captured == {
        "first": "a.json",
        "second": "https://example.test/b.json",
        "export_json": True,
        "export_csv": True,
    }


def test_compare_exits_one_on_differences(monkeypatch: pytest.MonkeyPatch) -> None:
    def fake_compare(*_: object, **__: object) -> ComparisonResult:
        return _comparison([{"sat": 1, "block": 1}], [{"sat": 1, "block": 2}])

    monkeypatch.setattr(cli, "compare_files", fake_compare)

    with pytest.raises(SystemExit) as excinfo:
        cli.main(["compare", "a.json", "b.json", "--export-csv"])

    assert excinfo.value.code == 1


def test_compete_exit_code_reflects_unresolved_blocks(
    monkeypatch: pytest.MonkeyPatch, tmp_path: Path
) -> None:
    captured: dict[str, object] = {}

    def fake_compete(report: Path, config: DuplicateConfig) -> tuple[CompetitionResult, Path]:
        captured["report"] = report
        captured["config"] = config
        result = CompetitionResult(
            winners=(Placement(1, 2),),
            losers=(Placement(1, 3),),
            unresolved=(UnresolvedBlock(9, (4, 5), "not_in_registry"),),
        )
        return result, tmp_path / "competition.json"

    monkeypatch.setattr(cli, "compete_duplicates", fake_compete)

    with pytest.raises(SystemExit) as excinfo:
        cli.main(
            [
                "duplicates",
                "compete",
                str(tmp_path / "validation.json"),
                "--registry-dir",
                str(tmp_path / "lookup"),
                "--canonical-dir",
                str(tmp_path / "canonical"),
                "--pattern",
                "lookup_*.json",
            ]
        )

    assert excinfo.value.code == 1
    assert captured["report"] == tmp_path / "validation.json"
    assert captured["config"] == DuplicateConfig(
        registry_dir=tmp_path / "lookup",
        canonical_dir=tmp_path / "canonical",
        lookup_pattern="lookup_*.json",
    )


def test_validate_rejects_inverted_range(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    def fake_validate(*_: object, **__: object) -> None:
        raise AssertionError("validation must not run")

    monkeypatch.setattr(cli, "validate_duplicates", fake_validate)

    with pytest.raises(SystemExit) as excinfo:
        cli.main(
            [
                "duplicates",
                "validate",
                "--registry-dir",
                str(tmp_path),
                "--expected-range",
                "9",
                "1",
            ]
        )

    assert excinfo.value.code == 2


def test_value_error_from_command_is_fatal(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    def fake_gaps(_path: Path) -> None:
        raise ValueError("unexpected partition payload")

    monkeypatch.setattr(cli, "check_partition_gaps", fake_gaps)

    with pytest.raises(SystemExit) as excinfo:
        cli.main(["gaps", str(tmp_path / "0-9.json")])

    assert excinfo.value.code == 1


def test_validate_on_clean_registry_exits_zero(
    monkeypatch: pytest.MonkeyPatch, tmp_path: Path
) -> None:
    (tmp_path / "sat_1.json").write_text('[{"sat": 1, "block": 0}, {"sat": 2, "block": 1}]')
    report_dir = tmp_path / "reports"

    monkeypatch.setenv("SATREGISTRY_REPORT_DIR", str(report_dir))

    cli.main(["duplicates", "validate", "--registry-dir", str(tmp_path)])

    assert len(list(report_dir.glob("duplicate-validation-*.json"))) == 1


def test_missing_registry_dir_is_fatal(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("REGISTRY_DIR", raising=False)

    with pytest.raises(SystemExit) as excinfo:
        cli.main(["recover"])

    assert excinfo.value.code == 1


def test_gaps_exit_code(tmp_path: Path) -> None:
    path = tmp_path / "0-2.json"
    path.write_text('[{"sat": 1, "block": 0}, {"sat": 2, "block": 2}]')

    with pytest.raises(SystemExit) as excinfo:
        cli.main(["gaps", str(path)])

    assert excinfo.value.code == 1
