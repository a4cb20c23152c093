"""End-to-end tests for the monitor pipeline and the command line entrypoint."""

from __future__ import annotations

import json
from datetime import datetime
from pathlib import Path

import pytest
from openpyxl import Workbook, load_workbook

import main as cli
from main import main
from p4p_monitor.application.analysis_service import analyze
from p4p_monitor.application.report_service import (
    comparison_lines,
    entity_sheet_df,
    overview_lines,
    run_monitor_pipeline,
    run_snapshot_comparison,
    tier_sheet_df,
)
from p4p_monitor.domain.models import TIER1, TIER2, CategoryConfig, Row
from p4p_monitor.domain.tiers import DEFAULT_CATEGORY_CONFIG
from p4p_monitor.application.comparison_service import compare
from p4p_monitor.infrastructure.snapshot_store import JsonSnapshotStore, SnapshotNotFoundError, new_snapshot
from p4p_monitor.ingestion import IngestionError


def test_pipeline_writes_summary_and_workbook(tmp_path: Path, sample_csv: Path):
    output_dir = tmp_path / "out"
    run = run_monitor_pipeline(sample_csv, output_dir=output_dir, config=DEFAULT_CATEGORY_CONFIG)

    tier1 = run.analysis.tier(TIER1)
    assert [entity.name for entity in tier1.entities] == ["United States"]
    assert tier1.metrics.total_cost == pytest.approx(2000.5)
    assert tier1.metrics.total_leads == 14.0
    assert [entity.name for entity in run.analysis.tier(TIER2).entities] == ["Japan", "Brazil"]

    assert run.trend is not None
    assert [point.period for point in run.trend] == ["2024-01", "2024-02"]
    assert run.trend[0].cost[TIER1] == pytest.approx(800.0)
    assert run.trend[1].cost[TIER1] == pytest.approx(1200.5)

    summary = json.loads((output_dir / "summary.json").read_text(encoding="utf-8"))
    assert summary["detected_entities"] == ["Brazil", "Japan", "United States"]
    assert summary["analysis"]["global"]["totalCost"] == pytest.approx(2300.5)
    assert summary["input_meta"]["input_cache_hit"] is False
    assert run.summary["overview"][0].startswith("Total cost ¥2,300.50")

    assert run.excel_saved
    workbook = load_workbook(output_dir / "summary.xlsx", read_only=True)
    try:
        assert workbook.sheetnames == ["tiers", "entities", "trend"]
    finally:
        workbook.close()


def test_second_run_reuses_row_cache(tmp_path: Path, sample_csv: Path):
    output_dir = tmp_path / "out"
    first = run_monitor_pipeline(sample_csv, output_dir=output_dir, config=DEFAULT_CATEGORY_CONFIG)
    second = run_monitor_pipeline(sample_csv, output_dir=output_dir, config=DEFAULT_CATEGORY_CONFIG)

    assert second.summary["input_meta"]["input_cache_hit"] is True
    assert second.analysis == first.analysis


def test_pipeline_saves_and_compares_snapshots(tmp_path: Path, sample_csv: Path):
    history = tmp_path / "history.json"
    store = JsonSnapshotStore(history)
    base_analysis = analyze([Row(entity="United States", cost=1000.0, leads=10.0)], DEFAULT_CATEGORY_CONFIG)
    base = new_snapshot("last week", base_analysis, DEFAULT_CATEGORY_CONFIG, now=datetime(2024, 1, 1))
    store.save(base)

    run = run_monitor_pipeline(
        sample_csv,
        output_dir=tmp_path / "out",
        config=DEFAULT_CATEGORY_CONFIG,
        history_path=history,
        save_label="this week",
        compare_to=base.id,
        use_cache=False,
    )

    assert run.comparison is not None
    assert run.comparison.global_cost_delta == pytest.approx(1300.5)
    us = run.comparison.entity("United States")
    assert us.cost_delta == pytest.approx(1000.5)
    assert run.comparison.entity("Japan").in_base is False

    assert run.snapshot is not None
    assert [item.label for item in store.list()] == ["last week", "this week"]
    assert run.summary["saved_snapshot_id"] == run.snapshot.id

    workbook = load_workbook(tmp_path / "out" / "summary.xlsx", read_only=True)
    try:
        assert "comparison" in workbook.sheetnames
    finally:
        workbook.close()


def test_locked_workbook_is_reported_not_raised(tmp_path: Path, sample_csv: Path, monkeypatch):
    def _locked(path, sheets):
        raise PermissionError(f"locked: {path}")

    monkeypatch.setattr("p4p_monitor.infrastructure.report_exporter.write_output_excel", _locked)
    run = run_monitor_pipeline(sample_csv, output_dir=tmp_path / "out", config=DEFAULT_CATEGORY_CONFIG)

    assert run.excel_saved is False
    assert (tmp_path / "out" / "summary.json").exists()


def test_pipeline_requires_history_for_snapshots(tmp_path: Path, sample_csv: Path):
    with pytest.raises(ValueError):
        run_monitor_pipeline(sample_csv, output_dir=tmp_path, config=DEFAULT_CATEGORY_CONFIG, save_label="x")


def test_pipeline_unknown_snapshot(tmp_path: Path, sample_csv: Path):
    with pytest.raises(KeyError):
        run_monitor_pipeline(
            sample_csv,
            output_dir=tmp_path,
            config=DEFAULT_CATEGORY_CONFIG,
            history_path=tmp_path / "history.json",
            compare_to="404",
        )


def test_pipeline_rejects_files_without_data(tmp_path: Path):
    path = tmp_path / "empty.csv"
    path.write_text("Foo,Bar\n", encoding="utf-8")
    with pytest.raises(IngestionError):
        run_monitor_pipeline(path, output_dir=tmp_path / "out", config=DEFAULT_CATEGORY_CONFIG)


def test_snapshot_comparison_uses_current_config(tmp_path: Path):
    history = tmp_path / "history.json"
    store = JsonSnapshotStore(history)
    old_config = CategoryConfig.from_lists(tier1=["FR"])
    base = new_snapshot("base", analyze([Row(entity="FR", cost=50.0)], old_config), old_config, now=datetime(2024, 1, 1))
    current = new_snapshot("current", analyze([Row(entity="DE", cost=80.0)], old_config), old_config, now=datetime(2024, 1, 8))
    store.save(base)
    store.save(current)

    new_config = CategoryConfig.from_lists(tier2=["FR", "DE"])
    report = run_snapshot_comparison(history, base.id, current.id, new_config, output_dir=tmp_path / "out")

    assert [item.name for item in report.by_tier[TIER2]] == ["DE", "FR"]
    assert report.global_cost_delta == 30.0
    payload = json.loads((tmp_path / "out" / "comparison.json").read_text(encoding="utf-8"))
    assert payload["base"]["label"] == "base"
    assert (tmp_path / "out" / "comparison.xlsx").exists()

    with pytest.raises(KeyError):
        run_snapshot_comparison(history, base.id, "missing", new_config)


def test_sheet_frames(sample_rows, config):
    analysis = analyze(sample_rows, config)
    tiers = tier_sheet_df(analysis)
    assert tiers.get_column("tier").to_list() == ["global", "tier1", "tier2", "tier3", "uncategorized"]

    entities = entity_sheet_df(analysis)
    assert entities.get_column("entity").to_list() == ["Germany", "US", "Japan", "Brazil"]
    assert entities.get_column("promotionCostText").to_list()[2] == "-"


class TestCommandLine:
    def test_analyze_and_history(self, tmp_path: Path, sample_csv: Path, capsys):
        history = tmp_path / "history.json"
        code = main(
            [
                "analyze",
                str(sample_csv),
                "--output-dir",
                str(tmp_path / "out"),
                "--history",
                str(history),
                "--save",
                "weekly",
            ]
        )
        assert code == 0
        assert "Total cost" in capsys.readouterr().out

        assert main(["history", "--history", str(history)]) == 0
        assert "weekly" in capsys.readouterr().out

    def test_missing_input_exits_with_error(self, tmp_path: Path):
        assert main(["analyze", str(tmp_path / "missing.csv"), "--output-dir", str(tmp_path)]) == 1

    def test_unknown_snapshot_exits_with_error(self, tmp_path: Path):
        assert main(["compare", "1", "2", "--history", str(tmp_path / "history.json")]) == 1

    def test_config_write(self, tmp_path: Path, capsys):
        target = tmp_path / "categories.json"
        assert main(["config", "--write", str(target)]) == 0
        assert json.loads(target.read_text(encoding="utf-8"))["tier1"][0] == "美国"
        assert "Primary" in capsys.readouterr().out


@pytest.fixture
def two_sheet_workbook(tmp_path: Path) -> Path:
    path = tmp_path / "two_sheets.xlsx"
    workbook = Workbook()
    old = workbook.active
    old.title = "old"
    old.append(["Country", "Cost"])
    old.append(["US", 1])
    data = workbook.create_sheet("data")
    data.append(["Country", "Cost"])
    data.append(["US", 999])
    workbook.save(path)
    return path


def test_pipeline_reads_configured_sheet(tmp_path: Path, two_sheet_workbook: Path, monkeypatch):
    monkeypatch.setattr("p4p_monitor.application.report_service.DEFAULT_PREFERRED_SHEET", "data")
    run = run_monitor_pipeline(two_sheet_workbook, output_dir=tmp_path / "out", config=DEFAULT_CATEGORY_CONFIG)
    assert run.analysis.global_metrics.total_cost == 999.0


def test_explicit_sheet_overrides_configured_sheet(tmp_path: Path, two_sheet_workbook: Path, monkeypatch):
    monkeypatch.setattr("p4p_monitor.application.report_service.DEFAULT_PREFERRED_SHEET", "data")
    run = run_monitor_pipeline(
        two_sheet_workbook,
        output_dir=tmp_path / "out",
        config=DEFAULT_CATEGORY_CONFIG,
        preferred_sheet="old",
        use_cache=False,
    )
    assert run.analysis.global_metrics.total_cost == 1.0


def test_first_sheet_without_configured_sheet(tmp_path: Path, two_sheet_workbook: Path, monkeypatch):
    monkeypatch.setattr("p4p_monitor.application.report_service.DEFAULT_PREFERRED_SHEET", None)
    run = run_monitor_pipeline(two_sheet_workbook, output_dir=tmp_path / "out", config=DEFAULT_CATEGORY_CONFIG)
    assert run.analysis.global_metrics.total_cost == 1.0


def test_comparison_lines_sign_cost_change():
    config = CategoryConfig.from_lists(tier1=["FR", "DE"])
    base = analyze([Row(entity="FR", cost=50.0, leads=1.0)], config)
    current = analyze([Row(entity="DE", cost=80.0, leads=3.0)], config)

    assert comparison_lines(compare(base, current, config)) == [
        "Cost change +¥30.00 (up)",
        "Lead change +2 (up)",
    ]
    assert comparison_lines(compare(current, base, config))[0] == "Cost change -¥30.00 (down)"


def test_overview_lines_format_shares(sample_rows, config):
    lines = overview_lines(analyze(sample_rows, config))
    assert lines[1] == "Primary: 2 entities, cost share 90.0%, lead share 83.3%, CPL ¥90.00"


def test_missing_snapshot_error_names_every_id(tmp_path: Path):
    with pytest.raises(SnapshotNotFoundError) as excinfo:
        run_snapshot_comparison(tmp_path / "history.json", "1", "2", DEFAULT_CATEGORY_CONFIG)
    assert excinfo.value.snapshot_ids == ("1", "2")
    assert excinfo.value.args[0] == "Snapshot not found: 1, 2"


def test_unrelated_key_error_is_not_reported_as_missing_snapshot(monkeypatch):
    def _broken(args):
        raise KeyError("tier9")

    monkeypatch.setattr(cli, "_run_config", _broken)
    with pytest.raises(KeyError, match="tier9"):
        main(["config"])
