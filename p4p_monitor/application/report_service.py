"""Application service wiring ingestion, analysis, trends, history and export."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from time import perf_counter
from typing import Any, Dict, List, Sequence

import polars as pl

from p4p_monitor.application.analysis_service import analyze, detected_entities
from p4p_monitor.application.comparison_service import compare
from p4p_monitor.application.reporting.metrics import (
    delta_direction,
    fmt_money,
    fmt_money_signed,
    fmt_pct,
    fmt_promotion_cost,
    fmt_ratio,
)
from p4p_monitor.application.trend_service import generate_trend
from p4p_monitor.domain.models import (
    METRIC_KEYS,
    TIERS,
    AnalysisResult,
    CategoryConfig,
    ComparisonReport,
    HistorySnapshot,
    TrendPoint,
)
from p4p_monitor.domain.tiers import tier_label
from p4p_monitor.infrastructure.excel_repository import load_input_rows
from p4p_monitor.infrastructure.report_exporter import export_report
from p4p_monitor.infrastructure.snapshot_store import JsonSnapshotStore, SnapshotNotFoundError, new_snapshot
from p4p_monitor.ingestion import DEFAULT_PREFERRED_SHEET, IngestionError, has_recognizable_data

logger = logging.getLogger(__name__)

TIER_SHEET_COLUMNS: List[str] = ["tier", "tier_label", "entity_count", *METRIC_KEYS.values()]
ENTITY_SHEET_COLUMNS: List[str] = ["tier", "tier_label", "entity", *METRIC_KEYS.values(), "promotionCostText"]
TREND_SHEET_COLUMNS: List[str] = ["period", *[f"{tier}_{metric}" for tier in TIERS for metric in ("cost", "leads")]]
COMPARISON_SHEET_COLUMNS: List[str] = [
    "tier",
    "entity",
    "in_base",
    "in_current",
    "base_cost",
    "current_cost",
    "cost_delta",
    "cost_direction",
    "base_leads",
    "current_leads",
    "leads_delta",
    "leads_direction",
    "base_promotion_cost",
    "current_promotion_cost",
    "promotion_cost_delta",
    "promotion_cost_direction",
]


@dataclass(frozen=True)
class MonitorRun:
    analysis: AnalysisResult
    trend: list[TrendPoint] | None
    comparison: ComparisonReport | None
    snapshot: HistorySnapshot | None
    summary: dict[str, Any]
    excel_saved: bool


def _frame(rows: List[Dict[str, Any]], columns: List[str]) -> pl.DataFrame:
    if not rows:
        return pl.DataFrame({col: [] for col in columns})
    return pl.DataFrame([{col: row.get(col) for col in columns} for row in rows]).select(columns)


def tier_sheet_df(analysis: AnalysisResult) -> pl.DataFrame:
    rows: List[Dict[str, Any]] = []
    global_row: Dict[str, Any] = {"tier": "global", "tier_label": "Global", "entity_count": None}
    global_row.update(analysis.global_metrics.to_dict())
    rows.append(global_row)
    for tier in TIERS:
        category = analysis.tier(tier)
        row: Dict[str, Any] = {"tier": tier, "tier_label": tier_label(tier), "entity_count": len(category.entities)}
        row.update(category.metrics.to_dict())
        rows.append(row)
    return _frame(rows, TIER_SHEET_COLUMNS)


def entity_sheet_df(analysis: AnalysisResult) -> pl.DataFrame:
    rows: List[Dict[str, Any]] = []
    for tier, entity in analysis.iter_entities():
        row: Dict[str, Any] = {"tier": tier, "tier_label": tier_label(tier), "entity": entity.name}
        row.update(entity.metrics.to_dict())
        row["promotionCostText"] = fmt_promotion_cost(entity.metrics)
        rows.append(row)
    return _frame(rows, ENTITY_SHEET_COLUMNS)


def trend_sheet_df(trend: Sequence[TrendPoint] | None) -> pl.DataFrame:
    return _frame([point.to_dict() for point in trend or []], TREND_SHEET_COLUMNS)


def comparison_sheet_df(report: ComparisonReport) -> pl.DataFrame:
    rows: List[Dict[str, Any]] = []
    for tier in TIERS:
        for item in report.by_tier.get(tier, ()):
            rows.append(
                {
                    "tier": tier,
                    "entity": item.name,
                    "in_base": item.in_base,
                    "in_current": item.in_current,
                    "base_cost": item.base.total_cost,
                    "current_cost": item.current.total_cost,
                    "cost_delta": item.cost_delta,
                    "cost_direction": delta_direction(item.cost_delta),
                    "base_leads": item.base.total_leads,
                    "current_leads": item.current.total_leads,
                    "leads_delta": item.leads_delta,
                    "leads_direction": delta_direction(item.leads_delta),
                    "base_promotion_cost": item.base.promotion_cost,
                    "current_promotion_cost": item.current.promotion_cost,
                    "promotion_cost_delta": item.promotion_cost_delta,
                    "promotion_cost_direction": delta_direction(item.promotion_cost_delta),
                }
            )
    return _frame(rows, COMPARISON_SHEET_COLUMNS)


def overview_lines(analysis: AnalysisResult) -> List[str]:
    overall = analysis.global_metrics
    lines = [
        f"Total cost {fmt_money(overall.total_cost)}, leads {overall.total_leads:,.0f}, "
        f"CPL {fmt_promotion_cost(overall)}, L1+ ratio {fmt_ratio(overall.qualified_click_ratio)}"
    ]
    for tier in TIERS:
        category = analysis.tier(tier)
        if category.is_empty:
            continue
        lines.append(
            f"{tier_label(tier)}: {len(category.entities)} entities, "
            f"cost share {fmt_pct(category.metrics.cost_share)}, lead share {fmt_pct(category.metrics.lead_share)}, "
            f"CPL {fmt_promotion_cost(category.metrics)}"
        )
    return lines


def comparison_lines(report: ComparisonReport) -> List[str]:
    return [
        f"Cost change {fmt_money_signed(report.global_cost_delta, digits=2)} ({delta_direction(report.global_cost_delta)})",
        f"Lead change {report.global_leads_delta:+,.0f} ({delta_direction(report.global_leads_delta)})",
    ]


def run_monitor_pipeline(
    input_path: Path,
    output_dir: Path,
    config: CategoryConfig,
    history_path: Path | None = None,
    save_label: str | None = None,
    compare_to: str | None = None,
    preferred_sheet: str | None = None,
    use_cache: bool = True,
) -> MonitorRun:
    pipeline_start = perf_counter()
    stage_start = pipeline_start
    stage_timings: list[tuple[str, float]] = []

    def _mark(stage_name: str) -> None:
        nonlocal stage_start
        now = perf_counter()
        stage_timings.append((stage_name, now - stage_start))
        stage_start = now

    cache_dir = output_dir / ".cache" if use_cache else None
    sheet_name = preferred_sheet or DEFAULT_PREFERRED_SHEET
    rows, input_meta = load_input_rows(input_path, preferred_sheet=sheet_name, cache_dir=cache_dir)
    if not has_recognizable_data(rows):
        raise IngestionError(f"No recognizable advertising data in {input_path}")
    _mark("load_input_rows")

    analysis = analyze(rows, config)
    trend = generate_trend(rows, config)
    _mark("analyze")

    store = JsonSnapshotStore(history_path) if history_path is not None else None
    comparison: ComparisonReport | None = None
    if compare_to is not None:
        if store is None:
            raise ValueError("A history file is required to compare against a snapshot")
        base = store.get(compare_to)
        if base is None:
            raise SnapshotNotFoundError(compare_to)
        comparison = compare(base.analysis, analysis, config)
    _mark("compare")

    snapshot: HistorySnapshot | None = None
    if save_label is not None:
        if store is None:
            raise ValueError("A history file is required to save a snapshot")
        snapshot = new_snapshot(save_label or input_path.name, analysis, config)
        store.save(snapshot)
    _mark("save_snapshot")

    summary: Dict[str, Any] = {
        "input_meta": input_meta,
        "config": config.to_dict(),
        "detected_entities": detected_entities(rows),
        "analysis": analysis.to_dict(),
        "trend": [point.to_dict() for point in trend] if trend is not None else None,
        "overview": overview_lines(analysis),
    }
    if comparison is not None:
        summary["comparison"] = comparison.to_dict()
        summary["comparison_overview"] = comparison_lines(comparison)
    if snapshot is not None:
        summary["saved_snapshot_id"] = snapshot.id
    _mark("build_summary")

    sheets = {
        "tiers": tier_sheet_df(analysis),
        "entities": entity_sheet_df(analysis),
        "trend": trend_sheet_df(trend),
    }
    if comparison is not None:
        sheets["comparison"] = comparison_sheet_df(comparison)
    exported = export_report(output_dir, "summary", summary, sheets)
    _mark("save_outputs")
    total_elapsed = perf_counter() - pipeline_start

    logger.info(
        "Summary prepared: rows=%d, entities=%d, trend_points=%s",
        len(rows),
        len(summary["detected_entities"]),
        len(trend) if trend is not None else "n/a",
    )
    logger.info("Stage Timing: %s", ", ".join(f"{name}={seconds:.3f}s" for name, seconds in stage_timings))
    logger.info("Total Elapsed: %.3fs", total_elapsed)

    return MonitorRun(
        analysis=analysis,
        trend=trend,
        comparison=comparison,
        snapshot=snapshot,
        summary=summary,
        excel_saved=exported.excel_saved,
    )


def run_snapshot_comparison(
    history_path: Path,
    base_id: str,
    current_id: str,
    config: CategoryConfig,
    output_dir: Path | None = None,
) -> ComparisonReport:
    """Diff two saved snapshots, grouping entities under the config passed in."""
    store = JsonSnapshotStore(history_path)
    base = store.get(base_id)
    current = store.get(current_id)
    if base is None or current is None:
        missing = [snapshot_id for snapshot_id, item in ((base_id, base), (current_id, current)) if item is None]
        raise SnapshotNotFoundError(*missing)

    report = compare(base.analysis, current.analysis, config)
    if output_dir is not None:
        summary = {
            "base": {"id": base.id, "label": base.label, "saved_at": base.saved_at},
            "current": {"id": current.id, "label": current.label, "saved_at": current.saved_at},
            "config": config.to_dict(),
            "comparison": report.to_dict(),
            "comparison_overview": comparison_lines(report),
        }
        export_report(output_dir, "comparison", summary, {"comparison": comparison_sheet_df(report)})
    return report
