"""Weighted metric aggregation over canonical rows."""

from __future__ import annotations

from typing import Any, Mapping, Sequence

import polars as pl

from p4p_monitor.application.reporting.metrics import safe_ratio, share_pct, to_float
from p4p_monitor.domain.models import AggregatedMetrics, Row
from p4p_monitor.ingestion import rows_to_frame


def _sum_aggregations() -> list[pl.Expr]:
    return [
        pl.col("cost").sum().alias("cost_sum"),
        pl.col("impressions").sum().alias("impressions_sum"),
        pl.col("clicks").sum().alias("clicks_sum"),
        pl.col("leads").sum().alias("leads_sum"),
        (pl.col("qualified_click_ratio") * pl.col("clicks")).sum().alias("qualified_clicks_sum"),
        (pl.col("source_click_cost") * pl.col("clicks")).sum().alias("click_cost_weighted_sum"),
        pl.col("source_click_cost").sum().alias("click_cost_sum"),
        pl.len().alias("row_count"),
    ]


def metrics_from_sums(sums: Mapping[str, Any], parent: AggregatedMetrics | None = None) -> AggregatedMetrics:
    total_cost = to_float(sums.get("cost_sum"))
    total_impressions = to_float(sums.get("impressions_sum"))
    total_clicks = to_float(sums.get("clicks_sum"))
    total_leads = to_float(sums.get("leads_sum"))
    row_count = int(sums.get("row_count") or 0)

    qualified_click_ratio = safe_ratio(to_float(sums.get("qualified_clicks_sum")), total_clicks) or 0.0

    # Zero-click sets still carry a reported CPC worth showing: fall back to the plain mean.
    source_click_cost = safe_ratio(to_float(sums.get("click_cost_weighted_sum")), total_clicks)
    if source_click_cost is None:
        source_click_cost = safe_ratio(to_float(sums.get("click_cost_sum")), float(row_count)) or 0.0

    promotion_cost = safe_ratio(total_cost, total_leads) or 0.0

    return AggregatedMetrics(
        total_cost=total_cost,
        total_impressions=total_impressions,
        total_clicks=total_clicks,
        total_leads=total_leads,
        qualified_click_ratio=qualified_click_ratio,
        source_click_cost=source_click_cost,
        promotion_cost=promotion_cost,
        cost_share=share_pct(total_cost, parent.total_cost if parent else None),
        impression_share=share_pct(total_impressions, parent.total_impressions if parent else None),
        click_share=share_pct(total_clicks, parent.total_clicks if parent else None),
        lead_share=share_pct(total_leads, parent.total_leads if parent else None),
    )


def aggregate_frame(frame: pl.DataFrame, parent: AggregatedMetrics | None = None) -> AggregatedMetrics:
    sums = frame.select(_sum_aggregations()).row(0, named=True)
    return metrics_from_sums(sums, parent)


def aggregate_metrics(rows: Sequence[Row], parent: AggregatedMetrics | None = None) -> AggregatedMetrics:
    """Summarize rows; shares are relative to ``parent`` or 100% when this is the top-level set."""
    return aggregate_frame(rows_to_frame(rows), parent)
