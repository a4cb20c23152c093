"""Application service for per-period tier trends."""

from __future__ import annotations

from typing import Sequence

import polars as pl

from p4p_monitor.application.analysis_service import tiered_frame
from p4p_monitor.application.reporting.metrics import to_float
from p4p_monitor.domain.models import TIERS, CategoryConfig, Row, TrendPoint


def generate_trend(rows: Sequence[Row], config: CategoryConfig) -> list[TrendPoint] | None:
    """Sum cost and leads per tier for every distinct period string.

    Returns None when no row carries a period. Periods are ordered by plain
    string comparison, which is chronological only for ISO-style keys.
    """
    if not any(row.period for row in rows):
        return None

    df = tiered_frame(rows, config).filter(pl.col("period").is_not_null() & (pl.col("period") != ""))
    grouped = df.group_by(["period", "tier"]).agg(
        pl.col("cost").sum().alias("cost_sum"),
        pl.col("leads").sum().alias("leads_sum"),
    )

    buckets: dict[str, tuple[dict[str, float], dict[str, float]]] = {}
    for item in grouped.iter_rows(named=True):
        period = str(item["period"])
        if period not in buckets:
            buckets[period] = ({tier: 0.0 for tier in TIERS}, {tier: 0.0 for tier in TIERS})
        cost, leads = buckets[period]
        cost[item["tier"]] = to_float(item["cost_sum"])
        leads[item["tier"]] = to_float(item["leads_sum"])

    return [TrendPoint(period=period, cost=buckets[period][0], leads=buckets[period][1]) for period in sorted(buckets)]
