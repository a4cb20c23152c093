"""Application service for the tiered performance analysis use case."""

from __future__ import annotations

from typing import Sequence

import polars as pl

from p4p_monitor.application.aggregation import aggregate_frame
from p4p_monitor.domain.models import (
    TIERS,
    AggregatedMetrics,
    AnalysisResult,
    CategoryConfig,
    CategoryResult,
    EntityMetrics,
    Row,
)
from p4p_monitor.domain.tiers import categorize
from p4p_monitor.ingestion import rows_to_frame


def tiered_frame(rows: Sequence[Row], config: CategoryConfig) -> pl.DataFrame:
    """Row frame with a ``tier`` column assigned under ``config``."""
    tiers = [categorize(row.entity, config) for row in rows]
    return rows_to_frame(rows).with_columns(pl.Series("tier", tiers, dtype=pl.Utf8))


def _entity_results(scoped_df: pl.DataFrame, global_metrics: AggregatedMetrics) -> tuple[EntityMetrics, ...]:
    if scoped_df.is_empty():
        return ()

    entities: list[EntityMetrics] = []
    for entity_df in scoped_df.partition_by("entity", maintain_order=True):
        name = str(entity_df.get_column("entity")[0])
        entities.append(EntityMetrics(name=name, metrics=aggregate_frame(entity_df, parent=global_metrics)))

    # Stable sort keeps first-encounter order among equal spend.
    entities.sort(key=lambda item: item.metrics.total_cost, reverse=True)
    return tuple(entities)


def analyze(rows: Sequence[Row], config: CategoryConfig) -> AnalysisResult:
    """Aggregate rows globally, per tier and per entity.

    Tier and entity shares are both measured against the global totals. Every
    tier is present in the result, empty tiers with zero metrics.
    """
    df = tiered_frame(rows, config)
    global_metrics = aggregate_frame(df)

    by_tier: dict[str, CategoryResult] = {}
    for tier in TIERS:
        scoped_df = df.filter(pl.col("tier") == pl.lit(tier))
        by_tier[tier] = CategoryResult(
            tier=tier,
            metrics=aggregate_frame(scoped_df, parent=global_metrics),
            entities=_entity_results(scoped_df, global_metrics),
        )

    return AnalysisResult(global_metrics=global_metrics, by_tier=by_tier)


def detected_entities(rows: Sequence[Row]) -> list[str]:
    """Sorted distinct entity names, for building a category config."""
    return sorted({row.entity for row in rows})
