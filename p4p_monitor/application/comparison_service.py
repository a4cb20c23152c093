"""Application service for diffing two saved analyses."""

from __future__ import annotations

from p4p_monitor.domain.models import (
    TIERS,
    AggregatedMetrics,
    AnalysisResult,
    CategoryConfig,
    ComparisonReport,
    EntityComparison,
)
from p4p_monitor.domain.tiers import categorize

_EMPTY = AggregatedMetrics()


def _flatten(analysis: AnalysisResult) -> dict[str, AggregatedMetrics]:
    flat: dict[str, AggregatedMetrics] = {}
    for _, entity in analysis.iter_entities():
        flat[entity.name] = entity.metrics
    return flat


def _sort_cost(item: EntityComparison) -> float:
    if item.in_current:
        return item.current.total_cost
    return item.base.total_cost


def compare(base: AnalysisResult, current: AnalysisResult, config: CategoryConfig) -> ComparisonReport:
    """Align entities of two analyses and regroup them under ``config``.

    Tier membership follows the config passed in, not the configs that
    produced either analysis. An entity missing on one side counts as zero there.
    """
    base_map = _flatten(base)
    current_map = _flatten(current)
    names = list(base_map)
    names.extend(name for name in current_map if name not in base_map)

    grouped: dict[str, list[EntityComparison]] = {tier: [] for tier in TIERS}
    for name in names:
        tier = categorize(name, config)
        grouped[tier].append(
            EntityComparison(
                name=name,
                tier=tier,
                base=base_map.get(name, _EMPTY),
                current=current_map.get(name, _EMPTY),
                in_base=name in base_map,
                in_current=name in current_map,
            )
        )

    by_tier = {tier: tuple(sorted(items, key=_sort_cost, reverse=True)) for tier, items in grouped.items()}
    return ComparisonReport(
        base_global=base.global_metrics,
        current_global=current.global_metrics,
        by_tier=by_tier,
    )
