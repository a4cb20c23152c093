"""Domain layer package."""

from .models import (
    TIERS,
    UNCATEGORIZED,
    UNKNOWN_ENTITY,
    AggregatedMetrics,
    AnalysisResult,
    CategoryConfig,
    CategoryResult,
    ComparisonReport,
    EntityComparison,
    EntityMetrics,
    HistorySnapshot,
    Row,
    TrendPoint,
)
from .tiers import DEFAULT_CATEGORY_CONFIG, categorize, tier_label

__all__ = [
    "TIERS",
    "UNCATEGORIZED",
    "UNKNOWN_ENTITY",
    "AggregatedMetrics",
    "AnalysisResult",
    "CategoryConfig",
    "CategoryResult",
    "ComparisonReport",
    "EntityComparison",
    "EntityMetrics",
    "HistorySnapshot",
    "Row",
    "TrendPoint",
    "DEFAULT_CATEGORY_CONFIG",
    "categorize",
    "tier_label",
]
