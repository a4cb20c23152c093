"""Domain models for P4P performance analysis."""

from __future__ import annotations

from dataclasses import dataclass, fields
from types import MappingProxyType
from typing import Any, Iterable, Mapping

TIER1 = "tier1"
TIER2 = "tier2"
TIER3 = "tier3"
UNCATEGORIZED = "uncategorized"
TIERS: tuple[str, ...] = (TIER1, TIER2, TIER3, UNCATEGORIZED)
UNKNOWN_ENTITY = "Unknown"

METRIC_KEYS: dict[str, str] = {
    "total_cost": "totalCost",
    "total_impressions": "totalImpressions",
    "total_clicks": "totalClicks",
    "total_leads": "totalLeads",
    "qualified_click_ratio": "qualifiedClickRatio",
    "source_click_cost": "sourceClickCost",
    "promotion_cost": "promotionCost",
    "cost_share": "costShare",
    "impression_share": "impressionShare",
    "click_share": "clickShare",
    "lead_share": "leadShare",
}


def _to_float(value: Any) -> float:
    if value is None:
        return 0.0
    try:
        return float(value)
    except (TypeError, ValueError):
        return 0.0


def split_entity_list(text: str | None) -> tuple[str, ...]:
    """Split a comma-separated entity list, trimming and dropping empty tokens."""
    if not text:
        return ()
    return tuple(token.strip() for token in str(text).split(",") if token.strip())


def _entity_tuple(value: Any) -> tuple[str, ...]:
    if value is None:
        return ()
    if isinstance(value, str):
        return split_entity_list(value)
    return tuple(str(item).strip() for item in value if item is not None and str(item).strip())


@dataclass(frozen=True)
class Row:
    """One normalized entity-period observation."""

    entity: str = UNKNOWN_ENTITY
    cost: float = 0.0
    impressions: float = 0.0
    clicks: float = 0.0
    leads: float = 0.0
    qualified_click_ratio: float = 0.0
    source_click_cost: float = 0.0
    period: str | None = None


@dataclass(frozen=True)
class CategoryConfig:
    """Entity lists per tier, in priority order tier1 > tier2 > tier3."""

    tier1: tuple[str, ...] = ()
    tier2: tuple[str, ...] = ()
    tier3: tuple[str, ...] = ()

    @classmethod
    def from_lists(
        cls,
        tier1: Iterable[str] = (),
        tier2: Iterable[str] = (),
        tier3: Iterable[str] = (),
    ) -> "CategoryConfig":
        return cls(tier1=_entity_tuple(tier1), tier2=_entity_tuple(tier2), tier3=_entity_tuple(tier3))

    @classmethod
    def from_text(cls, tier1: str = "", tier2: str = "", tier3: str = "") -> "CategoryConfig":
        return cls(
            tier1=split_entity_list(tier1),
            tier2=split_entity_list(tier2),
            tier3=split_entity_list(tier3),
        )

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "CategoryConfig":
        return cls.from_lists(
            tier1=_entity_tuple(data.get(TIER1)),
            tier2=_entity_tuple(data.get(TIER2)),
            tier3=_entity_tuple(data.get(TIER3)),
        )

    def tier_lists(self) -> tuple[tuple[str, tuple[str, ...]], ...]:
        return ((TIER1, self.tier1), (TIER2, self.tier2), (TIER3, self.tier3))

    def to_text(self) -> dict[str, str]:
        return {tier: ", ".join(names) for tier, names in self.tier_lists()}

    def to_dict(self) -> dict[str, list[str]]:
        return {tier: list(names) for tier, names in self.tier_lists()}

    def rule_count(self) -> int:
        return len(self.tier1) + len(self.tier2) + len(self.tier3)


@dataclass(frozen=True)
class AggregatedMetrics:
    total_cost: float = 0.0
    total_impressions: float = 0.0
    total_clicks: float = 0.0
    total_leads: float = 0.0
    qualified_click_ratio: float = 0.0
    source_click_cost: float = 0.0
    promotion_cost: float = 0.0
    cost_share: float = 0.0
    impression_share: float = 0.0
    click_share: float = 0.0
    lead_share: float = 0.0

    @property
    def has_promotion_cost(self) -> bool:
        """Cost per lead is only meaningful when leads were recorded."""
        return self.total_leads > 0

    def to_dict(self) -> dict[str, float]:
        return {key: float(getattr(self, name)) for name, key in METRIC_KEYS.items()}

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "AggregatedMetrics":
        values: dict[str, float] = {}
        for item in fields(cls):
            raw = data.get(METRIC_KEYS[item.name], data.get(item.name))
            values[item.name] = _to_float(raw)
        return cls(**values)


@dataclass(frozen=True)
class EntityMetrics:
    name: str
    metrics: AggregatedMetrics

    def to_dict(self) -> dict[str, Any]:
        return {"name": self.name, "metrics": self.metrics.to_dict()}

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "EntityMetrics":
        return cls(
            name=str(data.get("name", UNKNOWN_ENTITY)),
            metrics=AggregatedMetrics.from_dict(data.get("metrics") or {}),
        )


@dataclass(frozen=True)
class CategoryResult:
    tier: str
    metrics: AggregatedMetrics
    entities: tuple[EntityMetrics, ...] = ()

    @property
    def is_empty(self) -> bool:
        return not self.entities

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"tier": self.tier}
        payload.update(self.metrics.to_dict())
        payload["entities"] = [entity.to_dict() for entity in self.entities]
        return payload

    @classmethod
    def from_dict(cls, data: Mapping[str, Any], tier: str | None = None) -> "CategoryResult":
        entities = data.get("entities") or []
        return cls(
            tier=str(data.get("tier", tier or UNCATEGORIZED)),
            metrics=AggregatedMetrics.from_dict(data),
            entities=tuple(EntityMetrics.from_dict(item) for item in entities if isinstance(item, Mapping)),
        )


@dataclass(frozen=True)
class AnalysisResult:
    global_metrics: AggregatedMetrics
    by_tier: Mapping[str, CategoryResult]

    def __post_init__(self) -> None:
        object.__setattr__(self, "by_tier", MappingProxyType(dict(self.by_tier)))

    def tier(self, tier: str) -> CategoryResult:
        return self.by_tier[tier]

    def iter_entities(self) -> Iterable[tuple[str, EntityMetrics]]:
        for tier in TIERS:
            category = self.by_tier.get(tier)
            if category is None:
                continue
            for entity in category.entities:
                yield tier, entity

    def to_dict(self) -> dict[str, Any]:
        return {
            "global": self.global_metrics.to_dict(),
            "byTier": {tier: self.by_tier[tier].to_dict() for tier in TIERS if tier in self.by_tier},
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "AnalysisResult":
        raw_tiers = data.get("byTier") or {}
        by_tier: dict[str, CategoryResult] = {}
        for tier in TIERS:
            raw = raw_tiers.get(tier)
            if isinstance(raw, Mapping):
                by_tier[tier] = CategoryResult.from_dict(raw, tier=tier)
            else:
                by_tier[tier] = CategoryResult(tier=tier, metrics=AggregatedMetrics())
        return cls(global_metrics=AggregatedMetrics.from_dict(data.get("global") or {}), by_tier=by_tier)


@dataclass(frozen=True)
class TrendPoint:
    """Per-tier cost and lead sums for one period bucket."""

    period: str
    cost: Mapping[str, float]
    leads: Mapping[str, float]

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"period": self.period}
        for tier in TIERS:
            payload[f"{tier}_cost"] = float(self.cost.get(tier, 0.0))
            payload[f"{tier}_leads"] = float(self.leads.get(tier, 0.0))
        return payload


@dataclass(frozen=True)
class EntityComparison:
    name: str
    tier: str
    base: AggregatedMetrics
    current: AggregatedMetrics
    in_base: bool
    in_current: bool

    @property
    def cost_delta(self) -> float:
        return self.current.total_cost - self.base.total_cost

    @property
    def leads_delta(self) -> float:
        return self.current.total_leads - self.base.total_leads

    @property
    def promotion_cost_delta(self) -> float:
        return self.current.promotion_cost - self.base.promotion_cost

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "tier": self.tier,
            "in_base": self.in_base,
            "in_current": self.in_current,
            "base": self.base.to_dict(),
            "current": self.current.to_dict(),
            "cost_delta": self.cost_delta,
            "leads_delta": self.leads_delta,
            "promotion_cost_delta": self.promotion_cost_delta,
        }


@dataclass(frozen=True)
class ComparisonReport:
    base_global: AggregatedMetrics
    current_global: AggregatedMetrics
    by_tier: Mapping[str, tuple[EntityComparison, ...]]

    def __post_init__(self) -> None:
        object.__setattr__(self, "by_tier", MappingProxyType(dict(self.by_tier)))

    @property
    def global_cost_delta(self) -> float:
        return self.current_global.total_cost - self.base_global.total_cost

    @property
    def global_leads_delta(self) -> float:
        return self.current_global.total_leads - self.base_global.total_leads

    def entity(self, name: str) -> EntityComparison | None:
        for tier in TIERS:
            for item in self.by_tier.get(tier, ()):
                if item.name == name:
                    return item
        return None

    def to_dict(self) -> dict[str, Any]:
        return {
            "global": {
                "base": self.base_global.to_dict(),
                "current": self.current_global.to_dict(),
                "cost_delta": self.global_cost_delta,
                "leads_delta": self.global_leads_delta,
            },
            "byTier": {tier: [item.to_dict() for item in self.by_tier.get(tier, ())] for tier in TIERS},
        }


@dataclass(frozen=True)
class HistorySnapshot:
    """A saved analysis plus the category config that produced it."""

    id: str
    label: str
    saved_at: str
    analysis: AnalysisResult
    config: CategoryConfig

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "label": self.label,
            "saved_at": self.saved_at,
            "analysis": self.analysis.to_dict(),
            "config": self.config.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "HistorySnapshot":
        return cls(
            id=str(data.get("id", "")),
            label=str(data.get("label", "") or ""),
            saved_at=str(data.get("saved_at", "") or ""),
            analysis=AnalysisResult.from_dict(data.get("analysis") or {}),
            config=CategoryConfig.from_dict(data.get("config") or {}),
        )
