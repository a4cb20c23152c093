"""Domain policy for assigning entities to tiers."""

from __future__ import annotations

from p4p_monitor.domain.models import TIER1, TIER2, TIER3, UNCATEGORIZED, CategoryConfig

TIER_LABELS: dict[str, str] = {
    TIER1: "Primary",
    TIER2: "Secondary",
    TIER3: "Test",
    UNCATEGORIZED: "Uncategorized",
}

DEFAULT_CATEGORY_CONFIG = CategoryConfig.from_lists(
    tier1=[
        "美国", "英国", "德国", "澳大利亚", "加拿大", "法国",
        "United States", "UK", "Germany", "Australia", "Canada", "France",
    ],
    tier2=[
        "意大利", "西班牙", "荷兰", "墨西哥", "巴西", "沙特", "阿联酋", "韩国", "日本",
        "Italy", "Spain", "Netherlands", "Mexico", "Brazil", "Saudi Arabia", "UAE", "Korea", "Japan",
    ],
    tier3=[
        "印度", "波兰", "瑞典", "俄罗斯", "越南", "新加坡", "土耳其", "以色列",
        "India", "Poland", "Sweden", "Russia", "Vietnam", "Singapore", "Turkey", "Israel",
    ],
)


def categorize(entity: str | None, config: CategoryConfig) -> str:
    """Return the highest-priority tier listing the entity, or uncategorized."""
    name = str(entity or "").strip().lower()
    if not name:
        return UNCATEGORIZED
    for tier, names in config.tier_lists():
        if any(candidate.lower() == name for candidate in names):
            return tier
    return UNCATEGORIZED


def tier_label(tier: str) -> str:
    return TIER_LABELS.get(tier, tier)
