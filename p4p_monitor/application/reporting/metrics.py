"""Shared numeric/formatting utilities for reporting."""

from __future__ import annotations

import os
from typing import Any

from p4p_monitor.domain.models import AggregatedMetrics


def _unchanged_threshold() -> float:
    raw = os.getenv("P4P_UNCHANGED_THRESHOLD", "0.01")
    try:
        threshold = float(raw)
    except ValueError as exc:
        raise ValueError(f"Invalid P4P_UNCHANGED_THRESHOLD: {raw}") from exc
    if threshold < 0:
        raise ValueError(f"P4P_UNCHANGED_THRESHOLD must be >= 0, got {threshold}")
    return threshold


UNCHANGED_THRESHOLD = _unchanged_threshold()


def to_float(value: Any, default: float = 0.0) -> float:
    if value is None:
        return default
    return float(value)


def safe_ratio(num: float, den: float) -> float | None:
    if den <= 0:
        return None
    return num / den


def share_pct(own: float, parent_total: float | None) -> float:
    """Percentage of a parent total; a set without a parent is 100% of itself."""
    if parent_total is not None and parent_total > 0:
        return own / parent_total * 100
    return 100.0 if own > 0 else 0.0


def fmt_money(value: float | None, digits: int = 2) -> str:
    if value is None:
        return "¥0"
    sign = "-" if value < 0 else ""
    return f"{sign}¥{abs(value):,.{digits}f}"


def fmt_money_signed(value: float | None, digits: int = 0) -> str:
    if value is None:
        return "¥0"
    sign = "-" if value < 0 else "+"
    return f"{sign}¥{abs(value):,.{digits}f}"


def fmt_pct(value: float | None, digits: int = 1) -> str:
    """Format a value already expressed in percent (e.g. a share)."""
    if value is None:
        return "N/A"
    return f"{value:.{digits}f}%"


def fmt_ratio(value: float | None, digits: int = 1) -> str:
    """Format a 0-1 ratio as a percentage."""
    if value is None:
        return "N/A"
    return f"{value * 100:.{digits}f}%"


def fmt_promotion_cost(metrics: AggregatedMetrics) -> str:
    if not metrics.has_promotion_cost:
        return "-"
    return fmt_money(metrics.promotion_cost)


def delta_direction(value: float | None, eps: float = UNCHANGED_THRESHOLD) -> str:
    if value is None:
        return "unknown"
    if abs(value) < eps:
        return "flat"
    if value > 0:
        return "up"
    return "down"
