"""Infrastructure adapter for category config files."""

from __future__ import annotations

import json
from pathlib import Path

from p4p_monitor.domain.models import CategoryConfig
from p4p_monitor.domain.tiers import DEFAULT_CATEGORY_CONFIG


def load_category_config(path: Path | None) -> CategoryConfig:
    """Read ``{"tier1": [...] | "a, b", ...}``; no path means the built-in defaults."""
    if path is None:
        return DEFAULT_CATEGORY_CONFIG
    if not path.exists():
        raise FileNotFoundError(f"Category config not found: {path}")
    payload = json.loads(path.read_text(encoding="utf-8"))
    if not isinstance(payload, dict):
        raise ValueError(f"Category config {path} must be a JSON object")
    return CategoryConfig.from_dict(payload)


def save_category_config(path: Path, config: CategoryConfig) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(config.to_dict(), indent=2, ensure_ascii=False), encoding="utf-8")
