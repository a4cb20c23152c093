"""Shared fixtures for the P4P monitor tests."""

from __future__ import annotations

from pathlib import Path
from typing import Any, List

import pytest

from p4p_monitor.domain.models import CategoryConfig, Row


def make_row(entity: str = "US", **kwargs: Any) -> Row:
    return Row(entity=entity, **kwargs)


@pytest.fixture
def config() -> CategoryConfig:
    return CategoryConfig.from_lists(
        tier1=["US", "Germany"],
        tier2=["Japan"],
        tier3=["India"],
    )


@pytest.fixture
def sample_rows() -> List[Row]:
    return [
        make_row("US", cost=100.0, impressions=1000.0, clicks=10.0, leads=2.0, qualified_click_ratio=0.5, source_click_cost=10.0),
        make_row("Germany", cost=300.0, impressions=3000.0, clicks=30.0, leads=3.0, qualified_click_ratio=0.2, source_click_cost=10.0),
        make_row("US", cost=50.0, impressions=500.0, clicks=10.0, leads=0.0, qualified_click_ratio=0.1, source_click_cost=5.0),
        make_row("Japan", cost=40.0, impressions=400.0, clicks=0.0, leads=0.0, source_click_cost=4.0),
        make_row("Brazil", cost=10.0, impressions=100.0, clicks=5.0, leads=1.0, qualified_click_ratio=0.4, source_click_cost=2.0),
    ]


CSV_HEADER = "国家/地区,花费,曝光量,点击量,点击率,商机量,L1+买家点击占比,点击成本,日期"
CSV_LINES = [
    'United States,"¥1,200.50",10000,100,1.00%,10,20%,¥12.01,2024-02',
    "Japan,¥300,5000,50,1.00%,0,10.5%,¥6,2024-01",
    'United States,"¥800",8000,80,1.00%,4,25%,¥10,2024-01',
    "Brazil,garbage,,,,,,,2024-02",
]


@pytest.fixture
def sample_csv(tmp_path: Path) -> Path:
    path = tmp_path / "export.csv"
    path.write_text("\n".join([CSV_HEADER, *CSV_LINES]) + "\n", encoding="utf-8")
    return path
