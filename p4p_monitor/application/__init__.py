"""Application layer package."""

from .aggregation import aggregate_metrics
from .analysis_service import analyze, detected_entities
from .comparison_service import compare
from .report_service import MonitorRun, run_monitor_pipeline, run_snapshot_comparison
from .trend_service import generate_trend

__all__ = [
    "aggregate_metrics",
    "analyze",
    "detected_entities",
    "compare",
    "generate_trend",
    "MonitorRun",
    "run_monitor_pipeline",
    "run_snapshot_comparison",
]
