"""P4P performance monitor package."""

from .application import aggregate_metrics, analyze, compare, generate_trend, run_monitor_pipeline
from .domain import AnalysisResult, CategoryConfig, Row, categorize
from .ingestion import IngestionError, ingest_records, normalize_number, read_input_records, resolve_column

__all__ = [
    "AnalysisResult",
    "CategoryConfig",
    "IngestionError",
    "Row",
    "aggregate_metrics",
    "analyze",
    "categorize",
    "compare",
    "generate_trend",
    "ingest_records",
    "normalize_number",
    "read_input_records",
    "resolve_column",
    "run_monitor_pipeline",
]
