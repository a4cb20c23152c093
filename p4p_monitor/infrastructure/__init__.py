"""Infrastructure layer package."""

from .config_file import load_category_config, save_category_config
from .excel_repository import load_input_rows
from .report_exporter import ExportResult, export_report, save_output_workbook, save_summary_json
from .snapshot_store import JsonSnapshotStore, SnapshotNotFoundError, new_snapshot

__all__ = [
    "load_category_config",
    "save_category_config",
    "load_input_rows",
    "ExportResult",
    "export_report",
    "save_output_workbook",
    "save_summary_json",
    "JsonSnapshotStore",
    "SnapshotNotFoundError",
    "new_snapshot",
]
