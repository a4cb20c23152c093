"""Infrastructure adapter for report export targets."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import polars as pl

from p4p_monitor.ingestion import write_output_excel

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ExportResult:
    json_path: Path
    excel_path: Path
    excel_saved: bool
    excel_error: str = ""


def save_summary_json(path: Path, summary: dict[str, Any]) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(summary, indent=2, ensure_ascii=False, default=str), encoding="utf-8")


def save_output_workbook(path: Path, sheets: dict[str, pl.DataFrame]) -> tuple[bool, str]:
    """Write sheets to ``path``; a locked target is reported, not raised."""
    try:
        write_output_excel(path, sheets)
    except PermissionError as exc:
        return False, str(exc)
    return True, ""


def export_report(output_dir: Path, stem: str, summary: dict[str, Any], sheets: dict[str, pl.DataFrame]) -> ExportResult:
    """Write ``<stem>.json`` and ``<stem>.xlsx`` side by side under ``output_dir``."""
    json_path = output_dir / f"{stem}.json"
    excel_path = output_dir / f"{stem}.xlsx"
    save_summary_json(json_path, summary)
    excel_saved, excel_error = save_output_workbook(excel_path, sheets)

    logger.info("Saved JSON: %s", json_path)
    if excel_saved:
        logger.info("Saved Excel: %s", excel_path)
    else:
        logger.warning("Excel save skipped (file may be open/locked): %s", excel_error)
    return ExportResult(json_path=json_path, excel_path=excel_path, excel_saved=excel_saved, excel_error=excel_error)
