"""Infrastructure adapter for spreadsheet-based row loading."""

from __future__ import annotations

import hashlib
import json
import logging
from pathlib import Path
from typing import Any

import polars as pl

from p4p_monitor.domain.models import Row
from p4p_monitor.ingestion import (
    DEFAULT_PREFERRED_SHEET,
    frame_to_rows,
    ingest_records,
    read_input_records,
    rows_to_frame,
)

logger = logging.getLogger(__name__)

CACHE_SCHEMA_VERSION = 1


def _cache_paths(path: Path, cache_dir: Path) -> tuple[Path, Path]:
    path_hash = hashlib.sha1(str(path.resolve()).encode("utf-8")).hexdigest()[:12]
    return (
        cache_dir / f"rows_{path_hash}.parquet",
        cache_dir / f"rows_{path_hash}.meta.json",
    )


def _cache_key(path: Path, preferred_sheet: str | None) -> dict[str, Any]:
    stat = path.stat()
    return {
        "cache_schema_version": CACHE_SCHEMA_VERSION,
        "input_path": str(path.resolve()),
        "input_mtime_ns": stat.st_mtime_ns,
        "input_size": stat.st_size,
        "preferred_sheet": preferred_sheet,
    }


def _load_cache(frame_path: Path, meta_path: Path, expected_key: dict[str, Any]) -> list[Row] | None:
    if not frame_path.exists() or not meta_path.exists():
        return None
    try:
        meta_obj = json.loads(meta_path.read_text(encoding="utf-8"))
        if not isinstance(meta_obj, dict) or meta_obj.get("cache_key") != expected_key:
            return None
        return frame_to_rows(pl.read_parquet(frame_path))
    except Exception:
        logger.warning("Ignoring unreadable row cache %s", frame_path)
        return None


def _save_cache(frame_path: Path, meta_path: Path, rows: list[Row], cache_key: dict[str, Any]) -> None:
    try:
        frame_path.parent.mkdir(parents=True, exist_ok=True)
        rows_to_frame(rows).write_parquet(frame_path, compression="zstd")
        meta_path.write_text(json.dumps({"cache_key": cache_key}, ensure_ascii=False), encoding="utf-8")
    except Exception:
        # Cache write failures should not break report generation.
        logger.warning("Could not write row cache %s", frame_path)


def load_input_rows(
    path: str | Path,
    preferred_sheet: str | None = DEFAULT_PREFERRED_SHEET,
    cache_dir: Path | None = None,
) -> tuple[list[Row], dict[str, Any]]:
    """Read and normalize an input file, reusing a parquet cache when the file is unchanged."""
    input_path = Path(path)
    if cache_dir is None:
        rows = ingest_records(read_input_records(input_path, preferred_sheet=preferred_sheet))
        return rows, {"input_path": str(input_path), "input_cache_hit": False, "row_count": len(rows)}

    if not input_path.exists():
        raise FileNotFoundError(f"Input file not found: {input_path}")
    key = _cache_key(input_path, preferred_sheet)
    frame_path, meta_path = _cache_paths(input_path, cache_dir)
    cached = _load_cache(frame_path, meta_path, key)
    if cached is not None:
        return cached, {"input_path": str(input_path), "input_cache_hit": True, "row_count": len(cached)}

    rows = ingest_records(read_input_records(input_path, preferred_sheet=preferred_sheet))
    _save_cache(frame_path, meta_path, rows, key)
    return rows, {"input_path": str(input_path), "input_cache_hit": False, "row_count": len(rows)}
