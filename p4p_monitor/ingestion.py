"""Spreadsheet ingestion: header resolution, numeric cleanup and canonical rows."""

from __future__ import annotations

import json
import logging
import math
import os
import re
from pathlib import Path
from typing import Any, Dict, Iterable, Mapping, Sequence

import polars as pl

from p4p_monitor.domain.models import UNKNOWN_ENTITY, Row

logger = logging.getLogger(__name__)

COST_CANDIDATES: tuple[str, ...] = ("花费", "Cost", "Spend", "金额")
IMPRESSION_CANDIDATES: tuple[str, ...] = ("曝光量", "曝光", "Impressions")
CLICK_CANDIDATES: tuple[str, ...] = ("点击量", "Clicks", "Click")
CLICK_EXCLUDE: tuple[str, ...] = ("率", "Rate", "占比", "Ratio", "成本", "Cost")
CLICK_COST_CANDIDATES: tuple[str, ...] = ("点击成本", "CPC", "Click Cost")
LEAD_CANDIDATES: tuple[str, ...] = ("商机量", "Leads", "Lead", "Opportunit", "询盘")
LEAD_EXCLUDE: tuple[str, ...] = ("率", "Rate", "成本", "Cost")
QUALIFIED_RATIO_CANDIDATES: tuple[str, ...] = ("L1+买家点击占比", "L1+点击占比", "L1+ Click Ratio", "L1+ Ratio")
QUALIFIED_COUNT_CANDIDATES: tuple[str, ...] = ("L1+点击量", "L1+ Count", "L1+ Clicks")
ENTITY_CANDIDATES: tuple[str, ...] = ("国家/地区", "国家", "Country", "Region")
PERIOD_CANDIDATES: tuple[str, ...] = ("日期", "Date", "Time", "Period", "时间")

CURRENCY_CHARS = "¥￥$"
CSV_SUFFIXES: tuple[str, ...] = (".csv", ".txt")
ROW_SCHEMA: dict[str, Any] = {
    "entity": pl.Utf8,
    "cost": pl.Float64,
    "impressions": pl.Float64,
    "clicks": pl.Float64,
    "leads": pl.Float64,
    "qualified_click_ratio": pl.Float64,
    "source_click_cost": pl.Float64,
    "period": pl.Utf8,
}

_LEADING_FLOAT = re.compile(r"^[+-]?(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?")
_STRIP_CHARS = re.compile(r"[¥￥$,\s]")


class IngestionError(RuntimeError):
    """Raised when an input file cannot be read as a spreadsheet at all."""


def _preferred_sheet() -> str | None:
    raw = os.getenv("P4P_PREFERRED_SHEET", "").strip()
    return raw or None


DEFAULT_PREFERRED_SHEET = _preferred_sheet()


def _parse_leading_float(text: str) -> float:
    match = _LEADING_FLOAT.match(text.strip())
    if match is None:
        return 0.0
    try:
        value = float(match.group(0))
    except ValueError:
        return 0.0
    return value if math.isfinite(value) else 0.0


def normalize_number(value: Any) -> float:
    """Parse a spreadsheet cell into a float, falling back to 0.0.

    Handles currency prefixes ("¥229.12", "$100"), thousands separators
    ("1,200") and percent strings ("16.67%" -> 0.1667).
    """
    if isinstance(value, bool) or value is None:
        return 0.0
    if isinstance(value, (int, float)):
        number = float(value)
        return number if math.isfinite(number) else 0.0

    text = str(value).strip()
    if not text:
        return 0.0
    if "%" in text:
        return _parse_leading_float(text.replace("%", "", 1)) / 100
    return _parse_leading_float(_STRIP_CHARS.sub("", text))


def _present_items(record: Mapping[str, Any]) -> list[tuple[str, Any]]:
    # Empty cells carry no header, matching how sheet exports drop blank cells.
    return [(str(key), value) for key, value in record.items() if value is not None]


def resolve_column(
    record: Mapping[str, Any],
    candidates: Sequence[str],
    exclude: Sequence[str] = (),
) -> Any | None:
    """Return the value of the first header matching the candidates, or None.

    Exact trimmed matches win over substring matches. Substring matching is
    case-insensitive and skips headers that contain any exclusion token.
    """
    items = _present_items(record)

    for candidate in candidates:
        for key, value in items:
            if key.strip() == candidate:
                return value

    excluded = [token.lower() for token in exclude]
    for candidate in candidates:
        needle = candidate.lower()
        for key, value in items:
            header = key.lower()
            if needle not in header:
                continue
            if any(token in header for token in excluded):
                continue
            return value
    return None


def _resolve_number(record: Mapping[str, Any], candidates: Sequence[str], exclude: Sequence[str] = ()) -> float:
    return normalize_number(resolve_column(record, candidates, exclude))


def _resolve_qualified_ratio(record: Mapping[str, Any], clicks: float) -> float:
    ratio_raw = resolve_column(record, QUALIFIED_RATIO_CANDIDATES)
    if ratio_raw is not None:
        ratio = normalize_number(ratio_raw)
    else:
        count = _resolve_number(record, QUALIFIED_COUNT_CANDIDATES)
        ratio = count / clicks if clicks > 0 else 0.0

    # A bare 20 in a ratio column means 20%. Heuristic, kept for messy exports.
    if ratio > 1:
        ratio = ratio / 100
    return ratio


def _resolve_entity(record: Mapping[str, Any]) -> str:
    raw = resolve_column(record, ENTITY_CANDIDATES)
    if raw is None or raw == "":
        return UNKNOWN_ENTITY
    text = str(raw).strip()
    return text or UNKNOWN_ENTITY


def _resolve_period(record: Mapping[str, Any]) -> str | None:
    raw = resolve_column(record, PERIOD_CANDIDATES)
    if raw is None or raw == "" or raw == 0:
        return None
    return str(raw)


def ingest_record(record: Mapping[str, Any]) -> Row:
    clicks = _resolve_number(record, CLICK_CANDIDATES, CLICK_EXCLUDE)
    return Row(
        entity=_resolve_entity(record),
        cost=_resolve_number(record, COST_CANDIDATES),
        impressions=_resolve_number(record, IMPRESSION_CANDIDATES),
        clicks=clicks,
        leads=_resolve_number(record, LEAD_CANDIDATES, LEAD_EXCLUDE),
        qualified_click_ratio=_resolve_qualified_ratio(record, clicks),
        source_click_cost=_resolve_number(record, CLICK_COST_CANDIDATES),
        period=_resolve_period(record),
    )


def ingest_records(records: Iterable[Mapping[str, Any]]) -> list[Row]:
    """Map raw spreadsheet records onto canonical rows; every field degrades independently."""
    return [ingest_record(record) for record in records]


def has_recognizable_data(rows: Sequence[Row]) -> bool:
    if not rows:
        return False
    for row in rows:
        if row.entity != UNKNOWN_ENTITY:
            return True
        if any((row.cost, row.impressions, row.clicks, row.leads, row.source_click_cost)):
            return True
    return False


def rows_to_frame(rows: Sequence[Row]) -> pl.DataFrame:
    data = {column: [getattr(row, column) for row in rows] for column in ROW_SCHEMA}
    return pl.DataFrame(data, schema=ROW_SCHEMA)


def frame_to_rows(frame: pl.DataFrame) -> list[Row]:
    rows: list[Row] = []
    for item in frame.select(list(ROW_SCHEMA)).iter_rows(named=True):
        rows.append(
            Row(
                entity=str(item["entity"]),
                cost=float(item["cost"] or 0.0),
                impressions=float(item["impressions"] or 0.0),
                clicks=float(item["clicks"] or 0.0),
                leads=float(item["leads"] or 0.0),
                qualified_click_ratio=float(item["qualified_click_ratio"] or 0.0),
                source_click_cost=float(item["source_click_cost"] or 0.0),
                period=item["period"],
            )
        )
    return rows


def _import_openpyxl() -> tuple[Any, Any]:
    try:
        from openpyxl import Workbook, load_workbook
    except Exception as exc:  # pragma: no cover
        raise RuntimeError("openpyxl is required for Excel fallback I/O.") from exc
    return Workbook, load_workbook


def _normalize_headers(raw_headers: Sequence[Any]) -> list[str]:
    headers: list[str] = []
    seen: dict[str, int] = {}
    for idx, value in enumerate(raw_headers):
        base = str(value).strip() if value not in (None, "") else f"column_{idx + 1}"
        count = seen.get(base, 0)
        name = base if count == 0 else f"{base}_{count + 1}"
        seen[base] = count + 1
        headers.append(name)
    return headers


def _read_excel_polars(path: Path, **kwargs: Any) -> Any:
    """Use larger schema sampling when supported to avoid dtype inference warnings."""
    try:
        return pl.read_excel(path, infer_schema_length=10000, **kwargs)  # type: ignore[arg-type]
    except TypeError:
        return pl.read_excel(path, **kwargs)  # type: ignore[arg-type]


def _frame_from_polars_result(frame: Any, preferred_sheet: str | None) -> pl.DataFrame:
    if isinstance(frame, dict):
        if preferred_sheet and preferred_sheet in frame:
            return frame[preferred_sheet]
        first_key = next(iter(frame.keys()), None)
        if first_key is None:
            return pl.DataFrame()
        return frame[first_key]
    return frame


def _read_with_polars(path: Path, preferred_sheet: str | None) -> list[dict[str, Any]]:
    if not hasattr(pl, "read_excel"):
        raise RuntimeError("polars.read_excel is not available in this environment.")

    if preferred_sheet:
        try:
            frame = _read_excel_polars(path, sheet_name=preferred_sheet)
            return _frame_from_polars_result(frame, preferred_sheet).to_dicts()
        except Exception:
            logger.debug("Sheet %r not readable in %s, using first sheet", preferred_sheet, path)

    frame = _read_excel_polars(path)
    return _frame_from_polars_result(frame, preferred_sheet).to_dicts()


def _read_with_openpyxl(path: Path, preferred_sheet: str | None) -> list[dict[str, Any]]:
    _, load_workbook = _import_openpyxl()
    workbook = load_workbook(path, read_only=True, data_only=True)
    try:
        if not workbook.sheetnames:
            raise ValueError(f"No sheets found in {path}")
        sheet_name = preferred_sheet if preferred_sheet in workbook.sheetnames else workbook.sheetnames[0]

        worksheet = workbook[sheet_name]
        row_iter = worksheet.iter_rows(values_only=True)
        header_row = next(row_iter, None)
        if header_row is None:
            return []

        headers = _normalize_headers(header_row)
        records: list[dict[str, Any]] = []
        for values in row_iter:
            if values is None:
                continue
            row_data: dict[str, Any] = {}
            for idx, name in enumerate(headers):
                row_data[name] = values[idx] if idx < len(values) else None
            records.append(row_data)
        return records
    finally:
        workbook.close()


def _read_csv(path: Path) -> list[dict[str, Any]]:
    # Everything as text so locale-formatted numbers reach the normalizer intact.
    frame = pl.read_csv(path, infer_schema_length=0, encoding="utf8-lossy")
    frame = frame.rename(dict(zip(frame.columns, _normalize_headers(frame.columns))))
    return frame.to_dicts()


def _is_blank_record(record: Mapping[str, Any]) -> bool:
    return all(value is None or (isinstance(value, str) and not value.strip()) for value in record.values())


def read_input_records(
    path: str | Path,
    preferred_sheet: str | None = DEFAULT_PREFERRED_SHEET,
) -> list[dict[str, Any]]:
    """Read the first (or preferred) sheet of a workbook or a CSV file into raw records."""
    input_path = Path(path)
    if not input_path.exists():
        raise FileNotFoundError(f"Input file not found: {input_path}")

    try:
        if input_path.suffix.lower() in CSV_SUFFIXES:
            records = _read_csv(input_path)
        else:
            try:
                records = _read_with_polars(input_path, preferred_sheet)
            except Exception as exc:
                logger.info("polars could not read %s (%s); falling back to openpyxl", input_path, exc)
                records = _read_with_openpyxl(input_path, preferred_sheet)
    except Exception as exc:
        raise IngestionError(f"Failed to read input spreadsheet: {input_path}") from exc

    kept = [record for record in records if not _is_blank_record(record)]
    logger.info("Read %d records from %s", len(kept), input_path)
    return kept


def _excel_cell_value(value: Any) -> Any:
    if value is None:
        return None
    if isinstance(value, (int, bool, str)):
        return value
    if isinstance(value, float):
        if value != value or value in (float("inf"), float("-inf")):
            return None
        return value
    if isinstance(value, (list, dict)):
        return json.dumps(value, ensure_ascii=False)
    return value


def _write_with_polars(path: Path, sheets: Dict[str, pl.DataFrame]) -> bool:
    if not sheets:
        return False

    first_df = next(iter(sheets.values()))
    if not hasattr(first_df, "write_excel"):
        return False

    try:
        import xlsxwriter
    except Exception:
        return False

    try:
        with xlsxwriter.Workbook(str(path)) as workbook:
            for sheet_name, frame in sheets.items():
                frame.write_excel(workbook=workbook, worksheet=str(sheet_name)[:31])
        return True
    except PermissionError:
        raise
    except Exception:
        logger.debug("polars workbook export failed for %s; using openpyxl", path, exc_info=True)
        return False


def _write_with_openpyxl(path: Path, sheets: Dict[str, pl.DataFrame]) -> None:
    Workbook, _ = _import_openpyxl()
    workbook = Workbook()
    default_sheet = workbook.active
    workbook.remove(default_sheet)

    for sheet_name, frame in sheets.items():
        worksheet = workbook.create_sheet(title=str(sheet_name)[:31])
        worksheet.append(frame.columns)
        for row in frame.iter_rows(named=False):
            worksheet.append([_excel_cell_value(value) for value in row])

    path.parent.mkdir(parents=True, exist_ok=True)
    workbook.save(path)


def write_output_excel(path: str | Path, sheets: Dict[str, pl.DataFrame]) -> None:
    """Write output Excel with Polars-first and openpyxl fallback."""
    excel_path = Path(path)
    excel_path.parent.mkdir(parents=True, exist_ok=True)

    if _write_with_polars(excel_path, sheets):
        return
    _write_with_openpyxl(excel_path, sheets)
