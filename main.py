"""P4P Monitor entrypoint."""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path
from typing import Sequence

from p4p_monitor.application.report_service import run_monitor_pipeline, run_snapshot_comparison
from p4p_monitor.domain.tiers import tier_label
from p4p_monitor.infrastructure.config_file import load_category_config, save_category_config
from p4p_monitor.infrastructure.snapshot_store import JsonSnapshotStore, SnapshotNotFoundError
from p4p_monitor.ingestion import IngestionError

logger = logging.getLogger("p4p_monitor")

PROJECT_ROOT = Path(__file__).resolve().parent
DEFAULT_OUTPUT_DIR = PROJECT_ROOT / "output"
DEFAULT_HISTORY_PATH = DEFAULT_OUTPUT_DIR / "history.json"


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Tiered P4P advertising performance monitor")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    subparsers = parser.add_subparsers(dest="command", required=True)

    analyze_parser = subparsers.add_parser("analyze", help="Analyze an exported spreadsheet")
    analyze_parser.add_argument("input", type=Path, help="Input .xlsx/.xls/.csv file")
    analyze_parser.add_argument("--output-dir", type=Path, default=DEFAULT_OUTPUT_DIR)
    analyze_parser.add_argument("--config", type=Path, default=None, help="Category config JSON")
    analyze_parser.add_argument("--history", type=Path, default=DEFAULT_HISTORY_PATH)
    analyze_parser.add_argument("--save", metavar="LABEL", default=None, help="Save the analysis as a snapshot")
    analyze_parser.add_argument("--compare-to", metavar="SNAPSHOT_ID", default=None)
    analyze_parser.add_argument("--sheet", default=None, help="Preferred sheet name (default: P4P_PREFERRED_SHEET, else the first sheet)")
    analyze_parser.add_argument("--no-cache", action="store_true")

    history_parser = subparsers.add_parser("history", help="List or delete saved snapshots")
    history_parser.add_argument("--history", type=Path, default=DEFAULT_HISTORY_PATH)
    history_parser.add_argument("--delete", metavar="SNAPSHOT_ID", default=None)

    compare_parser = subparsers.add_parser("compare", help="Compare two saved snapshots")
    compare_parser.add_argument("base_id")
    compare_parser.add_argument("current_id")
    compare_parser.add_argument("--history", type=Path, default=DEFAULT_HISTORY_PATH)
    compare_parser.add_argument("--config", type=Path, default=None)
    compare_parser.add_argument("--output-dir", type=Path, default=DEFAULT_OUTPUT_DIR)

    config_parser = subparsers.add_parser("config", help="Show the category config or write it to a file")
    config_parser.add_argument("--config", type=Path, default=None)
    config_parser.add_argument("--write", type=Path, default=None)
    return parser


def _run_analyze(args: argparse.Namespace) -> int:
    config = load_category_config(args.config)
    run = run_monitor_pipeline(
        args.input,
        output_dir=args.output_dir,
        config=config,
        history_path=args.history,
        save_label=args.save,
        compare_to=args.compare_to,
        preferred_sheet=args.sheet,
        use_cache=not args.no_cache,
    )
    for line in run.summary["overview"]:
        print(line)
    for line in run.summary.get("comparison_overview", []):
        print(line)
    if run.trend is None:
        print("Trend unavailable: no period column found")
    if run.snapshot is not None:
        print(f"Saved snapshot {run.snapshot.id} ({run.snapshot.label})")
    return 0


def _run_history(args: argparse.Namespace) -> int:
    store = JsonSnapshotStore(args.history)
    items = store.delete(args.delete) if args.delete else store.list()
    if not items:
        print("No saved snapshots")
    for item in items:
        total_cost = item.analysis.global_metrics.total_cost
        print(f"{item.id}\t{item.saved_at}\t{item.label}\tcost={total_cost:,.2f}")
    return 0


def _run_compare(args: argparse.Namespace) -> int:
    config = load_category_config(args.config)
    report = run_snapshot_comparison(args.history, args.base_id, args.current_id, config, output_dir=args.output_dir)
    print(f"Cost change: {report.global_cost_delta:+,.2f}")
    print(f"Lead change: {report.global_leads_delta:+,.0f}")
    for tier, items in report.by_tier.items():
        if items:
            print(f"{tier_label(tier)}: {len(items)} entities")
    return 0


def _run_config(args: argparse.Namespace) -> int:
    config = load_category_config(args.config)
    if args.write is not None:
        save_category_config(args.write, config)
        print(f"Saved config: {args.write}")
    for tier, text in config.to_text().items():
        print(f"{tier_label(tier)}: {text}")
    return 0


def main(argv: Sequence[str] | None = None) -> int:
    args = _build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s - %(levelname)s - %(message)s",
    )
    handlers = {
        "analyze": _run_analyze,
        "history": _run_history,
        "compare": _run_compare,
        "config": _run_config,
    }
    try:
        return handlers[args.command](args)
    except (IngestionError, FileNotFoundError) as exc:
        logger.error("Ingestion failed: %s", exc)
        return 1
    except SnapshotNotFoundError as exc:
        logger.error("%s", exc.args[0])
        return 1


if __name__ == "__main__":
    sys.exit(main())
