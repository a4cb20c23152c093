"""JSON-file adapter for saved analysis snapshots."""

from __future__ import annotations

import json
import logging
import os
from datetime import datetime
from pathlib import Path
from typing import Any

from p4p_monitor.domain.models import AnalysisResult, CategoryConfig, HistorySnapshot

logger = logging.getLogger(__name__)


def _history_limit() -> int:
    raw = os.getenv("P4P_HISTORY_LIMIT", "50")
    try:
        limit = int(raw)
    except ValueError as exc:
        raise ValueError(f"Invalid P4P_HISTORY_LIMIT: {raw}") from exc
    if limit < 1:
        raise ValueError(f"P4P_HISTORY_LIMIT must be >= 1, got {limit}")
    return limit


HISTORY_LIMIT = _history_limit()


class SnapshotNotFoundError(KeyError):
    """Raised when a snapshot id is not in the history file."""

    def __init__(self, *snapshot_ids: str) -> None:
        super().__init__(f"Snapshot not found: {', '.join(snapshot_ids)}")
        self.snapshot_ids = snapshot_ids


def new_snapshot(
    label: str,
    analysis: AnalysisResult,
    config: CategoryConfig,
    now: datetime | None = None,
) -> HistorySnapshot:
    created = now or datetime.now()
    return HistorySnapshot(
        id=str(int(created.timestamp() * 1000)),
        label=label,
        saved_at=created.isoformat(timespec="seconds"),
        analysis=analysis,
        config=config,
    )


class JsonSnapshotStore:
    """Snapshot history kept in insertion order; saving past the limit evicts the oldest."""

    def __init__(self, path: str | Path, limit: int = HISTORY_LIMIT) -> None:
        self.path = Path(path)
        self.limit = limit

    def _read_payload(self) -> list[dict[str, Any]]:
        if not self.path.exists():
            return []
        try:
            payload = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, ValueError):
            logger.warning("Failed to load snapshot history from %s", self.path)
            return []
        if not isinstance(payload, list):
            logger.warning("Snapshot history in %s is not a list; ignoring it", self.path)
            return []
        return [item for item in payload if isinstance(item, dict)]

    def _write(self, items: list[HistorySnapshot]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        payload = [item.to_dict() for item in items]
        self.path.write_text(json.dumps(payload, indent=2, ensure_ascii=False), encoding="utf-8")

    def list(self) -> list[HistorySnapshot]:
        return [HistorySnapshot.from_dict(item) for item in self._read_payload()]

    def get(self, snapshot_id: str) -> HistorySnapshot | None:
        for item in self.list():
            if item.id == str(snapshot_id):
                return item
        return None

    def save(self, item: HistorySnapshot) -> list[HistorySnapshot]:
        items = [*self.list(), item]
        if len(items) > self.limit:
            items = items[-self.limit:]
        self._write(items)
        logger.info("Saved snapshot %s (%s); %d retained", item.id, item.label, len(items))
        return items

    def delete(self, snapshot_id: str) -> list[HistorySnapshot]:
        items = [item for item in self.list() if item.id != str(snapshot_id)]
        self._write(items)
        return items
