"""Append-only JSONL audit trail for form activity.

Stores one JSON object per line in date-partitioned files under
``DATA_DIR``, named YYYY-MM-DD.jsonl.
"""

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from pathlib import Path

from formflow.config import get_settings
from formflow.models import AuditEntry

logger = logging.getLogger(__name__)

DATA_DIR = get_settings().data_dir / "audit"


def _ensure_dir() -> None:
    DATA_DIR.mkdir(parents=True, exist_ok=True)


def _file_for_date(date_str: str) -> Path:
    return DATA_DIR / f"{date_str}.jsonl"


def _today_str() -> str:
    return datetime.now(timezone.utc).strftime("%Y-%m-%d")


def log_action(
    action: str,
    entity_id: str = "",
    actor_type: str = "SYSTEM",
    details: dict | None = None,
) -> AuditEntry:
    """Append an entry to today's file and return it."""
    _ensure_dir()

    entry = AuditEntry(
        timestamp=datetime.now(timezone.utc).isoformat(),
        action=action,
        actor_type=actor_type,
        entity_id=entity_id,
        details=details or {},
    )

    path = _file_for_date(_today_str())
    with path.open("a", encoding="utf-8") as f:
        f.write(json.dumps(entry.to_dict(), ensure_ascii=False) + "\n")

    return entry


def record(action: str, entity_id: str = "", actor_type: str = "SYSTEM", **details) -> None:
    """Best-effort ``log_action`` for request paths; audit failures are logged only."""
    try:
        log_action(action, entity_id=entity_id, actor_type=actor_type, details=details)
    except OSError as exc:
        logger.warning("Failed to write audit entry %s for %s: %s", action, entity_id, exc)


def _read_entries_from_file(path: Path) -> list[AuditEntry]:
    entries: list[AuditEntry] = []
    if not path.exists():
        return entries
    with path.open("r", encoding="utf-8") as f:
        for line in f:
            line = line.strip()
            if not line:
                continue
            try:
                entries.append(AuditEntry.from_dict(json.loads(line)))
            except json.JSONDecodeError:
                logger.warning("Skipping corrupt audit line in %s", path.name)
    return entries


def _sorted_audit_files(descending: bool = True) -> list[Path]:
    _ensure_dir()
    return sorted(DATA_DIR.glob("*.jsonl"), key=lambda p: p.stem, reverse=descending)


def get_recent_entries(limit: int = 50) -> list[AuditEntry]:
    """Most recent entries across all files, newest first."""
    results: list[AuditEntry] = []
    for path in _sorted_audit_files(descending=True):
        entries = _read_entries_from_file(path)
        entries.reverse()
        results.extend(entries)
        if len(results) >= limit:
            break
    return results[:limit]


def get_entries_for_entity(entity_id: str, limit: int = 100) -> list[AuditEntry]:
    """Entries for one instance/template/response, newest first."""
    results: list[AuditEntry] = []
    for path in _sorted_audit_files(descending=True):
        entries = _read_entries_from_file(path)
        entries.reverse()
        for entry in entries:
            if entry.entity_id == entity_id:
                results.append(entry)
                if len(results) >= limit:
                    return results
    return results
