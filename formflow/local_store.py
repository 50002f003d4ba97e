"""Device-local fallback storage for unsaved drafts.

Each key maps to one JSON file holding ``{"data": ..., "timestamp": ...}``.
Reads never raise: a missing or corrupt entry reads as ``None``.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any
from urllib.parse import quote

logger = logging.getLogger(__name__)


@dataclass
class LocalSnapshot:
    data: Any
    timestamp: datetime


class LocalFallbackStore:
    def __init__(self, directory: Path) -> None:
        self.directory = Path(directory)

    def _path(self, key: str) -> Path:
        return self.directory / f"{quote(key, safe='')}.json"

    def write(self, key: str, data: Any) -> None:
        """Persist *data* under *key* with the current UTC timestamp."""
        self.directory.mkdir(parents=True, exist_ok=True)
        payload = {
            "data": data,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }
        self._path(key).write_text(json.dumps(payload, indent=2, ensure_ascii=False))

    def read(self, key: str) -> LocalSnapshot | None:
        path = self._path(key)
        if not path.exists():
            return None
        try:
            payload = json.loads(path.read_text())
            return LocalSnapshot(
                data=payload["data"],
                timestamp=datetime.fromisoformat(payload["timestamp"]),
            )
        except (json.JSONDecodeError, OSError, KeyError, TypeError, ValueError) as exc:
            logger.warning("Ignoring unreadable local draft %s: %s", path.name, exc)
            return None

    def clear(self, key: str) -> None:
        path = self._path(key)
        if path.exists():
            path.unlink()
