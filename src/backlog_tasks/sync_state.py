"""Persisted sync state: last sync timestamp and issue id -> key map.

Stored as `.last-sync` in the task directory:

```json
{
  "timestamp": "2025-01-31T09:15:00.000Z",
  "idToKeyMap": {"1001": "PROJ-1", "1002": "PROJ-2"}
}
```

Older versions wrote the bare timestamp string; that form still loads.
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterable, Optional

from .models import Issue

logger = logging.getLogger(__name__)

STATE_FILE_NAME = ".last-sync"


@dataclass
class SyncState:
    """State carried from one sync to the next."""

    timestamp: Optional[str] = None
    id_to_key: dict[int, str] = field(default_factory=dict)

    @property
    def is_first_sync(self) -> bool:
        return not self.timestamp

    def to_dict(self) -> dict:
        return {
            "timestamp": self.timestamp,
            "idToKeyMap": {str(issue_id): key for issue_id, key in self.id_to_key.items()},
        }


def utc_timestamp(moment: Optional[datetime] = None) -> str:
    """Format a moment as an ISO-8601 UTC string with milliseconds (`...Z`)."""
    moment = moment or datetime.now(timezone.utc)
    return moment.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def parse_timestamp(value: str) -> datetime:
    """Parse an ISO-8601 timestamp, accepting a trailing `Z`.

    Raises:
        ValueError: If the value is not a valid timestamp
    """
    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    parsed = datetime.fromisoformat(text)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


class SyncStateStore:
    """Loads and saves the `.last-sync` file of a task directory."""

    def __init__(self, tasks_dir: Path):
        self.tasks_dir = Path(tasks_dir)

    @property
    def path(self) -> Path:
        return self.tasks_dir / STATE_FILE_NAME

    def load(self) -> SyncState:
        """Load the sync state; a missing or unreadable file means a first sync."""
        try:
            content = self.path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return SyncState()
        except (OSError, UnicodeDecodeError) as e:
            logger.warning("Could not read %s: %s", self.path, e)
            return SyncState()

        try:
            data = json.loads(content)
        except json.JSONDecodeError:
            # Legacy format: the whole file is the timestamp
            return SyncState(timestamp=content.strip() or None)

        if isinstance(data, str):
            return SyncState(timestamp=data.strip() or None)
        if not isinstance(data, dict):
            return SyncState()

        return SyncState(
            timestamp=data.get("timestamp") or None,
            id_to_key=_parse_id_map(data.get("idToKeyMap") or {}),
        )

    def save(self, timestamp: str, issues: Iterable[Issue]) -> SyncState:
        """Write the state for the issues just synced.

        The id -> key map is rebuilt from `issues` alone; ids from earlier
        syncs that were not fetched this time are dropped.

        The file is replaced atomically (temp file + rename).
        """
        state = SyncState(
            timestamp=timestamp,
            id_to_key={issue.id: issue.issue_key for issue in issues},
        )
        self.tasks_dir.mkdir(parents=True, exist_ok=True)

        fd, tmp_name = tempfile.mkstemp(prefix=".last-sync.", dir=self.tasks_dir)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(state.to_dict(), f, indent=2)
            os.replace(tmp_name, self.path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise

        return state


def _parse_id_map(raw: object) -> dict[int, str]:
    if not isinstance(raw, dict):
        return {}
    id_to_key = {}
    for issue_id, key in raw.items():
        try:
            id_to_key[int(issue_id)] = str(key)
        except (TypeError, ValueError):
            logger.debug("Ignoring malformed id map entry %r -> %r", issue_id, key)
    return id_to_key
