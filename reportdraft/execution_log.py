# reportdraft/execution_log.py

import csv
import logging
from pathlib import Path
from typing import Dict, List, Optional

from reportdraft.models import ExecutionRecord

LOGGER = logging.getLogger(__name__)

COLUMNS = [
    "timestamp",
    "template_name",
    "status",
    "draft_id",
    "dry_run",
    "test_mode",
    "duration_ms",
    "recipients",
    "error",
]

MAX_ERROR_LENGTH = 500


class ExecutionLog:
    """Append-only CSV of pipeline runs, trimmed to the newest ``max_rows``."""

    def __init__(self, path: str, max_rows: int = 1000):
        self.path = Path(path).expanduser()
        self.max_rows = max_rows

    def append(self, record: ExecutionRecord) -> None:
        row = {
            "timestamp": record.timestamp.isoformat(),
            "template_name": record.template_name,
            "status": record.status,
            "draft_id": record.draft_id or "",
            "dry_run": "YES" if record.dry_run else "NO",
            "test_mode": "YES" if record.test_mode else "NO",
            "duration_ms": record.duration_ms,
            "recipients": record.recipients,
            "error": (record.error or "")[:MAX_ERROR_LENGTH],
        }
        # A failed write must not break the run being logged
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            new_file = not self.path.exists()
            with open(self.path, "a", encoding="utf-8", newline="") as f:
                writer = csv.DictWriter(f, fieldnames=COLUMNS)
                if new_file:
                    writer.writeheader()
                writer.writerow(row)
            self._trim()
        except OSError as exc:
            LOGGER.warning("Failed to write execution log: %s", exc)
            return
        LOGGER.debug("Execution logged: %s - %s (%sms)", record.status, record.template_name, record.duration_ms)

    def _trim(self) -> None:
        rows = self.read()
        if len(rows) <= self.max_rows:
            return
        with open(self.path, "w", encoding="utf-8", newline="") as f:
            writer = csv.DictWriter(f, fieldnames=COLUMNS)
            writer.writeheader()
            writer.writerows(rows[-self.max_rows:])

    def read(self) -> List[Dict[str, str]]:
        if not self.path.exists():
            return []
        with open(self.path, "r", encoding="utf-8", newline="") as f:
            return list(csv.DictReader(f))

    def recent(self, limit: int = 50, status: Optional[str] = None,
               template_name: Optional[str] = None) -> List[Dict[str, str]]:
        rows = self.read()
        if status:
            rows = [r for r in rows if r["status"] == status]
        if template_name:
            rows = [r for r in rows if template_name in r["template_name"]]
        return rows[-limit:]


class NullExecutionLog:
    def append(self, record: ExecutionRecord) -> None:
        pass

    def recent(self, limit: int = 50, status: Optional[str] = None,
               template_name: Optional[str] = None) -> List[Dict[str, str]]:
        return []
