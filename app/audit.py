from __future__ import annotations

import datetime
import json
import threading
from pathlib import Path
from typing import Any, Dict, List, Optional

from config import AUDIT_FILE


class AuditLogger:
    """Append-only JSON line logger for applied schedule edits."""

    def __init__(self, file_path: Path = AUDIT_FILE) -> None:
        self.file_path = file_path
        self.file_path.parent.mkdir(parents=True, exist_ok=True)
        if not self.file_path.exists():
            self.file_path.touch()
        self._lock = threading.Lock()

    def log(
        self,
        event: str,
        setup_id: Optional[str],
        *,
        day: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        entry: Dict[str, Any] = {
            "timestamp": datetime.datetime.now(datetime.timezone.utc).isoformat(),
            "event": event,
            "setup_id": setup_id,
        }
        if day:
            entry["day"] = day
        if details:
            entry["details"] = details

        with self._lock, self.file_path.open("a", encoding="utf-8") as handle:
            handle.write(json.dumps(entry, default=str))
            handle.write("\n")

    def entries(self) -> List[Dict[str, Any]]:
        rows: List[Dict[str, Any]] = []
        with self.file_path.open("r", encoding="utf-8") as handle:
            for line in handle:
                line = line.strip()
                if line:
                    rows.append(json.loads(line))
        return rows
