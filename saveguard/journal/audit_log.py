"""Append-only plain-text audit log for backup and restore events.

One line per file copy outcome::

    2026-10-18T14:30:00 OK Slot0.sav 20480 auto-timer
    2026-10-18T14:30:00 FAIL Slot1.sav - auto-timer

and one line per restore::

    2026-10-18T14:35:12 RESTORE 2026-10-18_14-30-00 restored=2 failed=0

The file is never truncated or rotated.
"""

import logging
import threading
from datetime import datetime
from pathlib import Path

logger = logging.getLogger(__name__)

OUTCOME_OK = "OK"
OUTCOME_FAIL = "FAIL"
OUTCOME_RESTORE = "RESTORE"


class AuditLog:
    """Thread-safe appender for the backup log file."""

    def __init__(self, path):
        self.path = Path(path)
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self._lock = threading.Lock()

    def _append(self, fields: list[str]):
        line = " ".join([datetime.now().isoformat(timespec="seconds")] + fields)
        with self._lock:
            with open(self.path, "a", encoding="utf-8") as f:
                f.write(line + "\n")
        logger.debug("Audit: %s", line)

    def log_copy(self, outcome: str, filename: str, size: int | None, reason: str):
        self._append([outcome, filename, "-" if size is None else str(size), reason])

    def log_restore(self, snapshot: str, restored: int, failed: int):
        self._append([OUTCOME_RESTORE, snapshot, f"restored={restored}", f"failed={failed}"])

    def read_entries(self, limit: int = 100) -> list[dict]:
        """Return the newest ``limit`` entries, newest first."""
        if not self.path.exists():
            return []
        with self._lock:
            lines = self.path.read_text(encoding="utf-8").splitlines()

        entries = []
        for line in reversed(lines):
            entry = parse_line(line)
            if entry is None:
                logger.debug("Skipping unparseable audit line: %r", line)
                continue
            entries.append(entry)
            if len(entries) >= limit:
                break
        return entries


def parse_line(line: str) -> dict | None:
    """Parse one audit line, or return None if it is malformed.

    The filename field may itself contain spaces, so copy lines are split
    from both ends around it.
    """
    try:
        timestamp, outcome, rest = line.split(" ", 2)
        if outcome == OUTCOME_RESTORE:
            snapshot, restored, failed = rest.rsplit(" ", 2)
            return {
                "timestamp": timestamp,
                "outcome": outcome,
                "snapshot": snapshot,
                "restored": int(restored.partition("=")[2]),
                "failed": int(failed.partition("=")[2]),
            }
        filename, size, reason = rest.rsplit(" ", 2)
        return {
            "timestamp": timestamp,
            "outcome": outcome,
            "file": filename,
            "size": None if size == "-" else int(size),
            "reason": reason,
        }
    except ValueError:
        return None
