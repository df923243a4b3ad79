"""Point-in-time snapshots of the configured save files.

Backup structure::

    backups/
    +-- 2026-10-18_14-30-00/
    |   +-- Slot0.sav
    |   +-- Profile.sav
    |   +-- manifest.txt
    +-- 2026-10-18_14-35-00/
    |   +-- ...
    +-- backup_log.txt

Two snapshots taken within the same second share a directory; the later
one overwrites the earlier one's files and manifest.
"""

import logging
import os
import threading
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path

from saveguard.backup.backup_config import (
    MANIFEST_NAME,
    SNAPSHOT_DIR_FORMAT,
    BackupConfig,
)
from saveguard.backup.copier import copy_with_retry
from saveguard.journal.audit_log import OUTCOME_FAIL, OUTCOME_OK, AuditLog

logger = logging.getLogger(__name__)


class SourceNotFound(FileNotFoundError):
    """The configured save directory does not exist."""


def human_size(num_bytes: int) -> str:
    size = float(num_bytes)
    for unit in ("B", "KB", "MB"):
        if size < 1024:
            return f"{size:.0f} {unit}" if unit == "B" else f"{size:.1f} {unit}"
        size /= 1024
    return f"{size:.1f} GB"


@dataclass
class FileResult:
    filename: str
    outcome: str  # "OK" or "FAIL"
    size_bytes: int | None = None

    def manifest_line(self) -> str:
        if self.outcome == OUTCOME_OK:
            return f"OK {self.filename} ({human_size(self.size_bytes or 0)})"
        return f"FAIL {self.filename}"

    def to_dict(self) -> dict:
        return {
            "filename": self.filename,
            "outcome": self.outcome,
            "size_bytes": self.size_bytes,
        }


@dataclass
class SnapshotResult:
    success: bool
    path: str
    reason: str
    created_at: str
    files: list[FileResult] = field(default_factory=list)

    @property
    def name(self) -> str:
        return os.path.basename(self.path)

    @property
    def copied_count(self) -> int:
        return sum(1 for f in self.files if f.outcome == OUTCOME_OK)

    def to_dict(self) -> dict:
        return {
            "success": self.success,
            "snapshot": self.name,
            "path": self.path,
            "reason": self.reason,
            "created_at": self.created_at,
            "files": [f.to_dict() for f in self.files],
        }


def ensure_source(source_dir) -> Path:
    path = Path(source_dir)
    if not path.is_dir():
        raise SourceNotFound(f"Save directory not found: {source_dir}")
    return path


class SnapshotWriter:
    """Copies the target save files into a new timestamped directory."""

    def __init__(self, config: BackupConfig, audit_log: AuditLog):
        self.config = config
        self.audit_log = audit_log
        self.backup_root = config.backup_path

    def write_snapshot(
        self,
        source_dir,
        target_files: list[str],
        reason: str,
        timestamp: datetime | None = None,
        stop_event: threading.Event | None = None,
    ) -> SnapshotResult:
        """Create one snapshot and report the outcome for every present file.

        Files missing from ``source_dir`` are skipped. The directory and
        manifest are written even when nothing could be copied.
        """
        source = ensure_source(source_dir)
        ts = timestamp or datetime.now()
        snapshot_dir = self.backup_root / ts.strftime(SNAPSHOT_DIR_FORMAT)
        snapshot_dir.mkdir(parents=True, exist_ok=True)

        results: list[FileResult] = []
        for name in target_files:
            src = source / name
            if not src.is_file():
                continue

            ok = copy_with_retry(
                src,
                snapshot_dir / name,
                max_attempts=self.config.max_copy_attempts,
                retry_delay_ms=self.config.retry_delay_ms,
                stop_event=stop_event,
            )
            if ok:
                size = (snapshot_dir / name).stat().st_size
                results.append(FileResult(name, OUTCOME_OK, size))
                self.audit_log.log_copy(OUTCOME_OK, name, size, reason)
            else:
                results.append(FileResult(name, OUTCOME_FAIL))
                self.audit_log.log_copy(OUTCOME_FAIL, name, None, reason)

        self._write_manifest(snapshot_dir, ts, reason, source, results)

        result = SnapshotResult(
            success=any(r.outcome == OUTCOME_OK for r in results),
            path=str(snapshot_dir),
            reason=reason,
            created_at=ts.isoformat(timespec="seconds"),
            files=results,
        )
        if result.success:
            logger.info("Snapshot %s (%s): %d/%d file(s) copied",
                        snapshot_dir.name, reason, result.copied_count, len(results))
        elif results:
            logger.error("Snapshot %s (%s): every copy failed", snapshot_dir.name, reason)
        else:
            logger.warning("Snapshot %s (%s): no save files present in %s",
                           snapshot_dir.name, reason, source)
        return result

    @staticmethod
    def _write_manifest(
        snapshot_dir: Path,
        ts: datetime,
        reason: str,
        source: Path,
        results: list[FileResult],
    ):
        lines = [
            f"Created: {ts.strftime('%Y-%m-%d %H:%M:%S')}",
            f"Reason: {reason}",
            f"Source: {source}",
            "Files:",
        ]
        lines.extend(r.manifest_line() for r in results)
        (snapshot_dir / MANIFEST_NAME).write_text("\n".join(lines) + "\n", encoding="utf-8")
