"""Restoration of live save files from a snapshot.

Every restore first snapshots the current saves with reason
``pre-restore-safety`` so the overwritten state can be recovered. Files
are then copied from the chosen snapshot over the save directory. There
is no rollback: a partially failed restore is reported with its counts.
"""

import logging
import time
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path

from saveguard.backup.backup_config import (
    MANIFEST_NAME,
    REASON_SAFETY,
    SNAPSHOT_DIR_FORMAT,
    BackupConfig,
)
from saveguard.backup.copier import copy_with_retry
from saveguard.backup.retention import list_snapshot_dirs, snapshot_created_at
from saveguard.backup.snapshot_writer import SnapshotResult, SnapshotWriter, ensure_source
from saveguard.journal.audit_log import AuditLog

logger = logging.getLogger(__name__)


class SnapshotNotFound(FileNotFoundError):
    """The requested snapshot is not a canonical directory under the backup root."""


@dataclass
class SnapshotInfo:
    name: str
    path: str
    created_at: str
    files: list[str]
    reason: str | None

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "path": self.path,
            "created_at": self.created_at,
            "files": self.files,
            "reason": self.reason,
        }


@dataclass
class RestoreResult:
    snapshot: str
    restored_count: int = 0
    failed_count: int = 0
    restored: list[str] = field(default_factory=list)
    failed: list[str] = field(default_factory=list)
    safety_snapshot: SnapshotResult | None = None
    aborted: bool = False
    error: str | None = None

    @property
    def success(self) -> bool:
        return not self.aborted and self.failed_count == 0

    def to_dict(self) -> dict:
        return {
            "snapshot": self.snapshot,
            "success": self.success,
            "restored_count": self.restored_count,
            "failed_count": self.failed_count,
            "restored": self.restored,
            "failed": self.failed,
            "safety_snapshot": self.safety_snapshot.to_dict() if self.safety_snapshot else None,
            "aborted": self.aborted,
            "error": self.error,
        }


def snapshot_save_files(snapshot_dir) -> list[str]:
    """Save files stored in a snapshot (everything but the manifest)."""
    return sorted(
        p.name for p in Path(snapshot_dir).iterdir()
        if p.is_file() and p.name != MANIFEST_NAME and not p.name.startswith(".")
    )


def _manifest_reason(snapshot_dir: Path) -> str | None:
    manifest = snapshot_dir / MANIFEST_NAME
    try:
        for line in manifest.read_text(encoding="utf-8").splitlines():
            if line.startswith("Reason:"):
                return line.partition(":")[2].strip()
    except OSError:
        pass
    return None


def list_snapshots(root, limit: int | None = None) -> list[SnapshotInfo]:
    """Snapshots under ``root``, newest first, optionally capped at ``limit``."""
    dirs = list(reversed(list_snapshot_dirs(root)))
    if limit is not None:
        dirs = dirs[:limit]
    return [
        SnapshotInfo(
            name=d.name,
            path=str(d),
            created_at=snapshot_created_at(d.name).isoformat(),
            files=snapshot_save_files(d),
            reason=_manifest_reason(d),
        )
        for d in dirs
    ]


class RestoreCoordinator:
    """Overwrites live saves from a snapshot after taking a safety snapshot."""

    def __init__(self, config: BackupConfig, writer: SnapshotWriter, audit_log: AuditLog):
        self.config = config
        self.writer = writer
        self.audit_log = audit_log

    def resolve_snapshot(self, snapshot) -> Path:
        path = Path(snapshot)
        if not path.is_absolute():
            path = self.writer.backup_root / path
        if (snapshot_created_at(path.name) is None
                or path.parent.resolve() != self.writer.backup_root.resolve()
                or not path.is_dir()):
            raise SnapshotNotFound(f"No such snapshot: {snapshot}")
        return path

    def _safety_timestamp(self, selected: Path) -> datetime:
        # The safety snapshot must not land in the directory being restored.
        ts = datetime.now()
        if ts.strftime(SNAPSHOT_DIR_FORMAT) == selected.name:
            time.sleep(1.0 - ts.microsecond / 1_000_000)
            ts = datetime.now()
        return ts

    def restore(self, snapshot, source_dir, target_files: list[str]) -> RestoreResult:
        """Restore the save files of an already-confirmed snapshot selection."""
        selected = self.resolve_snapshot(snapshot)
        source = ensure_source(source_dir)
        result = RestoreResult(snapshot=selected.name)

        safety = self.writer.write_snapshot(
            source, target_files, REASON_SAFETY,
            timestamp=self._safety_timestamp(selected),
        )
        result.safety_snapshot = safety
        if not safety.success and safety.files:
            if self.config.block_restore_on_safety_failure:
                result.aborted = True
                result.error = "Safety snapshot failed; restore blocked by policy"
                logger.error("Restore of %s aborted: safety snapshot failed", selected.name)
                return result
            logger.warning("Safety snapshot failed; restoring %s anyway", selected.name)

        for name in snapshot_save_files(selected):
            ok = copy_with_retry(
                selected / name,
                source / name,
                max_attempts=self.config.restore_copy_attempts,
                retry_delay_ms=self.config.retry_delay_ms,
            )
            if ok:
                result.restored.append(name)
            else:
                result.failed.append(name)
                logger.error("Failed to restore %s from %s", name, selected.name)

        result.restored_count = len(result.restored)
        result.failed_count = len(result.failed)
        self.audit_log.log_restore(selected.name, result.restored_count, result.failed_count)

        logger.info("Restored %d file(s) from %s (%d failed)",
                    result.restored_count, selected.name, result.failed_count)
        return result
