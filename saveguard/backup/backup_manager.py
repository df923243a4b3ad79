"""Backup orchestration.

Owns the snapshot writer, retention and restore coordinator for one
backup root, and serializes every operation that creates or deletes
snapshots behind a single lock.
"""

import logging
import threading
from typing import Callable

from saveguard.backup.backup_config import (
    DISPLAY_LIMIT,
    LOG_FILE_NAME,
    REASON_MANUAL,
    BackupConfig,
)
from saveguard.backup.restore_coordinator import (
    RestoreCoordinator,
    RestoreResult,
    SnapshotInfo,
    list_snapshots,
)
from saveguard.backup.retention import RetentionPolicy, cleanup
from saveguard.backup.snapshot_writer import SnapshotResult, SnapshotWriter
from saveguard.journal.audit_log import AuditLog

logger = logging.getLogger(__name__)


class BackupManager:
    """High-level backup orchestrator.

    Usage::

        mgr = BackupManager(BackupConfig(source_dir="~/Saves", backup_root="/backups"))
        mgr.backup_now()
        snaps = mgr.list_snapshots()
        mgr.restore(snaps[0].name)
    """

    def __init__(self, config: BackupConfig):
        self.config = config.validate()
        self.config.backup_path.mkdir(parents=True, exist_ok=True)
        self.audit_log = AuditLog(self.config.backup_path / LOG_FILE_NAME)
        self.writer = SnapshotWriter(self.config, self.audit_log)
        self.restorer = RestoreCoordinator(self.config, self.writer, self.audit_log)
        self.policy = RetentionPolicy(
            max_count=self.config.max_backups,
            max_age_days=self.config.max_age_days,
        )
        self.target_files = self.config.target_files()
        self.lock = threading.Lock()
        self._listeners: list[Callable[[str, dict], None]] = []

    def add_listener(self, callback: Callable[[str, dict], None]):
        """Register ``callback(event_type, data)`` for backup/restore/cleanup events."""
        self._listeners.append(callback)

    def _notify(self, event_type: str, data: dict):
        for cb in self._listeners:
            try:
                cb(event_type, data)
            except Exception:
                logger.exception("Listener failed for %s event", event_type)

    def backup_now(
        self,
        reason: str = REASON_MANUAL,
        stop_event: threading.Event | None = None,
    ) -> SnapshotResult:
        """Take a snapshot of the target files, then apply retention."""
        with self.lock:
            result = self.writer.write_snapshot(
                self.config.source_path, self.target_files, reason,
                stop_event=stop_event,
            )
            removed = self._enforce_retention_locked()
        self._notify("backup", result.to_dict())
        if removed:
            self._notify("cleanup", {"removed": removed})
        return result

    def _enforce_retention_locked(self) -> int:
        return cleanup(self.config.backup_path, self.policy)

    def enforce_retention(self) -> int:
        """Delete snapshots that fall outside the retention policy."""
        with self.lock:
            removed = self._enforce_retention_locked()
        if removed:
            self._notify("cleanup", {"removed": removed})
        return removed

    def list_snapshots(self, limit: int | None = DISPLAY_LIMIT) -> list[SnapshotInfo]:
        return list_snapshots(self.config.backup_path, limit=limit)

    def restore(self, snapshot: str) -> RestoreResult:
        """Restore a snapshot the caller has already confirmed."""
        with self.lock:
            result = self.restorer.restore(
                snapshot, self.config.source_path, self.target_files,
            )
        self._notify("restore", result.to_dict())
        return result
