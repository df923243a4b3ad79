"""Retention enforcement for snapshot directories.

Only directories named with the canonical snapshot timestamp are
considered; anything else under the backup root is left alone.
"""

import logging
import shutil
from dataclasses import dataclass
from datetime import datetime, timedelta
from pathlib import Path

from saveguard.backup.backup_config import SNAPSHOT_DIR_FORMAT, SNAPSHOT_NAME_PATTERN

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RetentionPolicy:
    max_count: int = 0      # 0 = unbounded
    max_age_days: int = 0   # 0 = unbounded

    @property
    def enabled(self) -> bool:
        return self.max_count > 0 or self.max_age_days > 0


def snapshot_created_at(name: str) -> datetime | None:
    """Parse the creation time encoded in a snapshot directory name."""
    if not SNAPSHOT_NAME_PATTERN.match(name):
        return None
    try:
        return datetime.strptime(name, SNAPSHOT_DIR_FORMAT)
    except ValueError:
        return None


def list_snapshot_dirs(root) -> list[Path]:
    """Canonical snapshot directories under ``root``, oldest first."""
    root = Path(root)
    if not root.is_dir():
        return []
    dirs = [
        p for p in root.iterdir()
        if p.is_dir() and snapshot_created_at(p.name) is not None
    ]
    return sorted(dirs, key=lambda p: p.name)


def _remove(path: Path) -> bool:
    try:
        shutil.rmtree(path)
        return True
    except OSError as exc:
        logger.warning("Could not delete snapshot %s: %s", path.name, exc)
        return False


def cleanup(root, policy: RetentionPolicy, now: datetime | None = None) -> int:
    """Delete expired and surplus snapshots. Returns how many were removed.

    The age pass runs before the count pass so that count trimming sees
    the already-aged set.
    """
    if not policy.enabled:
        return 0

    removed = 0
    snapshots = list_snapshot_dirs(root)

    if policy.max_age_days > 0:
        cutoff = (now or datetime.now()) - timedelta(days=policy.max_age_days)
        for path in snapshots:
            if snapshot_created_at(path.name) < cutoff and _remove(path):
                removed += 1
        snapshots = list_snapshot_dirs(root)

    if policy.max_count > 0 and len(snapshots) > policy.max_count:
        for path in snapshots[:len(snapshots) - policy.max_count]:
            if _remove(path):
                removed += 1

    if removed:
        logger.info("Retention cleanup: removed %d old snapshot(s)", removed)
    return removed
