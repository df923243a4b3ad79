"""Backup system configuration and retention policies."""

import json
import os
import re
from dataclasses import asdict, dataclass
from pathlib import Path

# Default vault location (hidden directory)
DEFAULT_BACKUP_ROOT = os.path.join(
    os.path.expanduser("~"), ".saveguard", "backups"
)

# Timestamp format used for snapshot directory names
SNAPSHOT_DIR_FORMAT = "%Y-%m-%d_%H-%M-%S"
SNAPSHOT_NAME_PATTERN = re.compile(r"^\d{4}-\d{2}-\d{2}_\d{2}-\d{2}-\d{2}$")

MANIFEST_NAME = "manifest.txt"
LOG_FILE_NAME = "backup_log.txt"

# Snapshot reasons
REASON_MANUAL = "manual"
REASON_AUTO = "auto-timer"
REASON_SAFETY = "pre-restore-safety"

# Save slots covered by the "All" selection
SAVE_SLOTS = ("0", "1", "2", "3", "4")
SLOT_ALL = "All"
SLOT_ID_PATTERN = re.compile(r"^[A-Za-z0-9_-]+$")
PROFILE_FILE = "Profile.sav"

# Snapshots shown by interactive listings
DISPLAY_LIMIT = 20


class ConfigError(ValueError):
    """Raised when a configuration value is out of range."""


def slot_filename(slot_id: str) -> str:
    return f"Slot{slot_id}.sav"


def resolve_path(path_str: str) -> Path:
    return Path(os.path.expanduser(os.path.expandvars(path_str))).resolve()


@dataclass
class BackupConfig:
    """Tunable parameters handed to every backup component."""
    source_dir: str
    backup_root: str = DEFAULT_BACKUP_ROOT
    slots: str | list[str] = SLOT_ALL
    include_profile: bool = True
    interval_minutes: int = 5
    max_copy_attempts: int = 3
    retry_delay_ms: int = 500
    max_backups: int = 50
    max_age_days: int = 0
    restore_copy_attempts: int = 1
    block_restore_on_safety_failure: bool = False

    def validate(self) -> "BackupConfig":
        if not 1 <= self.interval_minutes <= 60:
            raise ConfigError(
                f"interval_minutes must be between 1 and 60, got {self.interval_minutes}"
            )
        if self.max_copy_attempts < 1:
            raise ConfigError("max_copy_attempts must be at least 1")
        if self.restore_copy_attempts < 1:
            raise ConfigError("restore_copy_attempts must be at least 1")
        for name in ("retry_delay_ms", "max_backups", "max_age_days"):
            if getattr(self, name) < 0:
                raise ConfigError(f"{name} must not be negative")
        if not self.source_dir:
            raise ConfigError("source_dir is required")
        if self.slots != SLOT_ALL:
            if not isinstance(self.slots, list) or not self.slots:
                raise ConfigError(
                    f"slots must be \"{SLOT_ALL}\" or a non-empty list of slot ids, got {self.slots!r}"
                )
            for slot_id in self.slots:
                if not SLOT_ID_PATTERN.match(str(slot_id)):
                    raise ConfigError(f"Invalid slot id: {slot_id!r}")
        return self

    @property
    def source_path(self) -> Path:
        return resolve_path(self.source_dir)

    @property
    def backup_path(self) -> Path:
        return resolve_path(self.backup_root)

    def target_files(self) -> list[str]:
        """Ordered save filenames derived from the slot selection."""
        if self.slots == SLOT_ALL:
            slot_ids = list(SAVE_SLOTS)
        else:
            slot_ids = [str(s) for s in self.slots]

        files = [slot_filename(s) for s in slot_ids]
        if self.include_profile and PROFILE_FILE not in files:
            files.append(PROFILE_FILE)
        return files

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> "BackupConfig":
        """Build from the ``backup`` section of config.json (or a flat dict)."""
        section = data.get("backup", data)
        known = {k: v for k, v in section.items() if k in cls.__dataclass_fields__}
        if "source_dir" not in known:
            raise ConfigError("backup.source_dir is required")
        return cls(**known).validate()


def load_config(config_path: str) -> BackupConfig:
    path = Path(config_path)
    if not path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")
    with open(path) as f:
        return BackupConfig.from_dict(json.load(f))
