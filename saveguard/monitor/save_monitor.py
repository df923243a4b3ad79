"""Periodic save-file monitor.

Polls the signature (mtime + size) of every target save file once per
interval and takes an ``auto-timer`` snapshot whenever any of them
changed, followed by retention cleanup.
"""

import argparse
import logging
import os
import signal
import sys
import threading
from pathlib import Path

from saveguard.backup.backup_config import REASON_AUTO, load_config
from saveguard.backup.backup_manager import BackupManager
from saveguard.backup.signature import FileSignature, compute_signatures, has_changed
from saveguard.backup.snapshot_writer import SnapshotResult, SourceNotFound, ensure_source

logger = logging.getLogger(__name__)

PROJECT_ROOT = Path(__file__).resolve().parent.parent.parent
DEFAULT_CONFIG = str(PROJECT_ROOT / "config" / "config.json")

STATE_IDLE = "idle"
STATE_CHECKING = "checking"


class SaveMonitor:
    """Drives change detection and automatic snapshots for one session."""

    def __init__(self, manager: BackupManager, tick_seconds: float = 1.0):
        self.manager = manager
        self.tick_seconds = tick_seconds
        self.state = STATE_IDLE
        self.cycles = 0
        self.last_snapshot: SnapshotResult | None = None
        self.seconds_until_check = 0
        self._signatures: dict[str, FileSignature | None] = {}
        self._started = False

    @property
    def interval_ticks(self) -> int:
        return int(self.manager.config.interval_minutes * 60)

    @property
    def signatures(self) -> dict[str, FileSignature | None]:
        return dict(self._signatures)

    def start(self):
        """Record a baseline signature for every target file."""
        source = ensure_source(self.manager.config.source_path)
        self._signatures = compute_signatures(source, self.manager.target_files)
        self.state = STATE_IDLE
        self._started = True
        present = sum(1 for s in self._signatures.values() if s is not None)
        logger.info("Monitoring %s: %d of %d save file(s) present, every %d min",
                    source, present, len(self._signatures),
                    self.manager.config.interval_minutes)

    def check_once(self, stop_event: threading.Event | None = None) -> SnapshotResult | None:
        """Run one checking cycle. Returns the snapshot taken, if any."""
        if not self._started:
            self.start()

        self.state = STATE_CHECKING
        self.cycles += 1
        try:
            current = compute_signatures(
                self.manager.config.source_path, self.manager.target_files,
            )
            changed = [
                name for name, sig in current.items()
                if has_changed(self._signatures.get(name), sig)
            ]
            if not changed:
                logger.debug("Cycle %d: no changes", self.cycles)
                return None

            logger.info("Cycle %d: change detected in %s", self.cycles, ", ".join(changed))
            result = self.manager.backup_now(REASON_AUTO, stop_event=stop_event)
            self._signatures = current
            self.last_snapshot = result
            return result
        except Exception:
            logger.exception("Monitor cycle %d failed", self.cycles)
            return None
        finally:
            self.state = STATE_IDLE

    def run(self, stop_event: threading.Event):
        """Loop until ``stop_event`` is set, checking once per interval."""
        self.start()
        while not stop_event.is_set():
            self.seconds_until_check = self.interval_ticks
            while self.seconds_until_check > 0:
                if stop_event.wait(self.tick_seconds):
                    break
                self.seconds_until_check -= 1
            if stop_event.is_set():
                break
            self.check_once(stop_event)
        logger.info("Save monitor stopped after %d cycle(s)", self.cycles)


def main():
    parser = argparse.ArgumentParser(description="SaveGuard - Save File Monitor")
    parser.add_argument(
        "-c", "--config",
        default=DEFAULT_CONFIG,
        help="Path to config.json",
    )
    parser.add_argument(
        "--log-level",
        default=os.environ.get("LOG_LEVEL", "INFO"),
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level",
    )
    parser.add_argument("--backup-now", action="store_true",
                        help="Take one manual snapshot and exit")
    parser.add_argument("--list", action="store_true",
                        help="List the most recent snapshots and exit")
    parser.add_argument("--restore", metavar="SNAPSHOT",
                        help="Restore the named snapshot and exit")
    parser.add_argument("--yes", action="store_true",
                        help="Confirm --restore without prompting")
    args = parser.parse_args()

    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )

    config = load_config(args.config)
    manager = BackupManager(config)

    if args.list:
        for snap in manager.list_snapshots():
            print(f"{snap.name}  {snap.reason or '?':<20} {', '.join(snap.files)}")
        return

    if args.backup_now:
        try:
            result = manager.backup_now()
        except SourceNotFound as exc:
            logger.error("%s", exc)
            sys.exit(1)
        for f in result.files:
            print(f.manifest_line())
        sys.exit(0 if result.success else 1)

    if args.restore:
        if not args.yes:
            answer = input(f"Overwrite saves with {args.restore}? Type YES to confirm: ")
            if answer.strip() != "YES":
                print("Restore cancelled.")
                return
        try:
            result = manager.restore(args.restore)
        except FileNotFoundError as exc:
            logger.error("%s", exc)
            sys.exit(1)
        print(f"Restored {result.restored_count} file(s), {result.failed_count} failed")
        sys.exit(0 if result.success else 1)

    monitor = SaveMonitor(manager)
    stop_event = threading.Event()

    def handle_signal(signum, frame):
        logger.info("Received signal %s, shutting down...", signum)
        stop_event.set()

    signal.signal(signal.SIGINT, handle_signal)
    signal.signal(signal.SIGTERM, handle_signal)

    try:
        monitor.run(stop_event)
    except SourceNotFound as exc:
        logger.error("%s", exc)
        sys.exit(1)


if __name__ == "__main__":
    main()
