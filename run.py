"""Unified launcher for SaveGuard.

Starts both the save monitor and web dashboard in a single process.
The monitor runs in a background thread while the Flask dashboard
runs on the main thread. Both share one BackupManager, so manual
backups and restores from the dashboard are serialized with the
monitor's automatic snapshots.

Usage:
    python run.py
    python run.py --config config/config.json --port 5000
    python run.py --monitor-only
    python run.py --dashboard-only
"""

import argparse
import logging
import os
import signal
import sys
import threading
from pathlib import Path

from saveguard.backup.backup_config import load_config
from saveguard.backup.backup_manager import BackupManager
from saveguard.backup.snapshot_writer import SourceNotFound
from saveguard.monitor.save_monitor import SaveMonitor

PROJECT_ROOT = Path(__file__).resolve().parent
DEFAULT_CONFIG = str(PROJECT_ROOT / "config" / "config.json")

logger = logging.getLogger("saveguard")


def run_monitor(monitor, stop_event):
    """Run the save monitor in a thread until stop_event is set."""
    try:
        monitor.run(stop_event)
    except SourceNotFound as exc:
        logger.error("Monitor not started: %s", exc)


def main():
    parser = argparse.ArgumentParser(
        description="SaveGuard - game save backup",
    )
    parser.add_argument(
        "-c", "--config",
        default=DEFAULT_CONFIG,
        help="Path to config.json (default: config/config.json)",
    )
    parser.add_argument(
        "--host",
        default="127.0.0.1",
        help="Dashboard host (default: 127.0.0.1)",
    )
    parser.add_argument(
        "--port",
        default=5000,
        type=int,
        help="Dashboard port (default: 5000)",
    )
    parser.add_argument(
        "--log-level",
        default=os.environ.get("LOG_LEVEL", "INFO"),
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level",
    )
    parser.add_argument(
        "--monitor-only",
        action="store_true",
        help="Run only the save monitor (no dashboard)",
    )
    parser.add_argument(
        "--dashboard-only",
        action="store_true",
        help="Run only the web dashboard (no monitor)",
    )
    args = parser.parse_args()

    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )

    if args.monitor_only and args.dashboard_only:
        parser.error("Cannot use --monitor-only and --dashboard-only together")

    manager = BackupManager(load_config(args.config))
    monitor = SaveMonitor(manager)
    stop_event = threading.Event()

    def handle_signal(signum, frame):
        logger.info("Received signal %s, shutting down...", signum)
        stop_event.set()

    signal.signal(signal.SIGINT, handle_signal)
    signal.signal(signal.SIGTERM, handle_signal)

    # Monitor only
    if args.monitor_only:
        logger.info("Starting save monitor (no dashboard)...")
        try:
            monitor.run(stop_event)
        except SourceNotFound as exc:
            logger.error("%s", exc)
            sys.exit(1)
        return

    from saveguard.dashboard.app import create_app

    # Dashboard only
    if args.dashboard_only:
        logger.info("Starting dashboard (no monitor)...")
        app = create_app(backup_manager=manager)
        app.run(host=args.host, port=args.port, debug=False)
        return

    # Both: monitor in background thread, dashboard on main thread
    logger.info("Starting SaveGuard...")
    logger.info("  Monitor: %s every %d min", manager.config.source_path,
                manager.config.interval_minutes)
    logger.info("  Dashboard: http://%s:%d", args.host, args.port)

    monitor_thread = threading.Thread(
        target=run_monitor,
        args=(monitor, stop_event),
        daemon=True,
        name="save-monitor",
    )
    monitor_thread.start()

    app = create_app(backup_manager=manager, monitor=monitor)

    try:
        app.run(host=args.host, port=args.port, debug=False)
    finally:
        stop_event.set()
        monitor_thread.join(timeout=5)
        logger.info("System stopped.")


if __name__ == "__main__":
    main()
