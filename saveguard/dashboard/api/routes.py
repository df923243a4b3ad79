"""API route handlers for the dashboard.

    GET  /api/status          - Monitor state and snapshot count
    GET  /api/backups         - Snapshots, newest first
    POST /api/backup          - Take a manual snapshot
    POST /api/restore         - Restore a snapshot (requires confirm="YES")
    GET  /api/log             - Recent audit log entries
    GET  /api/config          - Active backup configuration
    GET  /api/events          - Recent live-feed events, newest first
"""

import logging
from datetime import datetime

from flask import Blueprint, jsonify, request

from saveguard.backup.backup_config import DISPLAY_LIMIT, REASON_MANUAL
from saveguard.backup.restore_coordinator import SnapshotNotFound
from saveguard.backup.retention import list_snapshot_dirs
from saveguard.backup.snapshot_writer import SourceNotFound

logger = logging.getLogger(__name__)

api = Blueprint("api", __name__, url_prefix="/api")

CONFIRM_TOKEN = "YES"

# These are set by app.py at init time via init_routes()
_backup_manager = None
_monitor = None
_live_feed = None


def init_routes(backup_manager, monitor, live_feed):
    """Wire up shared application state into the route handlers."""
    global _backup_manager, _monitor, _live_feed
    _backup_manager = backup_manager
    _monitor = monitor
    _live_feed = live_feed


# ------------------------------------------------------------------
# GET /api/status
# ------------------------------------------------------------------

@api.route("/status", methods=["GET"])
def get_status():
    monitor_info = None
    if _monitor:
        last = _monitor.last_snapshot
        monitor_info = {
            "state": _monitor.state,
            "cycles": _monitor.cycles,
            "seconds_until_check": _monitor.seconds_until_check,
            "last_snapshot": last.name if last else None,
        }

    return jsonify({
        "status": "running",
        "timestamp": datetime.now().isoformat(),
        "source_dir": str(_backup_manager.config.source_path),
        "backup_root": str(_backup_manager.config.backup_path),
        "target_files": _backup_manager.target_files,
        "snapshot_count": len(list_snapshot_dirs(_backup_manager.config.backup_path)),
        "monitor": monitor_info,
        "websocket_clients": _live_feed.client_count if _live_feed else 0,
        "last_event": _live_feed.last_seq if _live_feed else 0,
    })


# ------------------------------------------------------------------
# GET /api/backups
# ------------------------------------------------------------------

@api.route("/backups", methods=["GET"])
def get_backups():
    limit = request.args.get("limit", DISPLAY_LIMIT, type=int)
    snapshots = _backup_manager.list_snapshots(limit=limit)
    return jsonify({
        "backups": [s.to_dict() for s in snapshots],
        "total": len(snapshots),
    })


# ------------------------------------------------------------------
# POST /api/backup
# ------------------------------------------------------------------

@api.route("/backup", methods=["POST"])
def create_backup():
    try:
        result = _backup_manager.backup_now(REASON_MANUAL)
    except SourceNotFound as exc:
        return jsonify({"error": str(exc)}), 404
    return jsonify(result.to_dict()), 201 if result.success else 200


# ------------------------------------------------------------------
# POST /api/restore
# ------------------------------------------------------------------

@api.route("/restore", methods=["POST"])
def restore_snapshot():
    """Restore a snapshot.

    Body: ``{"snapshot": "2026-10-18_14-30-00", "confirm": "YES"}``
    """
    data = request.get_json(silent=True) or {}
    name = data.get("snapshot")
    if not name:
        return jsonify({"error": "snapshot is required"}), 400
    if data.get("confirm") != CONFIRM_TOKEN:
        return jsonify({"error": f'Restore must be confirmed with "{CONFIRM_TOKEN}"'}), 400

    try:
        result = _backup_manager.restore(name)
    except SnapshotNotFound as exc:
        return jsonify({"error": str(exc)}), 404
    except SourceNotFound as exc:
        return jsonify({"error": str(exc)}), 404
    except Exception as exc:
        logger.exception("Error during restore of %s", name)
        return jsonify({"error": f"Restore failed: {exc}"}), 500

    status = 409 if result.aborted else 200
    return jsonify(result.to_dict()), status


# ------------------------------------------------------------------
# GET /api/log
# ------------------------------------------------------------------

@api.route("/log", methods=["GET"])
def get_log():
    limit = request.args.get("limit", 100, type=int)
    entries = _backup_manager.audit_log.read_entries(limit=limit)
    return jsonify({"entries": entries, "total": len(entries)})


# ------------------------------------------------------------------
# GET /api/config
# ------------------------------------------------------------------

@api.route("/config", methods=["GET"])
def get_config():
    return jsonify(_backup_manager.config.to_dict())


# ------------------------------------------------------------------
# GET /api/events
# ------------------------------------------------------------------

@api.route("/events", methods=["GET"])
def get_events():
    """Events kept by the live feed; ``?since=<seq>`` returns only newer ones."""
    if _live_feed is None:
        return jsonify({"events": [], "total": 0, "last_seq": 0})
    limit = request.args.get("limit", DISPLAY_LIMIT, type=int)
    since = request.args.get("since", 0, type=int)
    events = _live_feed.recent(limit=limit, since=since)
    return jsonify({"events": events, "total": len(events), "last_seq": _live_feed.last_seq})
