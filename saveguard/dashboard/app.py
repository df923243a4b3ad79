"""Flask application for the SaveGuard dashboard.

Serves the REST API and WebSocket endpoint:

    GET  /api/status
    GET  /api/backups
    POST /api/backup
    POST /api/restore
    GET  /api/log
    GET  /api/config
    GET  /api/events
    WS   /ws/live
"""

import logging
from pathlib import Path

from flask import Flask, request
from flask_sock import Sock

from saveguard.backup.backup_config import load_config
from saveguard.backup.backup_manager import BackupManager
from saveguard.dashboard.api.routes import api, init_routes
from saveguard.dashboard.live_feed import LiveFeed

logger = logging.getLogger(__name__)

PROJECT_ROOT = Path(__file__).resolve().parent.parent.parent
DEFAULT_CONFIG_PATH = str(PROJECT_ROOT / "config" / "config.json")


def create_app(
    config_path: str = None,
    backup_manager: BackupManager = None,
    monitor=None,
) -> Flask:
    """Application factory.

    Accepts a pre-built BackupManager (for testing or when the monitor
    shares it) or constructs one from config.
    """
    if backup_manager is None:
        backup_manager = BackupManager(load_config(config_path or DEFAULT_CONFIG_PATH))

    live_feed = LiveFeed()
    backup_manager.add_listener(live_feed.publish)

    app = Flask(__name__)
    sock = Sock(app)

    init_routes(
        backup_manager=backup_manager,
        monitor=monitor,
        live_feed=live_feed,
    )
    app.register_blueprint(api)

    @sock.route("/ws/live")
    def ws_live(ws):
        # ?since=<seq> resumes after the last event the client saw
        live_feed.register(ws, since=request.args.get("since", 0, type=int))
        try:
            while True:
                # Keep connection alive; client can send pings
                data = ws.receive(timeout=60)
                if data is None:
                    break
        except Exception:
            logger.debug("WebSocket connection closed")
        finally:
            live_feed.unregister(ws)

    # Store references for test access
    app.backup_manager = backup_manager
    app.monitor = monitor
    app.live_feed = live_feed

    return app
