"""Live backup/restore event feed for the dashboard.

Every event published by the BackupManager is numbered, summarised and
kept in a short in-memory history. Clients connecting to /ws/live get
the history they missed replayed before live events, so a dashboard
opened mid-session still shows the latest snapshots and restores::

    {"seq": 7, "type": "backup", "timestamp": "...",
     "summary": "Snapshot 2026-10-18_14-30-00 (auto-timer): 2/2 file(s) copied",
     "data": {...}}
"""

import json
import logging
import threading
from collections import deque
from datetime import datetime

logger = logging.getLogger(__name__)

HISTORY_SIZE = 50


def summarize(event_type: str, data: dict) -> str:
    """One-line description of an event for the dashboard's activity list."""
    if event_type == "backup":
        files = data.get("files", [])
        copied = sum(1 for f in files if f.get("outcome") == "OK")
        return (f"Snapshot {data.get('snapshot')} ({data.get('reason')}): "
                f"{copied}/{len(files)} file(s) copied")
    if event_type == "restore":
        if data.get("aborted"):
            return f"Restore of {data.get('snapshot')} aborted"
        return (f"Restored {data.get('restored_count', 0)} file(s) from "
                f"{data.get('snapshot')}, {data.get('failed_count', 0)} failed")
    if event_type == "cleanup":
        return f"Removed {data.get('removed', 0)} old snapshot(s)"
    return event_type


class LiveFeed:
    """Numbered event history plus the set of connected WebSocket clients."""

    def __init__(self, history_size: int = HISTORY_SIZE):
        self._clients: list = []
        self._history: deque[dict] = deque(maxlen=history_size)
        self._seq = 0
        self._lock = threading.Lock()

    def register(self, ws, since: int = 0) -> int:
        """Add a client and replay every kept event newer than ``since``.

        Returns the number of events replayed. Replay and registration
        happen under one lock so no event is missed or sent twice.
        """
        with self._lock:
            backlog = [e for e in self._history if e["seq"] > since]
            for event in backlog:
                try:
                    ws.send(json.dumps(event))
                except Exception:
                    logger.debug("Client dropped during replay")
                    return 0
            self._clients.append(ws)
            count = len(self._clients)
        logger.debug("Live client connected (%d total, %d replayed)", count, len(backlog))
        return len(backlog)

    def unregister(self, ws):
        with self._lock:
            if ws in self._clients:
                self._clients.remove(ws)
            count = len(self._clients)
        logger.debug("Live client disconnected (%d remaining)", count)

    def publish(self, event_type: str, data: dict) -> dict:
        """Record an event and push it to every connected client.

        Used as a BackupManager listener. Clients whose send fails are
        dropped.
        """
        with self._lock:
            self._seq += 1
            event = {
                "seq": self._seq,
                "type": event_type,
                "timestamp": datetime.now().isoformat(timespec="seconds"),
                "summary": summarize(event_type, data),
                "data": data,
            }
            self._history.append(event)
            message = json.dumps(event)
            alive = []
            for ws in self._clients:
                try:
                    ws.send(message)
                    alive.append(ws)
                except Exception:
                    logger.debug("Dropping live client after failed send")
            self._clients = alive
        logger.debug("Published %s event #%d", event_type, event["seq"])
        return event

    def recent(self, limit: int | None = None, since: int = 0) -> list[dict]:
        """Kept events newer than ``since``, newest first."""
        with self._lock:
            events = [e for e in self._history if e["seq"] > since]
        events.reverse()
        return events if limit is None else events[:limit]

    @property
    def last_seq(self) -> int:
        with self._lock:
            return self._seq

    @property
    def client_count(self) -> int:
        with self._lock:
            return len(self._clients)
