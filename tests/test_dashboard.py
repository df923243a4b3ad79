"""Tests for the web dashboard API.

Endpoints tested:
    GET  /api/status
    GET  /api/backups
    POST /api/backup
    POST /api/restore
    GET  /api/log
    GET  /api/config
    GET  /api/events
    WS   /ws/live (live feed)
"""

import json
import os
from datetime import datetime

import pytest

from saveguard.backup import copier
from saveguard.backup.backup_config import REASON_MANUAL, BackupConfig
from saveguard.backup.backup_manager import BackupManager
from saveguard.dashboard.app import create_app
from saveguard.dashboard import app as dashboard_app
from saveguard.dashboard.live_feed import LiveFeed, summarize
from saveguard.monitor.save_monitor import SaveMonitor


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest.fixture(autouse=True)
def no_process_scan(monkeypatch):
    monkeypatch.setattr(copier, "find_lock_holder", lambda path: (None, None))


@pytest.fixture
def services(tmp_path):
    saves = tmp_path / "saves"
    saves.mkdir()
    cfg = BackupConfig(
        source_dir=str(saves),
        backup_root=str(tmp_path / "backups"),
        slots=["0", "1"],
        include_profile=False,
        retry_delay_ms=0,
    )
    bm = BackupManager(cfg)
    return {
        "backup_manager": bm,
        "monitor": SaveMonitor(bm),
        "saves": saves,
        "tmp_path": tmp_path,
    }


@pytest.fixture
def app(services):
    return create_app(
        backup_manager=services["backup_manager"],
        monitor=services["monitor"],
    )


@pytest.fixture
def client(app):
    app.config["TESTING"] = True
    with app.test_client() as c:
        yield c


def old_snapshot(services, data: bytes) -> str:
    (services["saves"] / "Slot0.sav").write_bytes(data)
    bm = services["backup_manager"]
    result = bm.writer.write_snapshot(
        bm.config.source_path, bm.target_files, REASON_MANUAL,
        timestamp=datetime(2026, 1, 1, 8, 0, 0),
    )
    return result.name


class FakeWS:
    def __init__(self):
        self.messages = []

    def send(self, msg):
        self.messages.append(json.loads(msg))


# ---------------------------------------------------------------------------
# GET /api/status
# ---------------------------------------------------------------------------

class TestGetStatus:
    def test_returns_running(self, client, services):
        resp = client.get("/api/status")
        assert resp.status_code == 200
        data = resp.get_json()
        assert data["status"] == "running"
        assert data["target_files"] == ["Slot0.sav", "Slot1.sav"]
        assert data["snapshot_count"] == 0
        assert data["monitor"]["state"] == "idle"
        assert data["monitor"]["last_snapshot"] is None

    def test_counts_snapshots(self, client, services):
        old_snapshot(services, b"x")
        data = client.get("/api/status").get_json()
        assert data["snapshot_count"] == 1

    def test_without_monitor(self, services):
        app = create_app(backup_manager=services["backup_manager"])
        with app.test_client() as c:
            assert c.get("/api/status").get_json()["monitor"] is None


# ---------------------------------------------------------------------------
# GET /api/backups, POST /api/backup
# ---------------------------------------------------------------------------

class TestBackups:
    def test_empty_backups(self, client):
        data = client.get("/api/backups").get_json()
        assert data["backups"] == []
        assert data["total"] == 0

    def test_backup_created(self, client, services):
        (services["saves"] / "Slot0.sav").write_bytes(b"save")
        resp = client.post("/api/backup")
        assert resp.status_code == 201
        data = resp.get_json()
        assert data["success"] is True
        assert data["reason"] == "manual"
        assert data["files"] == [
            {"filename": "Slot0.sav", "outcome": "OK", "size_bytes": 4},
        ]

        listed = client.get("/api/backups").get_json()
        assert listed["total"] == 1
        assert listed["backups"][0]["files"] == ["Slot0.sav"]

    def test_backup_with_no_saves_is_unsuccessful(self, client):
        resp = client.post("/api/backup")
        assert resp.status_code == 200
        assert resp.get_json()["success"] is False

    def test_backup_missing_source(self, client, services):
        services["saves"].rmdir()
        resp = client.post("/api/backup")
        assert resp.status_code == 404
        assert "error" in resp.get_json()

    def test_limit(self, client, services):
        root = services["backup_manager"].config.backup_path
        for day in range(1, 6):
            (root / f"2026-01-{day:02d}_00-00-00").mkdir()
        data = client.get("/api/backups?limit=2").get_json()
        assert [b["name"] for b in data["backups"]] == [
            "2026-01-05_00-00-00", "2026-01-04_00-00-00",
        ]


# ---------------------------------------------------------------------------
# POST /api/restore
# ---------------------------------------------------------------------------

class TestRestore:
    def test_requires_snapshot(self, client):
        resp = client.post("/api/restore", json={"confirm": "YES"})
        assert resp.status_code == 400

    def test_requires_confirmation(self, client, services):
        name = old_snapshot(services, b"good")
        (services["saves"] / "Slot0.sav").write_bytes(b"bad")

        resp = client.post("/api/restore", json={"snapshot": name, "confirm": "yes"})

        assert resp.status_code == 400
        assert (services["saves"] / "Slot0.sav").read_bytes() == b"bad"

    def test_unknown_snapshot(self, client):
        resp = client.post("/api/restore",
                           json={"snapshot": "2020-01-01_00-00-00", "confirm": "YES"})
        assert resp.status_code == 404

    def test_restore_confirmed(self, client, services):
        name = old_snapshot(services, b"good")
        (services["saves"] / "Slot0.sav").write_bytes(b"bad")

        resp = client.post("/api/restore", json={"snapshot": name, "confirm": "YES"})

        assert resp.status_code == 200
        data = resp.get_json()
        assert data["restored_count"] == 1
        assert data["failed_count"] == 0
        assert data["safety_snapshot"]["reason"] == "pre-restore-safety"
        assert (services["saves"] / "Slot0.sav").read_bytes() == b"good"

    def test_restore_blocked_by_policy(self, client, services, monkeypatch):
        from saveguard.backup import snapshot_writer

        name = old_snapshot(services, b"good")
        services["backup_manager"].config.block_restore_on_safety_failure = True
        monkeypatch.setattr(snapshot_writer, "copy_with_retry", lambda *a, **k: False)

        resp = client.post("/api/restore", json={"snapshot": name, "confirm": "YES"})

        assert resp.status_code == 409
        assert resp.get_json()["aborted"] is True


# ---------------------------------------------------------------------------
# GET /api/log, GET /api/config
# ---------------------------------------------------------------------------

class TestLogAndConfig:
    def test_log_entries(self, client, services):
        (services["saves"] / "Slot0.sav").write_bytes(b"12345")
        client.post("/api/backup")
        data = client.get("/api/log").get_json()
        assert data["total"] == 1
        entry = data["entries"][0]
        assert entry["outcome"] == "OK"
        assert entry["file"] == "Slot0.sav"
        assert entry["size"] == 5
        assert entry["reason"] == "manual"

    def test_config(self, client, services):
        data = client.get("/api/config").get_json()
        assert data["slots"] == ["0", "1"]
        assert data["interval_minutes"] == 5

    def test_log_with_spaced_filename(self, client, services):
        services["backup_manager"].audit_log.log_copy("OK", "My Save.sav", 3, "manual")
        resp = client.get("/api/log")
        assert resp.status_code == 200
        assert resp.get_json()["entries"][0]["file"] == "My Save.sav"

    def test_log_skips_garbage_lines(self, client, services):
        log = services["backup_manager"].audit_log
        log.log_copy("OK", "Slot0.sav", 5, "manual")
        with open(log.path, "a", encoding="utf-8") as f:
            f.write("not an audit line\n")
        resp = client.get("/api/log")
        assert resp.status_code == 200
        assert resp.get_json()["total"] == 1

    def test_default_config_path_is_absolute(self):
        path = dashboard_app.DEFAULT_CONFIG_PATH
        assert os.path.isabs(path)
        assert path.endswith(os.path.join("config", "config.json"))


# ---------------------------------------------------------------------------
# Live feed
# ---------------------------------------------------------------------------

class TestLiveUpdates:
    def test_backup_pushed(self, client, app, services):
        ws = FakeWS()
        app.live_feed.register(ws)
        (services["saves"] / "Slot0.sav").write_bytes(b"x")

        client.post("/api/backup")

        assert ws.messages[0]["type"] == "backup"
        assert ws.messages[0]["data"]["success"] is True
        assert "1/1 file(s) copied" in ws.messages[0]["summary"]

    def test_restore_pushed(self, client, app, services):
        name = old_snapshot(services, b"good")
        ws = FakeWS()
        app.live_feed.register(ws)

        client.post("/api/restore", json={"snapshot": name, "confirm": "YES"})

        assert ws.messages[-1]["type"] == "restore"
        assert ws.messages[-1]["data"]["snapshot"] == name

    def test_late_client_gets_history(self, client, app, services):
        (services["saves"] / "Slot0.sav").write_bytes(b"x")
        client.post("/api/backup")

        ws = FakeWS()
        replayed = app.live_feed.register(ws)

        assert replayed == 1
        assert ws.messages[0]["type"] == "backup"
        assert ws.messages[0]["seq"] == 1

    def test_events_endpoint(self, client, services):
        (services["saves"] / "Slot0.sav").write_bytes(b"x")
        client.post("/api/backup")
        data = client.get("/api/events").get_json()
        assert data["total"] == 1
        assert data["last_seq"] == 1
        assert data["events"][0]["type"] == "backup"

        data = client.get("/api/events?since=1").get_json()
        assert data["events"] == []

    def test_status_reports_last_event(self, client, services):
        (services["saves"] / "Slot0.sav").write_bytes(b"x")
        client.post("/api/backup")
        assert client.get("/api/status").get_json()["last_event"] == 1


class TestLiveFeed:
    def test_register_and_count(self):
        feed = LiveFeed()
        ws = FakeWS()
        feed.register(ws)
        assert feed.client_count == 1
        feed.unregister(ws)
        assert feed.client_count == 0

    def test_event_shape(self):
        feed = LiveFeed()
        a, b = FakeWS(), FakeWS()
        feed.register(a)
        feed.register(b)
        feed.publish("cleanup", {"removed": 2})
        assert a.messages == b.messages
        event = a.messages[0]
        assert event["seq"] == 1
        assert event["type"] == "cleanup"
        assert event["data"] == {"removed": 2}
        assert event["summary"] == "Removed 2 old snapshot(s)"
        assert "timestamp" in event

    def test_replay_since(self):
        feed = LiveFeed()
        for n in range(3):
            feed.publish("cleanup", {"removed": n})
        ws = FakeWS()
        assert feed.register(ws, since=1) == 2
        assert [m["seq"] for m in ws.messages] == [2, 3]

    def test_history_is_bounded(self):
        feed = LiveFeed(history_size=2)
        for n in range(5):
            feed.publish("cleanup", {"removed": n})
        assert [e["seq"] for e in feed.recent()] == [5, 4]
        assert feed.last_seq == 5

    def test_recent_limit(self):
        feed = LiveFeed()
        for n in range(4):
            feed.publish("cleanup", {"removed": n})
        assert [e["seq"] for e in feed.recent(limit=2)] == [4, 3]

    def test_dead_client_removed(self):
        feed = LiveFeed()

        class DeadWS:
            def send(self, msg):
                raise ConnectionError("gone")

        feed.register(DeadWS())
        feed.publish("cleanup", {})
        assert feed.client_count == 0

    def test_client_failing_replay_not_registered(self):
        feed = LiveFeed()
        feed.publish("cleanup", {"removed": 1})

        class DeadWS:
            def send(self, msg):
                raise ConnectionError("gone")

        assert feed.register(DeadWS()) == 0
        assert feed.client_count == 0

    def test_unregister_unknown_client(self):
        feed = LiveFeed()
        feed.unregister(FakeWS())
        assert feed.client_count == 0

    def test_summaries(self):
        assert summarize("restore", {"snapshot": "s", "aborted": True}) == "Restore of s aborted"
        assert summarize("restore", {
            "snapshot": "s", "restored_count": 2, "failed_count": 1,
        }) == "Restored 2 file(s) from s, 1 failed"
        assert summarize("other", {}) == "other"
