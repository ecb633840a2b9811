import asyncio
from datetime import datetime, timedelta, timezone

from exocall.core.config import Settings
from exocall.core.database import SessionLocal
from exocall.models import HealthCheck
from exocall.services.heartbeat import HeartbeatMonitor, health_stats, latest_health


class FakeHeartbeatClient:
    def __init__(self, result=None, error=None):
        self.result = result
        self.error = error
        self.calls = 0

    async def check_heartbeat(self):
        self.calls += 1
        if self.error:
            raise self.error
        return self.result


def make_monitor(client, enabled=True):
    events = []

    async def publish(event):
        events.append(event)

    monitor = HeartbeatMonitor(
        client, SessionLocal, Settings(exotel_heartbeat_enabled=enabled), publish
    )
    return monitor, events


def test_ok_snapshot_is_stored_without_alert(db):
    client = FakeHeartbeatClient(
        {
            "status_type": "OK",
            "timestamp": "2026-10-19T09:00:00Z",
            "incoming_affected": "false",
            "outgoing_affected": False,
        }
    )
    monitor, events = make_monitor(client)

    check = asyncio.run(monitor.run_check())

    assert check.status_type == "OK"
    assert check.incoming_affected is False
    assert check.outgoing_affected is False
    assert events == []
    assert latest_health(db).id == check.id


def test_degraded_snapshot_raises_alert():
    client = FakeHeartbeatClient({"status_type": "WARNING", "incoming_affected": "true"})
    monitor, events = make_monitor(client)

    check = asyncio.run(monitor.run_check())

    assert check.status_type == "WARNING"
    assert check.incoming_affected is True
    assert [event["type"] for event in events] == ["health_alert"]


def test_provider_failure_records_error_row(db):
    monitor, events = make_monitor(FakeHeartbeatClient(error=RuntimeError("connection refused")))

    check = asyncio.run(monitor.run_check())

    assert check.status_type == "ERROR"
    assert check.raw_data == {"error": "connection refused"}
    assert check.incoming_affected is None
    assert db.query(HealthCheck).count() == 1


def test_disabled_monitor_skips_scheduled_runs(db):
    client = FakeHeartbeatClient({"status_type": "OK"})
    monitor, _ = make_monitor(client, enabled=False)

    assert asyncio.run(monitor.scheduled_check()) is None
    assert client.calls == 0
    assert db.query(HealthCheck).count() == 0

    assert asyncio.run(monitor.run_check()).status_type == "OK"


def test_uptime_is_share_of_ok_checks(db):
    now = datetime.now(timezone.utc)
    for offset, status in enumerate(["OK", "OK", "OK", "WARNING", "ERROR", "OK", "OK", "ERROR"]):
        db.add(HealthCheck(timestamp=now - timedelta(minutes=offset + 1), status_type=status))
    db.add(HealthCheck(timestamp=now - timedelta(days=3), status_type="ERROR"))
    db.commit()

    stats = health_stats(db, now - timedelta(hours=1), now)

    assert stats["total"] == 8
    assert stats["ok"] == 5
    assert stats["warnings"] == 1
    assert stats["errors"] == 2
    assert stats["uptime"] == 62.5


def test_uptime_of_empty_window_is_zero(db):
    now = datetime.now(timezone.utc)
    assert health_stats(db, now - timedelta(hours=1), now)["uptime"] == 0.0


def test_health_endpoints_require_manager(client, agent_headers, manager_headers):
    assert client.get("/api/monitoring/health/current", headers=agent_headers).status_code == 403
    response = client.get("/api/monitoring/health/current", headers=manager_headers)
    assert response.status_code == 200
