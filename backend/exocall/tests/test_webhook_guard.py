from datetime import datetime, timedelta, timezone

from exocall.services import webhook_guard
from exocall.services.webhook_guard import is_fresh_timestamp, is_trusted_source_ip


def test_timestamp_freshness_window():
    now = datetime(2026, 10, 19, 12, 0, tzinfo=timezone.utc)
    assert is_fresh_timestamp((now - timedelta(seconds=30)).isoformat(), now)
    assert not is_fresh_timestamp((now - timedelta(minutes=10)).isoformat(), now)
    assert not is_fresh_timestamp("not a date", now)
    assert is_fresh_timestamp(None, now)


def test_source_ip_allow_list(monkeypatch):
    assert is_trusted_source_ip("203.0.113.9")
    monkeypatch.setattr(webhook_guard, "TRUSTED_SOURCE_NETWORKS", ("198.51.100.0/24",))
    assert is_trusted_source_ip("198.51.100.7")
    assert not is_trusted_source_ip("203.0.113.9")
    assert not is_trusted_source_ip(None)


def test_stale_timestamp_does_not_reject(client):
    token = webhook_guard.expected_webhook_token()
    response = client.post(
        f"/api/webhooks/exotel/call-callback/cb-old/{token}",
        json={"CallSid": "CA-old", "DateCreated": "2001-01-01T00:00:00Z"},
    )
    assert response.status_code == 200
