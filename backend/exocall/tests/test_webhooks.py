import hashlib

from exocall.models import SmsCallback, VoiceCallback

TOKEN = hashlib.md5(b"test-key:test-secret").hexdigest()


def test_call_callback_with_valid_token(client, db):
    response = client.post(
        f"/api/webhooks/exotel/call-callback/cb-1/{TOKEN}",
        json={"CallSid": "CA-hook", "Status": "completed", "To": "08047112233", "Duration": "61"},
    )
    assert response.status_code == 200
    body = response.json()
    assert body["callback_id"] == "cb-1"
    assert body["call_sid"] == "CA-hook"
    assert body["status"] == "completed"

    row = db.query(VoiceCallback).filter(VoiceCallback.call_sid == "CA-hook").one()
    assert row.user_id == TOKEN
    assert row.duration == "61"


def test_call_callback_accepts_form_body(client, db):
    response = client.post(
        f"/api/webhooks/exotel/call-callback/cb-2/{TOKEN}",
        data={"CallSid": "CA-form", "Status": "busy"},
    )
    assert response.status_code == 200
    row = db.query(VoiceCallback).filter(VoiceCallback.call_sid == "CA-form").one()
    assert row.status == "busy"


def test_invalid_token_is_rejected_without_side_effects(client, db):
    response = client.post(
        "/api/webhooks/exotel/call-callback/cb-3/deadbeefdeadbeefdeadbeefdeadbeef",
        json={"CallSid": "CA-forged", "Status": "completed"},
    )
    assert response.status_code == 401
    assert db.query(VoiceCallback).filter(VoiceCallback.call_sid == "CA-forged").count() == 0


def test_sms_callback_replay_is_idempotent(client, db):
    payload = {"SmsSid": "SM-hook", "Status": "sent", "To": "9876543210", "SmsUnits": "1"}
    for _ in range(2):
        response = client.post(f"/api/webhooks/exotel/sms-callback/cb-4/{TOKEN}", json=payload)
        assert response.status_code == 200
        assert response.json()["sms_sid"] == "SM-hook"
    assert db.query(SmsCallback).filter(SmsCallback.sms_sid == "SM-hook").count() == 1


def test_callback_without_identifier_still_acknowledged(client, db):
    response = client.post(f"/api/webhooks/exotel/call-callback/cb-5/{TOKEN}", json={"Status": "completed"})
    assert response.status_code == 200
    assert response.json()["call_sid"] is None
    assert db.query(VoiceCallback).count() == 0


def test_voice_callbacks_listing(client, agent_headers):
    client.post(
        f"/api/webhooks/exotel/call-callback/cb-6/{TOKEN}",
        json={"CallSid": "CA-list", "To": "08047112233"},
    )
    response = client.get("/api/exotel/voice-callbacks?toNumber=08047112233", headers=agent_headers)
    assert response.status_code == 200
    assert [item["call_sid"] for item in response.json()] == ["CA-list"]


def test_call_progress_deliveries_converge_on_one_row(client, db):
    url = f"/api/webhooks/exotel/call-callback/cb-7/{TOKEN}"
    assert client.post(url, json={"CallSid": "CA1", "Status": "in-progress", "To": "08047112233"}).status_code == 200
    assert client.post(
        url,
        json={
            "CallSid": "CA1",
            "Status": "completed",
            "Duration": "42",
            "RecordingUrl": "https://rec.example.test/CA1.mp3",
        },
    ).status_code == 200

    rows = db.query(VoiceCallback).filter(VoiceCallback.call_sid == "CA1").all()
    assert len(rows) == 1
    assert rows[0].status == "completed"
    assert rows[0].duration == "42"
    assert rows[0].recording_url == "https://rec.example.test/CA1.mp3"
    assert rows[0].to_number == "08047112233"
