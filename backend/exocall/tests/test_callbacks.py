from concurrent.futures import ThreadPoolExecutor

from exocall.models import SmsCallback, VoiceCallback
from exocall.services.callbacks import (
    SMS_FIELDS,
    VOICE_FIELDS,
    normalize_payload,
    recent_voice_callbacks,
    save_sms_callback,
    save_voice_callback,
)
from exocall.core.database import SessionLocal


def test_normalize_prefers_pascal_case_and_drops_blanks():
    values = normalize_payload(
        {"CallSid": "CA1", "call_sid": "ignored", "To": "", "to": "0804", "Duration": 42},
        VOICE_FIELDS,
    )
    assert values == {"call_sid": "CA1", "to_number": "0804", "duration": "42"}


def test_normalize_coerces_sms_units():
    values = normalize_payload({"sms_sid": "SM1", "SmsUnits": "2"}, SMS_FIELDS)
    assert values == {"sms_sid": "SM1", "sms_units": 2}


def test_repeated_delivery_keeps_one_row(db):
    payload = {"CallSid": "CA-dup", "Status": "ringing", "To": "08047112233", "From": "9876543210"}
    first = save_voice_callback(db, payload, "origin-token")
    second = save_voice_callback(db, {**payload, "Status": "completed", "Duration": "75"})

    assert first.id == second.id
    assert db.query(VoiceCallback).filter(VoiceCallback.call_sid == "CA-dup").count() == 1
    assert second.status == "completed"
    assert second.duration == "75"
    # Origin tag and identity columns are set on insert only.
    assert second.user_id == "origin-token"
    assert second.from_number == "9876543210"


def test_partial_update_keeps_stored_progress(db):
    save_voice_callback(
        db,
        {"CallSid": "CA-partial", "Status": "completed", "RecordingUrl": "https://rec/1.mp3", "Duration": "90"},
    )
    row = save_voice_callback(db, {"call_sid": "CA-partial", "status": "completed"})
    assert row.recording_url == "https://rec/1.mp3"
    assert row.duration == "90"


def test_snake_and_pascal_deliveries_hit_same_row(db):
    save_sms_callback(db, {"SmsSid": "SM-alias", "Status": "queued", "To": "9876543210"})
    row = save_sms_callback(db, {"sms_sid": "SM-alias", "status": "sent", "detailed_status": "DELIVERED_TO_HANDSET"})
    assert row.status == "sent"
    assert row.detailed_status == "DELIVERED_TO_HANDSET"
    assert row.to_number == "9876543210"
    assert db.query(SmsCallback).filter(SmsCallback.sms_sid == "SM-alias").count() == 1


def test_missing_identifier_is_a_no_op(db):
    assert save_voice_callback(db, {"Status": "completed"}) is None
    assert save_sms_callback(db, {"Status": "sent"}) is None
    assert db.query(VoiceCallback).count() == 0
    assert db.query(SmsCallback).count() == 0


def test_concurrent_deliveries_do_not_duplicate():
    def deliver(status):
        session = SessionLocal()
        try:
            save_voice_callback(session, {"CallSid": "CA-race", "Status": status})
        finally:
            session.close()

    with ThreadPoolExecutor(max_workers=4) as pool:
        list(pool.map(deliver, ["ringing", "in-progress", "completed", "completed"]))

    session = SessionLocal()
    try:
        assert session.query(VoiceCallback).filter(VoiceCallback.call_sid == "CA-race").count() == 1
    finally:
        session.close()


def test_recent_voice_callbacks_filters_by_number(db):
    save_voice_callback(db, {"CallSid": "CA-a", "To": "111"})
    save_voice_callback(db, {"CallSid": "CA-b", "To": "222"})
    assert [row.call_sid for row in recent_voice_callbacks(db, "111")] == ["CA-a"]


def test_recent_voice_callbacks_match_number_spellings(db):
    save_voice_callback(db, {"CallSid": "CA-intl", "To": "+918047112233"})
    save_voice_callback(db, {"CallSid": "CA-trunk", "To": "08047112233"})
    found = {row.call_sid for row in recent_voice_callbacks(db, "8047112233")}
    assert found == {"CA-intl", "CA-trunk"}


def _stored_fields(row):
    skip = {"id", "call_sid", "created_at", "updated_at"}
    return {column.name: getattr(row, column.key) for column in row.__mapper__.columns if column.name not in skip}


def test_snake_and_pascal_payloads_store_identical_rows(db):
    pascal = save_voice_callback(
        db,
        {
            "CallSid": "CA-pascal",
            "Status": "completed",
            "To": "08047112233",
            "From": "9876543210",
            "Direction": "inbound",
            "Duration": "42",
            "StartTime": "2026-10-19 10:00:00",
            "AnsweredBy": "human",
            "RecordingUrl": "https://rec.example.test/x.mp3",
        },
        "origin",
    )
    snake = save_voice_callback(
        db,
        {
            "call_sid": "CA-snake",
            "status": "completed",
            "to": "08047112233",
            "from": "9876543210",
            "direction": "inbound",
            "duration": "42",
            "start_time": "2026-10-19 10:00:00",
            "answered_by": "human",
            "recording_url": "https://rec.example.test/x.mp3",
        },
        "origin",
    )
    assert _stored_fields(pascal) == _stored_fields(snake)
    assert _stored_fields(pascal)["duration"] == "42"
