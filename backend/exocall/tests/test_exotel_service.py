import asyncio
from urllib.parse import parse_qs

import httpx

from exocall.models import SmsCallback, VoiceCallback
from exocall.services.exotel_client import ExotelClient, compute_token_md5
from exocall.services.exotel_service import ExotelService
from exocall.services.rate_limit import PacedQueue, ProviderRateLimiter
from exocall.core.database import SessionLocal

TOKEN = compute_token_md5("test-key", "test-secret")


async def no_sleep(seconds):
    return None


def make_service(exotel_settings, handler, session_factory=SessionLocal):
    http = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    client = ExotelClient(exotel_settings, http_client=http, sleep=no_sleep)
    limiter = ProviderRateLimiter(
        voice=PacedQueue("voice", 0.3, reservoir=200, sleep=no_sleep),
        sms=PacedQueue("sms", 0.5, sleep=no_sleep),
    )
    return ExotelService(client, limiter, session_factory, exotel_settings)


def test_send_sms_payload_and_initial_record(exotel_settings, db):
    seen = {}

    def handler(request):
        seen["url"] = str(request.url)
        seen["form"] = {key: values[0] for key, values in parse_qs(request.content.decode()).items()}
        return httpx.Response(
            200,
            json={"SMSMessage": {"Sid": "SM-out", "To": "9876543210", "Status": "queued"}},
        )

    service = make_service(exotel_settings, handler)

    async def scenario():
        response = await service.send_sms("9876543210", "hello", "tpl-1", "ent-1")
        await service.drain()
        return response

    response = asyncio.run(scenario())

    assert response["SMSMessage"]["Sid"] == "SM-out"
    assert seen["url"].endswith("/v1/Accounts/testaccount/Sms/send.json")
    form = seen["form"]
    assert form["From"] == "08047000000"
    assert form["To"] == "9876543210"
    assert form["Body"] == "hello"
    assert form["SmsType"] == "promotional"
    assert form["DltTemplateId"] == "tpl-1"
    assert form["DltEntityId"] == "ent-1"
    assert form["StatusCallbackContentType"] == "application/json"
    assert form["StatusCallback"] == (
        f"https://hooks.example.test/api/webhooks/exotel/sms-callback/{service.callback_id}/{TOKEN}"
    )

    row = db.query(SmsCallback).filter(SmsCallback.sms_sid == "SM-out").one()
    assert row.status == "queued"
    assert row.user_id == TOKEN


def test_make_call_uses_caller_id_and_persists(exotel_settings, db):
    seen = {}

    def handler(request):
        seen["form"] = {key: values[0] for key, values in parse_qs(request.content.decode()).items()}
        return httpx.Response(
            200,
            json={"Call": {"Sid": "CA-out", "To": "08047000000", "From": "9876543210", "Status": "in-progress"}},
        )

    service = make_service(exotel_settings, handler)

    async def scenario():
        await service.make_call("9876543210")
        await service.drain()

    asyncio.run(scenario())

    form = seen["form"]
    assert form["From"] == "9876543210"
    assert form["To"] == "08047000000"
    assert form["CallerId"] == "08047000001"
    assert form["Record"] == "true"
    assert "/call-callback/" in form["StatusCallback"]

    row = db.query(VoiceCallback).filter(VoiceCallback.call_sid == "CA-out").one()
    assert row.status == "in-progress"


def test_connect_call_does_not_persist(exotel_settings, db):
    def handler(request):
        return httpx.Response(200, json={"Call": {"Sid": "CA-connect", "Status": "queued"}})

    service = make_service(exotel_settings, handler)

    async def scenario():
        await service.connect_call("9876543210", "9123456780")
        await service.drain()

    asyncio.run(scenario())
    assert db.query(VoiceCallback).filter(VoiceCallback.call_sid == "CA-connect").count() == 0


def test_persistence_failure_does_not_fail_send(exotel_settings):
    def handler(request):
        return httpx.Response(200, json={"SMSMessage": {"Sid": "SM-lost", "Status": "queued"}})

    def broken_session():
        raise RuntimeError("database unavailable")

    service = make_service(exotel_settings, handler, session_factory=broken_session)

    async def scenario():
        response = await service.send_sms("9876543210", "hello", "tpl", "ent")
        await service.drain()
        return response

    assert asyncio.run(scenario())["SMSMessage"]["Sid"] == "SM-lost"


def test_sync_call_updates_only_progress_fields(exotel_settings, db):
    db.add(VoiceCallback(call_sid="CA-sync", to_number="08047112233", status="in-progress", user_id="origin"))
    db.commit()

    def handler(request):
        assert request.url.path.endswith("/Calls/CA-sync.json")
        return httpx.Response(
            200,
            json={
                "Call": {
                    "Sid": "CA-sync",
                    "To": "0000000000",
                    "Status": "Completed",
                    "Duration": "75",
                    "EndTime": "2026-10-19 10:01:15",
                    "RecordingUrl": "https://recordings.example.test/CA-sync.mp3",
                }
            },
        )

    service = make_service(exotel_settings, handler)
    result = asyncio.run(service.sync_call("CA-sync"))

    assert result["success"] is True
    db.expire_all()
    row = db.query(VoiceCallback).filter(VoiceCallback.call_sid == "CA-sync").one()
    assert row.status == "completed"
    assert row.duration == "75"
    assert row.recording_url == "https://recordings.example.test/CA-sync.mp3"
    assert row.to_number == "08047112233"
    assert row.user_id == "origin"
