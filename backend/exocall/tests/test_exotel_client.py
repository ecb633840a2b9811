import asyncio
import base64
import hashlib
from datetime import datetime, timezone
from urllib.parse import parse_qs

import httpx
import pytest

from exocall.core.config import Settings
from exocall.services.exotel_client import (
    ExotelClient,
    ExotelConfigurationError,
    ExotelRetryExhausted,
    compute_token_md5,
)


def make_client(exotel_settings, handler, sleeps=None):
    async def fake_sleep(seconds):
        if sleeps is not None:
            sleeps.append(seconds)

    http = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return ExotelClient(exotel_settings, http_client=http, sleep=fake_sleep)


def test_token_md5_matches_key_secret_digest():
    assert compute_token_md5("k", "s") == hashlib.md5(b"k:s").hexdigest()


def test_missing_credentials_raise_configuration_error():
    client = ExotelClient(Settings(exotel_api_key=None, exotel_api_secret=None, exotel_sid=None))
    with pytest.raises(ExotelConfigurationError):
        client.credentials()


def test_post_form_sends_basic_auth_and_form(exotel_settings):
    seen = {}

    def handler(request):
        seen["auth"] = request.headers["authorization"]
        seen["url"] = str(request.url)
        seen["form"] = parse_qs(request.content.decode())
        return httpx.Response(200, json={"SMSMessage": {"Sid": "sms-1"}})

    client = make_client(exotel_settings, handler)
    creds = client.credentials()
    result = asyncio.run(client.send_sms({"To": "9876543210", "Body": "hi"}, creds))

    assert result == {"SMSMessage": {"Sid": "sms-1"}}
    assert seen["url"] == "https://api.exotel.com/v1/Accounts/testaccount/Sms/send.json"
    expected = base64.b64encode(b"test-key:test-secret").decode()
    assert seen["auth"] == f"Basic {expected}"
    assert seen["form"] == {"To": ["9876543210"], "Body": ["hi"]}


def test_throttled_requests_back_off_then_succeed(exotel_settings):
    statuses = iter([429, 503, 200])
    sleeps = []

    def handler(request):
        status = next(statuses)
        if status == 200:
            return httpx.Response(200, json={"Call": {"Sid": "c1"}})
        return httpx.Response(status, text="slow down")

    client = make_client(exotel_settings, handler, sleeps)
    result = asyncio.run(client.connect_call({"From": "1"}, client.credentials()))
    assert result == {"Call": {"Sid": "c1"}}
    assert sleeps == [2, 4]


def test_three_throttled_responses_then_success(exotel_settings):
    statuses = iter([429, 429, 429, 200])
    calls = []
    sleeps = []

    def handler(request):
        calls.append(request)
        status = next(statuses)
        if status == 200:
            return httpx.Response(200, json={"SMSMessage": {"Sid": "sms-late"}})
        return httpx.Response(status)

    client = make_client(exotel_settings, handler, sleeps)
    result = asyncio.run(client.send_sms({"To": "9876543210"}, client.credentials()))

    assert result == {"SMSMessage": {"Sid": "sms-late"}}
    assert len(calls) == 4
    assert sleeps == [2, 4, 8]


def test_retries_exhausted_after_three_backoffs(exotel_settings):
    calls = []
    sleeps = []

    def handler(request):
        calls.append(request)
        return httpx.Response(429)

    client = make_client(exotel_settings, handler, sleeps)
    with pytest.raises(ExotelRetryExhausted) as info:
        asyncio.run(client.connect_call({"From": "1"}, client.credentials()))
    assert len(calls) == 4
    assert sleeps == [2, 4, 8]
    assert info.value.status_code == 429
    assert info.value.attempts == 4


def test_other_errors_are_not_retried(exotel_settings):
    calls = []

    def handler(request):
        calls.append(request)
        return httpx.Response(400, json={"RestException": {"Message": "bad number"}})

    client = make_client(exotel_settings, handler)
    with pytest.raises(httpx.HTTPStatusError) as info:
        asyncio.run(client.connect_call({"From": "1"}, client.credentials()))
    assert info.value.response.status_code == 400
    assert len(calls) == 1


def test_transport_errors_propagate_immediately(exotel_settings):
    calls = []

    def handler(request):
        calls.append(request)
        raise httpx.ConnectError("refused", request=request)

    client = make_client(exotel_settings, handler)
    with pytest.raises(httpx.ConnectError):
        asyncio.run(client.connect_call({"From": "1"}, client.credentials()))
    assert len(calls) == 1


def test_bulk_call_details_follows_pages(exotel_settings):
    requests = []

    def handler(request):
        requests.append(request)
        if "Page=1" in str(request.url):
            return httpx.Response(200, json={"Calls": [{"Sid": "b"}], "Metadata": {}})
        return httpx.Response(
            200,
            json={
                "Calls": [{"Sid": "a"}],
                "Metadata": {"NextPageUri": "/v1/Accounts/testaccount/Calls.json?Page=1"},
            },
        )

    client = make_client(exotel_settings, handler)
    start = datetime(2026, 10, 18, 6, 30, tzinfo=timezone.utc)
    end = datetime(2026, 10, 19, 6, 30, tzinfo=timezone.utc)
    result = asyncio.run(client.fetch_bulk_call_details(start, end))

    assert [call["Sid"] for call in result["Calls"]] == ["a", "b"]
    assert requests[0].url.params["DateCreated"] == "gte:2026-10-18 06:30:00;lte:2026-10-19 06:30:00"
    assert str(requests[1].url) == "https://api.exotel.com/v1/Accounts/testaccount/Calls.json?Page=1"


def test_list_users_reads_ccm_api(exotel_settings):
    seen = {}

    def handler(request):
        seen["url"] = request.url
        return httpx.Response(
            200,
            json={"request_id": "r1", "response": {"users": [{"id": "u1"}]}, "metadata": {"total": 1}},
        )

    client = make_client(exotel_settings, handler)
    result = asyncio.run(client.list_users(include_active_call=False))
    assert seen["url"].host == "ccm-api.exotel.com"
    assert seen["url"].path == "/v2/accounts/testaccount/users"
    assert seen["url"].params["fields"] == "devices"
    assert result["count"] == 1
    assert result["request_id"] == "r1"
