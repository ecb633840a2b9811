import asyncio
import base64
import hashlib
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, List, Optional

import httpx

from exocall.core.config import Settings

logger = logging.getLogger(__name__)

MAX_RETRIES = 3
RETRYABLE_STATUSES = {429, 503}
BULK_PAGE_SIZE = 100
BULK_MAX_PAGES = 50


class ExotelError(Exception):
    pass


class ExotelConfigurationError(ExotelError):
    pass


class ExotelRetryExhausted(ExotelError):
    def __init__(self, url: str, status_code: int, attempts: int) -> None:
        super().__init__(
            f"Max retries exceeded for Exotel API request to {url} "
            f"(last status {status_code} after {attempts} attempts)"
        )
        self.url = url
        self.status_code = status_code
        self.attempts = attempts


@dataclass(frozen=True)
class ExotelCredentials:
    api_key: str
    api_secret: str
    account_sid: str
    from_number: str
    caller_id: str
    api_domain: str
    token_md5: str

    @property
    def account_url(self) -> str:
        return f"{self.api_domain}/v1/Accounts/{self.account_sid}"


def compute_token_md5(api_key: str, api_secret: str) -> str:
    return hashlib.md5(f"{api_key}:{api_secret}".encode()).hexdigest()


def format_exotel_datetime(value: datetime) -> str:
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc)
    return value.strftime("%Y-%m-%d %H:%M:%S")


def load_credentials(settings: Settings) -> ExotelCredentials:
    api_key = settings.exotel_api_key
    api_secret = settings.exotel_api_secret
    account_sid = settings.exotel_sid
    if not api_key or not api_secret or not account_sid:
        raise ExotelConfigurationError(
            "Missing Exotel configuration. Please set EXOTEL_API_KEY, "
            "EXOTEL_API_SECRET, and EXOTEL_SID"
        )
    from_number = settings.exotel_from_number or ""
    return ExotelCredentials(
        api_key=api_key,
        api_secret=api_secret,
        account_sid=account_sid,
        from_number=from_number,
        caller_id=settings.exotel_caller_id or from_number,
        api_domain=settings.exotel_base_url,
        token_md5=compute_token_md5(api_key, api_secret),
    )


class ExotelClient:
    """Authenticated access to the Exotel REST API over one pooled httpx client."""

    def __init__(
        self,
        settings: Settings,
        http_client: Optional[httpx.AsyncClient] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.settings = settings
        self._http = http_client or httpx.AsyncClient(
            timeout=settings.exotel_request_timeout_seconds,
            follow_redirects=True,
        )
        self._sleep = sleep

    def credentials(self) -> ExotelCredentials:
        return load_credentials(self.settings)

    async def aclose(self) -> None:
        await self._http.aclose()

    def _auth_headers(self, credentials: ExotelCredentials) -> Dict[str, str]:
        token = base64.b64encode(
            f"{credentials.api_key}:{credentials.api_secret}".encode()
        ).decode()
        return {"Authorization": f"Basic {token}"}

    async def post_form(
        self, url: str, data: Dict[str, str], credentials: Optional[ExotelCredentials] = None
    ) -> Any:
        """POST a form payload, retrying 429/503 with 2s/4s/8s backoff.

        Any other HTTP or transport failure propagates on the first occurrence.
        """
        credentials = credentials or self.credentials()
        headers = self._auth_headers(credentials)
        headers["Content-Type"] = "application/x-www-form-urlencoded"
        for attempt in range(MAX_RETRIES + 1):
            logger.debug(
                "Making request to: %s (attempt %s/%s)", url, attempt + 1, MAX_RETRIES + 1
            )
            response = await self._http.post(url, data=data, headers=headers)
            if response.status_code in RETRYABLE_STATUSES:
                if attempt < MAX_RETRIES:
                    delay = 2 ** (attempt + 1)
                    logger.warning(
                        "Rate limited (%s), retrying in %ss (attempt %s/%s)",
                        response.status_code,
                        delay,
                        attempt + 1,
                        MAX_RETRIES,
                    )
                    await self._sleep(delay)
                    continue
                logger.error(
                    "Exotel request to %s still throttled after %s retries", url, MAX_RETRIES
                )
                raise ExotelRetryExhausted(url, response.status_code, attempt + 1)
            if response.is_error:
                logger.error(
                    "HTTP request failed: %s %s - %s", response.status_code, url, response.text
                )
            response.raise_for_status()
            return response.json()

    async def get_json(
        self,
        url: str,
        params: Optional[Dict[str, Any]] = None,
        credentials: Optional[ExotelCredentials] = None,
    ) -> Any:
        credentials = credentials or self.credentials()
        headers = self._auth_headers(credentials)
        headers["Content-Type"] = "application/json"
        response = await self._http.get(url, params=params, headers=headers)
        response.raise_for_status()
        return response.json()

    async def stream_get(self, url: str) -> httpx.Response:
        """Open an authenticated streaming GET; the caller must close the response."""
        credentials = self.credentials()
        request = self._http.build_request("GET", url, headers=self._auth_headers(credentials))
        response = await self._http.send(request, stream=True)
        if response.is_error:
            await response.aread()
            await response.aclose()
            response.raise_for_status()
        return response

    async def send_sms(self, data: Dict[str, str], credentials: ExotelCredentials) -> Any:
        return await self.post_form(
            f"{credentials.account_url}/Sms/send.json", data, credentials
        )

    async def connect_call(self, data: Dict[str, str], credentials: ExotelCredentials) -> Any:
        return await self.post_form(
            f"{credentials.account_url}/Calls/connect.json", data, credentials
        )

    async def get_call_details(self, call_sid: str) -> Dict[str, Any]:
        credentials = self.credentials()
        logger.info("Getting call details for CallSid: %s", call_sid)
        data = await self.get_json(
            f"{credentials.account_url}/Calls/{call_sid}.json", credentials=credentials
        )
        if isinstance(data, dict) and "Call" in data:
            return data["Call"]
        return data

    async def fetch_bulk_call_details(self, start: datetime, end: datetime) -> Dict[str, Any]:
        """Return ``{"Calls": [...]}`` for every call created in ``[start, end]``.

        Follows ``Metadata.NextPageUri`` so large windows are not truncated.
        """
        credentials = self.credentials()
        date_filter = f"gte:{format_exotel_datetime(start)};lte:{format_exotel_datetime(end)}"
        logger.info(
            "Fetching bulk call details from %s to %s", start.isoformat(), end.isoformat()
        )
        url = f"{credentials.account_url}/Calls.json"
        params: Optional[Dict[str, Any]] = {"DateCreated": date_filter, "PageSize": BULK_PAGE_SIZE}
        calls: List[Dict[str, Any]] = []
        for _ in range(BULK_MAX_PAGES):
            data = await self.get_json(url, params=params, credentials=credentials) or {}
            calls.extend(data.get("Calls") or [])
            next_page = (data.get("Metadata") or {}).get("NextPageUri")
            if not next_page:
                break
            url = next_page if next_page.startswith("http") else f"{credentials.api_domain}{next_page}"
            params = None
        else:
            logger.warning("Bulk call details truncated after %s pages", BULK_MAX_PAGES)
        logger.info("Bulk call details fetched: %s calls", len(calls))
        return {"Calls": calls}

    async def check_heartbeat(self) -> Dict[str, Any]:
        credentials = self.credentials()
        data = await self.get_json(
            f"{credentials.account_url}/Heartbeat", credentials=credentials
        )
        logger.info("Exophone health status: %s", (data or {}).get("status_type", "Unknown"))
        return data

    async def list_incoming_phone_numbers(self) -> List[Dict[str, Any]]:
        credentials = self.credentials()
        url = f"{credentials.api_domain}/v2_beta/Accounts/{credentials.account_sid}/IncomingPhoneNumbers"
        data = await self.get_json(url, credentials=credentials) or {}
        exophones = data.get("incoming_phone_numbers") or []
        logger.info("Fetched %s ExoPhones from Exotel", len(exophones))
        return exophones

    async def list_users(self, include_active_call: bool = True) -> Dict[str, Any]:
        credentials = self.credentials()
        fields = "devices,active_call" if include_active_call else "devices"
        url = f"{self.settings.exotel_ccm_base_url}/v2/accounts/{credentials.account_sid}/users"
        data = await self.get_json(url, params={"fields": fields}, credentials=credentials) or {}
        users = (data.get("response") or {}).get("users") or []
        logger.info("Exotel users retrieved: %s users", len(users))
        return {
            "users": users,
            "count": len(users),
            "request_id": data.get("request_id"),
            "metadata": data.get("metadata"),
        }
