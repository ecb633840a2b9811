import asyncio
import logging
import uuid
from typing import Any, Awaitable, Callable, Dict, Optional, Set

from sqlalchemy.orm import Session

from exocall.core.config import Settings
from exocall.services.callbacks import (
    VOICE_FIELDS,
    normalize_payload,
    save_sms_callback,
    save_voice_callback,
    save_voice_values,
)
from exocall.services.events import discard_event
from exocall.services.exotel_client import ExotelClient, ExotelCredentials
from exocall.services.rate_limit import ProviderRateLimiter

logger = logging.getLogger(__name__)

MANUAL_SYNC_ORIGIN = "manual_sync"
MANUAL_SYNC_FIELDS = ("status", "end_time", "duration", "answered_by", "recording_url")


class ExotelService:
    """Outbound SMS and voice operations, paced through the provider queues."""

    def __init__(
        self,
        client: ExotelClient,
        limiter: ProviderRateLimiter,
        session_factory: Callable[[], Session],
        settings: Settings,
        publish: Callable[[dict], Awaitable[None]] = discard_event,
    ) -> None:
        self.client = client
        self.limiter = limiter
        self.session_factory = session_factory
        self.settings = settings
        self.publish = publish
        self.callback_id = str(uuid.uuid4())
        self._background: Set[asyncio.Task] = set()

    def status_callback_url(self, kind: str, credentials: ExotelCredentials) -> str:
        return (
            f"{self.settings.public_base_url}/api/webhooks/exotel/{kind}-callback/"
            f"{self.callback_id}/{credentials.token_md5}"
        )

    async def send_sms(
        self, to_number: str, message: str, dlt_template_id: str, dlt_entity_id: str
    ) -> Any:
        return await self.limiter.sms.schedule(
            lambda: self._send_sms(to_number, message, dlt_template_id, dlt_entity_id)
        )

    async def make_call(
        self, to_number: str, from_number: Optional[str] = None, record: str = "true"
    ) -> Any:
        return await self.limiter.voice.schedule(
            lambda: self._make_call(to_number, from_number, record)
        )

    async def connect_call(self, from_number: str, to_number: str) -> Any:
        return await self.limiter.voice.schedule(lambda: self._connect_call(from_number, to_number))

    async def _send_sms(
        self, to_number: str, message: str, dlt_template_id: str, dlt_entity_id: str
    ) -> Any:
        logger.info("Sending SMS to: %s", to_number)
        credentials = self.client.credentials()
        callback_url = self.status_callback_url("sms", credentials)
        logger.info("SMS Callback URL: %s", callback_url)
        data = {
            "From": credentials.from_number,
            "To": to_number,
            "Body": message,
            "StatusCallback": callback_url,
            "StatusCallbackContentType": "application/json",
            "SmsType": "promotional",
            "DltTemplateId": dlt_template_id,
            "DltEntityId": dlt_entity_id,
        }
        try:
            response = await self.client.send_sms(data, credentials)
        except Exception:
            logger.exception("Error sending SMS to %s", to_number)
            raise
        logger.debug("SMS response: %s", response)
        self._detach("sms", self._save_initial_sms, response, credentials.token_md5)
        return response

    async def _make_call(self, to_number: str, from_number: Optional[str], record: str) -> Any:
        logger.info("Making voice call to: %s", to_number)
        credentials = self.client.credentials()
        callback_url = self.status_callback_url("call", credentials)
        logger.info("Call Callback URL: %s", callback_url)
        data = {
            "From": to_number,
            "To": from_number or credentials.from_number,
            "CallerId": credentials.caller_id,
            "StatusCallback": callback_url,
            "StatusCallbackContentType": "application/json",
            "Record": record,
        }
        try:
            response = await self.client.connect_call(data, credentials)
        except Exception:
            logger.exception("Error making voice call to %s", to_number)
            raise
        logger.debug("Voice call response: %s", response)
        self._detach("voice", self._save_initial_voice, response, credentials.token_md5)
        return response

    async def _connect_call(self, from_number: str, to_number: str) -> Any:
        logger.info("Connecting call from: %s to: %s", from_number, to_number)
        credentials = self.client.credentials()
        data = {
            "From": from_number,
            "To": to_number,
            "CallerId": credentials.caller_id,
            "StatusCallback": self.status_callback_url("call", credentials),
            "StatusCallbackContentType": "application/json",
        }
        try:
            response = await self.client.connect_call(data, credentials)
        except Exception:
            logger.exception("Error connecting call from %s to %s", from_number, to_number)
            raise
        logger.debug("Connect call response: %s", response)
        return response

    def _detach(self, label: str, save: Callable[[Any, str], None], response: Any, origin: str) -> None:
        task = asyncio.create_task(self._persist_initial(label, save, response, origin))
        self._background.add(task)
        task.add_done_callback(self._background.discard)

    async def _persist_initial(
        self, label: str, save: Callable[[Any, str], None], response: Any, origin: str
    ) -> None:
        try:
            save(response, origin)
        except Exception:
            logger.exception("Async %s callback save failed", label)

    def _save_initial_sms(self, response: Any, origin: str) -> None:
        sms = (response or {}).get("SMSMessage") if isinstance(response, dict) else None
        if not sms:
            return
        db = self.session_factory()
        try:
            save_sms_callback(
                db,
                {
                    "SmsSid": sms.get("Sid"),
                    "To": sms.get("To"),
                    "Status": sms.get("Status"),
                    "DetailedStatus": sms.get("DetailedStatus"),
                    "DateSent": sms.get("DateSent"),
                },
                origin,
            )
        finally:
            db.close()

    def _save_initial_voice(self, response: Any, origin: str) -> None:
        call = (response or {}).get("Call") if isinstance(response, dict) else None
        if not call:
            return
        db = self.session_factory()
        try:
            save_voice_callback(
                db,
                {
                    "Sid": call.get("Sid"),
                    "CallSid": call.get("Sid"),
                    "To": call.get("To"),
                    "From": call.get("From"),
                    "Status": call.get("Status"),
                    "DateCreated": call.get("DateCreated"),
                },
                origin,
            )
        finally:
            db.close()

    async def drain(self) -> None:
        """Wait for detached persistence tasks; used on shutdown."""
        if self._background:
            await asyncio.gather(*list(self._background), return_exceptions=True)

    async def sync_call(self, call_sid: str) -> Dict[str, Any]:
        logger.info("Manual sync requested for CallSid: %s", call_sid)
        call = await self.client.get_call_details(call_sid)
        values = normalize_payload(call or {}, VOICE_FIELDS)
        values["call_sid"] = call_sid
        values["status"] = (values.get("status") or "unknown").lower()
        db = self.session_factory()
        try:
            record = save_voice_values(db, values, MANUAL_SYNC_ORIGIN, MANUAL_SYNC_FIELDS)
        finally:
            db.close()
        await self.publish({"type": "call_updated", "payload": {"call_sid": call_sid}})
        logger.info("Call %s synced successfully", call_sid)
        return {"success": True, "call": record}

    async def list_users(self, include_active_call: bool = True) -> Dict[str, Any]:
        return await self.client.list_users(include_active_call)
