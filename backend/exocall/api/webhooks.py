import logging

from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session

from exocall.core.database import get_db
from exocall.services.callbacks import save_sms_callback, save_voice_callback
from exocall.services.webhook_guard import read_webhook_payload, verify_webhook_token

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/webhooks/exotel", tags=["webhooks"])


def _first(payload: dict, *keys: str):
    for key in keys:
        if payload.get(key):
            return payload[key]
    return None


@router.post("/sms-callback/{callbackId}/{tokenMd5}")
async def sms_callback(
    callbackId: str,
    request: Request,
    tokenMd5: str = Depends(verify_webhook_token),
    db: Session = Depends(get_db),
):
    payload = await read_webhook_payload(request)
    logger.info("Received SMS callback %s", callbackId)
    save_sms_callback(db, payload, tokenMd5)
    sms_sid = _first(payload, "SmsSid", "sms_sid")
    status = _first(payload, "Status", "status")
    await request.app.state.publish({"type": "sms_updated", "payload": {"sms_sid": sms_sid, "status": status}})
    return {
        "message": "SMS callback received and processed successfully",
        "callback_id": callbackId,
        "sms_sid": sms_sid,
        "status": status,
    }


@router.post("/call-callback/{callbackId}/{tokenMd5}")
async def call_callback(
    callbackId: str,
    request: Request,
    tokenMd5: str = Depends(verify_webhook_token),
    db: Session = Depends(get_db),
):
    payload = await read_webhook_payload(request)
    logger.info("Received voice callback %s", callbackId)
    save_voice_callback(db, payload, tokenMd5)
    call_sid = _first(payload, "CallSid", "call_sid")
    status = _first(payload, "Status", "status")
    await request.app.state.publish({"type": "call_updated", "payload": {"call_sid": call_sid, "status": status}})
    return {
        "message": "Voice callback received and processed successfully",
        "callback_id": callbackId,
        "call_sid": call_sid,
        "status": status,
    }
