import logging
import math
from datetime import datetime
from typing import Any, AsyncIterator, Dict, Optional

import httpx
from sqlalchemy import or_
from sqlalchemy.orm import Session

from exocall.models import VoiceCallback
from exocall.services.exotel_client import ExotelClient

logger = logging.getLogger(__name__)


def stream_path(call_sid: str) -> str:
    return f"/api/exotel/recordings/{call_sid}/stream"


def get_call(db: Session, call_sid: str) -> Optional[VoiceCallback]:
    return db.query(VoiceCallback).filter(VoiceCallback.call_sid == call_sid).first()


def recording_metadata(call: VoiceCallback) -> Dict[str, Any]:
    has_recording = bool(call.recording_url)
    return {
        "call_sid": call.call_sid,
        "has_recording": has_recording,
        "recording_url": stream_path(call.call_sid) if has_recording else None,
        "status": call.status,
        "duration": call.duration,
        "start_time": call.start_time,
        "end_time": call.end_time,
        "from_number": call.from_number,
        "to_number": call.to_number,
        "direction": call.direction,
        "created_at": call.created_at,
    }


def calls_with_recordings(
    db: Session,
    start_date: Optional[datetime] = None,
    end_date: Optional[datetime] = None,
    direction: Optional[str] = None,
    phone_number: Optional[str] = None,
    limit: int = 50,
    offset: int = 0,
) -> Dict[str, Any]:
    query = db.query(VoiceCallback).filter(VoiceCallback.recording_url.isnot(None))
    if start_date:
        query = query.filter(VoiceCallback.created_at >= start_date)
    if end_date:
        query = query.filter(VoiceCallback.created_at <= end_date)
    if direction:
        query = query.filter(VoiceCallback.direction == direction)
    if phone_number:
        pattern = f"%{phone_number}%"
        query = query.filter(
            or_(VoiceCallback.from_number.like(pattern), VoiceCallback.to_number.like(pattern))
        )
    total = query.count()
    calls = (
        query.order_by(VoiceCallback.created_at.desc(), VoiceCallback.id.desc())
        .offset(offset)
        .limit(limit)
        .all()
    )
    return {
        "calls": [recording_metadata(call) for call in calls],
        "total": total,
        "page": offset // limit + 1,
        "limit": limit,
        "total_pages": math.ceil(total / limit),
    }


def clear_recording_reference(db: Session, call: VoiceCallback) -> None:
    """Forget the recording link locally; the file stays on Exotel."""
    call.recording_url = None
    db.commit()
    logger.info("Recording reference deleted for CallSid: %s", call.call_sid)


async def open_recording_stream(client: ExotelClient, recording_url: str) -> httpx.Response:
    logger.debug("Downloading recording from: %s", recording_url)
    return await client.stream_get(recording_url)


async def iter_recording(response: httpx.Response) -> AsyncIterator[bytes]:
    try:
        async for chunk in response.aiter_bytes():
            yield chunk
    finally:
        await response.aclose()
