from datetime import datetime
from typing import Optional

import httpx
from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.responses import StreamingResponse
from sqlalchemy.orm import Session

from exocall.core.database import get_db
from exocall.core.deps import get_current_user, get_exotel_client, require_admin
from exocall.models import User
from exocall.schemas import RecordingMetadata, RecordingPage
from exocall.services.audit import log_event
from exocall.services.exotel_client import ExotelClient
from exocall.services.recordings import (
    calls_with_recordings,
    clear_recording_reference,
    get_call,
    iter_recording,
    open_recording_stream,
    recording_metadata,
)

router = APIRouter(prefix="/exotel/recordings", tags=["recordings"])


@router.get("", response_model=RecordingPage)
def list_recordings(
    start_date: Optional[datetime] = None,
    end_date: Optional[datetime] = None,
    direction: Optional[str] = None,
    phone_number: Optional[str] = None,
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    return calls_with_recordings(db, start_date, end_date, direction, phone_number, limit, offset)


@router.get("/{call_sid}/metadata", response_model=RecordingMetadata)
def get_metadata(call_sid: str, db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    call = get_call(db, call_sid)
    if not call:
        raise HTTPException(status_code=404, detail=f"Call not found: {call_sid}")
    return recording_metadata(call)


@router.get("/{call_sid}/stream")
async def stream_recording(
    call_sid: str,
    db: Session = Depends(get_db),
    client: ExotelClient = Depends(get_exotel_client),
    user: User = Depends(get_current_user),
):
    call = get_call(db, call_sid)
    if not call:
        raise HTTPException(status_code=404, detail=f"Call not found: {call_sid}")
    if not call.recording_url:
        raise HTTPException(status_code=404, detail=f"No recording available for call: {call_sid}")
    try:
        upstream = await open_recording_stream(client, call.recording_url)
    except httpx.HTTPError as exc:
        raise HTTPException(status_code=400, detail=f"Failed to stream recording: {exc}") from exc
    headers = {
        "Content-Disposition": f'inline; filename="recording-{call_sid}.mp3"',
        "Cache-Control": "public, max-age=86400",
        "Accept-Ranges": "bytes",
    }
    if "content-length" in upstream.headers:
        headers["Content-Length"] = upstream.headers["content-length"]
    return StreamingResponse(
        iter_recording(upstream),
        media_type=upstream.headers.get("content-type", "audio/mpeg"),
        headers=headers,
    )


@router.delete("/{call_sid}")
def delete_recording_reference(
    call_sid: str, db: Session = Depends(get_db), admin: User = Depends(require_admin)
):
    call = get_call(db, call_sid)
    if not call:
        raise HTTPException(status_code=404, detail=f"Call not found: {call_sid}")
    clear_recording_reference(db, call)
    log_event(db, "delete_recording_reference", "success", user_id=admin.id, details={"call_sid": call_sid})
    return {"message": "Recording reference deleted successfully"}
