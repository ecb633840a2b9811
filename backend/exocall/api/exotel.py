from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from exocall.core.database import get_db
from exocall.core.deps import (
    get_bulk_sync,
    get_current_user,
    get_exotel_client,
    get_exotel_service,
    require_admin,
    require_manager,
)
from exocall.models import User
from exocall.schemas import (
    ConnectCallRequest,
    MakeCallRequest,
    PhoneNumberOut,
    SendSmsRequest,
    SmsCallbackOut,
    SyncStatusOut,
    VoiceCallbackOut,
)
from exocall.services.audit import log_event
from exocall.services.callbacks import recent_sms_callbacks, recent_voice_callbacks
from exocall.services.exophones import sync_exophones
from exocall.services.exotel_client import ExotelClient
from exocall.services.exotel_service import ExotelService
from exocall.services.sync import BulkSyncReconciler, last_status

router = APIRouter(prefix="/exotel", tags=["exotel"])


@router.post("/send-sms")
async def send_sms(
    payload: SendSmsRequest,
    service: ExotelService = Depends(get_exotel_service),
    user: User = Depends(require_manager),
):
    response = await service.send_sms(
        payload.to_number, payload.message, payload.dlt_template_id, payload.dlt_entity_id
    )
    return {"message": "SMS sent successfully", "data": response}


@router.post("/make-call")
async def make_call(
    payload: MakeCallRequest,
    service: ExotelService = Depends(get_exotel_service),
    user: User = Depends(require_manager),
):
    response = await service.make_call(payload.to_number, payload.from_number, payload.record)
    return {"message": "Call initiated successfully", "data": response}


@router.post("/connect-call")
async def connect_call(
    payload: ConnectCallRequest,
    service: ExotelService = Depends(get_exotel_service),
    user: User = Depends(require_manager),
):
    response = await service.connect_call(payload.from_number, payload.to_number)
    return {"message": "Call connected successfully", "data": response}


@router.get("/sms-callbacks", response_model=List[SmsCallbackOut])
def sms_callbacks(
    to_number: str = Query(..., alias="toNumber", min_length=1),
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    return recent_sms_callbacks(db, to_number)


@router.get("/voice-callbacks", response_model=List[VoiceCallbackOut])
def voice_callbacks(
    to_number: str = Query(..., alias="toNumber", min_length=1),
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    return recent_voice_callbacks(db, to_number)


@router.post("/sync-calls")
async def sync_calls(
    call_sid: Optional[str] = Query(default=None, alias="callSid"),
    service: ExotelService = Depends(get_exotel_service),
    reconciler: BulkSyncReconciler = Depends(get_bulk_sync),
    db: Session = Depends(get_db),
    admin: User = Depends(require_admin),
):
    if call_sid:
        result = await service.sync_call(call_sid)
        return {
            "message": "Call synced successfully",
            "success": result["success"],
            "call": VoiceCallbackOut.model_validate(result["call"]) if result["call"] else None,
        }
    result = await reconciler.run(manual=True)
    if result is None:
        return {"message": "Bulk sync already in progress", "status": "skipped"}
    log_event(db, "bulk_sync", result.status, result.error_message or "", user_id=admin.id)
    latest = last_status(db)
    return {
        "message": "Bulk sync completed",
        "status": result.status,
        "synced": result.synced,
        "errors": result.errors,
        "skipped": result.skipped,
        "window_start": result.window_start,
        "window_end": result.window_end,
        "last_status": SyncStatusOut.model_validate(latest) if latest else None,
    }


@router.get("/users")
async def exotel_users(
    include_active_call: bool = Query(default=True, alias="includeActiveCall"),
    service: ExotelService = Depends(get_exotel_service),
    user: User = Depends(require_manager),
):
    result = await service.list_users(include_active_call)
    return {"message": "Exotel users retrieved successfully", **result}


@router.post("/sync-exophones")
async def sync_exophones_now(
    client: ExotelClient = Depends(get_exotel_client),
    db: Session = Depends(get_db),
    admin: User = Depends(require_admin),
):
    result = await sync_exophones(client, db)
    log_event(
        db,
        "sync_exophones",
        "success",
        user_id=admin.id,
        details={"synced_to_db": result["synced_to_db"]},
    )
    return {
        "message": "ExoPhones synced successfully",
        **result,
        "phones": [PhoneNumberOut.model_validate(phone) for phone in result["phones"]],
    }
