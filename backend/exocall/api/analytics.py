import logging
from datetime import datetime, timedelta, timezone
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.responses import StreamingResponse
from sqlalchemy.orm import Session

from exocall.core.database import get_db
from exocall.core.deps import ROLE_ADMIN, get_accessible_numbers, get_current_user, get_exotel_service
from exocall.models import User, UserPhoneAssignment
from exocall.schemas import CallbackCallerRequest, CallHistoryPage, CallMetrics, DashboardSummary
from exocall.services.analytics import (
    call_history,
    call_metrics,
    dashboard_metrics,
    export_history_csv,
    history_query,
)
from exocall.services.exotel_service import ExotelService
from exocall.services.phone import is_valid_phone_number, mask_phone_number

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/analytics", tags=["analytics"])


def parse_date_input(value: Optional[str], end_of_day: bool = False) -> Optional[datetime]:
    if not value:
        return None
    try:
        if len(value) == 10:
            date_value = datetime.fromisoformat(value)
            if end_of_day:
                return date_value + timedelta(hours=23, minutes=59, seconds=59)
            return date_value
        return datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=f"Invalid date: {value}") from exc


@router.get("/dashboard", response_model=DashboardSummary)
def dashboard(
    phone_number: Optional[str] = None,
    accessible: Optional[List[str]] = Depends(get_accessible_numbers),
    db: Session = Depends(get_db),
):
    return dashboard_metrics(db, accessible, phone_number)


@router.get("/metrics", response_model=CallMetrics)
def metrics(
    start_date: Optional[str] = None,
    end_date: Optional[str] = None,
    accessible: Optional[List[str]] = Depends(get_accessible_numbers),
    db: Session = Depends(get_db),
):
    end = parse_date_input(end_date, end_of_day=True) or datetime.now(timezone.utc)
    start = parse_date_input(start_date) or end - timedelta(days=7)
    return call_metrics(db, start, end, accessible)


@router.get("/calls", response_model=CallHistoryPage)
def calls(
    page: int = Query(1, ge=1),
    page_size: int = Query(50, ge=1, le=200),
    start_date: Optional[str] = None,
    end_date: Optional[str] = None,
    status: Optional[str] = None,
    caller_number: Optional[str] = None,
    export: Optional[str] = None,
    user: User = Depends(get_current_user),
    accessible: Optional[List[str]] = Depends(get_accessible_numbers),
    db: Session = Depends(get_db),
):
    filters = {
        "start": parse_date_input(start_date),
        "end": parse_date_input(end_date, end_of_day=True),
        "status": status,
        "caller_number": caller_number,
    }
    if export == "csv":
        if user.role != ROLE_ADMIN:
            raise HTTPException(status_code=403, detail="Not authorized")
        output = export_history_csv(db, history_query(db, accessible, **filters))
        return StreamingResponse(
            output,
            media_type="text/csv",
            headers={"Content-Disposition": "attachment; filename=call-history.csv"},
        )
    return call_history(db, accessible, page, page_size, **filters)


@router.post("/callback")
async def callback_caller(
    payload: CallbackCallerRequest,
    user: User = Depends(get_current_user),
    service: ExotelService = Depends(get_exotel_service),
    db: Session = Depends(get_db),
):
    """Click-to-call: ring the agent first, then bridge the original caller."""
    logger.info("Initiating callback for user %s", user.username)
    if not is_valid_phone_number(payload.caller_number):
        raise HTTPException(status_code=400, detail="Invalid caller phone number")

    agent_number = payload.agent_number
    if not agent_number:
        assignment = (
            db.query(UserPhoneAssignment)
            .filter(UserPhoneAssignment.user_id == user.id)
            .order_by(UserPhoneAssignment.id)
            .first()
        )
        if assignment:
            agent_number = assignment.phone_number.number
    if not agent_number:
        raise HTTPException(
            status_code=400,
            detail="Agent phone number not found. Please provide agent_number "
            "or configure your phone number in settings.",
        )
    if not is_valid_phone_number(agent_number):
        raise HTTPException(status_code=400, detail="Invalid agent phone number")

    try:
        response = await service.connect_call(agent_number, payload.caller_number)
    except Exception as exc:
        logger.exception("Failed to initiate callback")
        raise HTTPException(
            status_code=500, detail="Failed to initiate callback. Please try again."
        ) from exc

    call = (response or {}).get("Call") or (response or {}).get("call") or {}
    masked_caller = mask_phone_number(payload.caller_number)
    logger.info("Callback initiated successfully to %s", masked_caller)
    return {
        "success": True,
        "message": "Callback initiated successfully",
        "data": {
            "call_sid": call.get("Sid") or call.get("sid"),
            "masked_caller_number": masked_caller,
            "agent_number": mask_phone_number(agent_number),
            "status": call.get("Status") or call.get("status"),
            "original_call_id": payload.original_call_id,
        },
    }
