import csv
import io
import logging
from collections import Counter
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy import func
from sqlalchemy.orm import Query, Session

from exocall.models import PhoneNumber, VoiceCallback
from exocall.services.call_status import ABANDONED, FAILED, SUCCESS, classify_record, parse_duration
from exocall.services.phone import build_number_variants, mask_phone_number

logger = logging.getLogger(__name__)

ACTIVE_STATUSES = ("in-progress", "ringing", "answered")
ACTIVE_WINDOW = timedelta(minutes=5)


def number_spellings(numbers: Iterable[str]) -> List[str]:
    spellings = set()
    for number in numbers:
        spellings.update(build_number_variants(number) or [number])
    return sorted(spellings)


def scoped_calls(
    db: Session,
    accessible_numbers: Optional[List[str]],
    phone_number: Optional[str] = None,
) -> Query:
    """Voice callbacks restricted to the caller's numbers; None means all."""
    query = db.query(VoiceCallback)
    if accessible_numbers is None:
        if phone_number:
            query = query.filter(VoiceCallback.to_number.in_(number_spellings([phone_number])))
        return query
    allowed = number_spellings(accessible_numbers)
    if phone_number and phone_number in allowed:
        return query.filter(VoiceCallback.to_number.in_(number_spellings([phone_number])))
    return query.filter(VoiceCallback.to_number.in_(allowed))


def categorize(calls: Iterable[VoiceCallback]) -> Dict[str, int]:
    counts = {"completed": 0, "missed": 0, "abandoned": 0, "failed": 0, "total_duration": 0}
    for call in calls:
        info = classify_record(call)
        if info.category == SUCCESS:
            counts["completed"] += 1
            counts["total_duration"] += parse_duration(call.duration) or 0
        elif info.display_status == "missed":
            counts["missed"] += 1
        elif info.category == ABANDONED:
            counts["abandoned"] += 1
        elif info.category == FAILED:
            counts["failed"] += 1
    return counts


def dashboard_metrics(
    db: Session,
    accessible_numbers: Optional[List[str]],
    phone_number: Optional[str] = None,
    now: Optional[datetime] = None,
) -> Dict[str, Any]:
    now = now or datetime.now(timezone.utc)
    today_start = now.replace(hour=0, minute=0, second=0, microsecond=0)
    base = scoped_calls(db, accessible_numbers, phone_number)

    active_calls = (
        base.filter(
            VoiceCallback.status.in_(ACTIVE_STATUSES),
            VoiceCallback.created_at >= now - ACTIVE_WINDOW,
        ).count()
    )
    today = base.filter(VoiceCallback.created_at >= today_start)
    calls = today.all()
    calls_today = len(calls)
    counts = categorize(calls)
    completed = counts["completed"]
    avg_duration = round(counts["total_duration"] / completed) if completed else 0
    success_rate = (completed / calls_today) * 100 if calls_today else 0.0

    directions = (
        today.with_entities(VoiceCallback.direction, func.count(VoiceCallback.id))
        .group_by(VoiceCallback.direction)
        .order_by(func.count(VoiceCallback.id).desc())
        .limit(5)
        .all()
    )
    return {
        "active_calls": active_calls,
        "calls_today": calls_today,
        "completed_calls": completed,
        "missed_calls": counts["missed"],
        "abandoned_calls": counts["abandoned"],
        "failed_calls": counts["failed"],
        "avg_call_duration": avg_duration,
        "success_rate": round(success_rate, 1),
        "calls_by_direction": [
            {"direction": direction or "unknown", "count": count} for direction, count in directions
        ],
    }


def call_metrics(
    db: Session,
    start: datetime,
    end: datetime,
    accessible_numbers: Optional[List[str]],
) -> Dict[str, Any]:
    calls = (
        scoped_calls(db, accessible_numbers)
        .filter(VoiceCallback.created_at >= start, VoiceCallback.created_at <= end)
        .all()
    )
    counts = categorize(calls)
    completed = counts["completed"]
    hours = Counter(call.created_at.hour for call in calls if call.created_at)
    calls_by_hour = [{"hour": hour, "count": hours.get(hour, 0)} for hour in range(24)]
    peak = max(calls_by_hour, key=lambda point: point["count"]) if calls else {"hour": 0}
    return {
        "total_calls": len(calls),
        "completed_calls": completed,
        "missed_calls": counts["missed"],
        "abandoned_calls": counts["abandoned"],
        "failed_calls": counts["failed"],
        "average_duration": round(counts["total_duration"] / completed) if completed else 0,
        "peak_hour": peak["hour"],
        "calls_by_hour": calls_by_hour,
    }


def history_query(
    db: Session,
    accessible_numbers: Optional[List[str]],
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
    status: Optional[str] = None,
    caller_number: Optional[str] = None,
) -> Query:
    query = scoped_calls(db, accessible_numbers)
    if start:
        query = query.filter(VoiceCallback.created_at >= start)
    if end:
        query = query.filter(VoiceCallback.created_at <= end)
    if status:
        query = query.filter(VoiceCallback.status == status)
    if caller_number:
        query = query.filter(VoiceCallback.from_number.like(f"%{caller_number}%"))
    return query.order_by(VoiceCallback.created_at.desc(), VoiceCallback.id.desc())


def department_names(db: Session) -> Dict[str, str]:
    departments = {}
    for number, department in db.query(PhoneNumber.number, PhoneNumber.department_name).all():
        for spelling in number_spellings([number]):
            departments[spelling] = department or "Unknown Department"
    return departments


def history_item(call: VoiceCallback, departments: Dict[str, str]) -> Dict[str, Any]:
    # The caller is masked; the called number is one of our own lines.
    info = classify_record(call)
    return {
        "id": call.id,
        "call_sid": call.call_sid,
        "caller_number": mask_phone_number(call.from_number) if call.from_number else "Unknown",
        "called_number": call.to_number or "Unknown",
        "department": departments.get(call.to_number or "", "Unknown Department"),
        "status": info.display_status,
        "status_category": info.category,
        "status_description": info.description,
        "started_at": call.start_time or call.date_created or (
            call.created_at.isoformat() if call.created_at else None
        ),
        "ended_at": call.end_time,
        "duration_seconds": parse_duration(call.duration),
        "recording_url": call.recording_url,
        "direction": call.direction,
        "answered_by": call.answered_by,
    }


def call_history(
    db: Session,
    accessible_numbers: Optional[List[str]],
    page: int = 1,
    page_size: int = 50,
    **filters: Any,
) -> Dict[str, Any]:
    query = history_query(db, accessible_numbers, **filters)
    total = query.count()
    departments = department_names(db)
    calls = query.offset((page - 1) * page_size).limit(page_size).all()
    return {
        "items": [history_item(call, departments) for call in calls],
        "total": total,
        "page": page,
        "page_size": page_size,
    }


def export_history_csv(db: Session, query: Query) -> io.StringIO:
    departments = department_names(db)
    output = io.StringIO()
    writer = csv.writer(output)
    writer.writerow(
        [
            "call_sid",
            "direction",
            "caller_number",
            "called_number",
            "status",
            "started_at",
            "ended_at",
            "duration_seconds",
            "answered_by",
            "recording_url",
        ]
    )
    for call in query.all():
        item = history_item(call, departments)
        writer.writerow(
            [
                item["call_sid"],
                item["direction"] or "N/A",
                item["caller_number"],
                item["called_number"],
                item["status"],
                item["started_at"],
                item["ended_at"] or "",
                item["duration_seconds"] or 0,
                item["answered_by"] or "",
                item["recording_url"] or "",
            ]
        )
    output.seek(0)
    return output
