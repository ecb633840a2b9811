"""Idempotent persistence of Exotel voice/SMS callbacks.

Exotel sends the same field as ``CallSid`` or ``call_sid`` depending on the
callback flavour. Payloads are mapped once, at ingress, onto canonical column
names through the alias tables below, and then written with a single
``INSERT ... ON CONFLICT DO UPDATE`` keyed on the provider identifier, so
concurrent or repeated deliveries of one event can never produce two rows.
"""

import logging
from typing import Any, Dict, Iterable, Mapping, Optional, Sequence, Tuple, Type

from sqlalchemy import func
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.orm import Session

from exocall.models import SmsCallback, VoiceCallback
from exocall.services.phone import build_number_variants

logger = logging.getLogger(__name__)

FieldTable = Mapping[str, Tuple[str, ...]]

VOICE_FIELDS: FieldTable = {
    "call_sid": ("CallSid", "call_sid"),
    "sid": ("Sid", "sid"),
    "parent_call_sid": ("ParentCallSid", "parent_call_sid"),
    "date_created": ("DateCreated", "date_created"),
    "date_updated": ("DateUpdated", "date_updated"),
    "account_sid": ("AccountSid", "account_sid"),
    "to_number": ("To", "to"),
    "from_number": ("From", "from"),
    "phone_number_sid": ("PhoneNumberSid", "phone_number_sid"),
    "status": ("Status", "status"),
    "start_time": ("StartTime", "start_time"),
    "end_time": ("EndTime", "end_time"),
    "duration": ("Duration", "duration"),
    "price": ("Price", "price"),
    "direction": ("Direction", "direction"),
    "answered_by": ("AnsweredBy", "answered_by"),
    "forwarded_from": ("ForwardedFrom", "forwarded_from"),
    "caller_name": ("CallerName", "caller_name"),
    "uri": ("Uri", "uri"),
    "recording_url": ("RecordingUrl", "recording_url"),
}

SMS_FIELDS: FieldTable = {
    "sms_sid": ("SmsSid", "sms_sid"),
    "to_number": ("To", "to"),
    "status": ("Status", "status"),
    "detailed_status": ("DetailedStatus", "detailed_status"),
    "detailed_status_code": ("DetailedStatusCode", "detailed_status_code"),
    "sms_units": ("SmsUnits", "sms_units"),
    "date_sent": ("DateSent", "date_sent"),
}

INTEGER_FIELDS = {"sms_units"}

# Only these columns move after a row exists; identity and creation data are frozen.
VOICE_PROGRESS_FIELDS = (
    "status",
    "date_updated",
    "end_time",
    "duration",
    "price",
    "answered_by",
    "recording_url",
)
SMS_PROGRESS_FIELDS = (
    "status",
    "detailed_status",
    "detailed_status_code",
    "sms_units",
    "date_sent",
)


def _coerce(field: str, value: Any) -> Any:
    if field in INTEGER_FIELDS:
        try:
            return int(float(value))
        except (TypeError, ValueError):
            return None
    if isinstance(value, bool):
        return str(value).lower()
    return str(value)


def normalize_payload(payload: Mapping[str, Any], fields: FieldTable) -> Dict[str, Any]:
    """Map a provider payload onto canonical names; PascalCase wins, blanks are absent."""
    normalized: Dict[str, Any] = {}
    for canonical, aliases in fields.items():
        for alias in aliases:
            value = payload.get(alias)
            if value is None or value == "":
                continue
            coerced = _coerce(canonical, value)
            if coerced is not None:
                normalized[canonical] = coerced
            break
    return normalized


def _dialect_insert(db: Session):
    dialect = db.get_bind().dialect.name
    if dialect == "postgresql":
        return postgresql.insert
    if dialect == "sqlite":
        return sqlite.insert
    raise NotImplementedError(f"Upsert is not supported on {dialect}")


def upsert_by_key(
    db: Session,
    model: Type,
    key: str,
    values: Dict[str, Any],
    update_fields: Sequence[str],
):
    """Atomically create or update the row identified by ``values[key]``.

    On conflict only ``update_fields`` change, and a field missing from
    ``values`` keeps its stored value.
    """
    insert = _dialect_insert(db)
    table = model.__table__
    stmt = insert(table).values(**values)
    set_ = {
        field: func.coalesce(stmt.excluded[field], table.c[field]) for field in update_fields
    }
    set_["updated_at"] = func.now()
    stmt = stmt.on_conflict_do_update(index_elements=[table.c[key]], set_=set_)
    db.execute(stmt)
    db.commit()
    return (
        db.query(model)
        .populate_existing()
        .filter(getattr(model, key) == values[key])
        .one()
    )


def save_voice_callback(
    db: Session, payload: Mapping[str, Any], origin: Optional[str] = None
) -> Optional[VoiceCallback]:
    values = normalize_payload(payload, VOICE_FIELDS)
    return save_voice_values(db, values, origin)


def save_voice_values(
    db: Session,
    values: Dict[str, Any],
    origin: Optional[str] = None,
    update_fields: Iterable[str] = VOICE_PROGRESS_FIELDS,
) -> Optional[VoiceCallback]:
    call_sid = values.get("call_sid")
    if not call_sid:
        logger.warning("Voice callback received without CallSid, skipping save")
        return None
    if origin:
        values = {**values, "user_id": origin}
    record = upsert_by_key(db, VoiceCallback, "call_sid", values, tuple(update_fields))
    logger.info("Voice callback saved/updated: %s - CallSid: %s", record.id, call_sid)
    return record


def save_sms_callback(
    db: Session, payload: Mapping[str, Any], origin: Optional[str] = None
) -> Optional[SmsCallback]:
    values = normalize_payload(payload, SMS_FIELDS)
    sms_sid = values.get("sms_sid")
    if not sms_sid:
        logger.warning("SMS callback received without SmsSid, skipping save")
        return None
    if origin:
        values["user_id"] = origin
    record = upsert_by_key(db, SmsCallback, "sms_sid", values, SMS_PROGRESS_FIELDS)
    logger.info("SMS callback saved/updated: %s - SmsSid: %s", record.id, sms_sid)
    return record


def recent_voice_callbacks(db: Session, to_number: str, limit: int = 50) -> list[VoiceCallback]:
    return (
        db.query(VoiceCallback)
        .filter(VoiceCallback.to_number.in_(build_number_variants(to_number) or [to_number]))
        .order_by(VoiceCallback.created_at.desc(), VoiceCallback.id.desc())
        .limit(limit)
        .all()
    )


def recent_sms_callbacks(db: Session, to_number: str, limit: int = 50) -> list[SmsCallback]:
    return (
        db.query(SmsCallback)
        .filter(SmsCallback.to_number.in_(build_number_variants(to_number) or [to_number]))
        .order_by(SmsCallback.created_at.desc(), SmsCallback.id.desc())
        .limit(limit)
        .all()
    )
