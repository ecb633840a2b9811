import logging
from typing import Any, Dict, List, Mapping, Optional

from sqlalchemy.orm import Session

from exocall.models import PhoneNumber
from exocall.services.exotel_client import ExotelClient

logger = logging.getLogger(__name__)


def _first(entry: Mapping[str, Any], *keys: str) -> Any:
    for key in keys:
        value = entry.get(key)
        if value not in (None, ""):
            return value
    return None


def _flag(value: Any, default: bool = True) -> bool:
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in {"true", "1", "yes"}


def exophone_to_values(entry: Mapping[str, Any], is_primary: bool) -> Dict[str, Any]:
    number = _first(entry, "phone_number", "PhoneNumber")
    capabilities = entry.get("capabilities") or entry.get("Capabilities") or {}
    return {
        "number": number,
        "friendly_name": _first(entry, "friendly_name", "FriendlyName") or f"ExoPhone {number}",
        "type": "exophone",
        "is_active": True,
        "is_primary": is_primary,
        "capabilities": {
            "voice": _flag(capabilities.get("voice")),
            "sms": _flag(capabilities.get("sms")),
            "recording": True,
        },
        "metadata_": {
            "exophoneSid": _first(entry, "sid", "Sid"),
            "voiceUrl": _first(entry, "voice_url", "VoiceUrl"),
            "smsUrl": _first(entry, "sms_url", "SMSUrl", "SmsUrl"),
            "numberType": _first(entry, "number_type", "NumberType"),
        },
    }


def clear_other_primaries(db: Session, keep_id: Optional[int] = None) -> None:
    query = db.query(PhoneNumber).filter(PhoneNumber.is_primary.is_(True))
    if keep_id is not None:
        query = query.filter(PhoneNumber.id != keep_id)
    query.update({PhoneNumber.is_primary: False}, synchronize_session=False)


def upsert_phone_number(db: Session, values: Dict[str, Any]) -> PhoneNumber:
    """Create or update by ``number``; a primary row demotes every other primary first."""
    phone = db.query(PhoneNumber).filter(PhoneNumber.number == values["number"]).first()
    if values.get("is_primary"):
        clear_other_primaries(db, phone.id if phone else None)
    if phone is None:
        phone = PhoneNumber(**values)
        db.add(phone)
    else:
        for key, value in values.items():
            setattr(phone, key, value)
    db.commit()
    db.refresh(phone)
    return phone


async def sync_exophones(client: ExotelClient, db: Session) -> Dict[str, Any]:
    logger.info("Syncing ExoPhones from Exotel")
    exophones = await client.list_incoming_phone_numbers()
    phones: List[PhoneNumber] = []
    seen = set()
    for entry in exophones:
        # The first number actually written becomes primary.
        values = exophone_to_values(entry, is_primary=not phones)
        number = values["number"]
        if not number:
            logger.warning("Skipping ExoPhone without a number: %s", entry)
            continue
        if number in seen:
            logger.warning("Skipping duplicate ExoPhone %s in inventory", number)
            continue
        seen.add(number)
        phones.append(upsert_phone_number(db, values))
    logger.info("Synced %s of %s ExoPhones to database", len(phones), len(exophones))
    return {
        "success": True,
        "total_fetched": len(exophones),
        "synced_to_db": len(phones),
        "phones": phones,
    }


def list_phone_numbers(db: Session, include_inactive: bool = False) -> List[PhoneNumber]:
    query = db.query(PhoneNumber)
    if not include_inactive:
        query = query.filter(PhoneNumber.is_active.is_(True))
    return query.order_by(PhoneNumber.is_primary.desc(), PhoneNumber.number.asc()).all()


def get_phone_number(db: Session, phone_id: int) -> Optional[PhoneNumber]:
    return db.get(PhoneNumber, phone_id)


def get_primary_phone_number(db: Session) -> Optional[PhoneNumber]:
    return (
        db.query(PhoneNumber)
        .filter(PhoneNumber.is_primary.is_(True), PhoneNumber.is_active.is_(True))
        .first()
    )


def update_phone_number(db: Session, phone: PhoneNumber, changes: Dict[str, Any]) -> PhoneNumber:
    if changes.get("is_primary"):
        clear_other_primaries(db, phone.id)
    for key, value in changes.items():
        setattr(phone, key, value)
    db.commit()
    db.refresh(phone)
    return phone


def delete_phone_number(db: Session, phone: PhoneNumber) -> None:
    db.delete(phone)
    db.commit()


def dropdown_options(db: Session) -> List[Dict[str, Any]]:
    return [
        {
            "id": phone.id,
            "number": phone.number,
            "label": f"{phone.friendly_name or phone.number} ({phone.number})",
            "is_primary": phone.is_primary,
        }
        for phone in list_phone_numbers(db)
    ]
