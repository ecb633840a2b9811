from typing import List

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from exocall.core.database import get_db
from exocall.core.deps import get_current_user, require_admin
from exocall.models import User
from exocall.schemas import PhoneNumberOut, PhoneNumberUpdate
from exocall.services.audit import log_event
from exocall.services.exophones import (
    delete_phone_number,
    dropdown_options,
    get_phone_number,
    get_primary_phone_number,
    list_phone_numbers,
    update_phone_number,
)

router = APIRouter(prefix="/phone-numbers", tags=["phone-numbers"])


@router.get("", response_model=List[PhoneNumberOut])
def list_numbers(
    include_inactive: bool = False,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    return list_phone_numbers(db, include_inactive)


@router.get("/dropdown")
def dropdown(db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    return dropdown_options(db)


@router.get("/primary", response_model=PhoneNumberOut)
def primary(db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    phone = get_primary_phone_number(db)
    if not phone:
        raise HTTPException(status_code=404, detail="No primary phone number configured")
    return phone


@router.get("/{phone_id}", response_model=PhoneNumberOut)
def get_number(phone_id: int, db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    phone = get_phone_number(db, phone_id)
    if not phone:
        raise HTTPException(status_code=404, detail="Phone number not found")
    return phone


@router.patch("/{phone_id}", response_model=PhoneNumberOut)
def update_number(
    phone_id: int,
    payload: PhoneNumberUpdate,
    db: Session = Depends(get_db),
    admin: User = Depends(require_admin),
):
    phone = get_phone_number(db, phone_id)
    if not phone:
        raise HTTPException(status_code=404, detail="Phone number not found")
    changes = payload.model_dump(exclude_unset=True)
    phone = update_phone_number(db, phone, changes)
    log_event(db, "update_phone_number", "success", user_id=admin.id, details={"number": phone.number, **changes})
    return phone


@router.delete("/{phone_id}")
def delete_number(phone_id: int, db: Session = Depends(get_db), admin: User = Depends(require_admin)):
    phone = get_phone_number(db, phone_id)
    if not phone:
        raise HTTPException(status_code=404, detail="Phone number not found")
    number = phone.number
    delete_phone_number(db, phone)
    log_event(db, "delete_phone_number", "success", user_id=admin.id, details={"number": number})
    return {"status": "ok"}
