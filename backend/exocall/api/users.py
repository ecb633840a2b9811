from typing import List

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session
from exocall.core.database import get_db
from exocall.core.deps import get_current_user, require_admin
from exocall.core.security import hash_password
from exocall.models import PhoneNumber, User, UserPhoneAssignment
from exocall.schemas import PhoneAssignmentRequest, PhoneNumberOut, UserCreate, UserOut, UserUpdate
from exocall.services.audit import log_event

router = APIRouter(prefix="/users", tags=["users"])


@router.get("/me", response_model=UserOut)
def get_me(user: User = Depends(get_current_user)):
    return user


@router.get("/me/phone-numbers", response_model=List[PhoneNumberOut])
def my_phone_numbers(user: User = Depends(get_current_user)):
    return [assignment.phone_number for assignment in user.phone_assignments]


@router.post("", response_model=UserOut)
def create_user(payload: UserCreate, db: Session = Depends(get_db), admin: User = Depends(require_admin)):
    existing = db.query(User).filter(User.username == payload.username).first()
    if existing:
        raise HTTPException(status_code=400, detail="Username already exists")
    user = User(
        username=payload.username,
        hashed_password=hash_password(payload.password),
        role=payload.role,
    )
    db.add(user)
    db.commit()
    log_event(db, "create_user", "success", user_id=admin.id, details={"username": user.username})
    return user


@router.get("", response_model=List[UserOut])
def list_users(db: Session = Depends(get_db), admin: User = Depends(require_admin)):
    return db.query(User).order_by(User.username).all()


@router.patch("/{user_id}", response_model=UserOut)
def update_user(user_id: int, payload: UserUpdate, db: Session = Depends(get_db), admin: User = Depends(require_admin)):
    user = db.get(User, user_id)
    if not user:
        raise HTTPException(status_code=404, detail="User not found")
    if payload.is_active is not None:
        user.is_active = payload.is_active
    if payload.role is not None:
        user.role = payload.role
    if payload.password is not None:
        user.hashed_password = hash_password(payload.password)
    db.commit()
    log_event(db, "update_user", "success", user_id=admin.id, details={"target": user.username})
    return user


@router.post("/{user_id}/phone-numbers", response_model=List[PhoneNumberOut])
def assign_phone_numbers(
    user_id: int,
    payload: PhoneAssignmentRequest,
    db: Session = Depends(get_db),
    admin: User = Depends(require_admin),
):
    """Replace the user's phone-number assignments."""
    user = db.get(User, user_id)
    if not user:
        raise HTTPException(status_code=404, detail="User not found")
    phones = db.query(PhoneNumber).filter(PhoneNumber.id.in_(payload.phone_number_ids)).all()
    missing = set(payload.phone_number_ids) - {phone.id for phone in phones}
    if missing:
        raise HTTPException(status_code=404, detail=f"Phone numbers not found: {sorted(missing)}")
    wanted = {phone.id: phone for phone in phones}
    for assignment in list(user.phone_assignments):
        if assignment.phone_number_id not in wanted:
            user.phone_assignments.remove(assignment)
        else:
            wanted.pop(assignment.phone_number_id)
    for phone in wanted.values():
        user.phone_assignments.append(UserPhoneAssignment(phone_number=phone))
    db.commit()
    log_event(
        db,
        "assign_phone_numbers",
        "success",
        user_id=admin.id,
        details={"target": user.username, "phone_number_ids": sorted(payload.phone_number_ids)},
    )
    return phones
