from typing import List, Optional

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import OAuth2PasswordBearer
from jose import JWTError
from sqlalchemy.orm import Session

from exocall.core.database import get_db
from exocall.core.security import decode_token
from exocall.models import PhoneNumber, User, UserPhoneAssignment

ROLE_ADMIN = "ADMIN"
ROLE_MANAGER = "MANAGER"
ROLE_AGENT = "AGENT"

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/auth/login")


def user_from_token(db: Session, token: str) -> Optional[User]:
    try:
        payload = decode_token(token)
    except JWTError:
        return None
    user = db.query(User).filter(User.username == payload.get("sub")).first()
    if not user or not user.is_active:
        return None
    return user


def get_current_user(token: str = Depends(oauth2_scheme), db: Session = Depends(get_db)) -> User:
    user = user_from_token(db, token)
    if not user:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token")
    return user


def require_roles(*roles: str):
    def dependency(user: User = Depends(get_current_user)) -> User:
        if user.role not in roles:
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Insufficient role")
        return user

    return dependency


require_admin = require_roles(ROLE_ADMIN)
require_manager = require_roles(ROLE_ADMIN, ROLE_MANAGER)


def get_accessible_numbers(
    user: User = Depends(get_current_user), db: Session = Depends(get_db)
) -> Optional[List[str]]:
    """Numbers whose calls the user may see; None means unrestricted."""
    if user.role == ROLE_ADMIN:
        return None
    numbers = [
        number
        for (number,) in db.query(PhoneNumber.number)
        .join(UserPhoneAssignment, UserPhoneAssignment.phone_number_id == PhoneNumber.id)
        .filter(UserPhoneAssignment.user_id == user.id)
        .all()
    ]
    if not numbers:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="No phone numbers assigned to this user",
        )
    return numbers


def get_exotel_service(request: Request):
    return request.app.state.exotel_service


def get_exotel_client(request: Request):
    return request.app.state.exotel_client


def get_heartbeat_monitor(request: Request):
    return request.app.state.heartbeat_monitor


def get_bulk_sync(request: Request):
    return request.app.state.bulk_sync
