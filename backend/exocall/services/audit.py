from typing import Optional

from sqlalchemy.orm import Session

from exocall.models import AuditLog


def log_event(
    db: Session,
    action: str,
    status: str,
    message: str = "",
    user_id: Optional[int] = None,
    details: Optional[dict] = None,
) -> AuditLog:
    entry = AuditLog(
        user_id=user_id,
        action=action,
        status=status,
        message=message[:255],
        details=details or {},
    )
    db.add(entry)
    db.commit()
    return entry
