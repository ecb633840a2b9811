from sqlalchemy import Column, DateTime, Integer, String
from sqlalchemy.sql import func
from exocall.core.database import Base


class SmsCallback(Base):
    __tablename__ = "sms_callbacks"

    id = Column(Integer, primary_key=True)
    sms_sid = Column(String(64), unique=True, nullable=False)
    user_id = Column(String(64))
    to_number = Column(String(32), index=True)
    status = Column(String(32))
    detailed_status = Column(String(128))
    detailed_status_code = Column(String(16))
    sms_units = Column(Integer)
    date_sent = Column(String(40))
    created_at = Column(DateTime(timezone=True), server_default=func.now(), index=True)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())
