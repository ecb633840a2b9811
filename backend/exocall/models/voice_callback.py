from sqlalchemy import Column, DateTime, Integer, String
from sqlalchemy.sql import func
from exocall.core.database import Base


class VoiceCallback(Base):
    __tablename__ = "voice_callbacks"

    id = Column(Integer, primary_key=True)
    call_sid = Column(String(64), unique=True, nullable=False)
    user_id = Column(String(64))
    sid = Column(String(64))
    parent_call_sid = Column(String(64))
    date_created = Column(String(40))
    date_updated = Column(String(40))
    account_sid = Column(String(64))
    to_number = Column(String(32), index=True)
    from_number = Column(String(32), index=True)
    phone_number_sid = Column(String(64))
    status = Column(String(32), index=True)
    start_time = Column(String(40))
    end_time = Column(String(40))
    duration = Column(String(16))
    price = Column(String(16))
    direction = Column(String(32))
    answered_by = Column(String(32))
    forwarded_from = Column(String(32))
    caller_name = Column(String(128))
    uri = Column(String(255))
    recording_url = Column(String(512))
    created_at = Column(DateTime(timezone=True), server_default=func.now(), index=True)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())
