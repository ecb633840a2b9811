from sqlalchemy import Column, DateTime, Integer, String
from sqlalchemy.sql import func
from exocall.core.database import Base


class SyncStatus(Base):
    __tablename__ = "sync_status"

    id = Column(Integer, primary_key=True)
    sync_type = Column(String(64), nullable=False, index=True)
    last_sync_time = Column(DateTime(timezone=True), nullable=False, index=True)
    status = Column(String(16), nullable=False)
    records_synced = Column(Integer, default=0)
    error_message = Column(String(1024))
    created_at = Column(DateTime(timezone=True), server_default=func.now())
