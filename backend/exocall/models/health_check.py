from sqlalchemy import Boolean, Column, DateTime, Integer, JSON, String
from sqlalchemy.sql import func
from exocall.core.database import Base


class HealthCheck(Base):
    __tablename__ = "health_checks"

    id = Column(Integer, primary_key=True)
    timestamp = Column(DateTime(timezone=True), nullable=False, index=True)
    status_type = Column(String(16), nullable=False)
    incoming_affected = Column(Boolean)
    outgoing_affected = Column(Boolean)
    raw_data = Column(JSON)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
