from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Integer, JSON, String, UniqueConstraint
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from exocall.core.database import Base


class PhoneNumber(Base):
    __tablename__ = "phone_numbers"

    id = Column(Integer, primary_key=True)
    number = Column(String(32), unique=True, nullable=False)
    friendly_name = Column(String(255))
    department_name = Column(String(255))
    type = Column(String(32), default="exophone")
    is_active = Column(Boolean, default=True, nullable=False)
    is_primary = Column(Boolean, default=False, nullable=False)
    capabilities = Column(JSON)
    metadata_ = Column("metadata", JSON)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())


class UserPhoneAssignment(Base):
    __tablename__ = "user_phone_assignments"
    __table_args__ = (UniqueConstraint("user_id", "phone_number_id"),)

    id = Column(Integer, primary_key=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    phone_number_id = Column(
        Integer, ForeignKey("phone_numbers.id", ondelete="CASCADE"), nullable=False
    )
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    user = relationship("User", back_populates="phone_assignments")
    phone_number = relationship("PhoneNumber")
