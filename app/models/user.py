# models/user.py
from enum import Enum

from sqlalchemy import BigInteger, Column, DateTime, Integer, String
from sqlalchemy import Enum as SAEnum
from sqlalchemy.orm import relationship

from app.database import Base
from app.utils.clock import utcnow


class WaitlistStatus(str, Enum):
    PENDING = "PENDING"
    PRIORITY_LENS = "PRIORITY_LENS"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"


# Statuses that still hold a place in the queue
QUEUED_STATUSES = (WaitlistStatus.PENDING, WaitlistStatus.PRIORITY_LENS)


class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    wallet_address = Column(String(42), unique=True, index=True, nullable=False)  # lower-cased hex
    farcaster_fid = Column(BigInteger, unique=True, nullable=True)
    lens_profile_id = Column(String(66), unique=True, nullable=True)
    lens_owner_address = Column(String(42), nullable=True)
    status = Column(
        SAEnum(WaitlistStatus, name="waitlist_status", native_enum=False),
        nullable=False,
        default=WaitlistStatus.PENDING,
        index=True,
    )
    priority_score = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    link_attempts = relationship("LinkAttempt", back_populates="user", cascade="all, delete-orphan")
    audit_logs = relationship("AuditLog", back_populates="user")
