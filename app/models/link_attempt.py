from sqlalchemy import Column, DateTime, ForeignKey, Integer, String, UniqueConstraint
from sqlalchemy.orm import relationship

from app.database import Base
from app.utils.clock import utcnow


class LinkAttempt(Base):
    """In-flight Lens ownership challenge. Deleted when consumed or found expired."""

    __tablename__ = "link_attempts"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    profile_id = Column(String(66), nullable=False)
    owner_address = Column(String(42), nullable=False)
    nonce = Column(String(64), unique=True, nullable=False, index=True)
    expires_at = Column(DateTime(timezone=True), nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    user = relationship("User", back_populates="link_attempts")

    # One live challenge per (user, profile); issuing again replaces the row
    __table_args__ = (UniqueConstraint("user_id", "profile_id", name="_user_profile_attempt_uc"),)
