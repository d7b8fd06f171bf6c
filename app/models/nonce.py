from sqlalchemy import Column, DateTime, Integer, String

from app.database import Base
from app.utils.clock import utcnow


class SignInNonce(Base):
    __tablename__ = "sign_in_nonces"

    id = Column(Integer, primary_key=True, index=True)
    nonce = Column(String(64), unique=True, nullable=False, index=True)
    expires_at = Column(DateTime(timezone=True), nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
