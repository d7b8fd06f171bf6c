# app/services/audit.py
import logging
from typing import Any, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.models.audit_log import AuditLog

logger = logging.getLogger(__name__)

JOINED = "JOINED"
FARCASTER_LINKED = "FARCASTER_LINKED"
LENS_LINK_STARTED = "LENS_LINK_STARTED"
LENS_VERIFIED = "LENS_VERIFIED"
APPROVED = "APPROVED"
REJECTED = "REJECTED"


def record(db: Session, user_id: int, action: str, details: Optional[dict[str, Any]] = None) -> None:
    """
    Append an audit entry in its own commit.

    Call after the primary change has been committed: a failure here is logged
    and rolled back, never raised, so the triggering operation still succeeds.
    """
    try:
        db.add(AuditLog(user_id=user_id, action=action, details=details))
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        logger.exception("Audit write failed: user_id=%s action=%s", user_id, action)
