# app/auth/admin.py
import hmac
import logging
from typing import Optional

from fastapi import Header

from app.core.config import settings
from app.core.errors import AuthorizationError

logger = logging.getLogger(__name__)

ADMIN_KEY_HEADER = "X-Admin-Key"


def authorize(provided_key: Optional[str]) -> bool:
    """Constant-time comparison against the admin secret loaded at startup."""
    if not provided_key or not settings.ADMIN_API_KEY:
        return False
    return hmac.compare_digest(provided_key.encode(), settings.ADMIN_API_KEY.encode())


def require_admin(x_admin_key: Optional[str] = Header(default=None, alias=ADMIN_KEY_HEADER)) -> None:
    if not authorize(x_admin_key):
        logger.warning("Rejected admin request")
        raise AuthorizationError("Invalid admin key")
