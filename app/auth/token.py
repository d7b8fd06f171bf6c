# app/auth/token.py
from __future__ import annotations

from datetime import timedelta
from typing import Optional

from fastapi import Depends, Request, Response
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt
from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.errors import AuthenticationError, NotFoundError
from app.database import get_db
from app.models.user import User
from app.services.waitlist import get_user_by_wallet
from app.utils.clock import utcnow

SECRET_KEY = settings.JWT_SECRET
ALGORITHM = settings.JWT_ALG
ACCESS_TOKEN_EXPIRE_MINUTES = settings.ACCESS_TOKEN_EXPIRES_MINUTES

security = HTTPBearer(auto_error=False)  # don't auto-fail if no header


def create_access_token(data: dict, expires_delta: Optional[timedelta] = None) -> str:
    to_encode = data.copy()
    expire = utcnow() + (expires_delta or timedelta(minutes=ACCESS_TOKEN_EXPIRE_MINUTES))
    to_encode.update({"exp": expire})
    return jwt.encode(to_encode, SECRET_KEY, algorithm=ALGORITHM)


def set_session_cookie(response: Response, token: str) -> None:
    max_age = ACCESS_TOKEN_EXPIRE_MINUTES * 60
    samesite = settings.SESSION_COOKIE_SAMESITE
    secure = settings.SESSION_COOKIE_SECURE or (samesite.lower() == "none")

    response.set_cookie(
        key=settings.SESSION_COOKIE_NAME,
        value=token,
        httponly=True,
        secure=secure,
        samesite=samesite,
        domain=settings.SESSION_COOKIE_DOMAIN,
        max_age=max_age,
        expires=max_age,
        path="/",
    )


def clear_session_cookie(response: Response) -> None:
    response.delete_cookie(
        key=settings.SESSION_COOKIE_NAME,
        domain=settings.SESSION_COOKIE_DOMAIN,
        path="/",
    )


def get_current_wallet(
    request: Request,
    credentials: HTTPAuthorizationCredentials = Depends(security),
) -> str:
    """
    Resolve the signed-in wallet from:
      1) Authorization: Bearer <token>
      2) Cookie: settings.SESSION_COOKIE_NAME (browser session)
    """
    token = credentials.credentials if credentials else request.cookies.get(settings.SESSION_COOKIE_NAME)
    if not token:
        raise AuthenticationError("Not authenticated")

    try:
        payload = jwt.decode(token, SECRET_KEY, algorithms=[ALGORITHM])
    except JWTError:
        raise AuthenticationError("Could not validate credentials")

    wallet = payload.get("sub")
    if not wallet:
        raise AuthenticationError("Invalid token payload")
    return wallet


def get_current_user(
    wallet: str = Depends(get_current_wallet),
    db: Session = Depends(get_db),
) -> User:
    user = get_user_by_wallet(db, wallet)
    if not user:
        raise NotFoundError("User not found")
    return user
