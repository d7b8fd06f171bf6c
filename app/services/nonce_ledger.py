# app/services/nonce_ledger.py
"""
Single-use, time-limited challenges.

Two kinds live here: sign-in nonces (embedded in the SIWE message) and Lens
link attempts (bound to a user and a profile). Both are redeemed with a
compare-and-delete against the database: the row is removed with
``DELETE ... WHERE id = :id`` and only the caller whose delete actually removed
it wins. Two concurrent consumers of the same nonce cannot both succeed.
"""
import logging
import secrets
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.errors import ExpiredError, NotFoundError
from app.models.link_attempt import LinkAttempt
from app.models.nonce import SignInNonce
from app.utils.clock import as_utc, utcnow

logger = logging.getLogger(__name__)


def _claim(db: Session, model, row_id: int) -> bool:
    result = db.execute(delete(model).where(model.id == row_id))
    db.commit()
    return result.rowcount == 1


# ---------- Lens link attempts ----------

def issue(
    db: Session,
    user_id: int,
    profile_id: str,
    owner: str,
    now: Optional[datetime] = None,
) -> LinkAttempt:
    """
    Issue a fresh challenge for (user_id, profile_id).

    Any outstanding attempt for the same pair is superseded, so at most one
    nonce is redeemable per user-profile pair.
    """
    now = now or utcnow()
    for retry in (False, True):
        db.execute(
            delete(LinkAttempt).where(
                LinkAttempt.user_id == user_id,
                LinkAttempt.profile_id == profile_id,
            )
        )
        attempt = LinkAttempt(
            user_id=user_id,
            profile_id=profile_id,
            owner_address=owner.lower(),
            nonce=secrets.token_hex(16),  # 128 bits
            expires_at=now + timedelta(seconds=settings.LINK_NONCE_TTL_SECONDS),
            created_at=now,
        )
        db.add(attempt)
        try:
            db.commit()
        except IntegrityError:
            # A concurrent issue for the same pair won the insert
            db.rollback()
            if retry:
                raise
            continue
        db.refresh(attempt)
        logger.info("Issued link nonce user_id=%s profile_id=%s", user_id, profile_id)
        return attempt


def consume(
    db: Session,
    nonce: str,
    user_id: Optional[int] = None,
    now: Optional[datetime] = None,
) -> LinkAttempt:
    """
    Redeem a link nonce at most once.

    Raises NotFoundError when the nonce is unknown, belongs to another user or
    was already redeemed, and ExpiredError when it is past its window (the row
    is purged either way).
    """
    now = now or utcnow()
    stmt = select(LinkAttempt).where(LinkAttempt.nonce == nonce)
    if user_id is not None:
        stmt = stmt.where(LinkAttempt.user_id == user_id)
    attempt = db.execute(stmt).scalar_one_or_none()
    if attempt is None:
        raise NotFoundError("Unknown or already used nonce")

    # Detach a copy of the fields before the row disappears
    db.expunge(attempt)
    if not _claim(db, LinkAttempt, attempt.id):
        raise NotFoundError("Unknown or already used nonce")

    if as_utc(attempt.expires_at) <= now:
        logger.info("Link nonce expired user_id=%s profile_id=%s", attempt.user_id, attempt.profile_id)
        raise ExpiredError("Verification challenge has expired")
    return attempt


# ---------- Sign-in nonces ----------

def issue_sign_in_nonce(db: Session, now: Optional[datetime] = None) -> SignInNonce:
    now = now or utcnow()
    # EIP-4361 requires an alphanumeric nonce of at least 8 characters
    row = SignInNonce(
        nonce=secrets.token_hex(16),
        expires_at=now + timedelta(seconds=settings.SIGN_IN_NONCE_TTL_SECONDS),
        created_at=now,
    )
    db.add(row)
    db.commit()
    db.refresh(row)
    return row


def consume_sign_in_nonce(db: Session, nonce: str, now: Optional[datetime] = None) -> None:
    now = now or utcnow()
    row = db.execute(select(SignInNonce).where(SignInNonce.nonce == nonce)).scalar_one_or_none()
    if row is None:
        raise NotFoundError("Unknown or already used nonce")

    expires_at = as_utc(row.expires_at)
    if not _claim(db, SignInNonce, row.id):
        raise NotFoundError("Unknown or already used nonce")
    if expires_at <= now:
        raise ExpiredError("Sign-in nonce has expired")


# ---------- Cleanup ----------

def purge_expired(db: Session, now: Optional[datetime] = None) -> int:
    """Delete every expired link attempt and sign-in nonce. Returns rows removed."""
    now = now or utcnow()
    removed = db.execute(delete(LinkAttempt).where(LinkAttempt.expires_at <= now)).rowcount
    removed += db.execute(delete(SignInNonce).where(SignInNonce.expires_at <= now)).rowcount
    db.commit()
    if removed:
        logger.info("Purged %s expired nonces", removed)
    return removed
