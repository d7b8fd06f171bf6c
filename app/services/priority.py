# app/services/priority.py
import logging
from enum import Enum
from typing import Optional

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.core.errors import AlreadyLinkedError, ValidationError
from app.models.user import User, WaitlistStatus
from app.services import audit

logger = logging.getLogger(__name__)

FARCASTER_POINTS = 50
LENS_POINTS = 100


class LinkEvent(str, Enum):
    FARCASTER_LINKED = "FARCASTER_LINKED"
    LENS_VERIFIED = "LENS_VERIFIED"


def _apply(db: Session, stmt, message: str) -> None:
    # Guarded UPDATE; the guard is evaluated by the database, not against the loaded row
    result = db.execute(stmt.execution_options(synchronize_session=False))
    if result.rowcount != 1:
        db.rollback()
        raise AlreadyLinkedError(message)


def _link_farcaster(db: Session, user: User, fid: Optional[int]) -> dict:
    if fid is None or fid <= 0:
        raise ValidationError("A positive FID is required")
    if user.farcaster_fid is not None:
        raise AlreadyLinkedError("A Farcaster account is already linked")
    taken = db.execute(select(User.id).where(User.farcaster_fid == fid)).scalar_one_or_none()
    if taken is not None:
        raise AlreadyLinkedError("This Farcaster account is linked to another wallet")

    _apply(
        db,
        update(User)
        .where(User.id == user.id, User.farcaster_fid.is_(None))
        .values(farcaster_fid=fid, priority_score=User.priority_score + FARCASTER_POINTS),
        "A Farcaster account is already linked",
    )
    return {"fid": fid, "points": FARCASTER_POINTS}


def _link_lens(db: Session, user: User, profile_id: Optional[str], owner: Optional[str]) -> dict:
    if not profile_id or not owner:
        raise ValidationError("Lens profile id and owner are required")
    if user.lens_profile_id is not None:
        raise AlreadyLinkedError("A Lens profile is already linked")
    taken = db.execute(select(User.id).where(User.lens_profile_id == profile_id)).scalar_one_or_none()
    if taken is not None:
        raise AlreadyLinkedError("This Lens profile is linked to another wallet")

    _apply(
        db,
        update(User)
        .where(User.id == user.id, User.lens_profile_id.is_(None))
        .values(
            lens_profile_id=profile_id,
            lens_owner_address=owner.lower(),
            priority_score=User.priority_score + LENS_POINTS,
        ),
        "A Lens profile is already linked",
    )
    # Admin decisions are terminal; only a still-pending user is promoted
    db.execute(
        update(User)
        .where(User.id == user.id, User.status == WaitlistStatus.PENDING)
        .values(status=WaitlistStatus.PRIORITY_LENS)
        .execution_options(synchronize_session=False)
    )
    return {"profile_id": profile_id, "owner": owner.lower(), "points": LENS_POINTS}


def apply_link_event(
    db: Session,
    user: User,
    kind: LinkEvent,
    fid: Optional[int] = None,
    profile_id: Optional[str] = None,
    owner: Optional[str] = None,
) -> User:
    """
    Award the points for a linking event, exactly once per identity type.

    Raises AlreadyLinkedError when the user already has that identity type
    linked, or when the external identity belongs to another user. Nothing is
    written in either case.
    """
    if kind not in (LinkEvent.FARCASTER_LINKED, LinkEvent.LENS_VERIFIED):
        raise ValidationError(f"Unsupported link event: {kind}")

    try:
        if kind == LinkEvent.FARCASTER_LINKED:
            details = _link_farcaster(db, user, fid)
        else:
            details = _link_lens(db, user, profile_id, owner)
        db.commit()
    except IntegrityError:
        # Lost a race on the unique FID / profile column
        db.rollback()
        raise AlreadyLinkedError("This identity is linked to another wallet")
    db.refresh(user)

    logger.info(
        "Applied %s to %s: score=%s status=%s",
        kind.value, user.wallet_address, user.priority_score, user.status.value,
    )
    details.update({"score": user.priority_score, "status": user.status.value})
    audit.record(db, user.id, kind.value, details)
    return user
