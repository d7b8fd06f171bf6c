# app/services/waitlist.py
import logging
from typing import Iterable, Optional

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.errors import ValidationError
from app.models.user import QUEUED_STATUSES, User, WaitlistStatus
from app.services import audit
from app.services.identity import normalize_address
from app.services.queue import rank

logger = logging.getLogger(__name__)


def get_user_by_wallet(db: Session, wallet_address: str) -> Optional[User]:
    wallet = normalize_address(wallet_address)
    return db.execute(select(User).where(User.wallet_address == wallet)).scalar_one_or_none()


def join(db: Session, wallet_address: str) -> tuple[User, bool]:
    """Idempotent signup. Returns (user, created)."""
    wallet = normalize_address(wallet_address)
    user = get_user_by_wallet(db, wallet)
    if user:
        return user, False

    user = User(wallet_address=wallet, status=WaitlistStatus.PENDING, priority_score=0)
    db.add(user)
    try:
        db.commit()
    except IntegrityError:
        # A concurrent join for the same wallet committed first
        db.rollback()
        return get_user_by_wallet(db, wallet), False
    db.refresh(user)

    logger.info("Joined waitlist: %s", wallet)
    audit.record(db, user.id, audit.JOINED, {"wallet": wallet})
    return user, True


def waitlisted_users(db: Session) -> list[User]:
    return list(db.execute(select(User).where(User.status.in_(QUEUED_STATUSES))).scalars())


def stats(db: Session) -> dict:
    rows = db.execute(select(User.status, func.count(User.id)).group_by(User.status)).all()
    counts = {status.value: 0 for status in WaitlistStatus}
    for status, n in rows:
        counts[WaitlistStatus(status).value] = n
    return {"total": sum(counts.values()), "by_status": counts}


def _transition(db: Session, user_id: int, target: WaitlistStatus, action: str) -> dict:
    """Move one queued user to a terminal status in its own transaction."""
    user = db.get(User, user_id)
    if user is None:
        return {"user_id": user_id, "result": "not_found"}
    wallet = user.wallet_address
    previous = user.status
    if previous not in QUEUED_STATUSES:
        return {"user_id": user_id, "wallet_address": wallet,
                "result": "skipped", "detail": f"status is {previous.value}"}

    try:
        # Only a row still queued in the database moves; a concurrent decision wins
        moved = db.execute(
            update(User)
            .where(User.id == user_id, User.status.in_(QUEUED_STATUSES))
            .values(status=target)
            .execution_options(synchronize_session=False)
        ).rowcount
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        logger.exception("Failed to set %s on user_id=%s", target.value, user_id)
        return {"user_id": user_id, "wallet_address": wallet, "result": "failed"}

    db.refresh(user)
    if moved != 1:
        return {"user_id": user_id, "wallet_address": wallet,
                "result": "skipped", "detail": f"status is {user.status.value}"}

    logger.info("%s user_id=%s (%s)", action, user_id, wallet)
    audit.record(db, user_id, action, {
        "from": previous.value,
        "to": target.value,
        "score": user.priority_score,
    })
    return {"user_id": user_id, "wallet_address": wallet, "result": action.lower()}


def _check_batch(user_ids: Optional[Iterable[int]], count: Optional[int]) -> None:
    if (user_ids is None) == (count is None):
        raise ValidationError("Provide exactly one of user_ids or count")
    size = count if count is not None else len(list(user_ids))
    if size < 1:
        raise ValidationError("Batch must select at least one user")
    if size > settings.ADMIN_BATCH_MAX:
        raise ValidationError(f"Batch size is capped at {settings.ADMIN_BATCH_MAX}")


def batch_approve(db: Session, user_ids: Optional[list[int]] = None, count: Optional[int] = None) -> list[dict]:
    """
    Approve users one transaction at a time.

    With ``count`` the top of the queue is taken in rank order. With
    ``user_ids`` each id is processed as given. A failure on one user is
    reported in its result entry and never undoes the others.
    """
    _check_batch(user_ids, count)
    if count is not None:
        user_ids = [entry.user.id for entry in rank(waitlisted_users(db))[:count]]
    # dict.fromkeys keeps order while dropping repeated ids
    return [_transition(db, uid, WaitlistStatus.APPROVED, audit.APPROVED) for uid in dict.fromkeys(user_ids)]


def batch_reject(db: Session, user_ids: list[int]) -> list[dict]:
    _check_batch(user_ids, None)
    return [_transition(db, uid, WaitlistStatus.REJECTED, audit.REJECTED) for uid in dict.fromkeys(user_ids)]
