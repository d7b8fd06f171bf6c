from typing import List

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from app.auth.token import get_current_user, get_current_wallet
from app.database import get_db
from app.models.user import QUEUED_STATUSES, User
from app.schemas.user_schema import QueueEntry, StatusResponse, UserResponse
from app.services import waitlist
from app.services.queue import position_of, rank
from app.services.rate_limiter import rate_limit

router = APIRouter(prefix="/waitlist", tags=["waitlist"])


def mask_wallet(wallet: str) -> str:
    return f"{wallet[:6]}…{wallet[-4:]}"


@router.post("/join", response_model=UserResponse, dependencies=[Depends(rate_limit("auth"))])
def join(wallet: str = Depends(get_current_wallet), db: Session = Depends(get_db)):
    user, _ = waitlist.join(db, wallet)
    return user


@router.get("/status", response_model=StatusResponse, dependencies=[Depends(rate_limit("read"))])
def status(user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    queued = waitlist.waitlisted_users(db)
    position = position_of(queued, user.wallet_address) if user.status in QUEUED_STATUSES else None

    return StatusResponse(
        **UserResponse.model_validate(user).model_dump(),
        position=position,
        queue_size=len(queued),
    )


@router.get("/queue", response_model=List[QueueEntry], dependencies=[Depends(rate_limit("read"))])
def queue(limit: int = Query(default=50, ge=1, le=200), db: Session = Depends(get_db)):
    return [
        QueueEntry(
            position=e.position,
            wallet=mask_wallet(e.user.wallet_address),
            priority_score=e.user.priority_score,
            status=e.user.status,
        )
        for e in rank(waitlist.waitlisted_users(db))[:limit]
    ]
