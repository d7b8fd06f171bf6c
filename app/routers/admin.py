from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from app.auth.admin import require_admin
from app.database import get_db
from app.schemas.admin_schema import BatchApproveIn, BatchOut, BatchRejectIn, PurgeOut, StatsOut
from app.services import nonce_ledger, waitlist
from app.services.rate_limiter import rate_limit

router = APIRouter(
    prefix="/admin",
    tags=["admin"],
    dependencies=[Depends(rate_limit("admin")), Depends(require_admin)],
)


def _batch_out(results: list[dict]) -> BatchOut:
    succeeded = sum(1 for r in results if r["result"] in ("approved", "rejected"))
    return BatchOut(processed=len(results), succeeded=succeeded, results=results)


@router.post("/approve", response_model=BatchOut)
def approve(payload: BatchApproveIn, db: Session = Depends(get_db)):
    return _batch_out(waitlist.batch_approve(db, user_ids=payload.user_ids, count=payload.count))


@router.post("/reject", response_model=BatchOut)
def reject(payload: BatchRejectIn, db: Session = Depends(get_db)):
    return _batch_out(waitlist.batch_reject(db, payload.user_ids))


@router.get("/stats", response_model=StatsOut)
def stats(db: Session = Depends(get_db)):
    return waitlist.stats(db)


@router.post("/purge", response_model=PurgeOut)
def purge(db: Session = Depends(get_db)):
    return PurgeOut(removed=nonce_ledger.purge_expired(db))
