import logging

from fastapi import APIRouter, Depends, Response
from sqlalchemy.orm import Session

from app.auth.token import clear_session_cookie, create_access_token, get_current_wallet, set_session_cookie
from app.core.errors import AuthenticationError, NotFoundError
from app.database import get_db
from app.schemas.auth import NonceOut, SessionOut, SiweIn
from app.services import nonce_ledger, waitlist
from app.services.identity import verify_sign_in
from app.services.rate_limiter import rate_limit

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["auth"])


@router.get("/nonce", response_model=NonceOut, dependencies=[Depends(rate_limit("auth"))])
def get_nonce(db: Session = Depends(get_db)):
    row = nonce_ledger.issue_sign_in_nonce(db)
    return NonceOut(nonce=row.nonce, expires_at=row.expires_at)


@router.post("/siwe", response_model=SessionOut, dependencies=[Depends(rate_limit("auth"))])
def siwe_sign_in(payload: SiweIn, response: Response, db: Session = Depends(get_db)):
    verified = verify_sign_in(payload.message, payload.signature)

    # The nonce must be one this server issued, and it is spent by this sign-in
    try:
        nonce_ledger.consume_sign_in_nonce(db, verified["nonce"])
    except NotFoundError:
        raise AuthenticationError("Unknown or already used nonce")

    user, created = waitlist.join(db, verified["address"])
    token = create_access_token({"sub": user.wallet_address, "dom": verified["domain"]})
    set_session_cookie(response, token)
    logger.info("Signed in %s (new=%s)", user.wallet_address, created)

    return SessionOut(access_token=token, wallet_address=user.wallet_address, created=created)


@router.get("/me", dependencies=[Depends(rate_limit("read"))])
def me(wallet: str = Depends(get_current_wallet)):
    return {"wallet_address": wallet}


@router.post("/logout")
def logout(response: Response):
    clear_session_cookie(response)
    return {"detail": "Logged out"}
