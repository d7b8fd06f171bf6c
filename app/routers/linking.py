import logging

from fastapi import APIRouter, Depends
from sqlalchemy import select
from sqlalchemy.orm import Session

from app.auth.token import get_current_user
from app.core.errors import AlreadyLinkedError, AuthenticationError, ValidationError
from app.database import get_db
from app.models.user import User
from app.schemas.linking import FarcasterLinkIn, LensStartIn, LensStartOut, LensVerifyIn
from app.schemas.user_schema import UserResponse
from app.services import audit, nonce_ledger
from app.services.farcaster_api import get_farcaster_lookup
from app.services.identity import lens_challenge_message, normalize_address, verify_signature
from app.services.lens_api import get_lens_lookup
from app.services.priority import LinkEvent, apply_link_event
from app.services.rate_limiter import rate_limit

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/link", tags=["linking"], dependencies=[Depends(rate_limit("link"))])


@router.post("/farcaster", response_model=UserResponse)
def link_farcaster(
    payload: FarcasterLinkIn,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
    lookup=Depends(get_farcaster_lookup),
):
    # Cheap checks before the external lookup
    if user.farcaster_fid is not None:
        raise AlreadyLinkedError("A Farcaster account is already linked")

    addresses = lookup.addresses_for_fid(payload.fid)
    if user.wallet_address not in addresses:
        logger.warning("FID %s does not list wallet %s", payload.fid, user.wallet_address)
        raise AuthenticationError("This wallet is not an address of the Farcaster account")

    return apply_link_event(db, user, LinkEvent.FARCASTER_LINKED, fid=payload.fid)


@router.post("/lens/start", response_model=LensStartOut)
def lens_start(
    payload: LensStartIn,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
    lookup=Depends(get_lens_lookup),
):
    owner = normalize_address(payload.owner_address)
    profile_id = payload.profile_id.strip().lower()

    if user.lens_profile_id is not None:
        raise AlreadyLinkedError("A Lens profile is already linked")
    taken = db.execute(select(User.id).where(User.lens_profile_id == profile_id)).scalar_one_or_none()
    if taken is not None:
        raise AlreadyLinkedError("This Lens profile is linked to another wallet")

    if lookup is not None and lookup.owner_of(profile_id) != owner:
        raise ValidationError("Claimed owner does not own this Lens profile")

    attempt = nonce_ledger.issue(db, user.id, profile_id, owner)
    message = lens_challenge_message(
        attempt.profile_id, attempt.owner_address, user.wallet_address, attempt.nonce, attempt.expires_at,
    )
    audit.record(db, user.id, audit.LENS_LINK_STARTED, {"profile_id": profile_id, "owner": owner})

    return LensStartOut(nonce=attempt.nonce, expires_at=attempt.expires_at, message=message)


@router.post("/lens/verify", response_model=UserResponse)
def lens_verify(
    payload: LensVerifyIn,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    attempt = nonce_ledger.consume(db, payload.nonce, user_id=user.id)

    # The challenge text is rebuilt from the stored attempt, never taken from the client
    message = lens_challenge_message(
        attempt.profile_id, attempt.owner_address, user.wallet_address, attempt.nonce, attempt.expires_at,
    )
    if not verify_signature(message, payload.signature, attempt.owner_address):
        logger.warning("Lens signature rejected for %s profile %s", user.wallet_address, attempt.profile_id)
        raise AuthenticationError("Signature does not match the Lens profile owner")

    return apply_link_event(
        db, user, LinkEvent.LENS_VERIFIED, profile_id=attempt.profile_id, owner=attempt.owner_address,
    )
