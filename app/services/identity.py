# app/services/identity.py
import logging
from datetime import datetime, timedelta
from typing import Optional

from eth_account import Account
from eth_account.messages import encode_defunct
from siwe import ExpiredMessage, SiweMessage, VerificationError
from web3 import Web3

from app.core.config import settings
from app.core.errors import AuthenticationError, ExpiredError, ValidationError
from app.utils.clock import as_utc, utcnow

logger = logging.getLogger(__name__)


def normalize_address(address: str) -> str:
    """Lower-cased 0x address, the form wallets are stored and compared in."""
    if not isinstance(address, str) or not Web3.is_address(address.strip()):
        raise ValidationError("Invalid wallet address")
    return address.strip().lower()


def _signature_bytes(signature: str) -> bytes:
    raw = signature[2:] if signature[:2] in ("0x", "0X") else signature
    sig = bytes.fromhex(raw)
    # 65-byte r || s || v; chain-id encoded v values are not personal_sign output
    if len(sig) != 65 or sig[64] not in (0, 1, 27, 28):
        raise ValueError("Malformed signature")
    return sig


def recover_signer(message: str, signature: str) -> str:
    """EIP-191 personal_sign recovery. Raises on a malformed signature."""
    return Account.recover_message(encode_defunct(text=message), signature=_signature_bytes(signature))


def verify_signature(message: str, signature: str, expected_address: str) -> bool:
    try:
        recovered = recover_signer(message, signature)
    except Exception as e:  # eth_keys/eth_account raise several types for bad input
        logger.debug("Signature recovery failed: %s", e.__class__.__name__)
        return False
    return recovered.lower() == str(expected_address).strip().lower()


def _parse_siwe_str(raw: str) -> SiweMessage:
    """
    Create a SiweMessage instance from a raw EIP-4361 text in a
    version-compatible way across siwe library variants.
    """
    if hasattr(SiweMessage, "from_message"):
        return SiweMessage.from_message(message=raw)
    return SiweMessage(message=raw)


def _chain_id(siwe: SiweMessage) -> Optional[int]:
    # Different siwe versions may expose chain_id or chainId
    for attr in ("chain_id", "chainId"):
        v = getattr(siwe, attr, None)
        if v is not None:
            return int(v)
    return None


def verify_sign_in(
    message: str,
    signature: str,
    expected_nonce: Optional[str] = None,
    now: Optional[datetime] = None,
) -> dict:
    """
    Verify a Sign-In with Ethereum message and its signature.

    Checks, in order: the message parses as EIP-4361, the domain is allow-listed,
    the chain id is accepted, the message is not older than the allowed age,
    the siwe library accepts nonce, expiration, not-before and signature, and
    the signer recovered from the raw text is the address the message names.

    Returns {"address", "nonce", "domain", "chain_id"} with a lower-cased address.
    """
    now = now or utcnow()

    # 1) Parse raw SIWE (multi-line EIP-4361 string)
    try:
        siwe = _parse_siwe_str(message)
    except Exception as e:
        raise ValidationError(f"Malformed SIWE message: {e.__class__.__name__}")

    # 2) Enforce allow-listed domain & chain id
    if siwe.domain not in settings.allowed_siwe_domains():
        raise AuthenticationError(f"Domain mismatch: {siwe.domain}")

    chain_ids = settings.siwe_chain_ids()
    chain_id = _chain_id(siwe)
    if chain_ids and chain_id not in chain_ids:
        raise AuthenticationError(f"Unexpected chain id: {chain_id}")

    # 3) Freshness; expirationTime and notBefore are left to siwe.verify
    issued_at = as_utc(datetime.fromisoformat(siwe.issued_at))
    if issued_at > now + timedelta(seconds=settings.SIWE_CLOCK_SKEW_SECONDS):
        raise AuthenticationError("Message issued in the future")
    if now - issued_at > timedelta(seconds=settings.SIWE_MAX_AGE_SECONDS):
        raise ExpiredError("Sign-in message has expired")

    # 4) Library verification (nonce, validity window, EIP-191 signature)
    try:
        siwe.verify(signature, domain=siwe.domain, nonce=expected_nonce or siwe.nonce, timestamp=now)
    except ExpiredMessage:
        raise ExpiredError("Sign-in message has expired")
    except VerificationError as e:
        raise AuthenticationError(f"Signature verify failed: {e.__class__.__name__}")

    # 5) Strict signature form, over the exact text the wallet signed
    address = normalize_address(siwe.address)
    if not verify_signature(message, signature, address):
        logger.warning("SIWE signature rejected for %s", address)
        raise AuthenticationError("Invalid signature")

    return {
        "address": address,
        "nonce": siwe.nonce,
        "domain": siwe.domain,
        "chain_id": chain_id,
    }


def lens_challenge_message(
    profile_id: str,
    owner_address: str,
    wallet_address: str,
    nonce: str,
    expires_at: datetime,
) -> str:
    """Canonical text the Lens owner wallet signs. Rebuilt from the stored attempt on verify."""
    return (
        f"Verify ownership of Lens profile {profile_id}\n"
        f"for waitlist account {wallet_address.lower()}.\n"
        f"\n"
        f"Owner: {owner_address.lower()}\n"
        f"Nonce: {nonce}\n"
        f"Expires At: {as_utc(expires_at).strftime('%Y-%m-%dT%H:%M:%SZ')}"
    )
