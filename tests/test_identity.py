"""Unit tests for signature and SIWE verification."""

from datetime import datetime, timedelta, timezone

import pytest
from eth_account import Account

from app.core.errors import AuthenticationError, ExpiredError, ValidationError
from app.services.identity import (
    lens_challenge_message,
    normalize_address,
    verify_sign_in,
    verify_signature,
)
from conftest import sign, siwe_message


def test_verify_signature_accepts_signer_case_insensitively(account) -> None:
    signature = sign(account, "hello waitlist")

    assert verify_signature("hello waitlist", signature, account.address) is True
    assert verify_signature("hello waitlist", signature, account.address.lower()) is True
    assert verify_signature("hello waitlist", signature, account.address.upper().replace("0X", "0x")) is True


def test_verify_signature_rejects_other_address_and_other_message(account) -> None:
    signature = sign(account, "hello waitlist")

    assert verify_signature("hello waitlist", signature, Account.create().address) is False
    assert verify_signature("hello waitlist!", signature, account.address) is False


@pytest.mark.parametrize("byte_index", [0, 7, 31, 32, 50, 63, 64])
@pytest.mark.parametrize("bit", [0, 3, 7])
def test_any_bit_flip_in_signature_fails(account, byte_index: int, bit: int) -> None:
    signature = bytearray(bytes.fromhex(sign(account, "flip me")[2:]))
    signature[byte_index] ^= 1 << bit

    assert verify_signature("flip me", "0x" + bytes(signature).hex(), account.address) is False


@pytest.mark.parametrize("signature", ["", "0x", "0x1234", "not-hex", "0x" + "00" * 65])
def test_malformed_signature_is_false_not_an_error(account, signature: str) -> None:
    assert verify_signature("hello", signature, account.address) is False


def test_normalize_address() -> None:
    assert normalize_address("  0xABCDEF0000000000000000000000000000000001 ") == (
        "0xabcdef0000000000000000000000000000000001"
    )
    with pytest.raises(ValidationError):
        normalize_address("0x1234")


def test_verify_sign_in_returns_lowercased_signer(account) -> None:
    message = siwe_message(account.address, "abcdef0123456789")

    result = verify_sign_in(message, sign(account, message), expected_nonce="abcdef0123456789")

    assert result["address"] == account.address.lower()
    assert result["nonce"] == "abcdef0123456789"
    assert result["domain"] == "waitlist.test"


def test_verify_sign_in_rejects_signature_from_another_wallet(account) -> None:
    message = siwe_message(account.address, "abcdef0123456789")

    with pytest.raises(AuthenticationError):
        verify_sign_in(message, sign(Account.create(), message))


def test_verify_sign_in_rejects_unknown_domain(account) -> None:
    message = siwe_message(account.address, "abcdef0123456789", domain="evil.test")

    with pytest.raises(AuthenticationError):
        verify_sign_in(message, sign(account, message))


def test_verify_sign_in_rejects_nonce_mismatch(account) -> None:
    message = siwe_message(account.address, "abcdef0123456789")

    with pytest.raises(AuthenticationError):
        verify_sign_in(message, sign(account, message), expected_nonce="0000000000000000")


def test_verify_sign_in_rejects_stale_message(account) -> None:
    issued = datetime.now(timezone.utc) - timedelta(hours=1)
    message = siwe_message(account.address, "abcdef0123456789", issued_at=issued)

    with pytest.raises(ExpiredError):
        verify_sign_in(message, sign(account, message))


def test_verify_sign_in_rejects_future_message(account) -> None:
    issued = datetime.now(timezone.utc) + timedelta(hours=1)
    message = siwe_message(account.address, "abcdef0123456789", issued_at=issued)

    with pytest.raises(AuthenticationError):
        verify_sign_in(message, sign(account, message))


def test_verify_sign_in_rejects_unparseable_message(account) -> None:
    with pytest.raises(ValidationError):
        verify_sign_in("definitely not siwe", sign(account, "definitely not siwe"))


def test_lens_challenge_binds_profile_owner_wallet_and_nonce() -> None:
    expires = datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc)
    text = lens_challenge_message("0x01", "0xAAaa" + "0" * 36, "0xBBbb" + "0" * 36, "n0nce", expires)

    assert "Lens profile 0x01" in text
    assert "Owner: 0xaaaa" in text
    assert "waitlist account 0xbbbb" in text
    assert "Nonce: n0nce" in text
    assert text.endswith("Expires At: 2026-01-01T12:00:00Z")
    # Naive timestamps (as SQLite returns them) render identically
    assert text == lens_challenge_message(
        "0x01", "0xAAaa" + "0" * 36, "0xBBbb" + "0" * 36, "n0nce", expires.replace(tzinfo=None),
    )


def test_verify_sign_in_rejects_passed_expiration_time(account) -> None:
    now = datetime.now(timezone.utc)
    message = siwe_message(
        account.address, "abcdef0123456789",
        issued_at=now - timedelta(minutes=2), expiration_time=now - timedelta(minutes=1),
    )

    with pytest.raises(ExpiredError):
        verify_sign_in(message, sign(account, message))


def test_verify_sign_in_rejects_message_not_yet_valid(account) -> None:
    now = datetime.now(timezone.utc)
    message = siwe_message(account.address, "abcdef0123456789", not_before=now + timedelta(minutes=30))

    with pytest.raises(AuthenticationError):
        verify_sign_in(message, sign(account, message))


def test_verify_sign_in_accepts_open_validity_window(account) -> None:
    now = datetime.now(timezone.utc)
    message = siwe_message(
        account.address, "abcdef0123456789",
        expiration_time=now + timedelta(minutes=5), not_before=now - timedelta(minutes=1),
    )

    assert verify_sign_in(message, sign(account, message))["address"] == account.address.lower()
