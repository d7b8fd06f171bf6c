"""Pytest configuration for the waitlist API test suite."""

import os
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Optional

import pytest


def _ensure_test_env() -> None:
    """Seed required environment variables before the app is imported."""
    os.environ.setdefault("ADMIN_API_KEY", "test-admin-key")
    os.environ.setdefault("DATABASE_URL", "sqlite://")
    os.environ.setdefault("NEXT_PUBLIC_URL", "https://waitlist.test")
    os.environ.setdefault("ALLOWED_SIWE_DOMAINS", "waitlist.test")
    os.environ.setdefault("SESSION_COOKIE_SECURE", "false")
    os.environ.setdefault("NEYNAR_API_KEY", "test-neynar-key")
    os.environ.setdefault("LENS_VERIFY_OWNER", "false")
    os.environ.setdefault("RATE_LIMIT_AUTH", "100/60")
    os.environ.setdefault("RATE_LIMIT_LINK", "100/60")
    os.environ.setdefault("RATE_LIMIT_ADMIN", "100/60")
    os.environ.setdefault("RATE_LIMIT_READ", "100/60")


_ensure_test_env()

from eth_account import Account  # noqa: E402
from eth_account.messages import encode_defunct  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from redis.exceptions import ConnectionError as RedisConnectionError  # noqa: E402
from sqlalchemy import create_engine  # noqa: E402
from sqlalchemy.orm import sessionmaker  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from app.core.config import settings  # noqa: E402
from app.database import Base, get_db  # noqa: E402
from app.main import app  # noqa: E402
from app.services.farcaster_api import get_farcaster_lookup  # noqa: E402
from app.services.lens_api import get_lens_lookup  # noqa: E402
from app.services.rate_limiter import RateLimiter, get_rate_limiter  # noqa: E402

ADMIN_HEADERS = {"X-Admin-Key": "test-admin-key"}


# ---------- Fakes ----------

@dataclass
class FakeRedis:
    """In-memory fake implementing the Redis operations the rate limiter uses."""

    values: dict[str, Any] = field(default_factory=dict)
    ttls: dict[str, int] = field(default_factory=dict)

    def pipeline(self, transaction: bool = True) -> "FakePipeline":
        return FakePipeline(self)

    def set(self, name: str, value: Any, ex: Optional[int] = None, nx: bool = False) -> Optional[bool]:
        if nx and name in self.values:
            return None
        self.values[name] = value
        if ex is not None:
            self.ttls[name] = ex
        return True

    def incr(self, name: str) -> int:
        self.values[name] = int(self.values.get(name, 0)) + 1
        return self.values[name]


@dataclass
class FakePipeline:
    client: FakeRedis
    ops: list = field(default_factory=list)

    def set(self, *args, **kwargs) -> "FakePipeline":
        self.ops.append(("set", args, kwargs))
        return self

    def incr(self, *args, **kwargs) -> "FakePipeline":
        self.ops.append(("incr", args, kwargs))
        return self

    def execute(self) -> list:
        return [getattr(self.client, name)(*args, **kwargs) for name, args, kwargs in self.ops]


class UnavailableRedis:
    """Counter store that is down."""

    def pipeline(self, transaction: bool = True) -> "UnavailableRedis":
        return self

    def set(self, *args, **kwargs) -> "UnavailableRedis":
        return self

    def incr(self, *args, **kwargs) -> "UnavailableRedis":
        return self

    def execute(self) -> list:
        raise RedisConnectionError("connection refused")


class FakeClock:
    def __init__(self, now: float = 1_700_000_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


class StubFarcasterLookup:
    def __init__(self):
        self.addresses: dict[int, set[str]] = {}

    def addresses_for_fid(self, fid: int) -> set[str]:
        return self.addresses.get(fid, set())


# ---------- Wallet helpers ----------

def _stamp(value: datetime) -> str:
    return value.strftime("%Y-%m-%dT%H:%M:%S.%f")[:-3] + "Z"


def sign(account, text: str) -> str:
    signed = Account.sign_message(encode_defunct(text=text), private_key=account.key)
    return "0x" + bytes(signed.signature).hex()


def siwe_message(
    address: str,
    nonce: str,
    domain: str = "waitlist.test",
    issued_at: Optional[datetime] = None,
    chain_id: int = 1,
    expiration_time: Optional[datetime] = None,
    not_before: Optional[datetime] = None,
) -> str:
    issued_at = issued_at or datetime.now(timezone.utc)
    optional = ""
    if expiration_time is not None:
        optional += f"\nExpiration Time: {_stamp(expiration_time)}"
    if not_before is not None:
        optional += f"\nNot Before: {_stamp(not_before)}"
    return (
        f"{domain} wants you to sign in with your Ethereum account:\n"
        f"{address}\n"
        "\n"
        "Join the waitlist.\n"
        "\n"
        f"URI: https://{domain}\n"
        "Version: 1\n"
        f"Chain ID: {chain_id}\n"
        f"Nonce: {nonce}\n"
        f"Issued At: {_stamp(issued_at)}"
        f"{optional}"
    )


def sign_in(client: TestClient, account) -> dict[str, str]:
    """Run the SIWE flow and return bearer auth headers for the account."""
    nonce = client.get("/auth/nonce").json()["nonce"]
    message = siwe_message(account.address, nonce)
    res = client.post("/auth/siwe", json={"message": message, "signature": sign(account, message)})
    assert res.status_code == 200, res.text
    return {"Authorization": f"Bearer {res.json()['access_token']}"}


# ---------- Fixtures ----------

@pytest.fixture
def session_factory():
    """In-memory SQLite shared across threads for the duration of one test."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    factory = sessionmaker(bind=engine, autocommit=False, autoflush=False)
    yield factory
    engine.dispose()


@pytest.fixture
def file_session_factory(tmp_path):
    """SQLite on disk, so each session gets its own connection."""
    engine = create_engine(f"sqlite:///{tmp_path / 'waitlist.db'}")
    Base.metadata.create_all(engine)
    yield sessionmaker(bind=engine, autocommit=False, autoflush=False)
    engine.dispose()


@pytest.fixture
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def fake_redis() -> FakeRedis:
    return FakeRedis()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def limiter(fake_redis, clock) -> RateLimiter:
    return RateLimiter(fake_redis, settings.rate_limit_rules(), clock=clock)


@pytest.fixture
def farcaster_lookup() -> StubFarcasterLookup:
    return StubFarcasterLookup()


@pytest.fixture
def client(session_factory, limiter, farcaster_lookup):
    def _get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = _get_db
    app.dependency_overrides[get_rate_limiter] = lambda: limiter
    app.dependency_overrides[get_farcaster_lookup] = lambda: farcaster_lookup
    app.dependency_overrides[get_lens_lookup] = lambda: None
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
def account():
    return Account.create()
