# app/services/rate_limiter.py
"""
Fixed-window rate limiting backed by Redis.

Each (route class, client, window) gets one counter key. The counter is
created with its TTL and incremented inside a single MULTI/EXEC pipeline, so
concurrent requests from the same client can never over-admit.
"""
import logging
import time
from dataclasses import dataclass
from functools import lru_cache
from typing import Callable

from fastapi import Depends, Request
from redis import Redis
from redis.exceptions import RedisError

from app.core.config import settings
from app.core.errors import RateLimitedError, ServiceUnavailableError

logger = logging.getLogger(__name__)

# Route classes that still serve traffic when the counter store is down
FAIL_OPEN_CLASSES = frozenset({"read"})


@dataclass(frozen=True)
class RateLimitDecision:
    allowed: bool
    limit: int
    remaining: int
    retry_after: int
    store_available: bool = True


class RateLimiter:
    def __init__(
        self,
        client: Redis,
        rules: dict[str, tuple[int, int]],
        fail_open: frozenset[str] = FAIL_OPEN_CLASSES,
        clock: Callable[[], float] = time.time,
        prefix: str = "ratelimit",
    ):
        self._client = client
        self._rules = rules
        self._fail_open = fail_open
        self._clock = clock
        self._prefix = prefix

    def allow(self, client_key: str, route_class: str) -> RateLimitDecision:
        if route_class not in self._rules:
            raise KeyError(f"No rate limit rule for route class {route_class!r}")
        limit, window = self._rules[route_class]

        now = self._clock()
        window_index = int(now // window)
        retry_after = max(1, int((window_index + 1) * window - now))
        key = f"{self._prefix}:{route_class}:{client_key}:{window_index}"

        try:
            pipe = self._client.pipeline(transaction=True)
            pipe.set(key, 0, ex=window, nx=True)
            pipe.incr(key)
            _, count = pipe.execute()
        except RedisError as e:
            allowed = route_class in self._fail_open
            logger.warning(
                "Rate limit store unavailable (%s); %s route class %s",
                e.__class__.__name__, "allowing" if allowed else "rejecting", route_class,
            )
            return RateLimitDecision(allowed, limit, 0, retry_after, store_available=False)

        count = int(count)
        return RateLimitDecision(
            allowed=count <= limit,
            limit=limit,
            remaining=max(0, limit - count),
            retry_after=retry_after,
        )


def create_redis_client() -> Redis:
    return Redis.from_url(
        settings.REDIS_URL,
        socket_connect_timeout=settings.REDIS_TIMEOUT_SECONDS,
        socket_timeout=settings.REDIS_TIMEOUT_SECONDS,
        decode_responses=True,
    )


@lru_cache(maxsize=1)
def get_rate_limiter() -> RateLimiter:
    return RateLimiter(create_redis_client(), settings.rate_limit_rules())


def client_key(request: Request) -> str:
    if settings.TRUST_FORWARDED_FOR:
        forwarded = request.headers.get("x-forwarded-for", "")
        first = forwarded.split(",")[0].strip()
        if first:
            return first
    return request.client.host if request.client else "unknown"


def rate_limit(route_class: str):
    """FastAPI dependency factory: `dependencies=[Depends(rate_limit("auth"))]`."""

    def _dependency(request: Request, limiter: RateLimiter = Depends(get_rate_limiter)) -> None:
        decision = limiter.allow(client_key(request), route_class)
        if decision.allowed:
            return
        if not decision.store_available:
            raise ServiceUnavailableError("Rate limiting is temporarily unavailable")
        logger.info("Rate limited %s on %s", client_key(request), route_class)
        raise RateLimitedError("Too many requests", retry_after=decision.retry_after)

    return _dependency
