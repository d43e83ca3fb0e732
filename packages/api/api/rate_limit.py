"""Per-client fixed-window rate limiter."""

import logging
import math
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timezone

from fastapi import Request, status

from api.errors import ApiError

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Policies
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class RateLimitPolicy:
    """Limit for one endpoint.

    Attributes:
        name: Namespace for the counters, so endpoints never share a window.
        max_requests: Requests admitted per window.
        window_seconds: Window length.
        message: Error text returned when the limit is hit.
    """

    name: str
    max_requests: int
    window_seconds: int
    message: str = "Too many requests, please try again later."


# ---------------------------------------------------------------------------
# In-memory storage: (endpoint, client) -> current window
# ---------------------------------------------------------------------------


@dataclass
class RateLimitEntry:
    """Counter for one client within its current window."""

    count: int
    reset_at: float


@dataclass(frozen=True)
class RateLimitDecision:
    """Outcome of a single admission check."""

    allowed: bool
    limit: int
    remaining: int
    reset_at: float
    retry_after: int

    def reset_iso(self) -> str:
        return datetime.fromtimestamp(self.reset_at, tz=timezone.utc).isoformat()


class FixedWindowRateLimiter:
    """Count requests per key in fixed windows.

    A key's window opens on its first request and lasts ``window`` seconds;
    bursts straddling a window boundary can briefly see twice the rate.
    Expired entries count as absent and are pruned once the store grows past
    ``prune_threshold`` keys.  All state changes happen under one lock, so
    concurrent callers can never both take the last slot.
    """

    def __init__(
        self,
        clock: Callable[[], float] = time.time,
        prune_threshold: int = 10_000,
    ) -> None:
        self._clock = clock
        self._prune_threshold = prune_threshold
        self._entries: dict[str, RateLimitEntry] = {}
        self._lock = threading.Lock()

    def __len__(self) -> int:
        return len(self._entries)

    def admit(self, client_id: str, max_requests: int, window_ms: int) -> bool:
        """Record a request and return whether it is allowed."""
        return self.check(client_id, max_requests, window_ms / 1000).allowed

    def check(
        self, key: str, max_requests: int, window_seconds: float
    ) -> RateLimitDecision:
        """Record a request for ``key`` and return the full decision."""
        with self._lock:
            now = self._clock()
            entry = self._entries.get(key)

            if entry is None or now > entry.reset_at:
                if entry is None and len(self._entries) >= self._prune_threshold:
                    self._prune(now)
                entry = RateLimitEntry(count=1, reset_at=now + window_seconds)
                self._entries[key] = entry
                allowed = True
            elif entry.count < max_requests:
                entry.count += 1
                allowed = True
            else:
                allowed = False

            return RateLimitDecision(
                allowed=allowed,
                limit=max_requests,
                remaining=max(0, max_requests - entry.count),
                reset_at=entry.reset_at,
                retry_after=max(1, math.ceil(entry.reset_at - now)),
            )

    def _prune(self, now: float) -> None:
        expired = [k for k, e in self._entries.items() if now > e.reset_at]
        for key in expired:
            del self._entries[key]
        if expired:
            logger.debug("[RATE_LIMIT] Pruned %d expired entries", len(expired))


# ---------------------------------------------------------------------------
# Client identity
# ---------------------------------------------------------------------------


def get_client_ip(request: Request) -> str:
    """Return the caller's address, honouring proxy headers."""
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded and forwarded.split(",")[0].strip():
        return forwarded.split(",")[0].strip()

    real_ip = request.headers.get("X-Real-IP")
    if real_ip:
        return real_ip.strip()

    return request.client.host if request.client else "unknown"


# ---------------------------------------------------------------------------
# FastAPI dependency
# ---------------------------------------------------------------------------


def rate_limit(policy_name: str) -> Callable:
    """Build a dependency enforcing the policy registered under ``policy_name``.

    Policies live on ``app.state.rate_limit_policies`` and the shared
    limiter on ``app.state.rate_limiter``, both set up at startup.

    Returns:
        An async dependency returning the caller's client id, or raising
        429 with a ``retryAfter`` hint once the caller is over the limit.
    """

    async def dependency(request: Request) -> str:
        limiter: FixedWindowRateLimiter = request.app.state.rate_limiter
        policy: RateLimitPolicy = request.app.state.rate_limit_policies[policy_name]
        client_ip = get_client_ip(request)

        decision = limiter.check(
            f"{policy.name}:{client_ip}",
            policy.max_requests,
            policy.window_seconds,
        )
        request.state.rate_limit = decision

        if not decision.allowed:
            logger.warning(
                "[RATE_LIMIT] %s limit hit for %s, retry in %ss",
                policy.name,
                client_ip,
                decision.retry_after,
            )
            raise ApiError(
                status_code=status.HTTP_429_TOO_MANY_REQUESTS,
                detail=policy.message,
                extra={"retryAfter": decision.retry_after},
                headers={
                    "Retry-After": str(decision.retry_after),
                    "X-RateLimit-Limit": str(decision.limit),
                    "X-RateLimit-Remaining": "0",
                    "X-RateLimit-Reset": decision.reset_iso(),
                },
            )

        return client_ip

    return dependency
