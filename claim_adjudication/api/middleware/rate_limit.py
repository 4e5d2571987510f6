"""
Rate Limiting for Per-Principal Request Throttling.

Provides:
- Fixed window rate limiting
- Per-principal budgets shared across the claims and fraud endpoints
- X-RateLimit-* response headers and 429 with Retry-After when exhausted

Limits are kept in process memory, so each worker enforces its own budget.
"""

import logging
import math
import time
from dataclasses import dataclass
from typing import Callable, Optional

from fastapi import Depends, Response

from claim_adjudication.api.config import settings
from claim_adjudication.api.deps import get_principal
from claim_adjudication.schemas.principal import Principal
from claim_adjudication.utils.errors import RateLimitExceededError

logger = logging.getLogger(__name__)


@dataclass
class RateLimitConfig:
    """Configuration for rate limiting."""

    requests: int = 20
    window_seconds: float = 10.0
    enabled: bool = True

    @classmethod
    def from_settings(cls) -> "RateLimitConfig":
        return cls(
            requests=settings.RATE_LIMIT_REQUESTS,
            window_seconds=settings.RATE_LIMIT_WINDOW_SECONDS,
            enabled=settings.RATE_LIMIT_ENABLED,
        )


@dataclass
class RateLimitState:
    """State for a single rate limit window."""

    window_start: float
    count: int = 0

    def is_window_expired(self, now: float, window_seconds: float) -> bool:
        return now - self.window_start >= window_seconds


class InMemoryRateLimiter:
    """
    In-memory fixed window rate limiter.

    A check never awaits, so it runs atomically on the event loop.
    """

    def __init__(
        self,
        clock: Callable[[], float] = time.monotonic,
        max_keys: int = 10_000,
    ):
        self._windows: dict[str, RateLimitState] = {}
        self._clock = clock
        self._max_keys = max_keys

    async def check_rate_limit(
        self,
        key: str,
        config: RateLimitConfig,
    ) -> tuple[bool, dict[str, int]]:
        """
        Count a request against `key`.

        Returns:
            tuple of (is_allowed, rate_limit_headers)
        """
        now = self._clock()
        state = self._windows.get(key)
        if state is None or state.is_window_expired(now, config.window_seconds):
            if state is None and len(self._windows) >= self._max_keys:
                self._evict_expired(now, config.window_seconds)
            state = self._windows[key] = RateLimitState(window_start=now)

        reset = max(1, math.ceil(state.window_start + config.window_seconds - now))
        headers = {
            "X-RateLimit-Limit": config.requests,
            "X-RateLimit-Remaining": max(0, config.requests - state.count - 1),
            "X-RateLimit-Reset": reset,
        }

        if state.count >= config.requests:
            headers["X-RateLimit-Remaining"] = 0
            headers["Retry-After"] = reset
            return False, headers

        state.count += 1
        return True, headers

    def _evict_expired(self, now: float, window_seconds: float) -> None:
        expired = [
            key
            for key, state in self._windows.items()
            if state.is_window_expired(now, window_seconds)
        ]
        for key in expired:
            del self._windows[key]

    def clear(self) -> None:
        """Clear all rate limit state."""
        self._windows.clear()


# =============================================================================
# Rate Limit Dependencies
# =============================================================================


class RateLimitDependency:
    """
    Dependency that throttles requests per principal.

    Usage:
        router = APIRouter(dependencies=[Depends(principal_rate_limit)])
    """

    def __init__(
        self,
        config: Optional[RateLimitConfig] = None,
        limiter: Optional[InMemoryRateLimiter] = None,
    ):
        self.config = config or RateLimitConfig.from_settings()
        self.limiter = limiter or InMemoryRateLimiter()

    async def __call__(
        self,
        response: Response,
        principal: Principal = Depends(get_principal),
    ) -> None:
        if not self.config.enabled:
            return

        key = f"principal:{principal.id}"
        is_allowed, headers = await self.limiter.check_rate_limit(key, self.config)

        if not is_allowed:
            logger.warning(f"Rate limit exceeded for {key}")
            raise RateLimitExceededError(headers={k: str(v) for k, v in headers.items()})

        for header, value in headers.items():
            response.headers[header] = str(value)


# Shared by the claims and fraud routers
principal_rate_limit = RateLimitDependency()
