"""
API Middleware for the Claim Adjudication Service.

Provides:
- Rate limiting per principal
"""

from claim_adjudication.api.middleware.rate_limit import (
    InMemoryRateLimiter,
    RateLimitConfig,
    RateLimitDependency,
    principal_rate_limit,
)

__all__ = [
    "InMemoryRateLimiter",
    "RateLimitConfig",
    "RateLimitDependency",
    "principal_rate_limit",
]
