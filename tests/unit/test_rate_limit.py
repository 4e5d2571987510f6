"""
Rate Limiting Tests.
Fixed window accounting and per-principal throttling of the API routers.
"""

import pytest
from fastapi import Response
from fastapi.testclient import TestClient

from claim_adjudication.api.deps import get_claim_lifecycle
from claim_adjudication.api.main import app
from claim_adjudication.api.middleware import (
    InMemoryRateLimiter,
    RateLimitConfig,
    RateLimitDependency,
    principal_rate_limit,
)
from claim_adjudication.core.enums import UserRole
from claim_adjudication.schemas.principal import Principal
from claim_adjudication.utils.errors import RateLimitExceededError

USER = {"X-Principal-Id": "user-1", "X-Principal-Role": "USER"}
OTHER = {"X-Principal-Id": "user-2", "X-Principal-Role": "USER"}


class FakeClock:
    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def limiter(clock) -> InMemoryRateLimiter:
    return InMemoryRateLimiter(clock=clock)


@pytest.fixture
def config() -> RateLimitConfig:
    return RateLimitConfig(requests=3, window_seconds=10)


class TestInMemoryRateLimiter:
    """Tests for window accounting."""

    @pytest.mark.asyncio
    async def test_blocks_after_limit(self, limiter, config):
        results = [(await limiter.check_rate_limit("k", config))[0] for _ in range(4)]

        assert results == [True, True, True, False]

    @pytest.mark.asyncio
    async def test_remaining_counts_down(self, limiter, config):
        remaining = [
            (await limiter.check_rate_limit("k", config))[1]["X-RateLimit-Remaining"]
            for _ in range(4)
        ]

        assert remaining == [2, 1, 0, 0]

    @pytest.mark.asyncio
    async def test_blocked_response_carries_retry_after(self, limiter, config, clock):
        for _ in range(3):
            await limiter.check_rate_limit("k", config)
        clock.now += 4.5

        allowed, headers = await limiter.check_rate_limit("k", config)

        assert allowed is False
        assert headers["X-RateLimit-Limit"] == 3
        assert headers["X-RateLimit-Reset"] == 6
        assert headers["Retry-After"] == 6

    @pytest.mark.asyncio
    async def test_window_expiry_restores_budget(self, limiter, config, clock):
        for _ in range(4):
            await limiter.check_rate_limit("k", config)
        clock.now += 10

        allowed, headers = await limiter.check_rate_limit("k", config)

        assert allowed is True
        assert headers["X-RateLimit-Remaining"] == 2

    @pytest.mark.asyncio
    async def test_keys_have_separate_budgets(self, limiter, config):
        for _ in range(3):
            await limiter.check_rate_limit("a", config)

        assert (await limiter.check_rate_limit("a", config))[0] is False
        assert (await limiter.check_rate_limit("b", config))[0] is True

    @pytest.mark.asyncio
    async def test_expired_windows_are_evicted_when_full(self, clock, config):
        limiter = InMemoryRateLimiter(clock=clock, max_keys=2)
        await limiter.check_rate_limit("a", config)
        clock.now += 5
        await limiter.check_rate_limit("b", config)
        clock.now += 6

        await limiter.check_rate_limit("c", config)

        assert set(limiter._windows) == {"b", "c"}

    @pytest.mark.asyncio
    async def test_clear(self, limiter, config):
        for _ in range(3):
            await limiter.check_rate_limit("k", config)

        limiter.clear()

        assert (await limiter.check_rate_limit("k", config))[0] is True


class TestRateLimitDependency:
    """Tests for the per-principal dependency."""

    def test_defaults_come_from_settings(self):
        config = RateLimitConfig.from_settings()

        assert config.requests == 20
        assert config.window_seconds == 10
        assert config.enabled is True

    @pytest.mark.asyncio
    async def test_sets_headers_on_response(self, limiter, config, user):
        dependency = RateLimitDependency(config, limiter)
        response = Response()

        await dependency(response, user)

        assert response.headers["X-RateLimit-Limit"] == "3"
        assert response.headers["X-RateLimit-Remaining"] == "2"
        assert response.headers["X-RateLimit-Reset"] == "10"

    @pytest.mark.asyncio
    async def test_raises_when_exhausted(self, limiter, user):
        dependency = RateLimitDependency(RateLimitConfig(requests=1, window_seconds=10), limiter)
        await dependency(Response(), user)

        with pytest.raises(RateLimitExceededError) as exc_info:
            await dependency(Response(), user)

        assert exc_info.value.status_code == 429
        assert exc_info.value.headers["Retry-After"] == "10"

    @pytest.mark.asyncio
    async def test_budget_is_keyed_by_principal_id(self, limiter, user):
        dependency = RateLimitDependency(RateLimitConfig(requests=1, window_seconds=10), limiter)
        await dependency(Response(), user)

        # Same id under another role shares the budget
        with pytest.raises(RateLimitExceededError):
            await dependency(Response(), Principal(id=user.id, role=UserRole.ADMIN))

    @pytest.mark.asyncio
    async def test_disabled_never_blocks(self, limiter, user):
        dependency = RateLimitDependency(
            RateLimitConfig(requests=1, window_seconds=10, enabled=False), limiter
        )

        for _ in range(5):
            await dependency(Response(), user)

        assert limiter._windows == {}


@pytest.fixture
def limited_client(lifecycle):
    app.dependency_overrides[get_claim_lifecycle] = lambda: lifecycle
    app.dependency_overrides[principal_rate_limit] = RateLimitDependency(
        RateLimitConfig(requests=2, window_seconds=60)
    )
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.mark.api
class TestRateLimitedApi:
    """Tests for throttling through the HTTP routers."""

    def test_third_request_is_rejected(self, limited_client):
        responses = [limited_client.get("/api/v1/claims", headers=USER) for _ in range(3)]

        assert [r.status_code for r in responses] == [200, 200, 429]
        assert responses[0].headers["X-RateLimit-Limit"] == "2"
        assert responses[0].headers["X-RateLimit-Remaining"] == "1"
        assert responses[2].json() == {"error": "rate_limited", "detail": "Too many requests"}
        assert responses[2].headers["X-RateLimit-Remaining"] == "0"
        assert int(responses[2].headers["Retry-After"]) > 0

    def test_other_principals_are_unaffected(self, limited_client):
        for _ in range(3):
            limited_client.get("/api/v1/claims", headers=USER)

        response = limited_client.get("/api/v1/claims", headers=OTHER)

        assert response.status_code == 200

    def test_claims_and_fraud_share_a_budget(self, limited_client):
        body = {
            "patient_id": "p1",
            "amount": 100,
            "procedure_codes": ["99213"],
            "diagnosis_codes": ["I10"],
        }
        limited_client.get("/api/v1/claims", headers=USER)
        limited_client.post("/api/v1/fraud/assess", json=body, headers=USER)

        response = limited_client.post("/api/v1/fraud/assess", json=body, headers=USER)

        assert response.status_code == 429

    def test_health_is_not_limited(self, limited_client):
        statuses = {limited_client.get("/health").status_code for _ in range(5)}

        assert 429 not in statuses
