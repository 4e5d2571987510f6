"""
Pytest Configuration and Fixtures.
Shared test fixtures for all test modules.
"""

import os
from unittest.mock import AsyncMock, MagicMock

os.environ.setdefault("ENVIRONMENT", "testing")
os.environ.setdefault("CACHE_ENABLED", "true")

import pytest  # noqa: E402

from claim_adjudication.core.enums import UserRole  # noqa: E402
from claim_adjudication.schemas.fraud import MedicalCondition, MedicalRecord  # noqa: E402
from claim_adjudication.schemas.principal import Principal  # noqa: E402
from claim_adjudication.services.cache import ReadThroughCache  # noqa: E402
from claim_adjudication.services.claim_lifecycle import ClaimLifecycleService  # noqa: E402
from claim_adjudication.services.fraud import FraudRuleSet, RiskEngine  # noqa: E402
from tests.fakes import (  # noqa: E402
    NOW,
    InMemoryCacheBackend,
    InMemoryClaimRepository,
    InMemoryMedicalRecordStore,
    RecordingActivityRecorder,
)


@pytest.fixture
def admin() -> Principal:
    return Principal(id="admin-1", role=UserRole.ADMIN)


@pytest.fixture
def user() -> Principal:
    return Principal(id="user-1", role=UserRole.USER)


@pytest.fixture
def other_user() -> Principal:
    return Principal(id="user-2", role=UserRole.USER)


@pytest.fixture
def hypertension_record() -> MedicalRecord:
    """Medical record for patient p1 with active hypertension and diabetes."""
    return MedicalRecord(
        patient_id="p1",
        conditions=[
            MedicalCondition(name="Hypertension"),
            MedicalCondition(name="Type 2 Diabetes"),
        ],
    )


@pytest.fixture
def repository() -> InMemoryClaimRepository:
    return InMemoryClaimRepository()


@pytest.fixture
def medical_records(hypertension_record) -> InMemoryMedicalRecordStore:
    return InMemoryMedicalRecordStore({"p1": hypertension_record})


@pytest.fixture
def cache_backend() -> InMemoryCacheBackend:
    return InMemoryCacheBackend()


@pytest.fixture
def read_cache(cache_backend) -> ReadThroughCache:
    return ReadThroughCache(cache_backend, enabled=True, key_prefix="claims", default_ttl=300)


@pytest.fixture
def recorder() -> RecordingActivityRecorder:
    return RecordingActivityRecorder()


@pytest.fixture
def risk_engine(repository, medical_records) -> RiskEngine:
    return RiskEngine(repository, medical_records, rules=FraudRuleSet(), clock=lambda: NOW)


@pytest.fixture
def lifecycle(repository, risk_engine, read_cache, recorder) -> ClaimLifecycleService:
    return ClaimLifecycleService(
        repository=repository,
        risk_engine=risk_engine,
        cache=read_cache,
        recorder=recorder,
        max_attempts=3,
        retry_delay=0,
        repository_timeout=5.0,
        cache_ttl=300,
        clock=lambda: NOW,
    )


@pytest.fixture
def mock_db_session():
    """Create a mock database session."""
    session = AsyncMock()
    session.execute = AsyncMock()
    session.commit = AsyncMock()
    session.rollback = AsyncMock()
    session.close = AsyncMock()
    session.add = MagicMock()
    return session


# Configure pytest markers
def pytest_configure(config):
    """Configure pytest markers."""
    config.addinivalue_line(
        "markers", "unit: mark test as a unit test"
    )
    config.addinivalue_line(
        "markers", "integration: mark test as an integration test"
    )
    config.addinivalue_line(
        "markers", "api: mark test as an API test"
    )
    config.addinivalue_line(
        "markers", "slow: mark test as slow running"
    )
