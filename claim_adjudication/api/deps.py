"""
FastAPI Dependencies
Dependency injection for the caller principal and the claim lifecycle service

The identity provider in front of this service authenticates the caller and
forwards the principal in the `X-Principal-Id` and `X-Principal-Role`
headers. Nothing here authenticates.
"""

from typing import Optional

from fastapi import Depends, Header
from sqlalchemy.ext.asyncio import AsyncSession

from claim_adjudication.api.config import settings
from claim_adjudication.core.enums import UserRole
from claim_adjudication.db.connection import get_session, get_session_maker
from claim_adjudication.schemas.principal import Principal
from claim_adjudication.services.activity_recorder import SqlActivityRecorder
from claim_adjudication.services.cache import ReadThroughCache, cache
from claim_adjudication.services.claim_lifecycle import ClaimLifecycleService
from claim_adjudication.services.claims_repository import SqlClaimRepository
from claim_adjudication.services.fraud import RiskEngine, get_fraud_rules
from claim_adjudication.services.medical_records import HttpMedicalRecordStore

_medical_record_store: Optional[HttpMedicalRecordStore] = None


async def get_principal(
    x_principal_id: str = Header(..., min_length=1, max_length=64),
    x_principal_role: UserRole = Header(UserRole.USER),
) -> Principal:
    """Principal forwarded by the identity provider."""
    return Principal(id=x_principal_id, role=x_principal_role)


def get_medical_record_store() -> HttpMedicalRecordStore:
    """Shared medical record client; one connection pool per process."""
    global _medical_record_store
    if _medical_record_store is None:
        _medical_record_store = HttpMedicalRecordStore()
    return _medical_record_store


async def close_medical_record_store() -> None:
    global _medical_record_store
    if _medical_record_store is not None:
        await _medical_record_store.close()
        _medical_record_store = None


def get_read_through_cache() -> ReadThroughCache:
    return ReadThroughCache(cache, enabled=settings.CACHE_ENABLED)


async def get_claim_lifecycle(
    session: AsyncSession = Depends(get_session),
    medical_records: HttpMedicalRecordStore = Depends(get_medical_record_store),
    read_cache: ReadThroughCache = Depends(get_read_through_cache),
) -> ClaimLifecycleService:
    """
    Claim lifecycle service bound to the request's database session.

    Audit events are written through their own sessions so they never share
    the claim write's transaction.
    """
    repository = SqlClaimRepository(session)
    return ClaimLifecycleService(
        repository=repository,
        risk_engine=RiskEngine(repository, medical_records, rules=get_fraud_rules()),
        cache=read_cache,
        recorder=SqlActivityRecorder(get_session_maker()),
    )
