"""
Claim Lifecycle Service.

Provides:
- Claim creation with fraud assessment and auto-denial
- Field edits with re-assessment while PENDING
- Single and bulk status transitions
- Cached listing and statistics per principal

Every mutation runs authorize -> assess (if needed) -> persist -> invalidate
cache -> audit, strictly in that order. Persistence goes through the
repository's conditional writes; conflicts are retried a bounded number of
times before surfacing as ConflictError.
"""

import asyncio
import logging
import math
from collections import Counter
from collections.abc import Awaitable, Sequence
from datetime import datetime
from decimal import Decimal
from typing import Callable, Optional, TypeVar
from uuid import UUID, uuid4

from claim_adjudication.api.config import settings
from claim_adjudication.core.enums import ActivityType, ClaimStatus
from claim_adjudication.schemas.claim import (
    BulkTransitionResult,
    ClaimCreate,
    ClaimFilters,
    ClaimListQuery,
    ClaimListResponse,
    ClaimRecord,
    ClaimStats,
    ClaimUpdate,
)
from claim_adjudication.schemas.fraud import FraudAssessment, FraudCheckDetails
from claim_adjudication.schemas.principal import Principal
from claim_adjudication.services.activity_recorder import ActivityEvent, ActivityRecorder
from claim_adjudication.services.cache import CacheView, ReadThroughCache
from claim_adjudication.services.claim_state_machine import (
    ClaimStateMachine,
    get_claim_state_machine,
    is_editable_status,
)
from claim_adjudication.services.claims_repository import ClaimRepository
from claim_adjudication.services.fraud.risk_engine import RiskEngine, utc_now
from claim_adjudication.utils.errors import (
    ConflictError,
    DependencyError,
    ForbiddenError,
    InvalidStateTransitionError,
    NotFoundError,
    ValidationError,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")


_TRANSITION_ACTIVITY = {
    ClaimStatus.APPROVED: ActivityType.CLAIM_APPROVED,
    ClaimStatus.DENIED: ActivityType.CLAIM_DENIED,
}

_CODE_FIELDS = frozenset({"procedure_codes", "diagnosis_codes"})


def _differs(field: str, current: object, requested: object) -> bool:
    # Code lists are unordered
    if field in _CODE_FIELDS:
        return Counter(current) != Counter(requested)
    return current != requested


def validate_claim_fields(
    amount: Optional[Decimal] = None,
    procedure_codes: Optional[Sequence[str]] = None,
    diagnosis_codes: Optional[Sequence[str]] = None,
    patient_id: Optional[str] = None,
    require_all: bool = True,
) -> None:
    """
    Check the business constraints on claim fields.

    With `require_all=False` only the fields that are supplied are checked,
    which is how partial edits are validated.

    Raises:
        ValidationError: Listing every violated constraint
    """
    errors: list[str] = []

    if require_all and not (patient_id and patient_id.strip()):
        errors.append("patient_id is required")

    if amount is not None:
        if amount <= 0:
            errors.append("amount must be greater than 0")
    elif require_all:
        errors.append("amount is required")

    for name, codes in (
        ("procedure_codes", procedure_codes),
        ("diagnosis_codes", diagnosis_codes),
    ):
        if codes is None:
            if require_all:
                errors.append(f"{name} is required")
        elif not codes:
            errors.append(f"{name} must not be empty")
        elif any(not code for code in codes):
            errors.append(f"{name} must not contain blank codes")

    if errors:
        raise ValidationError("; ".join(errors), errors=errors)


class ClaimLifecycleService:
    """
    Service for claim lifecycle operations.

    Collaborators are injected so that the same rules apply whichever
    repository, cache or audit sink backs them.
    """

    def __init__(
        self,
        repository: ClaimRepository,
        risk_engine: RiskEngine,
        cache: ReadThroughCache,
        recorder: ActivityRecorder,
        state_machine: Optional[ClaimStateMachine] = None,
        max_attempts: Optional[int] = None,
        retry_delay: Optional[float] = None,
        repository_timeout: Optional[float] = None,
        cache_ttl: Optional[int] = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        self._repository = repository
        self._risk_engine = risk_engine
        self._cache = cache
        self._recorder = recorder
        self._state_machine = state_machine or get_claim_state_machine()
        self._max_attempts = max_attempts or settings.CLAIM_UPDATE_MAX_ATTEMPTS
        self._retry_delay = (
            retry_delay if retry_delay is not None else settings.CLAIM_UPDATE_RETRY_DELAY
        )
        self._repository_timeout = repository_timeout or settings.REPOSITORY_TIMEOUT
        self._cache_ttl = cache_ttl or settings.CACHE_TTL
        self._clock = clock

    # =========================================================================
    # Fraud Assessment
    # =========================================================================

    async def assess_fraud(
        self,
        patient_id: str,
        amount: Decimal,
        procedure_codes: Sequence[str],
        diagnosis_codes: Sequence[str],
    ) -> FraudAssessment:
        """Assess a proposed claim without persisting anything."""
        validate_claim_fields(amount, procedure_codes, diagnosis_codes, patient_id)
        return await self._assess(patient_id, amount, procedure_codes, diagnosis_codes)

    async def _assess(
        self,
        patient_id: str,
        amount: Decimal,
        procedure_codes: Sequence[str],
        diagnosis_codes: Sequence[str],
        exclude_claim_id: Optional[UUID] = None,
    ) -> FraudAssessment:
        return await self._with_deadline(
            "Fraud assessment",
            self._risk_engine.assess(
                patient_id,
                amount,
                procedure_codes,
                diagnosis_codes,
                exclude_claim_id=exclude_claim_id,
            ),
            dependency="risk_engine",
        )

    # =========================================================================
    # Create / Read
    # =========================================================================

    async def create_claim(self, data: ClaimCreate, principal: Principal) -> ClaimRecord:
        """
        Create a claim.

        The claim is assessed before it is stored. A fraudulent assessment
        stores the claim as DENIED instead of PENDING.

        Raises:
            ValidationError: Non-positive amount, empty code list, missing patient
            DependencyError: Repository or medical record store failure
        """
        validate_claim_fields(
            data.amount, data.procedure_codes, data.diagnosis_codes, data.patient_id
        )

        assessment = await self._assess(
            data.patient_id, data.amount, data.procedure_codes, data.diagnosis_codes
        )

        now = self._clock()
        status = self._state_machine.initial_status(assessment.is_fraudulent)
        record = ClaimRecord(
            id=uuid4(),
            patient_id=data.patient_id,
            amount=data.amount,
            procedure_codes=list(data.procedure_codes),
            diagnosis_codes=list(data.diagnosis_codes),
            notes=data.notes,
            status=status,
            is_fraudulent=assessment.is_fraudulent,
            fraud_check_details=FraudCheckDetails.from_assessment(
                assessment, evaluated_by=principal.id, evaluated_at=now
            ),
            created_by=principal.id,
            version=1,
            created_at=now,
            updated_at=now,
        )

        claim = await self._with_deadline("Claim create", self._repository.add(record))

        if status == ClaimStatus.DENIED:
            logger.warning(
                f"Claim {claim.id} auto-denied for patient {claim.patient_id}: "
                f"{', '.join(assessment.reasons)}"
            )
        else:
            logger.info(f"Created claim {claim.id} by {principal.id}")

        await self._invalidate(claim.created_by)
        await self._audit(
            ActivityEvent(
                action=ActivityType.CREATE_CLAIM,
                user_id=principal.id,
                details=f"Created claim {claim.id} for patient {claim.patient_id}",
                metadata={
                    "claimId": str(claim.id),
                    "status": claim.status.value,
                    "isFraudulent": claim.is_fraudulent,
                },
            )
        )
        return claim

    async def get_claim(
        self, claim_id: UUID, principal: Optional[Principal] = None
    ) -> ClaimRecord:
        """
        Get a claim by id.

        When a principal is given, non-admin principals only see the claims
        they created; anything else is reported as not found.
        """
        return await self._load(claim_id, principal)

    async def _load(self, claim_id: UUID, principal: Optional[Principal]) -> ClaimRecord:
        claim = await self._with_deadline("Claim read", self._repository.get(claim_id))
        if claim is None or (
            principal is not None
            and not principal.is_admin
            and claim.created_by != principal.id
        ):
            raise NotFoundError(f"Claim not found: {claim_id}")
        return claim

    # =========================================================================
    # Update
    # =========================================================================

    async def update_claim(
        self, claim_id: UUID, data: ClaimUpdate, principal: Principal
    ) -> ClaimRecord:
        """
        Edit the mutable fields of a PENDING claim.

        A change to the amount or either code list re-runs the fraud
        assessment, excluding the claim itself from the patient's history.
        A claim flagged by re-assessment stays PENDING.

        Raises:
            NotFoundError: Unknown or invisible claim
            InvalidStateTransitionError: Claim is no longer PENDING
            ConflictError: Concurrent writes outlasted the retry policy
        """
        validate_claim_fields(
            data.amount, data.procedure_codes, data.diagnosis_codes, require_all=False
        )
        requested = {
            field: value
            for field, value in data.model_dump(exclude_unset=True).items()
            if value is not None or field == "notes"
        }

        for attempt in range(1, self._max_attempts + 1):
            current = await self._load(claim_id, principal)
            if not is_editable_status(current.status):
                raise InvalidStateTransitionError(
                    f"Claim is finalized ({current.status.value}) and cannot be edited"
                )

            changes = {
                field: value
                for field, value in requested.items()
                if _differs(field, getattr(current, field), value)
            }
            if not changes:
                return current

            if changes.keys() & {"amount", "procedure_codes", "diagnosis_codes"}:
                assessment = await self._assess(
                    current.patient_id,
                    changes.get("amount", current.amount),
                    changes.get("procedure_codes", current.procedure_codes),
                    changes.get("diagnosis_codes", current.diagnosis_codes),
                    exclude_claim_id=current.id,
                )
                changes["is_fraudulent"] = assessment.is_fraudulent
                changes["fraud_check_details"] = FraudCheckDetails.from_assessment(
                    assessment, evaluated_by=principal.id, evaluated_at=self._clock()
                )

            updated = await self._with_deadline(
                "Claim update",
                self._repository.update_if_unchanged(
                    claim_id,
                    current.version,
                    changes,
                    updated_at=self._clock(),
                    expected_status=ClaimStatus.PENDING,
                ),
            )
            if updated is not None:
                break
            await self._backoff("update", claim_id, attempt)
        else:
            raise ConflictError(
                f"Claim {claim_id} was modified concurrently; retry the update"
            )

        logger.info(
            f"Updated claim {claim_id} by {principal.id}: {', '.join(sorted(changes))}"
        )
        await self._invalidate(updated.created_by)
        await self._audit(
            ActivityEvent(
                action=ActivityType.UPDATE_CLAIM,
                user_id=principal.id,
                details=f"Updated claim {claim_id}",
                metadata={
                    "claimId": str(claim_id),
                    "fields": sorted(requested),
                    "isFraudulent": updated.is_fraudulent,
                },
            )
        )
        return updated

    # =========================================================================
    # Status Transitions
    # =========================================================================

    async def transition_status(
        self,
        claim_id: UUID,
        target_status: ClaimStatus,
        principal: Principal,
        reason: Optional[str] = None,
        notes: Optional[str] = None,
    ) -> ClaimRecord:
        """
        Move a PENDING claim to APPROVED or DENIED.

        The fraud assessment is not re-run; the stored details are stamped
        with who processed the claim and when.

        Raises:
            ForbiddenError: Non-admin approval
            InvalidStateTransitionError: Claim already processed, illegal
                target, or approval of a fraudulent claim
            ConflictError: Concurrent writes outlasted the retry policy
        """
        for attempt in range(1, self._max_attempts + 1):
            current = await self._load(claim_id, principal)

            result = self._state_machine.validate_transition(
                current.status, target_status, principal.role
            )
            if not result.success:
                if result.permission_denied:
                    raise ForbiddenError(result.error)
                raise InvalidStateTransitionError(result.error)

            if target_status == ClaimStatus.APPROVED and current.is_fraudulent:
                raise InvalidStateTransitionError("Fraudulent claims cannot be approved")

            now = self._clock()
            details = current.fraud_check_details or FraudCheckDetails(
                is_fraudulent=current.is_fraudulent, risk_score=0.0
            )
            updated = await self._with_deadline(
                "Claim transition",
                self._repository.update_if_unchanged(
                    claim_id,
                    current.version,
                    {
                        "status": target_status,
                        "fraud_check_details": details.stamp_processed(
                            processed_by=principal.id,
                            processed_at=now,
                            reason=reason,
                            notes=notes,
                        ),
                    },
                    updated_at=now,
                    expected_status=ClaimStatus.PENDING,
                ),
            )
            if updated is not None:
                break
            await self._backoff("transition", claim_id, attempt)
        else:
            raise ConflictError(
                f"Claim {claim_id} was modified concurrently; retry the transition"
            )

        logger.info(
            f"Claim {claim_id} {current.status.value} -> {target_status.value} "
            f"by {principal.id}"
        )
        await self._invalidate(updated.created_by)
        await self._audit(
            ActivityEvent(
                action=_TRANSITION_ACTIVITY[target_status],
                user_id=principal.id,
                details=f"Claim {claim_id} {target_status.value.lower()}",
                metadata={
                    "claimId": str(claim_id),
                    "fromStatus": current.status.value,
                    "toStatus": target_status.value,
                    "reason": reason,
                },
            )
        )
        return updated

    async def bulk_transition(
        self,
        claim_ids: Sequence[UUID],
        target_status: ClaimStatus,
        principal: Principal,
        notes: Optional[str] = None,
    ) -> BulkTransitionResult:
        """
        Transition many claims in one conditional write.

        Only claims still PENDING at write time are updated; the rest are
        left alone and simply not counted. Fraudulent claims are never
        approved.

        Raises:
            ForbiddenError: Caller is not an admin
            ValidationError: No claim ids supplied
            InvalidStateTransitionError: Target is not reachable from PENDING
        """
        if not principal.is_admin:
            raise ForbiddenError("Bulk transitions require administrative role")
        if not claim_ids:
            raise ValidationError("claim_ids must not be empty", errors=["claim_ids"])
        if not self._state_machine.can_transition(ClaimStatus.PENDING, target_status):
            raise InvalidStateTransitionError(
                f"Invalid transition: {ClaimStatus.PENDING.value} -> {target_status.value}"
            )

        ids = list(dict.fromkeys(claim_ids))
        selected = await self._with_deadline(
            "Claim bulk read", self._repository.get_many(ids)
        )

        now = self._clock()
        stamp = FraudCheckDetails(
            is_fraudulent=False, risk_score=0.0, processed_at=now, processed_by=principal.id
        ).model_dump(
            mode="json",
            by_alias=True,
            exclude_none=True,
            include={"processed_at", "processed_by"},
        )
        if notes:
            stamp["notes"] = notes

        updated_count = await self._with_deadline(
            "Claim bulk transition",
            self._repository.bulk_transition(
                ids, ClaimStatus.PENDING, target_status, stamp, updated_at=now
            ),
        )

        logger.info(
            f"Bulk {target_status.value} by {principal.id}: "
            f"{updated_count} of {len(ids)} claims updated"
        )
        await self._invalidate(*(c.created_by for c in selected))
        await self._audit(
            ActivityEvent(
                action=ActivityType.BULK_UPDATE_CLAIMS,
                user_id=principal.id,
                details=f"Bulk {target_status.value.lower()} of {updated_count} claims",
                metadata={
                    "claimIds": [str(i) for i in ids],
                    "status": target_status.value,
                    "updatedCount": updated_count,
                },
            )
        )
        return BulkTransitionResult(updated_count=updated_count)

    # =========================================================================
    # Cached Reads
    # =========================================================================

    async def list_claims(
        self, query: ClaimListQuery, principal: Principal
    ) -> ClaimListResponse:
        """
        List claims visible to the principal, read through the cache.

        Non-admin principals are always restricted to their own claims.
        """
        if query.limit > settings.MAX_PAGE_SIZE:
            raise ValidationError(f"limit must not exceed {settings.MAX_PAGE_SIZE}")

        effective = query.model_copy(
            update={"filters": self._scope_filters(query.filters, principal)}
        )
        view = self._cache_view(principal)
        key = self._cache.build_key(
            view,
            "list",
            {
                **effective.filters.model_dump(mode="json"),
                "page": effective.page,
                "limit": effective.limit,
                "sort_by": effective.sort_by.value,
                "sort_order": effective.sort_order.value,
            },
        )

        async def compute() -> dict:
            items, total = await self._with_deadline(
                "Claim list", self._repository.list(effective)
            )
            response = ClaimListResponse(
                items=items,
                total=total,
                page=effective.page,
                limit=effective.limit,
                total_pages=math.ceil(total / effective.limit),
            )
            return response.model_dump(mode="json")

        cached = await self._cache.wrap(
            key, self._cache_ttl, compute, generation_key=view.generation_key
        )
        return ClaimListResponse.model_validate(cached)

    async def get_claim_stats(
        self,
        principal: Principal,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None,
    ) -> ClaimStats:
        """Aggregate statistics over the claims visible to the principal."""
        created_by = None if principal.is_admin else principal.id
        view = self._cache_view(principal)
        key = self._cache.build_key(
            view,
            "stats",
            {
                "created_by": created_by,
                "start_date": start_date.isoformat() if start_date else None,
                "end_date": end_date.isoformat() if end_date else None,
            },
        )

        async def compute() -> dict:
            stats = await self._with_deadline(
                "Claim stats",
                self._repository.stats(
                    created_by=created_by, start_date=start_date, end_date=end_date
                ),
            )
            return stats.model_dump(mode="json")

        cached = await self._cache.wrap(
            key, self._cache_ttl, compute, generation_key=view.generation_key
        )
        return ClaimStats.model_validate(cached)

    def _cache_view(self, principal: Principal) -> CacheView:
        return self._cache.view(principal.id, sees_all=principal.is_admin)

    @staticmethod
    def _scope_filters(filters: ClaimFilters, principal: Principal) -> ClaimFilters:
        if principal.is_admin:
            return filters
        return filters.model_copy(update={"created_by": principal.id})

    # =========================================================================
    # Helpers
    # =========================================================================

    async def _with_deadline(
        self, operation: str, awaitable: Awaitable[T], dependency: str = "database"
    ) -> T:
        try:
            return await asyncio.wait_for(awaitable, timeout=self._repository_timeout)
        except asyncio.TimeoutError as e:
            raise DependencyError(
                f"{operation} timed out", dependency=dependency, original_error=e
            ) from e

    async def _backoff(self, operation: str, claim_id: UUID, attempt: int) -> None:
        logger.warning(
            f"Concurrent modification on claim {claim_id} during {operation} "
            f"(attempt {attempt}/{self._max_attempts})"
        )
        if attempt < self._max_attempts and self._retry_delay:
            await asyncio.sleep(self._retry_delay * attempt)

    async def _invalidate(self, *owner_ids: str) -> None:
        await self._cache.invalidate(owner_ids)

    async def _audit(self, event: ActivityEvent) -> None:
        try:
            await self._recorder.record(event)
        except Exception as e:
            # Audit never changes the outcome of a persisted operation
            logger.error(f"Failed to record {event.action.value} for {event.user_id}: {e}")
