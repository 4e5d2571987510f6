"""
Core Enumerations for the Claim Adjudication Core.
"""

from enum import Enum


# =============================================================================
# Claim Enums
# =============================================================================


class ClaimStatus(str, Enum):
    """Claim lifecycle status.

    State Machine Transitions:
    PENDING -> APPROVED | DENIED
    APPROVED -> PAID (external billing event)
    """

    PENDING = "PENDING"
    APPROVED = "APPROVED"
    DENIED = "DENIED"
    PAID = "PAID"


class ClaimSortField(str, Enum):
    """Columns a claim listing may be ordered by."""

    CREATED_AT = "created_at"
    UPDATED_AT = "updated_at"
    AMOUNT = "amount"
    STATUS = "status"


class SortDirection(str, Enum):
    """Sort direction for listings."""

    ASC = "asc"
    DESC = "desc"


# =============================================================================
# Principal Enums
# =============================================================================


class UserRole(str, Enum):
    """Roles supplied by the identity provider."""

    ADMIN = "ADMIN"  # Administrative: may approve and bulk-transition
    USER = "USER"


# =============================================================================
# Audit Enums
# =============================================================================


class ActivityType(str, Enum):
    """Audit event types emitted after claim mutations."""

    CREATE_CLAIM = "CREATE_CLAIM"
    UPDATE_CLAIM = "UPDATE_CLAIM"
    CLAIM_APPROVED = "CLAIM_APPROVED"
    CLAIM_DENIED = "CLAIM_DENIED"
    BULK_UPDATE_CLAIMS = "BULK_UPDATE_CLAIMS"
