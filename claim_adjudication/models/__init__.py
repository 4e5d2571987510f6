"""
SQLAlchemy models for the adjudication core.
"""

from claim_adjudication.models.activity import ActivityLog
from claim_adjudication.models.base import Base, TimeStampedModel, UUIDModel
from claim_adjudication.models.claim import Claim

__all__ = [
    "ActivityLog",
    "Base",
    "Claim",
    "TimeStampedModel",
    "UUIDModel",
]
