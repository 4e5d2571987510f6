"""
Claim Model for Insurance Claims Management.
"""

from decimal import Decimal
from typing import Optional

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Enum,
    Index,
    Integer,
    Numeric,
    String,
    Text,
)
from sqlalchemy.dialects.postgresql import ARRAY, JSONB
from sqlalchemy.orm import Mapped, mapped_column

from claim_adjudication.core.enums import ClaimStatus
from claim_adjudication.models.base import Base, TimeStampedModel, UUIDModel


class Claim(Base, UUIDModel, TimeStampedModel):
    """
    Insurance claim model.

    `version` is the optimistic concurrency counter: every write is
    conditional on the version that was read and increments it.
    """

    __tablename__ = "claims"

    patient_id: Mapped[str] = mapped_column(
        String(64),
        nullable=False,
        index=True,
        comment="Patient reference (immutable)",
    )
    amount: Mapped[Decimal] = mapped_column(
        Numeric(12, 2),
        nullable=False,
        comment="Claimed amount",
    )
    procedure_codes: Mapped[list] = mapped_column(
        ARRAY(String(20)),
        nullable=False,
        comment="Procedure codes in display order",
    )
    diagnosis_codes: Mapped[list] = mapped_column(
        ARRAY(String(20)),
        nullable=False,
        comment="Diagnosis codes in display order",
    )
    notes: Mapped[Optional[str]] = mapped_column(
        Text,
        nullable=True,
    )

    status: Mapped[ClaimStatus] = mapped_column(
        Enum(ClaimStatus, name="claim_status"),
        default=ClaimStatus.PENDING,
        nullable=False,
        index=True,
        comment="Current claim status",
    )
    is_fraudulent: Mapped[bool] = mapped_column(
        Boolean,
        default=False,
        nullable=False,
        index=True,
    )
    fraud_check_details: Mapped[Optional[dict]] = mapped_column(
        JSONB,
        nullable=True,
        comment="Last fraud assessment plus processing stamps",
    )

    created_by: Mapped[str] = mapped_column(
        String(64),
        nullable=False,
        index=True,
        comment="Creating principal (immutable)",
    )
    version: Mapped[int] = mapped_column(
        Integer,
        default=1,
        nullable=False,
        comment="Optimistic concurrency counter",
    )

    __table_args__ = (
        CheckConstraint("amount > 0", name="ck_claims_amount_positive"),
        CheckConstraint(
            "cardinality(procedure_codes) > 0", name="ck_claims_procedure_codes_present"
        ),
        CheckConstraint(
            "cardinality(diagnosis_codes) > 0", name="ck_claims_diagnosis_codes_present"
        ),
        CheckConstraint(
            "NOT (is_fraudulent AND status = 'APPROVED')",
            name="ck_claims_fraudulent_not_approved",
        ),
        Index("ix_claims_patient_created", "patient_id", "created_at"),
    )

    def __repr__(self) -> str:
        return f"<Claim {self.id} status={self.status.value} v{self.version}>"
