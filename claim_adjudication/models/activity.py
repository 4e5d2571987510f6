"""
Activity Log Model.

Audit trail of claim mutations. Rows are written after the governing
operation has been persisted and never participate in its transaction.
"""

from datetime import datetime
from typing import Optional

from sqlalchemy import DateTime, Enum, String, Text, func
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from claim_adjudication.core.enums import ActivityType
from claim_adjudication.models.base import Base


class ActivityLog(Base):
    """Audit log entry for a claim mutation."""

    __tablename__ = "activity_logs"

    id: Mapped[int] = mapped_column(
        primary_key=True,
        autoincrement=True,
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
        index=True,
        comment="When the action occurred",
    )
    user_id: Mapped[str] = mapped_column(
        String(64),
        nullable=False,
        index=True,
        comment="Acting principal",
    )
    action: Mapped[ActivityType] = mapped_column(
        Enum(ActivityType, name="activity_type"),
        nullable=False,
        index=True,
    )
    details: Mapped[str] = mapped_column(
        Text,
        nullable=False,
        comment="Human-readable summary",
    )
    # "metadata" is reserved on declarative classes
    event_metadata: Mapped[Optional[dict]] = mapped_column(
        "metadata",
        JSONB,
        nullable=True,
    )
