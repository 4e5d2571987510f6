"""
Claim Activity Recorder.

Provides the audit trail of claim mutations. Recording runs after the
governing operation has been persisted, in its own session, so a failure here
can never roll back a claim write.
"""

import logging
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Any

from pydantic import BaseModel, Field
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from claim_adjudication.core.enums import ActivityType
from claim_adjudication.models.activity import ActivityLog
from claim_adjudication.utils.errors import DependencyError

logger = logging.getLogger(__name__)


class ActivityEvent(BaseModel):
    """Audit event for a claim mutation."""

    action: ActivityType
    user_id: str
    details: str
    metadata: dict[str, Any] = Field(default_factory=dict)
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class ActivityRecorder(ABC):
    """Sink for audit events."""

    @abstractmethod
    async def record(self, event: ActivityEvent) -> None:
        """Persist one event. May raise; callers decide how to handle failure."""


class SqlActivityRecorder(ActivityRecorder):
    """Writes audit events to the `activity_logs` table."""

    def __init__(self, session_maker: async_sessionmaker[AsyncSession]):
        self._session_maker = session_maker

    async def record(self, event: ActivityEvent) -> None:
        async with self._session_maker() as session:
            session.add(
                ActivityLog(
                    user_id=event.user_id,
                    action=event.action,
                    details=event.details,
                    event_metadata=event.metadata or None,
                    created_at=event.timestamp,
                )
            )
            try:
                await session.commit()
            except SQLAlchemyError as e:
                await session.rollback()
                raise DependencyError(
                    "Activity log write failed", dependency="database", original_error=e
                ) from e

        logger.debug(f"Recorded {event.action.value} by {event.user_id}")
