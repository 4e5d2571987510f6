"""
Claim Status State Machine.

Provides:
- Valid status transitions
- Transition validation (state and role)
- Creation-time auto-denial

State Diagram:
    PENDING -> APPROVED | DENIED   (caller request)
    PENDING -> DENIED              (auto-deny of a fraudulent claim at creation)

PAID is set by the billing system, outside this machine. No transition ever
returns a claim to PENDING.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from claim_adjudication.core.enums import ClaimStatus, UserRole

logger = logging.getLogger(__name__)


class TransitionEvent(str, Enum):
    """Events that trigger state transitions."""

    APPROVE = "approve"
    DENY = "deny"
    AUTO_DENY = "auto_deny"


@dataclass(frozen=True)
class Transition:
    """Represents a valid state transition."""

    from_status: ClaimStatus
    to_status: ClaimStatus
    event: TransitionEvent
    requires_role: Optional[UserRole] = None
    auto_transition: bool = False  # Triggered by the system, never by a caller


@dataclass
class TransitionResult:
    """Result of a transition attempt."""

    success: bool
    from_status: ClaimStatus
    to_status: Optional[ClaimStatus] = None
    error: Optional[str] = None
    permission_denied: bool = False
    transition: Optional[Transition] = None


# =============================================================================
# Valid Transitions Definition
# =============================================================================


VALID_TRANSITIONS: list[Transition] = [
    # From PENDING
    Transition(
        from_status=ClaimStatus.PENDING,
        to_status=ClaimStatus.APPROVED,
        event=TransitionEvent.APPROVE,
        requires_role=UserRole.ADMIN,
    ),
    Transition(
        from_status=ClaimStatus.PENDING,
        to_status=ClaimStatus.DENIED,
        event=TransitionEvent.DENY,
    ),
    Transition(
        from_status=ClaimStatus.PENDING,
        to_status=ClaimStatus.DENIED,
        event=TransitionEvent.AUTO_DENY,
        auto_transition=True,
    ),
]


# =============================================================================
# State Machine
# =============================================================================


class ClaimStateMachine:
    """
    State machine for claim status transitions.

    Validates requested transitions against the current status and the
    caller's role. Caller requests only ever match non-automatic transitions.
    """

    def __init__(self, transitions: Optional[list[Transition]] = None):
        self._from_status_map: dict[ClaimStatus, list[Transition]] = {}

        for transition in transitions or VALID_TRANSITIONS:
            self._from_status_map.setdefault(transition.from_status, []).append(transition)

    def get_valid_transitions(
        self,
        status: ClaimStatus,
        include_auto: bool = True,
    ) -> list[Transition]:
        """Get all valid transitions from a given status."""
        return [
            t
            for t in self._from_status_map.get(status, [])
            if include_auto or not t.auto_transition
        ]

    def get_next_statuses(self, status: ClaimStatus) -> list[ClaimStatus]:
        """Get all statuses a caller may request from the current status."""
        return [t.to_status for t in self.get_valid_transitions(status, include_auto=False)]

    def can_transition(self, from_status: ClaimStatus, to_status: ClaimStatus) -> bool:
        """Check if a caller may request a transition, ignoring roles."""
        return to_status in self.get_next_statuses(from_status)

    def validate_transition(
        self,
        current_status: ClaimStatus,
        target_status: ClaimStatus,
        role: UserRole,
    ) -> TransitionResult:
        """
        Validate a caller-requested transition.

        Args:
            current_status: Claim's status as read
            target_status: Requested status
            role: Caller's role

        Returns:
            TransitionResult indicating success/failure
        """
        if current_status != ClaimStatus.PENDING:
            return TransitionResult(
                success=False,
                from_status=current_status,
                error="Claim has already been processed",
            )

        transition = next(
            (
                t
                for t in self.get_valid_transitions(current_status, include_auto=False)
                if t.to_status == target_status
            ),
            None,
        )
        if transition is None:
            return TransitionResult(
                success=False,
                from_status=current_status,
                error=f"Invalid transition: {current_status.value} -> {target_status.value}",
            )

        if transition.requires_role and role != transition.requires_role:
            return TransitionResult(
                success=False,
                from_status=current_status,
                error="Insufficient permissions",
                permission_denied=True,
            )

        return TransitionResult(
            success=True,
            from_status=current_status,
            to_status=transition.to_status,
            transition=transition,
        )

    def get_event_transition(
        self, status: ClaimStatus, event: TransitionEvent
    ) -> Optional[Transition]:
        """Transition fired by `event` from `status`, if the table has one."""
        return next(
            (t for t in self._from_status_map.get(status, []) if t.event == event),
            None,
        )

    def initial_status(self, is_fraudulent: bool) -> ClaimStatus:
        """
        Status assigned at creation.

        Claims start PENDING; a fraudulent assessment fires AUTO_DENY when the
        transition table defines it.
        """
        if is_fraudulent:
            auto_deny = self.get_event_transition(
                ClaimStatus.PENDING, TransitionEvent.AUTO_DENY
            )
            if auto_deny is not None:
                logger.debug(f"Auto-deny: PENDING -> {auto_deny.to_status.value}")
                return auto_deny.to_status
        return ClaimStatus.PENDING


# =============================================================================
# Status Helpers
# =============================================================================


def is_editable_status(status: ClaimStatus) -> bool:
    """Mutable fields may only change while the claim is PENDING."""
    return status == ClaimStatus.PENDING


# =============================================================================
# Singleton Instance
# =============================================================================


_state_machine: Optional[ClaimStateMachine] = None


def get_claim_state_machine() -> ClaimStateMachine:
    """Get singleton state machine instance."""
    global _state_machine
    if _state_machine is None:
        _state_machine = ClaimStateMachine()
    return _state_machine
