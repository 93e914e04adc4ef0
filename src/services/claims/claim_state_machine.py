"""
Claim Status State Machine.

Provides:
- Valid status transitions as an explicit table
- Transition validation (graph, source and guard checks)
- Status helpers

State Diagram:
    DRAFT -> VALIDATED | VOID
    VALIDATED -> SUBMITTED | DRAFT | VOID
    SUBMITTED -> ACKNOWLEDGED | DENIED | VOID
    ACKNOWLEDGED -> PENDING | DENIED | VOID
    PENDING -> PAID | PARTIAL_PAID | DENIED | VOID
    PARTIAL_PAID -> PAID | DENIED | APPEALED | VOID
    DENIED -> APPEALED | FINAL_DENIED | VOID
    APPEALED -> PAID | PARTIAL_PAID | FINAL_DENIED | VOID
    PAID, VOID, FINAL_DENIED are terminal
"""

import logging
from dataclasses import dataclass, field
from datetime import date
from enum import Enum
from typing import Optional

from src.core.enums import ClaimStatus, TransitionSource

logger = logging.getLogger(__name__)


class TransitionEvent(str, Enum):
    """Events that trigger state transitions."""

    VALIDATE = "validate"
    INVALIDATE = "invalidate"
    SUBMIT = "submit"
    ACKNOWLEDGE = "acknowledge"
    MARK_PENDING = "mark_pending"
    PAY = "pay"
    PARTIAL_PAY = "partial_pay"
    DENY = "deny"
    APPEAL = "appeal"
    FINAL_DENY = "final_deny"
    VOID = "void"


ANY_SOURCE = frozenset(TransitionSource)
RECONCILIATION_ONLY = frozenset({TransitionSource.RECONCILIATION})


@dataclass
class Transition:
    """Represents a valid state transition."""

    from_status: ClaimStatus
    to_status: ClaimStatus
    event: TransitionEvent
    allowed_sources: frozenset = ANY_SOURCE
    requires_adjudication_date: bool = False
    requires_submission: bool = False


@dataclass
class TransitionContext:
    """Context for a transition attempt."""

    claim_id: str
    current_status: ClaimStatus
    target_status: ClaimStatus
    source: TransitionSource = TransitionSource.USER
    adjudication_date: Optional[date] = None
    submission_date: Optional[date] = None
    submission_method: Optional[str] = None
    reason: Optional[str] = None
    metadata: dict = field(default_factory=dict)


@dataclass
class TransitionResult:
    """Result of a transition attempt."""

    success: bool
    from_status: ClaimStatus
    to_status: Optional[ClaimStatus] = None
    error: Optional[str] = None
    transition: Optional[Transition] = None


# =============================================================================
# Valid Transitions Definition
# =============================================================================


TERMINAL_STATUSES = frozenset(
    {ClaimStatus.PAID, ClaimStatus.VOID, ClaimStatus.FINAL_DENIED}
)

# Statuses in which payment application is legal
PAYABLE_STATUSES = frozenset(
    {
        ClaimStatus.PENDING,
        ClaimStatus.ACKNOWLEDGED,
        ClaimStatus.PARTIAL_PAID,
        ClaimStatus.APPEALED,
    }
)


VALID_TRANSITIONS: list[Transition] = [
    # From DRAFT
    Transition(ClaimStatus.DRAFT, ClaimStatus.VALIDATED, TransitionEvent.VALIDATE),

    # From VALIDATED
    Transition(
        ClaimStatus.VALIDATED,
        ClaimStatus.SUBMITTED,
        TransitionEvent.SUBMIT,
        requires_submission=True,
    ),
    Transition(ClaimStatus.VALIDATED, ClaimStatus.DRAFT, TransitionEvent.INVALIDATE),

    # From SUBMITTED
    Transition(ClaimStatus.SUBMITTED, ClaimStatus.ACKNOWLEDGED, TransitionEvent.ACKNOWLEDGE),
    Transition(
        ClaimStatus.SUBMITTED,
        ClaimStatus.DENIED,
        TransitionEvent.DENY,
        allowed_sources=RECONCILIATION_ONLY,
        requires_adjudication_date=True,
    ),

    # From ACKNOWLEDGED
    Transition(ClaimStatus.ACKNOWLEDGED, ClaimStatus.PENDING, TransitionEvent.MARK_PENDING),
    Transition(
        ClaimStatus.ACKNOWLEDGED,
        ClaimStatus.DENIED,
        TransitionEvent.DENY,
        allowed_sources=RECONCILIATION_ONLY,
        requires_adjudication_date=True,
    ),

    # From PENDING
    Transition(
        ClaimStatus.PENDING,
        ClaimStatus.PAID,
        TransitionEvent.PAY,
        allowed_sources=RECONCILIATION_ONLY,
        requires_adjudication_date=True,
    ),
    Transition(
        ClaimStatus.PENDING,
        ClaimStatus.PARTIAL_PAID,
        TransitionEvent.PARTIAL_PAY,
        allowed_sources=RECONCILIATION_ONLY,
        requires_adjudication_date=True,
    ),
    Transition(
        ClaimStatus.PENDING,
        ClaimStatus.DENIED,
        TransitionEvent.DENY,
        allowed_sources=RECONCILIATION_ONLY,
        requires_adjudication_date=True,
    ),

    # From PARTIAL_PAID
    Transition(
        ClaimStatus.PARTIAL_PAID,
        ClaimStatus.PAID,
        TransitionEvent.PAY,
        allowed_sources=RECONCILIATION_ONLY,
        requires_adjudication_date=True,
    ),
    Transition(
        ClaimStatus.PARTIAL_PAID,
        ClaimStatus.DENIED,
        TransitionEvent.DENY,
        allowed_sources=RECONCILIATION_ONLY,
        requires_adjudication_date=True,
    ),
    Transition(ClaimStatus.PARTIAL_PAID, ClaimStatus.APPEALED, TransitionEvent.APPEAL),

    # From DENIED
    Transition(ClaimStatus.DENIED, ClaimStatus.APPEALED, TransitionEvent.APPEAL),
    Transition(ClaimStatus.DENIED, ClaimStatus.FINAL_DENIED, TransitionEvent.FINAL_DENY),

    # From APPEALED
    Transition(
        ClaimStatus.APPEALED,
        ClaimStatus.PAID,
        TransitionEvent.PAY,
        allowed_sources=RECONCILIATION_ONLY,
        requires_adjudication_date=True,
    ),
    Transition(
        ClaimStatus.APPEALED,
        ClaimStatus.PARTIAL_PAID,
        TransitionEvent.PARTIAL_PAY,
        allowed_sources=RECONCILIATION_ONLY,
        requires_adjudication_date=True,
    ),
    Transition(ClaimStatus.APPEALED, ClaimStatus.FINAL_DENIED, TransitionEvent.FINAL_DENY),
]

# VOID is reachable from every non-terminal status
VALID_TRANSITIONS.extend(
    Transition(status, ClaimStatus.VOID, TransitionEvent.VOID)
    for status in ClaimStatus
    if status not in TERMINAL_STATUSES
)


# =============================================================================
# State Machine
# =============================================================================


class ClaimStateMachine:
    """
    State machine for claim status transitions.

    Pure lookup and validation; persistence and side effects belong to
    the claim lifecycle service.
    """

    def __init__(self):
        """Initialize state machine with transition map."""
        self._transitions: dict[tuple[ClaimStatus, ClaimStatus], Transition] = {}
        self._from_status_map: dict[ClaimStatus, list[Transition]] = {}

        self._build_transition_maps()

    def _build_transition_maps(self) -> None:
        """Build lookup maps for transitions."""
        for transition in VALID_TRANSITIONS:
            self._transitions[(transition.from_status, transition.to_status)] = transition
            self._from_status_map.setdefault(transition.from_status, []).append(transition)

    def get_valid_transitions(self, status: ClaimStatus) -> list[Transition]:
        """Get all valid transitions from a given status."""
        return self._from_status_map.get(status, [])

    def get_next_statuses(self, status: ClaimStatus) -> list[ClaimStatus]:
        """Get all possible next statuses from current status."""
        return [t.to_status for t in self.get_valid_transitions(status)]

    def can_transition(self, from_status: ClaimStatus, to_status: ClaimStatus) -> bool:
        """Check if the graph has an edge from one status to another."""
        return (from_status, to_status) in self._transitions

    def get_transition(
        self, from_status: ClaimStatus, to_status: ClaimStatus
    ) -> Optional[Transition]:
        return self._transitions.get((from_status, to_status))

    def validate_transition(self, context: TransitionContext) -> TransitionResult:
        """
        Validate a transition attempt.

        Args:
            context: Transition context with all details

        Returns:
            TransitionResult indicating success/failure
        """
        transition = self.get_transition(context.current_status, context.target_status)

        if not transition:
            return TransitionResult(
                success=False,
                from_status=context.current_status,
                error=(
                    f"Invalid transition: {context.current_status.value} -> "
                    f"{context.target_status.value}"
                ),
            )

        if context.source not in transition.allowed_sources:
            return TransitionResult(
                success=False,
                from_status=context.current_status,
                error=(
                    f"Transition to {context.target_status.value} is driven by payment "
                    "reconciliation only"
                ),
            )

        if transition.requires_adjudication_date and context.adjudication_date is None:
            return TransitionResult(
                success=False,
                from_status=context.current_status,
                error="Adjudication date is required for this transition",
            )

        if transition.requires_submission and (
            context.submission_date is None or context.submission_method is None
        ):
            return TransitionResult(
                success=False,
                from_status=context.current_status,
                error="Submission date and method are required to submit a claim",
            )

        return TransitionResult(
            success=True,
            from_status=context.current_status,
            to_status=transition.to_status,
            transition=transition,
        )


# =============================================================================
# Status Helpers
# =============================================================================


def is_terminal_status(status: ClaimStatus) -> bool:
    """Check if status is terminal (no further transitions)."""
    return status in TERMINAL_STATUSES


def is_payable_status(status: ClaimStatus) -> bool:
    """Check if payments may be applied to a claim in this status."""
    return status in PAYABLE_STATUSES


def get_status_display_name(status: ClaimStatus) -> str:
    """Get human-readable status name."""
    display_names = {
        ClaimStatus.PARTIAL_PAID: "Partially Paid",
        ClaimStatus.FINAL_DENIED: "Final Denial",
    }
    return display_names.get(status, status.value.replace("_", " ").title())


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
