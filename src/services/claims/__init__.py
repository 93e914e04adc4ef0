"""
Claim Lifecycle.

State machine for claim statuses and the service that applies it.
"""

from src.services.claims.claim_lifecycle import SERVICE_STATUS_FOR_CLAIM, ClaimLifecycleService
from src.services.claims.claim_state_machine import (
    PAYABLE_STATUSES,
    TERMINAL_STATUSES,
    VALID_TRANSITIONS,
    ClaimStateMachine,
    Transition,
    TransitionContext,
    TransitionEvent,
    TransitionResult,
    get_claim_state_machine,
    get_status_display_name,
    is_payable_status,
    is_terminal_status,
)

__all__ = [
    "ClaimLifecycleService",
    "SERVICE_STATUS_FOR_CLAIM",
    "ClaimStateMachine",
    "Transition",
    "TransitionContext",
    "TransitionEvent",
    "TransitionResult",
    "VALID_TRANSITIONS",
    "TERMINAL_STATUSES",
    "PAYABLE_STATUSES",
    "get_claim_state_machine",
    "get_status_display_name",
    "is_payable_status",
    "is_terminal_status",
]
