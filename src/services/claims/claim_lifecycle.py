"""
Claim Lifecycle Service.

Provides:
- Guarded claim status transitions with status history
- Validation, submission, acknowledgement, appeal, final denial and void
- Adjudication entry point used by payment reconciliation
- Service billing status kept in step with the claim

Every failed transition raises before any write, so the claim is left
unchanged.
"""

import logging
from datetime import date, timedelta
from typing import Optional
from uuid import UUID, uuid4

from src.core.config import BillingSettings, get_billing_settings
from src.core.context import OperationContext
from src.core.enums import (
    BillingStatus,
    ClaimStatus,
    SubmissionMethod,
    TransitionSource,
)
from src.core.exceptions import (
    BillingError,
    ConflictError,
    InvalidTransitionError,
    InvariantViolationError,
    NotFoundError,
)
from src.db.repositories.base import BillingRepository, ClaimFilters
from src.models import Claim, ClaimStatusHistory, Service
from src.schemas.claim import ClaimResponse
from src.schemas.common import BatchResult
from src.schemas.validation import ConversionValidationResult
from src.services.billing.authorization_units import release_units
from src.services.billing.service_validator import ServiceValidator
from src.services.claims.claim_state_machine import (
    ClaimStateMachine,
    TransitionContext,
    get_claim_state_machine,
)
from src.utils.money import ZERO, money_sum, to_money

logger = logging.getLogger(__name__)


# Billing status a claim's services carry while the claim is in each status
SERVICE_STATUS_FOR_CLAIM: dict[ClaimStatus, BillingStatus] = {
    ClaimStatus.DRAFT: BillingStatus.IN_CLAIM,
    ClaimStatus.VALIDATED: BillingStatus.IN_CLAIM,
    ClaimStatus.SUBMITTED: BillingStatus.BILLED,
    ClaimStatus.ACKNOWLEDGED: BillingStatus.BILLED,
    ClaimStatus.PENDING: BillingStatus.BILLED,
    ClaimStatus.PARTIAL_PAID: BillingStatus.BILLED,
    ClaimStatus.APPEALED: BillingStatus.BILLED,
    ClaimStatus.PAID: BillingStatus.PAID,
    ClaimStatus.DENIED: BillingStatus.DENIED,
    ClaimStatus.FINAL_DENIED: BillingStatus.DENIED,
}


class ClaimLifecycleService:
    """Moves claims through their lifecycle."""

    def __init__(
        self,
        repository: BillingRepository,
        validator: ServiceValidator,
        settings: Optional[BillingSettings] = None,
        state_machine: Optional[ClaimStateMachine] = None,
    ):
        self.repository = repository
        self.validator = validator
        self.settings = settings or get_billing_settings()
        self.state_machine = state_machine or get_claim_state_machine()

    # =========================================================================
    # Lookups
    # =========================================================================

    async def get_claim(self, claim_id: UUID, for_update: bool = False) -> Claim:
        claim = await self.repository.get_claim(claim_id, for_update=for_update)
        if claim is None:
            raise NotFoundError("Claim", claim_id)
        return claim

    async def get_history(self, claim_id: UUID) -> list[ClaimStatusHistory]:
        await self.get_claim(claim_id)
        return await self.repository.list_status_history(claim_id)

    # =========================================================================
    # Core transition
    # =========================================================================

    async def transition(
        self,
        claim: Claim,
        target: ClaimStatus,
        ctx: OperationContext,
        source: TransitionSource = TransitionSource.USER,
        reason: Optional[str] = None,
        adjudication_date: Optional[date] = None,
        submission_date: Optional[date] = None,
        submission_method: Optional[SubmissionMethod] = None,
        details: Optional[dict] = None,
    ) -> ClaimStatusHistory:
        """
        Apply one edge of the lifecycle graph.

        Raises:
            InvalidTransitionError: edge missing, wrong source or guard failed
        """
        result = self.state_machine.validate_transition(
            TransitionContext(
                claim_id=str(claim.id),
                current_status=claim.status,
                target_status=target,
                source=source,
                adjudication_date=adjudication_date,
                submission_date=submission_date,
                submission_method=submission_method,
                reason=reason,
            )
        )
        if not result.success:
            logger.warning(f"Transition rejected for claim {claim.claim_number}: {result.error}")
            raise InvalidTransitionError(claim.status, target, result.error)

        previous = claim.status
        async with self.repository.transaction():
            if target == ClaimStatus.VOID:
                await self._void_services(claim, ctx)
            claim.status = target
            claim.updated_by = ctx.user_id
            if adjudication_date is not None:
                claim.adjudication_date = adjudication_date
            if submission_date is not None:
                claim.submission_date = submission_date
                claim.submission_method = submission_method
            await self._sync_service_statuses(claim)
            history = await self._record_history(
                claim, previous, target, ctx, source, reason, details
            )

        logger.info(
            f"Claim {claim.claim_number} transitioned: {previous.value} -> {target.value} "
            f"(source: {source.value})"
        )
        return history

    async def record_creation(self, claim: Claim, ctx: OperationContext) -> ClaimStatusHistory:
        """History row for a newly created claim."""
        return await self._record_history(
            claim, None, claim.status, ctx, TransitionSource.USER, "Claim created", None
        )

    async def restore_status(
        self,
        claim: Claim,
        status: ClaimStatus,
        ctx: OperationContext,
        adjudication_date: Optional[date],
        denial_reason: Optional[str],
        reason: str,
    ) -> ClaimStatusHistory:
        """
        Put a claim back into a status it held before a reconciliation.

        Only used to reverse a recorded reconciliation action, so the
        lifecycle graph is not consulted.
        """
        previous = claim.status
        async with self.repository.transaction():
            claim.status = status
            claim.adjudication_date = adjudication_date
            claim.denial_reason = denial_reason
            claim.updated_by = ctx.user_id
            await self._sync_service_statuses(claim)
            history = await self._record_history(
                claim,
                previous,
                status,
                ctx,
                TransitionSource.RECONCILIATION,
                reason,
                {"restored": True},
            )
        logger.info(f"Claim {claim.claim_number} restored: {previous.value} -> {status.value}")
        return history

    # =========================================================================
    # User operations
    # =========================================================================

    async def validate_claim(
        self, claim_id: UUID, ctx: OperationContext
    ) -> tuple[Claim, ConversionValidationResult]:
        """
        Revalidate a claim's services.

        DRAFT -> VALIDATED when every service passes; VALIDATED -> DRAFT
        when any service no longer does.
        """
        async with self.repository.transaction():
            claim = await self.get_claim(claim_id, for_update=True)
            if claim.status not in (ClaimStatus.DRAFT, ClaimStatus.VALIDATED):
                raise InvalidTransitionError(claim.status, ClaimStatus.VALIDATED)

            services = await self.repository.list_services_for_claim(claim.id)
            self._check_total(claim, services)
            result = await self.validator.validate_for_conversion(
                [s.id for s in services],
                claim.payer_id,
                ctx,
                for_claim_id=claim.id,
                services=services,
            )

            if result.is_valid and claim.status == ClaimStatus.DRAFT:
                await self.transition(claim, ClaimStatus.VALIDATED, ctx, reason="Validation passed")
            elif not result.is_valid and claim.status == ClaimStatus.VALIDATED:
                await self.transition(
                    claim,
                    ClaimStatus.DRAFT,
                    ctx,
                    reason="Revalidation failed",
                    details={"invalid_service_ids": [str(i) for i in result.invalid_service_ids]},
                )
        return claim, result

    async def submit_claim(
        self,
        claim_id: UUID,
        submission_date: date,
        submission_method: SubmissionMethod,
        ctx: OperationContext,
    ) -> Claim:
        async with self.repository.transaction():
            claim = await self.get_claim(claim_id, for_update=True)
            await self.transition(
                claim,
                ClaimStatus.SUBMITTED,
                ctx,
                submission_date=submission_date,
                submission_method=submission_method,
                reason=f"Submitted via {submission_method.value}",
            )
        return claim

    async def acknowledge_claim(
        self,
        claim_id: UUID,
        ctx: OperationContext,
        external_claim_id: Optional[str] = None,
    ) -> Claim:
        async with self.repository.transaction():
            claim = await self.get_claim(claim_id, for_update=True)
            await self.transition(claim, ClaimStatus.ACKNOWLEDGED, ctx, reason="Payer acknowledged")
            if external_claim_id:
                claim.external_claim_id = external_claim_id
        return claim

    async def mark_pending(self, claim_id: UUID, ctx: OperationContext) -> Claim:
        async with self.repository.transaction():
            claim = await self.get_claim(claim_id, for_update=True)
            await self.transition(claim, ClaimStatus.PENDING, ctx, reason="Pending adjudication")
        return claim

    async def appeal_claim(
        self,
        claim_id: UUID,
        ctx: OperationContext,
        reason: Optional[str] = None,
    ) -> Claim:
        async with self.repository.transaction():
            claim = await self.get_claim(claim_id, for_update=True)
            if claim.status == ClaimStatus.DENIED and self._appeal_window_elapsed(claim, ctx.today):
                raise ConflictError(
                    "Appeal window has elapsed",
                    {
                        "claim_id": str(claim.id),
                        "adjudication_date": str(claim.adjudication_date),
                        "appeal_window_days": self.settings.APPEAL_WINDOW_DAYS,
                    },
                )
            await self.transition(claim, ClaimStatus.APPEALED, ctx, reason=reason or "Appeal filed")
            claim.appeal_date = ctx.today
        return claim

    async def finalize_denial(
        self,
        claim_id: UUID,
        ctx: OperationContext,
        reason: Optional[str] = None,
    ) -> Claim:
        async with self.repository.transaction():
            claim = await self.get_claim(claim_id, for_update=True)
            await self.transition(
                claim, ClaimStatus.FINAL_DENIED, ctx, reason=reason or "Denial finalized"
            )
        return claim

    async def void_claim(
        self,
        claim_id: UUID,
        ctx: OperationContext,
        reason: Optional[str] = None,
    ) -> Claim:
        async with self.repository.transaction():
            claim = await self.get_claim(claim_id, for_update=True)
            await self.transition(claim, ClaimStatus.VOID, ctx, reason=reason or "Claim voided")
        return claim

    async def expire_appeal_windows(self, ctx: OperationContext) -> BatchResult[ClaimResponse]:
        """Finalize every denial whose appeal window has elapsed."""
        report: BatchResult[ClaimResponse] = BatchResult()
        denied = await self.repository.list_claims(ClaimFilters(statuses=[ClaimStatus.DENIED]))
        for candidate in denied:
            if not self._appeal_window_elapsed(candidate, ctx.today):
                continue
            try:
                claim = await self.finalize_denial(
                    candidate.id, ctx, reason="Appeal window elapsed"
                )
            except BillingError as e:
                logger.warning(f"Could not finalize denial for claim {candidate.id}: {e.message}")
                report.add_failure(candidate.id, e)
                continue
            report.add_success(ClaimResponse.model_validate(claim))
        return report

    # =========================================================================
    # Reconciliation entry point
    # =========================================================================

    async def apply_adjudication(
        self,
        claim: Claim,
        target: ClaimStatus,
        ctx: OperationContext,
        adjudication_date: date,
        denial_reason: Optional[str] = None,
        reason: Optional[str] = None,
    ) -> list[ClaimStatusHistory]:
        """
        Move a claim to the status a payment application implies.

        An ACKNOWLEDGED claim passes through PENDING on its way to PAID
        or PARTIAL_PAID. A claim already in the target status only gets
        its adjudication date refreshed.
        """
        history = []
        if target == claim.status:
            claim.adjudication_date = adjudication_date
            return history

        if claim.status == ClaimStatus.ACKNOWLEDGED and target in (
            ClaimStatus.PAID,
            ClaimStatus.PARTIAL_PAID,
        ):
            history.append(
                await self.transition(
                    claim,
                    ClaimStatus.PENDING,
                    ctx,
                    source=TransitionSource.RECONCILIATION,
                    reason="Payment received",
                )
            )

        history.append(
            await self.transition(
                claim,
                target,
                ctx,
                source=TransitionSource.RECONCILIATION,
                adjudication_date=adjudication_date,
                reason=reason,
            )
        )
        if target in (ClaimStatus.DENIED, ClaimStatus.FINAL_DENIED):
            claim.denial_reason = denial_reason
        return history

    # =========================================================================
    # Helpers
    # =========================================================================

    def _appeal_window_elapsed(self, claim: Claim, today: date) -> bool:
        if claim.adjudication_date is None:
            return False
        deadline = claim.adjudication_date + timedelta(days=self.settings.APPEAL_WINDOW_DAYS)
        return today > deadline

    @staticmethod
    def _check_total(claim: Claim, services: list[Service]) -> None:
        expected = money_sum(s.amount for s in services)
        if to_money(claim.total_amount) != expected:
            raise InvariantViolationError(
                "Claim total does not equal the sum of its services",
                {
                    "claim_id": str(claim.id),
                    "total_amount": str(claim.total_amount),
                    "services_total": str(expected),
                },
            )

    async def _sync_service_statuses(self, claim: Claim) -> None:
        status = SERVICE_STATUS_FOR_CLAIM.get(claim.status)
        if status is None:
            return
        for service in await self.repository.list_services_for_claim(claim.id):
            service.billing_status = status

    async def _void_services(self, claim: Claim, ctx: OperationContext) -> None:
        """Release authorization units and hand services back for billing."""
        for service in await self.repository.list_services_for_claim(claim.id):
            await release_units(self.repository, service, ctx.today)
            service.billing_status = BillingStatus.UNBILLED
            service.claim_id = None
        claim.total_amount = ZERO

    async def _record_history(
        self,
        claim: Claim,
        previous: Optional[ClaimStatus],
        new_status: ClaimStatus,
        ctx: OperationContext,
        source: TransitionSource,
        reason: Optional[str],
        details: Optional[dict],
    ) -> ClaimStatusHistory:
        history = ClaimStatusHistory(
            id=uuid4(),
            claim_id=claim.id,
            previous_status=previous,
            new_status=new_status,
            changed_at=ctx.now(),
            changed_by=ctx.user_id,
            actor_type=ctx.actor_type,
            source=source,
            reason=reason,
            details=details,
        )
        await self.repository.add(history)
        return history
