"""
Payment Reconciliation Engine.

Provides:
- Manual, automatic and batch reconciliation of payments against claims
- Undo of the most recent reconciliation on a payment
- Denial recording without money
- Reconciliation detail lookups

Each reconciliation call holds a non-waiting lock on the payment, so a
second concurrent call on the same payment fails with ConflictError
instead of double-allocating. Every successful call records a
ReconciliationAction holding the prior payment and claim states, which
is what undo restores.
"""

import hashlib
import json
import logging
from datetime import date
from decimal import Decimal
from typing import Optional, Sequence
from uuid import UUID, uuid4

from src.core.config import BillingSettings, get_billing_settings
from src.core.context import OperationContext
from src.core.enums import ClaimStatus, ReconciliationActionType, ReconciliationStatus
from src.core.exceptions import BillingError, ConflictError, NotFoundError, ValidationError
from src.db.repositories.base import BillingRepository
from src.models import Claim, Payment, ReconciliationAction
from src.schemas.common import BatchResult
from src.schemas.payment import (
    BatchReconcileItem,
    ClaimMatchInput,
    PaymentCreate,
    PaymentResponse,
    ReconcileRequest,
    ReconciliationDetails,
    ReconciliationResult,
    UndoResult,
)
from src.services.claims.claim_lifecycle import ClaimLifecycleService
from src.services.payments.payment_matcher import PaymentMatcher, claim_payment_responses
from src.utils.money import ZERO, to_money

logger = logging.getLogger(__name__)


def request_fingerprint(request: ReconcileRequest) -> str:
    """Stable hash of the claim allocations in a request."""
    payload = sorted(
        (
            {
                "claim_id": str(entry.claim_id),
                "amount": str(entry.amount),
                "adjustments": sorted(
                    [a.adjustment_type.value, a.code, str(a.amount)] for a in entry.adjustments
                ),
            }
            for entry in request.claim_payments
        ),
        key=lambda item: item["claim_id"],
    )
    return hashlib.sha256(json.dumps(payload, sort_keys=True).encode()).hexdigest()


class ReconciliationEngine:
    """Applies payments to claims and keeps payment status current."""

    def __init__(
        self,
        repository: BillingRepository,
        matcher: PaymentMatcher,
        lifecycle: ClaimLifecycleService,
        settings: Optional[BillingSettings] = None,
    ):
        self.repository = repository
        self.matcher = matcher
        self.lifecycle = lifecycle
        self.settings = settings or get_billing_settings()

    # =========================================================================
    # Payments
    # =========================================================================

    async def record_payment(self, data: PaymentCreate, ctx: OperationContext) -> Payment:
        """Record a manually entered payment as UNRECONCILED."""
        if (
            data.service_period_start is not None
            and data.service_period_end is not None
            and data.service_period_start > data.service_period_end
        ):
            raise ValidationError(
                "Service period start must not be after its end",
                {
                    "service_period_start": str(data.service_period_start),
                    "service_period_end": str(data.service_period_end),
                },
            )
        payment = Payment(
            id=uuid4(),
            tenant_id=ctx.tenant_id,
            reconciliation_status=ReconciliationStatus.UNRECONCILED,
            created_by=ctx.user_id,
            **data.model_dump(),
        )
        async with self.repository.transaction():
            await self.repository.add(payment)
        logger.info(f"Recorded payment {payment.id} of {payment.amount} from payer {payment.payer_id}")
        return payment

    # =========================================================================
    # Reconcile
    # =========================================================================

    async def reconcile(
        self,
        payment_id: UUID,
        request: ReconcileRequest,
        ctx: OperationContext,
        action_type: ReconciliationActionType = ReconciliationActionType.MANUAL,
        include_adjustments: Optional[bool] = None,
    ) -> ReconciliationResult:
        """
        Apply a reconciliation request to a payment.

        Raises:
            NotFoundError: payment does not exist
            ConflictError: payment is locked by another reconciliation, or
                the request repeats the latest active one
            OverAllocationError: request exceeds the unallocated balance
        """
        fingerprint = request_fingerprint(request)
        async with self.repository.transaction():
            payment = await self._lock_payment(payment_id)

            active = await self.repository.list_reconciliation_actions(payment.id)
            if active and active[-1].request_fingerprint == fingerprint:
                raise ConflictError(
                    "Duplicate reconciliation request",
                    {"payment_id": str(payment.id), "action_id": str(active[-1].id)},
                    code="DUPLICATE_RECONCILIATION",
                )

            action = ReconciliationAction(
                id=uuid4(),
                payment_id=payment.id,
                action_type=action_type,
                performed_at=ctx.now(),
                performed_by=ctx.user_id,
                request_fingerprint=fingerprint,
                prior_payment_status=payment.reconciliation_status,
                resulting_status=payment.reconciliation_status,
                prior_claim_states=await self._claim_snapshots(request.claim_payments),
                notes=request.notes,
            )
            await self.repository.add(action)

            applied = await self.matcher.apply_match(
                payment.id,
                request.claim_payments,
                ctx,
                action_id=action.id,
                include_adjustments=include_adjustments,
            )

            status = await self._compute_status(
                payment, has_errors=bool(applied.errors), include_adjustments=include_adjustments
            )
            payment.reconciliation_status = status
            payment.reconciled_at = ctx.now()
            payment.reconciled_by = ctx.user_id
            action.resulting_status = status
            if not applied.claim_payments:
                # Nothing applied, nothing to undo
                await self.repository.delete(action)

            matched = await self._matched_amount(payment, include_adjustments)

        logger.info(
            f"Reconciled payment {payment.id} ({action_type.value}): {status.value}, "
            f"matched {matched} of {payment.amount}"
        )
        return ReconciliationResult(
            payment_id=payment.id,
            action_id=action.id if applied.claim_payments else None,
            action_type=action_type,
            reconciliation_status=status,
            payment_amount=to_money(payment.amount),
            matched_amount=matched,
            unmatched_amount=to_money(payment.amount) - matched,
            claim_payments=applied.claim_payments,
            outcomes=applied.outcomes,
            errors=applied.errors,
        )

    async def auto_reconcile(
        self,
        payment_id: UUID,
        ctx: OperationContext,
        match_threshold: Optional[float] = None,
    ) -> ReconciliationResult:
        """
        Apply every suggestion scoring at or above the threshold.

        Suggestions are taken best-first until the payment's unallocated
        balance is used up.
        """
        threshold = (
            self.settings.AUTO_RECONCILE_THRESHOLD if match_threshold is None else match_threshold
        )
        if not 0.0 <= threshold <= 1.0:
            raise ValidationError(
                "Match threshold must be between 0 and 1", {"match_threshold": threshold}
            )

        payment = await self.matcher.get_payment(payment_id)
        remaining = to_money(payment.amount) - await self.matcher.allocated_amount(payment)

        picks: list[ClaimMatchInput] = []
        for suggestion in await self.matcher.suggest_matches(payment.id, min_score=threshold):
            if remaining <= ZERO:
                break
            amount = min(suggestion.suggested_amount, remaining)
            if amount <= ZERO:
                continue
            picks.append(
                ClaimMatchInput(
                    claim_id=suggestion.claim_id,
                    amount=amount,
                    remittance_line_id=suggestion.remittance_line_id,
                )
            )
            remaining -= amount

        if not picks:
            logger.info(f"Auto-reconcile found no matches >= {threshold} for payment {payment.id}")
            matched = await self._matched_amount(payment)
            return ReconciliationResult(
                payment_id=payment.id,
                action_type=ReconciliationActionType.AUTO,
                reconciliation_status=payment.reconciliation_status,
                payment_amount=to_money(payment.amount),
                matched_amount=matched,
                unmatched_amount=to_money(payment.amount) - matched,
            )

        return await self.reconcile(
            payment.id,
            ReconcileRequest(
                claim_payments=picks,
                notes=f"Auto-reconciled at threshold {threshold}",
            ),
            ctx,
            action_type=ReconciliationActionType.AUTO,
        )

    async def batch_reconcile(
        self, items: Sequence[BatchReconcileItem], ctx: OperationContext
    ) -> BatchResult[ReconciliationResult]:
        """Reconcile several payments; each one commits or fails on its own."""
        report: BatchResult[ReconciliationResult] = BatchResult()
        for item in items:
            try:
                result = await self.reconcile(item.payment_id, item.request, ctx)
            except BillingError as e:
                logger.warning(f"Batch reconciliation failed for payment {item.payment_id}: {e.message}")
                report.add_failure(item.payment_id, e)
                continue
            report.add_success(result)
        return report

    # =========================================================================
    # Undo
    # =========================================================================

    async def undo_reconciliation(self, payment_id: UUID, ctx: OperationContext) -> UndoResult:
        """
        Reverse the most recent active reconciliation on a payment.

        Raises:
            NotFoundError: payment does not exist
            ConflictError: nothing to undo, or an affected claim has since
                received an independent payment
        """
        async with self.repository.transaction():
            payment = await self._lock_payment(payment_id)
            active = await self.repository.list_reconciliation_actions(payment.id)
            if not active:
                raise ConflictError(
                    "No reconciliation to undo",
                    {"payment_id": str(payment.id)},
                    code="NOTHING_TO_UNDO",
                )
            action = active[-1]
            claim_payments = await self.repository.list_claim_payments(action_id=action.id)
            own_ids = {cp.id for cp in claim_payments}
            affected = sorted({cp.claim_id for cp in claim_payments}, key=str)

            for claim_id in affected:
                prior = action.prior_claim_states.get(str(claim_id), {})
                known = own_ids | {UUID(i) for i in prior.get("claim_payment_ids", [])}
                later = [
                    cp
                    for cp in await self.repository.list_claim_payments(claim_id=claim_id)
                    if cp.id not in known
                ]
                if later:
                    raise ConflictError(
                        "Claim has received a later payment; undo that first",
                        {
                            "claim_id": str(claim_id),
                            "claim_payment_ids": [str(cp.id) for cp in later],
                        },
                        code="UNDO_BLOCKED",
                    )

            adjustments = await self.repository.list_adjustments(list(own_ids))
            for adjustment in adjustments:
                await self.repository.delete(adjustment)
            for claim_payment in claim_payments:
                await self.repository.delete(claim_payment)

            restored: dict[str, ClaimStatus] = {}
            for claim_id in affected:
                claim = await self.lifecycle.get_claim(claim_id, for_update=True)
                prior = action.prior_claim_states[str(claim_id)]
                status = ClaimStatus(prior["status"])
                if claim.status != status or prior.get("adjudication_date") != _iso(claim.adjudication_date):
                    await self.lifecycle.restore_status(
                        claim,
                        status,
                        ctx,
                        adjudication_date=_parse_date(prior.get("adjudication_date")),
                        denial_reason=prior.get("denial_reason"),
                        reason=f"Reconciliation {action.id} undone",
                    )
                restored[str(claim_id)] = status

            payment.reconciliation_status = action.prior_payment_status
            payment.reconciled_at = ctx.now()
            payment.reconciled_by = ctx.user_id
            action.undone = True
            action.undone_at = ctx.now()
            action.undone_by = ctx.user_id
            matched = await self._matched_amount(payment)

        logger.info(
            f"Undid reconciliation {action.id} on payment {payment.id}: "
            f"removed {len(claim_payments)} claim payments"
        )
        return UndoResult(
            payment_id=payment.id,
            action_id=action.id,
            removed_claim_payment_ids=sorted(own_ids, key=str),
            restored_claims=restored,
            reconciliation_status=payment.reconciliation_status,
            matched_amount=matched,
        )

    # =========================================================================
    # Denials & details
    # =========================================================================

    async def record_denial(
        self,
        claim_id: UUID,
        denial_reason: str,
        adjudication_date: date,
        ctx: OperationContext,
    ) -> Claim:
        """Record a payer denial that arrived without a payment."""
        async with self.repository.transaction():
            claim = await self.lifecycle.get_claim(claim_id, for_update=True)
            target = (
                ClaimStatus.FINAL_DENIED if claim.status == ClaimStatus.APPEALED else ClaimStatus.DENIED
            )
            await self.lifecycle.apply_adjudication(
                claim,
                target,
                ctx,
                adjudication_date=adjudication_date,
                denial_reason=denial_reason,
                reason=f"Denied: {denial_reason}",
            )
        return claim

    async def get_reconciliation_details(self, payment_id: UUID) -> ReconciliationDetails:
        payment = await self.matcher.get_payment(payment_id)
        claim_payments = await self.repository.list_claim_payments(payment_id=payment.id)
        matched = await self._matched_amount(payment)
        return ReconciliationDetails(
            payment=PaymentResponse.model_validate(payment),
            claim_payments=await claim_payment_responses(self.repository, claim_payments),
            matched_amount=matched,
            unmatched_amount=to_money(payment.amount) - matched,
        )

    # =========================================================================
    # Helpers
    # =========================================================================

    async def _lock_payment(self, payment_id: UUID) -> Payment:
        payment = await self.repository.lock_payment(payment_id)
        if payment is None:
            raise NotFoundError("Payment", payment_id)
        return payment

    async def _claim_snapshots(self, entries: Sequence[ClaimMatchInput]) -> dict:
        snapshots = {}
        for entry in entries:
            claim = await self.repository.get_claim(entry.claim_id)
            if claim is None:
                continue
            existing = await self.repository.list_claim_payments(claim_id=claim.id)
            snapshots[str(claim.id)] = {
                "status": claim.status.value,
                "adjudication_date": _iso(claim.adjudication_date),
                "denial_reason": claim.denial_reason,
                "claim_payment_ids": [str(cp.id) for cp in existing],
            }
        return snapshots

    async def _matched_amount(
        self, payment: Payment, include_adjustments: Optional[bool] = None
    ) -> Decimal:
        # Same measure the over-allocation check uses
        return await self.matcher.allocated_amount(payment, include_adjustments)

    async def _compute_status(
        self,
        payment: Payment,
        has_errors: bool,
        include_adjustments: Optional[bool] = None,
    ) -> ReconciliationStatus:
        if has_errors:
            return ReconciliationStatus.EXCEPTION
        matched = await self._matched_amount(payment, include_adjustments)
        amount = to_money(payment.amount)
        if matched == ZERO:
            return ReconciliationStatus.UNRECONCILED
        if matched == amount:
            return ReconciliationStatus.RECONCILED
        if matched < amount:
            return ReconciliationStatus.PARTIALLY_RECONCILED
        return ReconciliationStatus.EXCEPTION


def _iso(value: Optional[date]) -> Optional[str]:
    return value.isoformat() if value is not None else None


def _parse_date(value: Optional[str]) -> Optional[date]:
    return date.fromisoformat(value) if value else None
