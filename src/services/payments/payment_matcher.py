"""
Payment Matcher.

Provides:
- Ranked claim suggestions for a payment
- Application of claim matches to a payment (ClaimPayments, adjustments,
  claim status changes)

apply_match checks the whole request against the payment's remaining
balance before anything is written. Per-claim problems (unknown claim,
wrong payer, claim not payable) are reported in the result and skip only
that claim.
"""

import logging
from decimal import Decimal
from typing import Optional, Sequence
from uuid import UUID, uuid4

from src.core.config import BillingSettings, get_billing_settings
from src.core.context import OperationContext
from src.core.enums import AdjustmentType, ClaimStatus
from src.core.exceptions import NotFoundError, OverAllocationError, ValidationError
from src.db.repositories.base import BillingRepository
from src.models import Claim, ClaimPayment, Payment, PaymentAdjustment, RemittanceLine
from src.schemas.payment import (
    AdjustmentResponse,
    ApplyMatchResult,
    ClaimMatchError,
    ClaimMatchInput,
    ClaimOutcome,
    ClaimPaymentResponse,
    MatchScore,
    MatchSuggestion,
)
from src.services.claims.claim_lifecycle import ClaimLifecycleService
from src.services.claims.claim_state_machine import PAYABLE_STATUSES
from src.services.payments.match_scoring import MatchWeights, score_claim_match
from src.utils.money import ZERO, is_fully_paid, money_sum, to_money

logger = logging.getLogger(__name__)


async def paid_to_date(repository: BillingRepository, claim_id: UUID) -> Decimal:
    """Sum of active ClaimPayment amounts for a claim."""
    return money_sum(cp.paid_amount for cp in await repository.list_claim_payments(claim_id=claim_id))


async def claim_payment_responses(
    repository: BillingRepository, claim_payments: Sequence[ClaimPayment]
) -> list[ClaimPaymentResponse]:
    """ClaimPayment rows with their adjustments attached."""
    adjustments = await repository.list_adjustments([cp.id for cp in claim_payments])
    by_claim_payment: dict[UUID, list[AdjustmentResponse]] = {}
    for adjustment in adjustments:
        by_claim_payment.setdefault(adjustment.claim_payment_id, []).append(
            AdjustmentResponse.model_validate(adjustment)
        )
    return [
        ClaimPaymentResponse(
            id=cp.id,
            payment_id=cp.payment_id,
            claim_id=cp.claim_id,
            paid_amount=cp.paid_amount,
            reconciliation_action_id=cp.reconciliation_action_id,
            applied_at=cp.applied_at,
            adjustments=by_claim_payment.get(cp.id, []),
        )
        for cp in claim_payments
    ]


def _suggestion(
    claim: Claim,
    outstanding: Decimal,
    match: MatchScore,
    suggested: Decimal,
    remittance_line_id: Optional[UUID] = None,
) -> MatchSuggestion:
    return MatchSuggestion(
        claim_id=claim.id,
        claim_number=claim.claim_number,
        match_score=match.score,
        match_reason=match.reason,
        outstanding_amount=outstanding,
        suggested_amount=suggested,
        amount_difference=match.amount_difference,
        service_end_date=claim.service_end_date,
        remittance_line_id=remittance_line_id,
    )


class PaymentMatcher:
    """Suggests and applies payment-to-claim matches."""

    def __init__(
        self,
        repository: BillingRepository,
        lifecycle: ClaimLifecycleService,
        settings: Optional[BillingSettings] = None,
    ):
        self.repository = repository
        self.lifecycle = lifecycle
        self.settings = settings or get_billing_settings()
        self.weights = MatchWeights.from_settings(self.settings)

    async def get_payment(self, payment_id: UUID) -> Payment:
        payment = await self.repository.get_payment(payment_id)
        if payment is None:
            raise NotFoundError("Payment", payment_id)
        return payment

    def counts_adjustments(
        self, payment: Payment, include_adjustments: Optional[bool] = None
    ) -> bool:
        """Whether adjustments consume a payment's balance.

        Remittance payments carry 835 adjustments that are not cash, so
        only their paid amounts are allocated.
        """
        if include_adjustments is not None:
            return include_adjustments
        if payment.remittance_id is not None:
            return False
        return self.settings.ALLOCATION_INCLUDES_ADJUSTMENTS

    async def allocated_amount(
        self, payment: Payment, include_adjustments: Optional[bool] = None
    ) -> Decimal:
        """Amount of the payment already applied to claims."""
        include_adjustments = self.counts_adjustments(payment, include_adjustments)
        claim_payments = await self.repository.list_claim_payments(payment_id=payment.id)
        allocated = money_sum(cp.paid_amount for cp in claim_payments)
        if include_adjustments and claim_payments:
            adjustments = await self.repository.list_adjustments([cp.id for cp in claim_payments])
            allocated += money_sum(a.amount for a in adjustments)
        return allocated

    # =========================================================================
    # Suggestions
    # =========================================================================

    async def suggest_matches(
        self, payment_id: UUID, min_score: Optional[float] = None
    ) -> list[MatchSuggestion]:
        """
        Rank open claims of the payment's payer.

        Ordered by score descending, then smallest amount difference, then
        oldest service end date.
        """
        payment = await self.get_payment(payment_id)
        threshold = self.settings.MIN_MATCH_SCORE if min_score is None else min_score
        available = to_money(payment.amount) - await self.allocated_amount(payment)
        turnaround = self.settings.turnaround_days(str(payment.payer_id))
        lines = []
        if payment.remittance_id:
            applied = {
                cp.remittance_line_id
                for cp in await self.repository.list_claim_payments(payment_id=payment.id)
            }
            lines = [
                line
                for line in await self.repository.list_remittance_lines(payment.remittance_id)
                if line.matched_claim_id is None and line.id not in applied
            ]

        open_claims = []
        for claim in await self.repository.list_claims_by_payer(
            payment.payer_id, statuses=list(PAYABLE_STATUSES)
        ):
            outstanding = to_money(claim.total_amount) - await paid_to_date(
                self.repository, claim.id
            )
            if outstanding > ZERO:
                open_claims.append((claim, outstanding))

        if payment.remittance_id:
            suggestions = self._line_suggestions(
                payment, open_claims, lines, threshold, turnaround
            )
        else:
            suggestions = []
            for claim, outstanding in open_claims:
                match = score_claim_match(
                    payment,
                    claim,
                    outstanding,
                    available_amount=available,
                    turnaround_days=turnaround,
                    weights=self.weights,
                )
                if match.score < threshold:
                    continue
                suggestions.append(
                    _suggestion(claim, outstanding, match, max(min(outstanding, available), ZERO))
                )

        suggestions.sort(
            key=lambda s: (-s.match_score, s.amount_difference, s.service_end_date, s.claim_number)
        )
        logger.debug(f"Payment {payment.id}: {len(suggestions)} match suggestions")
        return suggestions

    def _line_suggestions(
        self,
        payment: Payment,
        open_claims: list[tuple[Claim, Decimal]],
        lines: Sequence[RemittanceLine],
        threshold: float,
        turnaround: int,
    ) -> list[MatchSuggestion]:
        """Pair claims with remittance lines, each line and claim used once."""
        pairs = []
        for claim, outstanding in open_claims:
            for line in lines:
                match = score_claim_match(
                    payment,
                    claim,
                    outstanding,
                    remittance_detail=line,
                    turnaround_days=turnaround,
                    weights=self.weights,
                )
                if match.score >= threshold:
                    pairs.append((match, claim, outstanding, line))

        pairs.sort(
            key=lambda p: (-p[0].score, p[0].amount_difference, p[1].service_end_date, p[3].line_number)
        )
        taken_claims: set[UUID] = set()
        taken_lines: set[UUID] = set()
        suggestions = []
        for match, claim, outstanding, line in pairs:
            if claim.id in taken_claims or line.id in taken_lines:
                continue
            taken_claims.add(claim.id)
            taken_lines.add(line.id)
            suggestions.append(
                _suggestion(claim, outstanding, match, to_money(line.paid_amount), line.id)
            )
        return suggestions

    # =========================================================================
    # Application
    # =========================================================================

    async def apply_match(
        self,
        payment_id: UUID,
        entries: Sequence[ClaimMatchInput],
        ctx: OperationContext,
        action_id: Optional[UUID] = None,
        include_adjustments: Optional[bool] = None,
    ) -> ApplyMatchResult:
        """
        Apply amounts and adjustments from a payment to claims.

        Raises:
            NotFoundError: payment does not exist
            ValidationError: a claim appears twice in the request
            OverAllocationError: requested total exceeds the unallocated balance
        """
        claim_ids = [entry.claim_id for entry in entries]
        if len(set(claim_ids)) != len(claim_ids):
            raise ValidationError("Each claim may appear only once per request")

        result = ApplyMatchResult(payment_id=payment_id)
        async with self.repository.transaction():
            payment = await self.get_payment(payment_id)
            include_adjustments = self.counts_adjustments(payment, include_adjustments)

            requested = money_sum(entry.amount for entry in entries)
            if include_adjustments:
                requested += money_sum(entry.adjustment_total for entry in entries)
            available = to_money(payment.amount) - await self.allocated_amount(
                payment, include_adjustments
            )
            if requested > available:
                raise OverAllocationError(requested, available, payment.id)

            accepted: list[tuple[ClaimMatchInput, Claim]] = []
            for entry in entries:
                claim, error = await self._check_entry(payment, entry)
                if error is not None:
                    logger.warning(f"Payment {payment.id}: skipped claim {entry.claim_id}: {error.message}")
                    result.errors.append(error)
                    continue
                accepted.append((entry, claim))

            for entry, claim in accepted:
                claim_payment, outcome = await self._apply_entry(payment, entry, claim, ctx, action_id)
                result.claim_payments.extend(
                    await claim_payment_responses(self.repository, [claim_payment])
                )
                result.outcomes.append(outcome)

        logger.info(
            f"Applied {result.applied_amount} from payment {payment_id} to "
            f"{len(result.claim_payments)} claims ({len(result.errors)} rejected)"
        )
        return result

    async def _check_entry(
        self, payment: Payment, entry: ClaimMatchInput
    ) -> tuple[Optional[Claim], Optional[ClaimMatchError]]:
        claim = await self.repository.get_claim(entry.claim_id, for_update=True)
        if claim is None:
            return None, ClaimMatchError(
                claim_id=entry.claim_id, error="NOT_FOUND", message="Claim not found"
            )
        if claim.payer_id != payment.payer_id:
            return claim, ClaimMatchError(
                claim_id=claim.id,
                error="PAYER_MISMATCH",
                message="Claim belongs to a different payer than the payment",
            )
        if claim.status not in PAYABLE_STATUSES:
            return claim, ClaimMatchError(
                claim_id=claim.id,
                error="CLAIM_NOT_PAYABLE",
                message=f"Claim in status {claim.status.value} cannot receive payments",
            )
        if entry.amount == ZERO and not entry.adjustments:
            return claim, ClaimMatchError(
                claim_id=claim.id,
                error="EMPTY_APPLICATION",
                message="Nothing to apply: zero amount and no adjustments",
            )
        return claim, None

    def is_denial_adjustment(self, adjustment_type: AdjustmentType, code: str) -> bool:
        return (
            adjustment_type == AdjustmentType.NONCOVERED
            or code in self.settings.DENIAL_ADJUSTMENT_CODES
        )

    async def _apply_entry(
        self,
        payment: Payment,
        entry: ClaimMatchInput,
        claim: Claim,
        ctx: OperationContext,
        action_id: Optional[UUID],
    ) -> tuple[ClaimPayment, ClaimOutcome]:
        claim_payment = ClaimPayment(
            id=uuid4(),
            payment_id=payment.id,
            claim_id=claim.id,
            reconciliation_action_id=action_id,
            remittance_line_id=entry.remittance_line_id,
            paid_amount=entry.amount,
            applied_at=ctx.now(),
            applied_by=ctx.user_id,
        )
        await self.repository.add(claim_payment)
        for adjustment in entry.adjustments:
            await self.repository.add(
                PaymentAdjustment(
                    id=uuid4(),
                    claim_payment_id=claim_payment.id,
                    adjustment_type=adjustment.adjustment_type,
                    code=adjustment.code,
                    amount=adjustment.amount,
                    description=adjustment.description,
                )
            )

        total = to_money(claim.total_amount)
        cumulative = await paid_to_date(self.repository, claim.id)
        previous = claim.status
        warnings: list[str] = []

        denial = (
            entry.amount == ZERO
            and entry.adjustments
            and all(self.is_denial_adjustment(a.adjustment_type, a.code) for a in entry.adjustments)
        )
        denial_reason = None
        if denial:
            target = (
                ClaimStatus.FINAL_DENIED if claim.status == ClaimStatus.APPEALED else ClaimStatus.DENIED
            )
            denial_reason = max(entry.adjustments, key=lambda a: a.amount).code
        elif is_fully_paid(total, cumulative, self.settings.PAYMENT_ROUNDING_TOLERANCE):
            target = ClaimStatus.PAID
        elif cumulative > ZERO:
            target = ClaimStatus.PARTIAL_PAID
        else:
            target = claim.status

        if cumulative > total:
            warnings.append(f"Claim overpaid by {cumulative - total}")
            logger.warning(f"Claim {claim.claim_number} overpaid by {cumulative - total}")

        await self.lifecycle.apply_adjudication(
            claim,
            target,
            ctx,
            adjudication_date=payment.payment_date,
            denial_reason=denial_reason,
            reason=f"Payment {payment.reference_number or payment.id} applied",
        )

        return claim_payment, ClaimOutcome(
            claim_id=claim.id,
            previous_status=previous,
            new_status=claim.status,
            paid_amount=entry.amount,
            cumulative_paid=cumulative,
            outstanding_amount=max(total - cumulative, ZERO),
            warnings=warnings,
        )
