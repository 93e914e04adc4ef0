"""
Remittance Processing.

Imports a structured remittance (parsed upstream from an 835 or a payer
portal export) as a Payment with its lines, matches each line to a
claim and reconciles the matched lines as one REMITTANCE action.

Line matching order:
1. claim id carried on the line
2. claim number (ours or the payer's external id)
3. best heuristic score among the payer's payable claims, if it clears
   the auto-reconcile threshold
"""

import logging
from decimal import Decimal
from typing import Optional
from uuid import UUID, uuid4

from src.core.config import BillingSettings, get_billing_settings
from src.core.context import OperationContext
from src.core.enums import ReconciliationActionType, ReconciliationStatus
from src.core.exceptions import BillingError
from src.db.repositories.base import BillingRepository
from src.models import Claim, Payment, Remittance, RemittanceLine
from src.schemas.payment import AdjustmentInput, ClaimMatchError, ClaimMatchInput, ReconcileRequest
from src.schemas.remittance import (
    RemittanceDetail,
    RemittanceInfo,
    RemittanceLineOutcome,
    RemittanceProcessingResult,
)
from src.services.claims.claim_state_machine import PAYABLE_STATUSES
from src.services.payments.match_scoring import MatchWeights, score_claim_match
from src.services.payments.payment_matcher import paid_to_date
from src.services.payments.reconciliation import ReconciliationEngine
from src.utils.money import ZERO, money_sum, to_money

logger = logging.getLogger(__name__)

DEFAULT_ADJUSTMENT_CODE = "OA"


class RemittanceProcessor:
    """Turns remittance records into reconciled payments."""

    def __init__(
        self,
        repository: BillingRepository,
        engine: ReconciliationEngine,
        settings: Optional[BillingSettings] = None,
    ):
        self.repository = repository
        self.engine = engine
        self.settings = settings or get_billing_settings()
        self.weights = MatchWeights.from_settings(self.settings)

    async def import_remittance(
        self, remittance: RemittanceInfo, ctx: OperationContext
    ) -> RemittanceProcessingResult:
        payment = await self._store(remittance, ctx)

        outcomes: list[RemittanceLineOutcome] = []
        entries: list[ClaimMatchInput] = []
        line_for_claim: dict = {}
        proposed: dict = {}

        async with self.repository.transaction():
            lines = await self.repository.list_remittance_lines(payment.remittance_id)
            for line, detail in zip(lines, remittance.details):
                claim, score, reason = await self._match_line(payment, line, set(line_for_claim))
                outcome = RemittanceLineOutcome(
                    line_number=line.line_number,
                    claim_number=line.claim_number,
                    paid_amount=to_money(line.paid_amount),
                )
                outcomes.append(outcome)
                if claim is None:
                    outcome.match_reason = reason
                    continue

                outcome.matched_claim_id = claim.id
                outcome.match_score = score
                outcome.match_reason = reason

                entry = self._entry_for(line, detail, claim)
                if entry is None:
                    outcome.match_reason = "Line carries no paid or adjusted amount"
                    continue
                entries.append(entry)
                line_for_claim[claim.id] = outcome
                proposed[claim.id] = (line.id, score)

        errors: list[ClaimMatchError] = []
        status = payment.reconciliation_status
        if entries:
            try:
                reconciled = await self.engine.reconcile(
                    payment.id,
                    ReconcileRequest(
                        claim_payments=entries,
                        notes=f"Remittance {remittance.remittance_number}",
                    ),
                    ctx,
                    action_type=ReconciliationActionType.REMITTANCE,
                    include_adjustments=False,
                )
            except BillingError as e:
                logger.error(
                    f"Remittance {remittance.remittance_number} could not be applied: {e.message}"
                )
                errors.append(ClaimMatchError(error=e.code, message=e.message))
                status = await self._mark_exception(payment)
            else:
                status = reconciled.reconciliation_status
                errors.extend(reconciled.errors)
                for error in reconciled.errors:
                    if error.claim_id in line_for_claim:
                        line_for_claim[error.claim_id].match_reason = error.message
                await self._record_line_matches(
                    payment.remittance_id, proposed, reconciled.claim_payments
                )
                for claim_payment in reconciled.claim_payments:
                    line_for_claim[claim_payment.claim_id].applied = True

        applied = [o for o in outcomes if o.applied]
        unapplied = [o for o in outcomes if not o.applied]
        result = RemittanceProcessingResult(
            remittance_id=payment.remittance_id,
            payment_id=payment.id,
            reconciliation_status=status,
            claims_matched=len(applied),
            claims_unmatched=len(unapplied),
            matched_amount=money_sum(o.paid_amount for o in applied),
            unmatched_amount=money_sum(o.paid_amount for o in unapplied),
            lines=outcomes,
            errors=errors,
        )
        logger.info(
            f"Imported remittance {remittance.remittance_number}: "
            f"{result.claims_matched} matched, {result.claims_unmatched} unmatched, "
            f"status {status.value}"
        )
        return result

    # =========================================================================
    # Helpers
    # =========================================================================

    async def _store(
        self, remittance: RemittanceInfo, ctx: OperationContext
    ) -> Payment:
        """Persist the remittance, its lines and the payment it represents."""
        async with self.repository.transaction():
            record = Remittance(
                id=uuid4(),
                remittance_number=remittance.remittance_number,
                remittance_date=remittance.remittance_date,
                payer_id=remittance.payer_id,
                payer_identifier=remittance.payer_identifier,
                payer_name=remittance.payer_name,
                total_amount=remittance.total_amount,
                claim_count=remittance.claim_count,
                file_type=remittance.file_type,
            )
            await self.repository.add(record)

            for number, detail in enumerate(remittance.details, start=1):
                known = (
                    await self.repository.get_claim(detail.claim_id)
                    if detail.claim_id is not None
                    else None
                )
                line = RemittanceLine(
                    id=uuid4(),
                    remittance_id=record.id,
                    line_number=number,
                    claim_number=detail.claim_number,
                    claim_id=known.id if known is not None else None,
                    service_date=detail.service_date,
                    billed_amount=detail.billed_amount,
                    paid_amount=detail.paid_amount,
                    adjustment_amount=detail.adjustment_amount,
                    adjustment_codes=list(detail.adjustment_codes),
                )
                await self.repository.add(line)

            payment = Payment(
                id=uuid4(),
                tenant_id=ctx.tenant_id,
                payer_id=remittance.payer_id,
                payment_date=remittance.remittance_date,
                amount=remittance.total_amount,
                method=remittance.payment_method,
                reference_number=remittance.reference_number or remittance.remittance_number,
                reconciliation_status=ReconciliationStatus.UNRECONCILED,
                remittance_id=record.id,
                service_period_start=min(
                    (d.service_date for d in remittance.details if d.service_date), default=None
                ),
                service_period_end=max(
                    (d.service_date for d in remittance.details if d.service_date), default=None
                ),
                created_by=ctx.user_id,
            )
            await self.repository.add(payment)
        return payment

    async def _match_line(
        self, payment: Payment, line: RemittanceLine, taken: set
    ) -> tuple[Optional[Claim], Optional[float], str]:
        claim = None
        if line.claim_id is not None:
            claim = await self.repository.get_claim(line.claim_id)
        if claim is None and line.claim_number:
            claim = await self.repository.get_claim_by_number(line.claim_number.strip())
        if claim is not None:
            if claim.id in taken:
                return None, None, f"Claim {claim.claim_number} already matched by another line"
            return claim, 1.0, f"Remittance line references claim {claim.claim_number}"

        best: Optional[tuple[Claim, float, str, Decimal]] = None
        turnaround = self.settings.turnaround_days(str(payment.payer_id))
        for candidate in await self.repository.list_claims_by_payer(
            payment.payer_id, statuses=list(PAYABLE_STATUSES)
        ):
            if candidate.id in taken:
                continue
            outstanding = to_money(candidate.total_amount) - await paid_to_date(
                self.repository, candidate.id
            )
            if outstanding <= ZERO:
                continue
            match = score_claim_match(
                payment,
                candidate,
                outstanding,
                remittance_detail=line,
                turnaround_days=turnaround,
                weights=self.weights,
            )
            if best is None or (match.score, -match.amount_difference) > (best[1], -best[3]):
                best = (candidate, match.score, match.reason, match.amount_difference)

        if best is None or best[1] < self.settings.AUTO_RECONCILE_THRESHOLD:
            return None, None, "No claim matched this line"
        return best[0], best[1], best[2]

    def _entry_for(
        self, line: RemittanceLine, detail: RemittanceDetail, claim: Claim
    ) -> Optional[ClaimMatchInput]:
        adjustments = []
        if to_money(line.adjustment_amount) > ZERO:
            codes = list(line.adjustment_codes) or [DEFAULT_ADJUSTMENT_CODE]
            adjustments.append(
                AdjustmentInput(
                    adjustment_type=detail.adjustment_type,
                    code=codes[0],
                    amount=line.adjustment_amount,
                    description=", ".join(codes),
                )
            )
        if to_money(line.paid_amount) == ZERO and not adjustments:
            return None
        return ClaimMatchInput(
            claim_id=claim.id,
            amount=line.paid_amount,
            adjustments=adjustments,
            remittance_line_id=line.id,
        )

    async def _record_line_matches(
        self, remittance_id: UUID, proposed: dict, claim_payments: list
    ) -> None:
        """Mark only the lines whose claim payment was created."""
        if not claim_payments:
            return
        async with self.repository.transaction():
            lines = {
                line.id: line
                for line in await self.repository.list_remittance_lines(remittance_id)
            }
            for claim_payment in claim_payments:
                line_id, score = proposed[claim_payment.claim_id]
                lines[line_id].matched_claim_id = claim_payment.claim_id
                lines[line_id].match_score = score

    async def _mark_exception(self, payment: Payment) -> ReconciliationStatus:
        async with self.repository.transaction():
            stored = await self.repository.get_payment(payment.id)
            stored.reconciliation_status = ReconciliationStatus.EXCEPTION
        return ReconciliationStatus.EXCEPTION
