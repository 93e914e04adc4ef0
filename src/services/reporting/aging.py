"""
Accounts-Receivable Aging.

Provides:
- Aging report: outstanding balances bucketed by age, per payer and program
- Collection worklist ranked by bucket weight x outstanding balance
- Claims approaching the timely filing deadline
- Payments still waiting for reconciliation
- Payment history of a single claim

Read-only; never changes claim or payment state.
"""

import logging
from datetime import date, timedelta
from decimal import Decimal
from typing import Optional
from uuid import UUID

from src.core.config import BillingSettings, get_billing_settings
from src.core.enums import (
    AgingBasis,
    AgingBucket,
    ClaimStatus,
    ReconciliationStatus,
    WorklistPriority,
)
from src.core.exceptions import NotFoundError
from src.db.repositories.base import BillingRepository, ClaimFilters
from src.models import Claim
from src.schemas.aging import (
    AgedClaim,
    AgingFilters,
    AgingGroup,
    AgingReport,
    ClaimPaymentHistory,
    ClaimPaymentHistoryItem,
    FilingDeadlineItem,
    UnreconciledPaymentItem,
    WorklistItem,
)
from src.services.claims.claim_state_machine import TERMINAL_STATUSES
from src.services.payments.payment_matcher import paid_to_date
from src.utils.money import ZERO, money_sum, to_money

logger = logging.getLogger(__name__)

UNSUBMITTED_STATUSES = (ClaimStatus.DRAFT, ClaimStatus.VALIDATED)

FOLLOW_UP_ACTIONS: dict[ClaimStatus, str] = {
    ClaimStatus.DRAFT: "Complete and validate claim",
    ClaimStatus.VALIDATED: "Submit claim to payer",
    ClaimStatus.SUBMITTED: "Confirm payer received claim",
    ClaimStatus.ACKNOWLEDGED: "Check adjudication status with payer",
    ClaimStatus.PENDING: "Check adjudication status with payer",
    ClaimStatus.PARTIAL_PAID: "Follow up on unpaid balance",
    ClaimStatus.DENIED: "Review denial and decide on appeal",
    ClaimStatus.APPEALED: "Follow up on appeal",
}


def bucket_for_age(age_days: int) -> AgingBucket:
    """Map an age in days to its aging bucket."""
    if age_days <= 0:
        return AgingBucket.CURRENT
    if age_days <= 30:
        return AgingBucket.DAYS_0_30
    if age_days <= 60:
        return AgingBucket.DAYS_31_60
    if age_days <= 90:
        return AgingBucket.DAYS_61_90
    return AgingBucket.DAYS_90_PLUS


class AgingCalculator:
    """Derives aging reports and collection worklists."""

    def __init__(self, repository: BillingRepository, settings: Optional[BillingSettings] = None):
        self.repository = repository
        self.settings = settings or get_billing_settings()

    def age_anchor(self, claim: Claim) -> date:
        if self.settings.AGING_BASIS == AgingBasis.SUBMISSION_DATE and claim.submission_date:
            return claim.submission_date
        return claim.service_end_date

    async def _aged_claims(self, as_of: date, filters: Optional[AgingFilters]) -> list[AgedClaim]:
        filters = filters or AgingFilters()
        claims = await self.repository.list_claims(
            ClaimFilters(
                payer_id=filters.payer_id,
                program_id=filters.program_id,
                client_id=filters.client_id,
                statuses=filters.statuses,
                exclude_statuses=list(TERMINAL_STATUSES),
            )
        )

        aged = []
        for claim in claims:
            total = to_money(claim.total_amount)
            paid = await paid_to_date(self.repository, claim.id)
            outstanding = total - paid
            if outstanding <= ZERO:
                continue
            age_days = (as_of - self.age_anchor(claim)).days
            aged.append(
                AgedClaim(
                    claim_id=claim.id,
                    claim_number=claim.claim_number,
                    payer_id=claim.payer_id,
                    program_id=claim.program_id,
                    status=claim.status,
                    age_days=age_days,
                    bucket=bucket_for_age(age_days),
                    total_amount=total,
                    paid_amount=paid,
                    outstanding_amount=outstanding,
                )
            )
        return aged

    # =========================================================================
    # Aging report
    # =========================================================================

    async def compute_aging(
        self, as_of: date, filters: Optional[AgingFilters] = None
    ) -> AgingReport:
        aged = await self._aged_claims(as_of, filters)
        report = AgingReport(as_of_date=as_of, basis=self.settings.AGING_BASIS, claims=aged)

        by_payer: dict[UUID, AgingGroup] = {}
        by_program: dict[Optional[UUID], AgingGroup] = {}
        for item in aged:
            report.buckets[item.bucket] += item.outstanding_amount
            for groups, key in ((by_payer, item.payer_id), (by_program, item.program_id)):
                group = groups.setdefault(key, AgingGroup(group_id=key))
                group.buckets[item.bucket] += item.outstanding_amount
                group.total_outstanding += item.outstanding_amount
                group.claim_count += 1

        report.total_outstanding = money_sum(item.outstanding_amount for item in aged)
        report.claim_count = len(aged)
        report.by_payer = sorted(by_payer.values(), key=lambda g: -g.total_outstanding)
        report.by_program = sorted(by_program.values(), key=lambda g: -g.total_outstanding)

        logger.info(
            f"Aging as of {as_of}: {report.claim_count} claims, "
            f"{report.total_outstanding} outstanding"
        )
        return report

    # =========================================================================
    # Collection worklist
    # =========================================================================

    def priority_for(self, age_days: int, outstanding: Decimal) -> WorklistPriority:
        s = self.settings
        if age_days > s.WORKLIST_HIGH_AGE_DAYS or outstanding >= s.WORKLIST_HIGH_AMOUNT:
            return WorklistPriority.HIGH
        if age_days > s.WORKLIST_MEDIUM_AGE_DAYS or outstanding >= s.WORKLIST_MEDIUM_AMOUNT:
            return WorklistPriority.MEDIUM
        return WorklistPriority.LOW

    async def collection_worklist(
        self,
        as_of: date,
        filters: Optional[AgingFilters] = None,
        limit: Optional[int] = None,
    ) -> list[WorklistItem]:
        """Outstanding claims, highest priority score first; older first on ties."""
        weights = self.settings.AGING_BUCKET_WEIGHTS
        items = []
        for aged in await self._aged_claims(as_of, filters):
            score = to_money(Decimal(str(weights[aged.bucket.value])) * aged.outstanding_amount)
            items.append(
                WorklistItem(
                    claim_id=aged.claim_id,
                    claim_number=aged.claim_number,
                    payer_id=aged.payer_id,
                    status=aged.status,
                    age_days=aged.age_days,
                    bucket=aged.bucket,
                    outstanding_amount=aged.outstanding_amount,
                    priority_score=score,
                    priority=self.priority_for(aged.age_days, aged.outstanding_amount),
                    follow_up_action=FOLLOW_UP_ACTIONS.get(aged.status, "Review claim"),
                )
            )
        items.sort(key=lambda i: (-i.priority_score, -i.age_days, i.claim_number))
        return items[:limit] if limit is not None else items

    # =========================================================================
    # Other receivables views
    # =========================================================================

    async def claims_approaching_filing_deadline(
        self, as_of: date, within_days: Optional[int] = None
    ) -> list[FilingDeadlineItem]:
        """Unsubmitted claims whose timely filing deadline falls within the window."""
        window = self.settings.FILING_DEADLINE_WARNING_DAYS if within_days is None else within_days
        items = []
        for claim in await self.repository.list_claims(
            ClaimFilters(statuses=list(UNSUBMITTED_STATUSES))
        ):
            deadline = claim.service_start_date + timedelta(days=self.settings.TIMELY_FILING_DAYS)
            remaining = (deadline - as_of).days
            if remaining > window:
                continue
            items.append(
                FilingDeadlineItem(
                    claim_id=claim.id,
                    claim_number=claim.claim_number,
                    status=claim.status,
                    service_start_date=claim.service_start_date,
                    filing_deadline=deadline,
                    days_remaining=remaining,
                    total_amount=to_money(claim.total_amount),
                )
            )
        return sorted(items, key=lambda i: (i.days_remaining, i.claim_number))

    async def unreconciled_payments(
        self, as_of: date, min_age_days: int = 0, payer_id: Optional[UUID] = None
    ) -> list[UnreconciledPaymentItem]:
        items = []
        for payment in await self.repository.list_payments(
            statuses=[
                ReconciliationStatus.UNRECONCILED,
                ReconciliationStatus.PARTIALLY_RECONCILED,
                ReconciliationStatus.EXCEPTION,
            ],
            payer_id=payer_id,
        ):
            age_days = (as_of - payment.payment_date).days
            if age_days < min_age_days:
                continue
            matched = money_sum(
                cp.paid_amount
                for cp in await self.repository.list_claim_payments(payment_id=payment.id)
            )
            items.append(
                UnreconciledPaymentItem(
                    payment_id=payment.id,
                    payer_id=payment.payer_id,
                    payment_date=payment.payment_date,
                    amount=to_money(payment.amount),
                    unmatched_amount=to_money(payment.amount) - matched,
                    reconciliation_status=payment.reconciliation_status,
                    age_days=age_days,
                )
            )
        return sorted(items, key=lambda i: -i.age_days)

    async def claim_payment_history(self, claim_id: UUID) -> ClaimPaymentHistory:
        claim = await self.repository.get_claim(claim_id)
        if claim is None:
            raise NotFoundError("Claim", claim_id)

        claim_payments = await self.repository.list_claim_payments(claim_id=claim.id)
        adjustments = await self.repository.list_adjustments([cp.id for cp in claim_payments])
        history = []
        for cp in claim_payments:
            payment = await self.repository.get_payment(cp.payment_id)
            own = [a for a in adjustments if a.claim_payment_id == cp.id]
            history.append(
                ClaimPaymentHistoryItem(
                    claim_payment_id=cp.id,
                    payment_id=cp.payment_id,
                    payment_date=payment.payment_date,
                    paid_amount=to_money(cp.paid_amount),
                    adjustment_amount=money_sum(a.amount for a in own),
                    adjustment_codes=[a.code for a in own],
                )
            )

        total = to_money(claim.total_amount)
        paid = money_sum(item.paid_amount for item in history)
        return ClaimPaymentHistory(
            claim_id=claim.id,
            total_amount=total,
            total_paid=paid,
            total_adjusted=money_sum(item.adjustment_amount for item in history),
            outstanding_amount=max(total - paid, ZERO),
            payments=history,
        )
