"""
Adjustment and Denial Analysis.

Summarizes PaymentAdjustments recorded during reconciliation by type and
reason code, and reports denial patterns over a date range.
"""

import logging
from datetime import date, datetime, time, timezone
from decimal import Decimal
from typing import Iterable, Optional

from src.core.config import BillingSettings, get_billing_settings
from src.core.enums import AdjustmentType, ClaimStatus
from src.db.repositories.base import BillingRepository, ClaimFilters
from src.models import PaymentAdjustment
from src.schemas.aging import AdjustmentCodeTotal, AdjustmentSummary, DenialAnalysis
from src.utils.money import money_sum, to_money

logger = logging.getLogger(__name__)


def _range_bounds(
    start: Optional[date], end: Optional[date]
) -> tuple[Optional[datetime], Optional[datetime]]:
    applied_from = datetime.combine(start, time.min, tzinfo=timezone.utc) if start else None
    applied_to = datetime.combine(end, time.max, tzinfo=timezone.utc) if end else None
    return applied_from, applied_to


def _code_totals(adjustments: Iterable[PaymentAdjustment]) -> list[AdjustmentCodeTotal]:
    grouped: dict[tuple[str, AdjustmentType], list[Decimal]] = {}
    for adjustment in adjustments:
        grouped.setdefault((adjustment.code, adjustment.adjustment_type), []).append(
            adjustment.amount
        )
    totals = [
        AdjustmentCodeTotal(code=code, adjustment_type=kind, count=len(amounts), amount=money_sum(amounts))
        for (code, kind), amounts in grouped.items()
    ]
    return sorted(totals, key=lambda t: (-t.amount, t.code))


class AdjustmentAnalyzer:
    """Reports over reconciliation adjustments."""

    def __init__(self, repository: BillingRepository, settings: Optional[BillingSettings] = None):
        self.repository = repository
        self.settings = settings or get_billing_settings()

    async def _adjustments(
        self, start: Optional[date], end: Optional[date]
    ) -> list[PaymentAdjustment]:
        applied_from, applied_to = _range_bounds(start, end)
        claim_payments = await self.repository.list_claim_payments(
            applied_from=applied_from, applied_to=applied_to
        )
        if not claim_payments:
            return []
        return await self.repository.list_adjustments([cp.id for cp in claim_payments])

    def is_denial(self, adjustment: PaymentAdjustment) -> bool:
        return (
            adjustment.adjustment_type == AdjustmentType.NONCOVERED
            or adjustment.code in self.settings.DENIAL_ADJUSTMENT_CODES
        )

    async def summarize(
        self, start: Optional[date] = None, end: Optional[date] = None
    ) -> AdjustmentSummary:
        """Adjustment totals by type and by code for claim payments applied in range."""
        adjustments = await self._adjustments(start, end)
        by_type: dict[AdjustmentType, Decimal] = {}
        for adjustment in adjustments:
            by_type[adjustment.adjustment_type] = to_money(
                by_type.get(adjustment.adjustment_type, Decimal("0")) + adjustment.amount
            )
        return AdjustmentSummary(
            start_date=start,
            end_date=end,
            total_amount=money_sum(a.amount for a in adjustments),
            count=len(adjustments),
            by_type=by_type,
            by_code=_code_totals(adjustments),
        )

    async def denial_analysis(
        self, start: Optional[date] = None, end: Optional[date] = None
    ) -> DenialAnalysis:
        """Denied claims adjudicated in range plus denial-type adjustment codes."""
        denials = [a for a in await self._adjustments(start, end) if self.is_denial(a)]

        denied_claims = [
            claim
            for claim in await self.repository.list_claims(
                ClaimFilters(statuses=[ClaimStatus.DENIED, ClaimStatus.FINAL_DENIED])
            )
            if claim.adjudication_date is not None
            and (start is None or claim.adjudication_date >= start)
            and (end is None or claim.adjudication_date <= end)
        ]
        by_reason: dict[str, int] = {}
        for claim in denied_claims:
            reason = claim.denial_reason or "UNSPECIFIED"
            by_reason[reason] = by_reason.get(reason, 0) + 1

        logger.debug(f"Denial analysis: {len(denied_claims)} claims, {len(denials)} adjustments")
        return DenialAnalysis(
            start_date=start,
            end_date=end,
            denied_claim_count=len(denied_claims),
            denied_amount=money_sum(c.total_amount for c in denied_claims),
            by_code=_code_totals(denials),
            by_reason=by_reason,
        )
