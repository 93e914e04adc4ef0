"""
Adjustment and Denial Analysis Tests.
"""

from datetime import date
from decimal import Decimal

import pytest

from src.core.enums import AdjustmentType, ClaimStatus
from src.schemas.payment import AdjustmentInput, ClaimMatchInput


def _adjustment(kind, code, amount):
    return AdjustmentInput(adjustment_type=kind, code=code, amount=Decimal(amount))


async def _seed_adjustments(billing, seed, ctx):
    """Two claim payments carrying contractual and denial adjustments."""
    paid = await seed.claim(total_amount=Decimal("500.00"))
    denied = await seed.claim(total_amount=Decimal("300.00"))
    payment = await seed.payment(amount=Decimal("1000.00"))
    await billing.matcher.apply_match(
        payment.id,
        [
            ClaimMatchInput(
                claim_id=paid.id,
                amount=Decimal("420.00"),
                adjustments=[
                    _adjustment(AdjustmentType.CONTRACTUAL, "CO-45", "50.00"),
                    _adjustment(AdjustmentType.COPAY, "PR-3", "30.00"),
                ],
            ),
            ClaimMatchInput(
                claim_id=denied.id,
                amount=Decimal("0"),
                adjustments=[_adjustment(AdjustmentType.NONCOVERED, "CO-96", "300.00")],
            ),
        ],
        ctx,
    )
    return paid, denied


@pytest.mark.unit
class TestAdjustmentSummary:
    @pytest.mark.asyncio
    async def test_totals_by_type_and_code(self, billing, seed, ctx):
        await _seed_adjustments(billing, seed, ctx)

        summary = await billing.adjustments.summarize()

        assert summary.count == 3
        assert summary.total_amount == Decimal("380.00")
        assert summary.by_type == {
            AdjustmentType.CONTRACTUAL: Decimal("50.00"),
            AdjustmentType.COPAY: Decimal("30.00"),
            AdjustmentType.NONCOVERED: Decimal("300.00"),
        }
        assert [t.code for t in summary.by_code] == ["CO-96", "CO-45", "PR-3"]

    @pytest.mark.asyncio
    async def test_range_without_activity(self, billing, seed, ctx):
        await _seed_adjustments(billing, seed, ctx)

        summary = await billing.adjustments.summarize(date(2020, 1, 1), date(2020, 12, 31))

        assert summary.count == 0
        assert summary.total_amount == Decimal("0.00")


@pytest.mark.unit
class TestDenialAnalysis:
    @pytest.mark.asyncio
    async def test_denials_by_code_and_reason(self, billing, seed, ctx):
        _, denied = await _seed_adjustments(billing, seed, ctx)
        assert denied.status == ClaimStatus.DENIED
        await seed.claim(status=ClaimStatus.FINAL_DENIED, adjudication_date=date(2025, 6, 1))

        analysis = await billing.adjustments.denial_analysis()

        assert analysis.denied_claim_count == 2
        assert analysis.denied_amount == Decimal("800.00")
        assert [t.code for t in analysis.by_code] == ["CO-96"]
        assert analysis.by_reason == {"CO-96": 1, "UNSPECIFIED": 1}

    @pytest.mark.asyncio
    async def test_adjudication_date_range(self, billing, seed, ctx):
        await _seed_adjustments(billing, seed, ctx)

        analysis = await billing.adjustments.denial_analysis(date(2025, 1, 1), date(2025, 3, 31))

        assert analysis.denied_claim_count == 0
