"""
Accounts-Receivable Aging Tests.

Tests for:
- Bucket boundaries
- Aging report totals and grouping
- Collection worklist ordering and priority
- Filing deadlines, unreconciled payments and claim payment history
"""

from decimal import Decimal
from uuid import uuid4

import pytest

from src.core.config import BillingSettings
from src.core.enums import (
    AdjustmentType,
    AgingBasis,
    AgingBucket,
    ClaimStatus,
    ReconciliationStatus,
    WorklistPriority,
)
from src.core.exceptions import NotFoundError
from src.schemas.aging import AgingFilters
from src.schemas.payment import AdjustmentInput, ClaimMatchInput
from src.services.reporting.aging import AgingCalculator, bucket_for_age


async def _aged_claim(seed, days_ago, age, **kwargs):
    end = days_ago(age)
    return await seed.claim(service_start_date=end, service_end_date=end, **kwargs)


@pytest.mark.unit
class TestBuckets:
    @pytest.mark.parametrize(
        "age,bucket",
        [
            (-5, AgingBucket.CURRENT),
            (0, AgingBucket.CURRENT),
            (1, AgingBucket.DAYS_0_30),
            (30, AgingBucket.DAYS_0_30),
            (31, AgingBucket.DAYS_31_60),
            (60, AgingBucket.DAYS_31_60),
            (61, AgingBucket.DAYS_61_90),
            (90, AgingBucket.DAYS_61_90),
            (91, AgingBucket.DAYS_90_PLUS),
        ],
    )
    def test_bucket_boundaries(self, age, bucket):
        assert bucket_for_age(age) == bucket


@pytest.mark.unit
class TestAgingReport:
    """Outstanding balances by bucket."""

    @pytest.mark.asyncio
    async def test_claim_45_days_old(self, billing, seed, days_ago, business_date):
        claim = await _aged_claim(seed, days_ago, 45)

        report = await billing.aging.compute_aging(business_date)

        assert report.claims[0].claim_id == claim.id
        assert report.claims[0].age_days == 45
        assert report.claims[0].bucket == AgingBucket.DAYS_31_60
        assert report.buckets[AgingBucket.DAYS_31_60] == Decimal("500.00")
        assert report.total_outstanding == Decimal("500.00")
        assert report.basis == AgingBasis.SERVICE_END_DATE

    @pytest.mark.asyncio
    async def test_closed_and_settled_claims_excluded(self, billing, seed, ctx, days_ago, business_date):
        await _aged_claim(seed, days_ago, 10, status=ClaimStatus.PAID)
        await _aged_claim(seed, days_ago, 10, status=ClaimStatus.VOID)
        await _aged_claim(seed, days_ago, 10, status=ClaimStatus.FINAL_DENIED)
        settled = await _aged_claim(seed, days_ago, 10, status=ClaimStatus.PARTIAL_PAID)
        payment = await seed.payment(amount=Decimal("500.00"))
        await billing.matcher.apply_match(
            payment.id, [ClaimMatchInput(claim_id=settled.id, amount=Decimal("500.00"))], ctx
        )
        open_claim = await _aged_claim(seed, days_ago, 10)

        report = await billing.aging.compute_aging(business_date)

        assert [c.claim_id for c in report.claims] == [open_claim.id]
        assert report.claim_count == 1

    @pytest.mark.asyncio
    async def test_partial_payments_reduce_outstanding(self, billing, seed, ctx, days_ago, business_date):
        claim = await _aged_claim(seed, days_ago, 20)
        payment = await seed.payment(amount=Decimal("200.00"))
        await billing.matcher.apply_match(
            payment.id, [ClaimMatchInput(claim_id=claim.id, amount=Decimal("200.00"))], ctx
        )

        report = await billing.aging.compute_aging(business_date)

        assert report.claims[0].paid_amount == Decimal("200.00")
        assert report.claims[0].outstanding_amount == Decimal("300.00")

    @pytest.mark.asyncio
    async def test_grouped_by_payer(self, billing, seed, days_ago, business_date):
        other_payer = uuid4()
        await _aged_claim(seed, days_ago, 5)
        await _aged_claim(seed, days_ago, 70, payer_id=other_payer, total_amount=Decimal("900.00"))
        await _aged_claim(seed, days_ago, 95, payer_id=other_payer, total_amount=Decimal("100.00"))

        report = await billing.aging.compute_aging(business_date)

        assert [g.group_id for g in report.by_payer] == [other_payer, seed.payer_id]
        top = report.by_payer[0]
        assert top.total_outstanding == Decimal("1000.00")
        assert top.claim_count == 2
        assert top.buckets[AgingBucket.DAYS_61_90] == Decimal("900.00")
        assert top.buckets[AgingBucket.DAYS_90_PLUS] == Decimal("100.00")
        assert report.by_program[0].claim_count == 3

    @pytest.mark.asyncio
    async def test_payer_filter(self, billing, seed, days_ago, business_date):
        await _aged_claim(seed, days_ago, 5)
        await _aged_claim(seed, days_ago, 5, payer_id=uuid4())

        report = await billing.aging.compute_aging(
            business_date, AgingFilters(payer_id=seed.payer_id)
        )

        assert report.claim_count == 1

    @pytest.mark.asyncio
    async def test_submission_date_basis(self, repository, seed, days_ago, business_date):
        aging = AgingCalculator(
            repository, BillingSettings(_env_file=None, AGING_BASIS=AgingBasis.SUBMISSION_DATE)
        )
        await _aged_claim(seed, days_ago, 100, submission_date=days_ago(20))

        report = await aging.compute_aging(business_date)

        assert report.claims[0].age_days == 20
        assert report.claims[0].bucket == AgingBucket.DAYS_0_30


@pytest.mark.unit
class TestCollectionWorklist:
    @pytest.mark.asyncio
    async def test_ordering_and_priority(self, billing, seed, days_ago, business_date):
        stale = await _aged_claim(seed, days_ago, 100, total_amount=Decimal("500.00"))
        large = await _aged_claim(seed, days_ago, 10, total_amount=Decimal("6000.00"))
        middle = await _aged_claim(seed, days_ago, 45, total_amount=Decimal("1000.00"))
        fresh = await _aged_claim(
            seed, days_ago, 0, total_amount=Decimal("200.00"), status=ClaimStatus.SUBMITTED
        )

        worklist = await billing.aging.collection_worklist(business_date)

        assert [i.claim_id for i in worklist] == [large.id, stale.id, middle.id, fresh.id]
        assert [i.priority_score for i in worklist] == [
            Decimal("6000.00"),
            Decimal("2000.00"),
            Decimal("2000.00"),
            Decimal("100.00"),
        ]
        assert [i.priority for i in worklist] == [
            WorklistPriority.HIGH,
            WorklistPriority.HIGH,
            WorklistPriority.MEDIUM,
            WorklistPriority.LOW,
        ]
        assert worklist[1].follow_up_action == "Check adjudication status with payer"
        assert worklist[3].follow_up_action == "Confirm payer received claim"

    @pytest.mark.asyncio
    async def test_limit(self, billing, seed, days_ago, business_date):
        for age in (10, 20, 30):
            await _aged_claim(seed, days_ago, age)

        assert len(await billing.aging.collection_worklist(business_date, limit=2)) == 2


@pytest.mark.unit
class TestReceivableViews:
    @pytest.mark.asyncio
    async def test_claims_approaching_filing_deadline(self, billing, seed, days_ago, business_date):
        soon = await _aged_claim(seed, days_ago, 350, status=ClaimStatus.DRAFT)
        overdue = await _aged_claim(seed, days_ago, 400, status=ClaimStatus.VALIDATED)
        await _aged_claim(seed, days_ago, 200, status=ClaimStatus.DRAFT)
        await _aged_claim(seed, days_ago, 350, status=ClaimStatus.PENDING)

        items = await billing.aging.claims_approaching_filing_deadline(business_date)

        assert [i.claim_id for i in items] == [overdue.id, soon.id]
        assert items[0].days_remaining == -35
        assert items[1].days_remaining == 15

    @pytest.mark.asyncio
    async def test_unreconciled_payments(self, billing, seed, days_ago, business_date):
        old = await seed.payment(payment_date=days_ago(20))
        await seed.payment(payment_date=days_ago(5))
        await seed.payment(payment_date=days_ago(40), status=ReconciliationStatus.RECONCILED)

        items = await billing.aging.unreconciled_payments(business_date, min_age_days=10)

        assert [i.payment_id for i in items] == [old.id]
        assert items[0].age_days == 20
        assert items[0].unmatched_amount == Decimal("500.00")

    @pytest.mark.asyncio
    async def test_claim_payment_history(self, billing, seed, ctx, business_date):
        claim = await seed.claim(total_amount=Decimal("500.00"))
        payment = await seed.payment(amount=Decimal("500.00"))
        await billing.matcher.apply_match(
            payment.id,
            [
                ClaimMatchInput(
                    claim_id=claim.id,
                    amount=Decimal("400.00"),
                    adjustments=[
                        AdjustmentInput(
                            adjustment_type=AdjustmentType.CONTRACTUAL,
                            code="CO-45",
                            amount=Decimal("60.00"),
                        )
                    ],
                )
            ],
            ctx,
        )

        history = await billing.aging.claim_payment_history(claim.id)

        assert history.total_paid == Decimal("400.00")
        assert history.total_adjusted == Decimal("60.00")
        assert history.outstanding_amount == Decimal("100.00")
        assert history.payments[0].payment_date == business_date
        assert history.payments[0].adjustment_codes == ["CO-45"]

    @pytest.mark.asyncio
    async def test_history_of_unknown_claim(self, billing):
        with pytest.raises(NotFoundError):
            await billing.aging.claim_payment_history(uuid4())
