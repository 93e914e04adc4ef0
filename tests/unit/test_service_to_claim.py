"""
Service-to-Claim Conversion Tests.

Tests for:
- Atomic conversion with authorization unit reservation
- Double-billing protection
- Batch conversion with partial success
- DRAFT claim service maintenance
- Bulk billing status updates
"""

import asyncio
from datetime import date
from decimal import Decimal
from uuid import uuid4

import pytest

from src.core.enums import (
    AuthorizationStatus,
    BillingStatus,
    ClaimStatus,
    DocumentationStatus,
    SubmissionMethod,
)
from src.core.exceptions import ConflictError, NotFoundError, ValidationError
from src.schemas.claim import ConversionRequest


@pytest.mark.unit
class TestConvertToClaim:
    """Single conversions."""

    @pytest.mark.asyncio
    async def test_creates_draft_claim_and_reserves_units(self, billing, repository, seed, ctx):
        auth = await seed.authorization()
        first = await seed.service(authorization=auth, service_date=date(2025, 6, 3))
        second = await seed.service(
            authorization=auth, units=Decimal("2"), service_date=date(2025, 6, 1)
        )

        result = await billing.conversion.convert_to_claim(
            [first.id, second.id], seed.payer_id, ctx
        )

        claim = result.claim
        assert claim.status == ClaimStatus.DRAFT
        assert claim.claim_number == "CLM-2025-000001"
        assert claim.total_amount == Decimal("150.00")
        assert claim.service_start_date == date(2025, 6, 1)
        assert claim.service_end_date == date(2025, 6, 3)
        assert claim.program_id == seed.program_id
        assert first.billing_status == BillingStatus.IN_CLAIM
        assert second.claim_id == claim.id
        assert auth.used_units == Decimal("6")

        history = await repository.list_status_history(claim.id)
        assert len(history) == 1
        assert history[0].previous_status is None
        assert history[0].new_status == ClaimStatus.DRAFT

    @pytest.mark.asyncio
    async def test_claim_numbers_are_sequential(self, billing, seed, ctx):
        auth = await seed.authorization()
        first = await seed.service(authorization=auth)
        second = await seed.service(authorization=auth, service_date=date(2025, 6, 2))

        one = await billing.conversion.convert_to_claim([first.id], seed.payer_id, ctx)
        two = await billing.conversion.convert_to_claim([second.id], seed.payer_id, ctx)

        assert one.claim.claim_number == "CLM-2025-000001"
        assert two.claim.claim_number == "CLM-2025-000002"

    @pytest.mark.asyncio
    async def test_invalid_service_leaves_nothing_behind(self, billing, repository, seed, ctx):
        auth = await seed.authorization()
        good = await seed.service(authorization=auth)
        bad = await seed.service(
            authorization=auth,
            service_date=date(2025, 6, 2),
            documentation_status=DocumentationStatus.INCOMPLETE,
        )

        with pytest.raises(ValidationError) as exc_info:
            await billing.conversion.convert_to_claim([good.id, bad.id], seed.payer_id, ctx)

        assert exc_info.value.details["invalid_service_ids"] == [str(bad.id)]
        assert await repository.list_claims() == []
        assert good.billing_status == BillingStatus.UNBILLED
        assert good.claim_id is None
        assert auth.used_units == Decimal("0")

    @pytest.mark.asyncio
    async def test_service_cannot_be_billed_twice(self, billing, repository, seed, ctx):
        auth = await seed.authorization()
        service = await seed.service(authorization=auth)
        await billing.conversion.convert_to_claim([service.id], seed.payer_id, ctx)

        with pytest.raises(ConflictError):
            await billing.conversion.convert_to_claim([service.id], seed.payer_id, ctx)

        assert len(await repository.list_claims()) == 1
        assert auth.used_units == Decimal("4")

    @pytest.mark.asyncio
    async def test_service_on_denied_claim_cannot_be_rebilled(
        self, billing, repository, seed, ctx
    ):
        auth = await seed.authorization()
        service = await seed.service(authorization=auth)
        converted = await billing.conversion.convert_to_claim([service.id], seed.payer_id, ctx)
        claim = await repository.get_claim(converted.claim.id)
        claim.status = ClaimStatus.DENIED
        service.billing_status = BillingStatus.DENIED

        with pytest.raises(ConflictError) as exc_info:
            await billing.conversion.convert_to_claim([service.id], seed.payer_id, ctx)

        assert exc_info.value.details["service_ids"] == [str(service.id)]
        assert len(await repository.list_claims()) == 1
        assert service.claim_id == claim.id
        assert auth.used_units == Decimal("4")
        assert [s.id for s in await repository.list_services_for_claim(claim.id)] == [service.id]

    @pytest.mark.asyncio
    async def test_concurrent_conversions_are_serialized(self, billing, repository, seed, ctx):
        auth = await seed.authorization()
        service = await seed.service(authorization=auth)
        converted = asyncio.Event()
        release = asyncio.Event()

        async def first_biller():
            async with repository.transaction():
                result = await billing.conversion.convert_to_claim(
                    [service.id], seed.payer_id, ctx
                )
                converted.set()
                await release.wait()
            return result

        holder = asyncio.create_task(first_biller())
        await converted.wait()
        contender = asyncio.create_task(
            billing.conversion.convert_to_claim([service.id], seed.payer_id, ctx)
        )
        for _ in range(5):
            await asyncio.sleep(0)
        assert not contender.done()

        release.set()
        winner = await holder
        with pytest.raises(ConflictError):
            await contender

        claims = await repository.list_claims()
        assert [c.id for c in claims] == [winner.claim.id]
        assert service.claim_id == winner.claim.id
        assert auth.used_units == Decimal("4")

    @pytest.mark.asyncio
    async def test_unknown_service(self, billing, seed, ctx):
        with pytest.raises(NotFoundError):
            await billing.conversion.convert_to_claim([uuid4()], seed.payer_id, ctx)

    @pytest.mark.asyncio
    async def test_unknown_original_claim(self, billing, repository, seed, ctx):
        auth = await seed.authorization()
        service = await seed.service(authorization=auth)

        with pytest.raises(NotFoundError):
            await billing.conversion.convert_to_claim(
                [service.id], seed.payer_id, ctx, original_claim_id=uuid4()
            )

        assert service.billing_status == BillingStatus.UNBILLED
        assert auth.used_units == Decimal("0")

    @pytest.mark.asyncio
    async def test_exhausting_authorization(self, billing, seed, ctx):
        auth = await seed.authorization(authorized_units=Decimal("8"))
        service = await seed.service(authorization=auth, units=Decimal("8"))

        await billing.conversion.convert_to_claim([service.id], seed.payer_id, ctx)

        assert auth.used_units == Decimal("8")
        assert auth.status == AuthorizationStatus.EXHAUSTED


@pytest.mark.unit
class TestBatchConversion:
    @pytest.mark.asyncio
    async def test_each_conversion_stands_alone(self, billing, repository, seed, ctx):
        auth = await seed.authorization()
        good = await seed.service(authorization=auth)
        bad = await seed.service(
            authorization=auth,
            service_date=date(2025, 6, 2),
            documentation_status=DocumentationStatus.REJECTED,
        )

        report = await billing.conversion.convert_batch(
            [
                ConversionRequest(service_ids=[good.id], payer_id=seed.payer_id),
                ConversionRequest(service_ids=[bad.id], payer_id=seed.payer_id),
            ],
            ctx,
        )

        assert report.successful == 1
        assert report.total == 2
        assert report.failed[0].item_id == "1"
        assert report.failed[0].error == "VALIDATION_ERROR"
        assert len(await repository.list_claims()) == 1


@pytest.mark.unit
class TestDraftClaimMaintenance:
    """Adding and removing services on a DRAFT claim."""

    @pytest.mark.asyncio
    async def test_add_service_updates_total_and_units(self, billing, seed, ctx):
        auth = await seed.authorization()
        first = await seed.service(authorization=auth)
        extra = await seed.service(authorization=auth, service_date=date(2025, 6, 5))
        converted = await billing.conversion.convert_to_claim([first.id], seed.payer_id, ctx)

        claim = await billing.conversion.add_service_to_claim(converted.claim.id, extra.id, ctx)

        assert claim.total_amount == Decimal("200.00")
        assert claim.service_end_date == date(2025, 6, 5)
        assert extra.claim_id == claim.id
        assert auth.used_units == Decimal("8")

    @pytest.mark.asyncio
    async def test_remove_service_releases_units(self, billing, seed, ctx):
        auth = await seed.authorization()
        first = await seed.service(authorization=auth)
        second = await seed.service(authorization=auth, service_date=date(2025, 6, 5))
        converted = await billing.conversion.convert_to_claim(
            [first.id, second.id], seed.payer_id, ctx
        )

        claim = await billing.conversion.remove_service_from_claim(
            converted.claim.id, second.id, ctx
        )

        assert claim.total_amount == Decimal("100.00")
        assert claim.service_end_date == date(2025, 6, 1)
        assert second.claim_id is None
        assert second.billing_status == BillingStatus.READY_FOR_BILLING
        assert auth.used_units == Decimal("4")

    @pytest.mark.asyncio
    async def test_remove_foreign_service_rejected(self, billing, seed, ctx):
        auth = await seed.authorization()
        first = await seed.service(authorization=auth)
        stranger = await seed.service(authorization=auth, service_date=date(2025, 6, 5))
        converted = await billing.conversion.convert_to_claim([first.id], seed.payer_id, ctx)

        with pytest.raises(ValidationError):
            await billing.conversion.remove_service_from_claim(
                converted.claim.id, stranger.id, ctx
            )

    @pytest.mark.asyncio
    async def test_submitted_claim_is_locked(self, billing, seed, ctx, business_date):
        auth = await seed.authorization()
        first = await seed.service(authorization=auth)
        extra = await seed.service(authorization=auth, service_date=date(2025, 6, 5))
        converted = await billing.conversion.convert_to_claim([first.id], seed.payer_id, ctx)
        claim_id = converted.claim.id
        await billing.lifecycle.validate_claim(claim_id, ctx)
        await billing.lifecycle.submit_claim(
            claim_id, business_date, SubmissionMethod.ELECTRONIC, ctx
        )

        with pytest.raises(ConflictError):
            await billing.conversion.add_service_to_claim(claim_id, extra.id, ctx)

        assert extra.claim_id is None
        assert auth.used_units == Decimal("4")


@pytest.mark.unit
class TestBillingStatusUpdate:
    @pytest.mark.asyncio
    async def test_mark_ready_for_billing(self, billing, seed, ctx):
        auth = await seed.authorization()
        ready = await seed.service(authorization=auth)
        incomplete = await seed.service(
            authorization=auth,
            service_date=date(2025, 6, 2),
            documentation_status=DocumentationStatus.INCOMPLETE,
        )

        report = await billing.conversion.update_billing_status(
            [ready.id, incomplete.id], BillingStatus.READY_FOR_BILLING, ctx
        )

        assert report.successful == 1
        assert ready.billing_status == BillingStatus.READY_FOR_BILLING
        assert incomplete.billing_status == BillingStatus.UNBILLED
        assert report.failed[0].item_id == str(incomplete.id)

    @pytest.mark.asyncio
    async def test_claimed_service_cannot_be_changed_manually(self, billing, seed, ctx):
        auth = await seed.authorization()
        service = await seed.service(authorization=auth)
        await billing.conversion.convert_to_claim([service.id], seed.payer_id, ctx)

        report = await billing.conversion.update_billing_status(
            [service.id], BillingStatus.VOID, ctx
        )

        assert report.successful == 0
        assert report.failed[0].error == "CONFLICT"
        assert service.billing_status == BillingStatus.IN_CLAIM
