"""
Claim Lifecycle Tests.

Tests for:
- Validation, submission, acknowledgement and pending
- Guarded transitions and status history
- Appeals, final denial and appeal window expiry
- Void with authorization release
"""

from datetime import timedelta
from decimal import Decimal
from uuid import uuid4

import pytest

from src.core.enums import (
    AuthorizationStatus,
    BillingStatus,
    ClaimStatus,
    DocumentationStatus,
    SubmissionMethod,
    TransitionSource,
)
from src.core.exceptions import (
    ConflictError,
    InvalidTransitionError,
    InvariantViolationError,
    NotFoundError,
)


async def _draft_claim(billing, seed, ctx, units=Decimal("4"), authorized=Decimal("100")):
    auth = await seed.authorization(authorized_units=authorized)
    service = await seed.service(authorization=auth, units=units)
    result = await billing.conversion.convert_to_claim([service.id], seed.payer_id, ctx)
    claim = await billing.lifecycle.get_claim(result.claim.id)
    return claim, service, auth


@pytest.mark.unit
class TestClaimProgression:
    """Forward path from DRAFT to PENDING."""

    @pytest.mark.asyncio
    async def test_validate_submit_acknowledge_pending(self, billing, seed, ctx, business_date):
        claim, service, _ = await _draft_claim(billing, seed, ctx)

        validated, result = await billing.lifecycle.validate_claim(claim.id, ctx)
        assert result.is_valid is True
        assert validated.status == ClaimStatus.VALIDATED
        assert service.billing_status == BillingStatus.IN_CLAIM

        await billing.lifecycle.submit_claim(
            claim.id, business_date, SubmissionMethod.CLEARINGHOUSE, ctx
        )
        assert claim.status == ClaimStatus.SUBMITTED
        assert claim.submission_date == business_date
        assert claim.submission_method == SubmissionMethod.CLEARINGHOUSE
        assert service.billing_status == BillingStatus.BILLED

        await billing.lifecycle.acknowledge_claim(claim.id, ctx, external_claim_id="ICN-778")
        assert claim.status == ClaimStatus.ACKNOWLEDGED
        assert claim.external_claim_id == "ICN-778"

        await billing.lifecycle.mark_pending(claim.id, ctx)
        assert claim.status == ClaimStatus.PENDING

        history = await billing.lifecycle.get_history(claim.id)
        assert [h.new_status for h in history] == [
            ClaimStatus.DRAFT,
            ClaimStatus.VALIDATED,
            ClaimStatus.SUBMITTED,
            ClaimStatus.ACKNOWLEDGED,
            ClaimStatus.PENDING,
        ]
        assert all(h.changed_by == ctx.user_id for h in history)
        assert history[-1].actor_type == "user"

    @pytest.mark.asyncio
    async def test_failed_revalidation_returns_to_draft(self, billing, seed, ctx):
        claim, service, _ = await _draft_claim(billing, seed, ctx)
        await billing.lifecycle.validate_claim(claim.id, ctx)

        service.documentation_status = DocumentationStatus.REJECTED
        _, result = await billing.lifecycle.validate_claim(claim.id, ctx)

        assert result.is_valid is False
        assert result.invalid_service_ids == [service.id]
        assert claim.status == ClaimStatus.DRAFT

    @pytest.mark.asyncio
    async def test_invalid_draft_stays_draft(self, billing, seed, ctx):
        claim, service, _ = await _draft_claim(billing, seed, ctx)
        service.documentation_status = DocumentationStatus.PENDING_REVIEW

        _, result = await billing.lifecycle.validate_claim(claim.id, ctx)

        assert result.is_valid is False
        assert claim.status == ClaimStatus.DRAFT

    @pytest.mark.asyncio
    async def test_exhausted_authorization_still_validates_own_claim(self, billing, seed, ctx):
        claim, _, auth = await _draft_claim(
            billing, seed, ctx, units=Decimal("8"), authorized=Decimal("8")
        )
        assert auth.status == AuthorizationStatus.EXHAUSTED

        _, result = await billing.lifecycle.validate_claim(claim.id, ctx)

        assert result.is_valid is True
        assert claim.status == ClaimStatus.VALIDATED

    @pytest.mark.asyncio
    async def test_total_mismatch_is_an_invariant_violation(self, billing, seed, ctx):
        claim, _, _ = await _draft_claim(billing, seed, ctx)
        claim.total_amount = Decimal("1.00")

        with pytest.raises(InvariantViolationError):
            await billing.lifecycle.validate_claim(claim.id, ctx)

        assert claim.status == ClaimStatus.DRAFT

    @pytest.mark.asyncio
    async def test_submit_from_draft_rejected(self, billing, seed, ctx, business_date):
        claim, _, _ = await _draft_claim(billing, seed, ctx)

        with pytest.raises(InvalidTransitionError) as exc_info:
            await billing.lifecycle.submit_claim(
                claim.id, business_date, SubmissionMethod.ELECTRONIC, ctx
            )

        assert exc_info.value.details == {"current_status": "draft", "target_status": "submitted"}
        assert claim.status == ClaimStatus.DRAFT
        assert len(await billing.lifecycle.get_history(claim.id)) == 1

    @pytest.mark.asyncio
    async def test_user_cannot_mark_paid(self, billing, seed, ctx, business_date):
        claim = await seed.claim(status=ClaimStatus.PENDING)

        with pytest.raises(InvalidTransitionError):
            await billing.lifecycle.transition(
                claim, ClaimStatus.PAID, ctx, adjudication_date=business_date
            )

        assert claim.status == ClaimStatus.PENDING

    @pytest.mark.asyncio
    async def test_draft_cannot_jump_to_paid(self, billing, seed, ctx, business_date):
        claim, service, _ = await _draft_claim(billing, seed, ctx)

        with pytest.raises(InvalidTransitionError) as exc_info:
            await billing.lifecycle.transition(
                claim,
                ClaimStatus.PAID,
                ctx,
                source=TransitionSource.RECONCILIATION,
                adjudication_date=business_date,
            )

        assert exc_info.value.code == "INVALID_TRANSITION"
        assert exc_info.value.details == {"current_status": "draft", "target_status": "paid"}
        assert claim.status == ClaimStatus.DRAFT
        assert claim.adjudication_date is None
        assert service.billing_status == BillingStatus.IN_CLAIM
        assert len(await billing.lifecycle.get_history(claim.id)) == 1

    @pytest.mark.asyncio
    async def test_reconciliation_drives_payment_statuses(self, billing, seed, ctx, business_date):
        claim = await seed.claim(status=ClaimStatus.ACKNOWLEDGED)

        history = await billing.lifecycle.apply_adjudication(
            claim, ClaimStatus.PARTIAL_PAID, ctx, adjudication_date=business_date
        )

        assert [h.new_status for h in history] == [ClaimStatus.PENDING, ClaimStatus.PARTIAL_PAID]
        assert all(h.source == TransitionSource.RECONCILIATION for h in history)
        assert claim.adjudication_date == business_date

    @pytest.mark.asyncio
    async def test_unknown_claim(self, billing, ctx):
        with pytest.raises(NotFoundError):
            await billing.lifecycle.mark_pending(uuid4(), ctx)


@pytest.mark.unit
class TestAppeals:
    """Appeal window and final denial."""

    @pytest.mark.asyncio
    async def test_appeal_within_window(self, billing, seed, ctx, days_ago, business_date):
        claim = await seed.claim(status=ClaimStatus.DENIED, adjudication_date=days_ago(10))

        await billing.lifecycle.appeal_claim(claim.id, ctx, reason="Documentation attached")

        assert claim.status == ClaimStatus.APPEALED
        assert claim.appeal_date == business_date

    @pytest.mark.asyncio
    async def test_appeal_after_window_rejected(self, billing, seed, ctx, days_ago):
        claim = await seed.claim(status=ClaimStatus.DENIED, adjudication_date=days_ago(120))

        with pytest.raises(ConflictError):
            await billing.lifecycle.appeal_claim(claim.id, ctx)

        assert claim.status == ClaimStatus.DENIED

    @pytest.mark.asyncio
    async def test_finalize_denial(self, billing, seed, ctx, days_ago):
        claim = await seed.claim(status=ClaimStatus.DENIED, adjudication_date=days_ago(5))

        await billing.lifecycle.finalize_denial(claim.id, ctx)

        assert claim.status == ClaimStatus.FINAL_DENIED

    @pytest.mark.asyncio
    async def test_expire_appeal_windows(self, billing, seed, ctx, days_ago):
        stale = await seed.claim(status=ClaimStatus.DENIED, adjudication_date=days_ago(91))
        fresh = await seed.claim(status=ClaimStatus.DENIED, adjudication_date=days_ago(90))

        report = await billing.lifecycle.expire_appeal_windows(ctx)

        assert report.successful == 1
        assert report.results[0].id == stale.id
        assert stale.status == ClaimStatus.FINAL_DENIED
        assert fresh.status == ClaimStatus.DENIED


@pytest.mark.unit
class TestVoid:
    @pytest.mark.asyncio
    async def test_void_releases_units_and_services(self, billing, seed, ctx):
        claim, service, auth = await _draft_claim(
            billing, seed, ctx, units=Decimal("8"), authorized=Decimal("8")
        )

        await billing.lifecycle.void_claim(claim.id, ctx, reason="Entered in error")

        assert claim.status == ClaimStatus.VOID
        assert claim.total_amount == Decimal("0.00")
        assert service.claim_id is None
        assert service.billing_status == BillingStatus.UNBILLED
        assert auth.used_units == Decimal("0")
        assert auth.status == AuthorizationStatus.ACTIVE

    @pytest.mark.asyncio
    async def test_voided_services_can_be_billed_again(self, billing, seed, ctx):
        claim, service, _ = await _draft_claim(billing, seed, ctx)
        await billing.lifecycle.void_claim(claim.id, ctx)

        result = await billing.conversion.convert_to_claim([service.id], seed.payer_id, ctx)

        assert result.claim.status == ClaimStatus.DRAFT
        assert service.claim_id == result.claim.id

    @pytest.mark.asyncio
    async def test_terminal_claim_cannot_be_voided(self, billing, seed, ctx):
        claim = await seed.claim(status=ClaimStatus.PAID)

        with pytest.raises(InvalidTransitionError):
            await billing.lifecycle.void_claim(claim.id, ctx)

        assert claim.status == ClaimStatus.PAID

    @pytest.mark.asyncio
    async def test_void_after_expiry_marks_authorization_expired(
        self, billing, seed, ctx, business_date
    ):
        claim, _, auth = await _draft_claim(
            billing, seed, ctx, units=Decimal("8"), authorized=Decimal("8")
        )
        auth.end_date = business_date - timedelta(days=1)

        await billing.lifecycle.void_claim(claim.id, ctx)

        assert auth.status == AuthorizationStatus.EXPIRED
