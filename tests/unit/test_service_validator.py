"""
Service Validation Tests.

Tests for:
- Documentation completeness
- Authorization coverage, dates and remaining units
- Billing rules (units, rate, amount, service date)
- Batch checks before claim conversion
"""

from datetime import date, timedelta
from decimal import Decimal
from uuid import uuid4

import pytest

from src.core.config import BillingSettings
from src.core.enums import (
    AuthorizationStatus,
    BillingStatus,
    DocumentationStatus,
    ValidationCode,
)
from src.services.billing import ServiceValidator


@pytest.mark.unit
class TestServiceValidation:
    """Per-service validation rules."""

    @pytest.mark.asyncio
    async def test_complete_authorized_service_is_valid(self, billing, seed, ctx):
        """A documented service inside an active authorization passes."""
        auth = await seed.authorization()
        service = await seed.service(authorization=auth)

        (result,) = await billing.validator.validate([service.id], ctx)

        assert result.is_valid is True
        assert result.errors == []
        assert result.documentation.is_complete is True
        assert result.authorization.is_authorized is True
        assert result.authorization.remaining_units == Decimal("100")

    @pytest.mark.asyncio
    async def test_incomplete_documentation(self, billing, seed, ctx):
        auth = await seed.authorization()
        service = await seed.service(
            authorization=auth,
            documentation_status=DocumentationStatus.INCOMPLETE,
            missing_documentation=["caregiver signature"],
        )

        (result,) = await billing.validator.validate([service.id], ctx)

        assert result.is_valid is False
        assert result.has_error(ValidationCode.DOCUMENTATION_INCOMPLETE)
        assert result.documentation.missing_items == ["caregiver signature"]

    @pytest.mark.asyncio
    async def test_rejected_and_pending_review_documentation(self, billing, seed, ctx):
        auth = await seed.authorization()
        rejected = await seed.service(
            authorization=auth, documentation_status=DocumentationStatus.REJECTED
        )
        pending = await seed.service(
            authorization=auth,
            service_date=date(2025, 6, 2),
            documentation_status=DocumentationStatus.PENDING_REVIEW,
        )

        rejected_result, pending_result = await billing.validator.validate(
            [rejected.id, pending.id], ctx
        )

        assert rejected_result.has_error(ValidationCode.DOCUMENTATION_REJECTED)
        assert pending_result.has_error(ValidationCode.DOCUMENTATION_PENDING_REVIEW)

    @pytest.mark.asyncio
    async def test_units_exceed_authorization_reports_remaining(self, billing, seed, ctx):
        """100 authorized, 95 used, 10 requested: invalid with 5 remaining."""
        auth = await seed.authorization(
            authorized_units=Decimal("100"), used_units=Decimal("95")
        )
        service = await seed.service(authorization=auth, units=Decimal("10"))

        (result,) = await billing.validator.validate([service.id], ctx)

        assert result.is_valid is False
        assert result.has_error(ValidationCode.UNITS_EXCEED_AUTHORIZATION)
        messages = [e.message for e in result.errors]
        assert any("units exceed authorization" in m for m in messages)
        assert result.authorization.remaining_units == Decimal("5")

    @pytest.mark.asyncio
    async def test_service_type_not_covered(self, billing, seed, ctx):
        auth = await seed.authorization(service_type_codes=("S5125",))
        service = await seed.service(authorization=auth, service_type_code="T1019")

        (result,) = await billing.validator.validate([service.id], ctx)

        assert result.has_error(ValidationCode.SERVICE_TYPE_NOT_AUTHORIZED)
        assert "service type not authorized" in result.errors[0].message

    @pytest.mark.asyncio
    async def test_service_date_outside_authorization(self, billing, seed, ctx):
        auth = await seed.authorization(
            start_date=date(2025, 1, 1), end_date=date(2025, 3, 31)
        )
        service = await seed.service(authorization=auth, service_date=date(2025, 6, 1))

        (result,) = await billing.validator.validate([service.id], ctx)

        assert result.has_error(ValidationCode.SERVICE_DATE_OUTSIDE_AUTHORIZATION)

    @pytest.mark.asyncio
    async def test_inactive_authorization(self, billing, seed, ctx):
        auth = await seed.authorization(status=AuthorizationStatus.CANCELLED)
        service = await seed.service(authorization=auth)

        (result,) = await billing.validator.validate([service.id], ctx)

        assert result.has_error(ValidationCode.AUTHORIZATION_INACTIVE)

    @pytest.mark.asyncio
    async def test_authorization_for_another_client(self, billing, seed, ctx):
        auth = await seed.authorization(client_id=uuid4())
        service = await seed.service(authorization=auth)

        (result,) = await billing.validator.validate([service.id], ctx)

        assert result.has_error(ValidationCode.AUTHORIZATION_CLIENT_MISMATCH)

    @pytest.mark.asyncio
    async def test_missing_authorization_required(self, billing, seed, ctx):
        service = await seed.service(authorization=None)

        (result,) = await billing.validator.validate([service.id], ctx, payer_id=seed.payer_id)

        assert result.has_error(ValidationCode.AUTHORIZATION_MISSING)
        assert result.authorization.required is True

    @pytest.mark.asyncio
    async def test_exempt_payer_needs_no_authorization(self, repository, seed, ctx):
        settings = BillingSettings(_env_file=None, AUTH_EXEMPT_PAYER_IDS=[str(seed.payer_id)])
        validator = ServiceValidator(repository, settings)
        service = await seed.service(authorization=None)

        (result,) = await validator.validate([service.id], ctx, payer_id=seed.payer_id)

        assert result.is_valid is True
        assert result.authorization.required is False

    @pytest.mark.asyncio
    async def test_amount_must_equal_units_times_rate(self, billing, seed, ctx):
        auth = await seed.authorization()
        service = await seed.service(authorization=auth, amount=Decimal("99.00"))

        (result,) = await billing.validator.validate([service.id], ctx)

        assert result.has_error(ValidationCode.AMOUNT_MISMATCH)

    @pytest.mark.asyncio
    async def test_non_positive_units_and_rate(self, billing, seed, ctx):
        auth = await seed.authorization()
        service = await seed.service(
            authorization=auth,
            units=Decimal("0"),
            rate=Decimal("0"),
            amount=Decimal("0"),
        )

        (result,) = await billing.validator.validate([service.id], ctx)

        assert result.has_error(ValidationCode.INVALID_UNITS)
        assert result.has_error(ValidationCode.INVALID_RATE)

    @pytest.mark.asyncio
    async def test_future_service_date(self, billing, seed, ctx, business_date):
        auth = await seed.authorization()
        service = await seed.service(
            authorization=auth, service_date=business_date + timedelta(days=1)
        )

        (result,) = await billing.validator.validate([service.id], ctx)

        assert result.has_error(ValidationCode.FUTURE_SERVICE_DATE)

    @pytest.mark.asyncio
    async def test_timely_filing_exceeded(self, billing, seed, ctx):
        auth = await seed.authorization(start_date=date(2024, 1, 1))
        service = await seed.service(authorization=auth, service_date=date(2024, 5, 1))

        (result,) = await billing.validator.validate([service.id], ctx)

        assert result.has_error(ValidationCode.TIMELY_FILING_EXCEEDED)

    @pytest.mark.asyncio
    async def test_unknown_service_id(self, billing, ctx):
        missing = uuid4()

        (result,) = await billing.validator.validate([missing], ctx)

        assert result.service_id == missing
        assert result.has_error(ValidationCode.SERVICE_NOT_FOUND)

    @pytest.mark.asyncio
    async def test_expiring_authorization_warning(self, billing, seed, ctx, business_date):
        auth = await seed.authorization(end_date=business_date + timedelta(days=10))
        service = await seed.service(authorization=auth)

        (result,) = await billing.validator.validate([service.id], ctx)

        assert result.is_valid is True
        assert ValidationCode.AUTHORIZATION_EXPIRING in {w.code for w in result.warnings}

    @pytest.mark.asyncio
    async def test_low_units_warning(self, billing, seed, ctx):
        auth = await seed.authorization(
            authorized_units=Decimal("40"), used_units=Decimal("33")
        )
        service = await seed.service(authorization=auth, units=Decimal("4"))

        (result,) = await billing.validator.validate([service.id], ctx)

        assert result.is_valid is True
        assert ValidationCode.AUTHORIZATION_LOW_UNITS in {w.code for w in result.warnings}

    @pytest.mark.asyncio
    async def test_possible_duplicate_warning(self, billing, seed, ctx):
        auth = await seed.authorization()
        first = await seed.service(authorization=auth)
        await seed.service(authorization=auth)

        (result,) = await billing.validator.validate([first.id], ctx)

        assert ValidationCode.POSSIBLE_DUPLICATE_SERVICE in {w.code for w in result.warnings}


@pytest.mark.unit
class TestConversionValidation:
    """Batch checks for services about to become one claim."""

    @pytest.mark.asyncio
    async def test_valid_batch_totals_amounts(self, billing, seed, ctx):
        auth = await seed.authorization()
        first = await seed.service(authorization=auth)
        second = await seed.service(authorization=auth, service_date=date(2025, 6, 2))

        result = await billing.validator.validate_for_conversion(
            [first.id, second.id], seed.payer_id, ctx
        )

        assert result.is_valid is True
        assert result.client_id == seed.client_id
        assert result.total_amount == Decimal("200.00")

    @pytest.mark.asyncio
    async def test_empty_batch(self, billing, seed, ctx):
        result = await billing.validator.validate_for_conversion([], seed.payer_id, ctx)

        assert result.is_valid is False
        assert result.errors[0].code == ValidationCode.EMPTY_BATCH

    @pytest.mark.asyncio
    async def test_units_drawn_by_earlier_services_in_batch(self, billing, seed, ctx):
        """Two services of 6 units cannot both fit a 10-unit authorization."""
        auth = await seed.authorization(authorized_units=Decimal("10"))
        first = await seed.service(authorization=auth, units=Decimal("6"))
        second = await seed.service(
            authorization=auth, units=Decimal("6"), service_date=date(2025, 6, 2)
        )

        result = await billing.validator.validate_for_conversion(
            [first.id, second.id], seed.payer_id, ctx
        )

        assert result.is_valid is False
        assert result.invalid_service_ids == [second.id]

    @pytest.mark.asyncio
    async def test_mixed_clients_rejected(self, billing, seed, ctx):
        other_client = uuid4()
        auth = await seed.authorization()
        other_auth = await seed.authorization(client_id=other_client)
        first = await seed.service(authorization=auth)
        second = await seed.service(authorization=other_auth, client_id=other_client)

        result = await billing.validator.validate_for_conversion(
            [first.id, second.id], seed.payer_id, ctx
        )

        assert result.is_valid is False
        assert ValidationCode.MIXED_CLIENTS in {e.code for e in result.errors}

    @pytest.mark.asyncio
    async def test_already_billed_service_conflicts(self, billing, seed, ctx):
        auth = await seed.authorization()
        service = await seed.service(authorization=auth, billing_status=BillingStatus.BILLED)

        result = await billing.validator.validate_for_conversion(
            [service.id], seed.payer_id, ctx
        )

        assert result.is_valid is False
        assert result.has_billing_conflict is True

    @pytest.mark.asyncio
    async def test_void_service_rejected(self, billing, seed, ctx):
        auth = await seed.authorization()
        service = await seed.service(authorization=auth, billing_status=BillingStatus.VOID)

        result = await billing.validator.validate_for_conversion(
            [service.id], seed.payer_id, ctx
        )

        assert result.service_results[0].has_error(ValidationCode.SERVICE_VOID)


@pytest.mark.unit
class TestAuthorizationLookups:
    """Authorization lookup helpers."""

    @pytest.mark.asyncio
    async def test_find_authorization_prefers_most_remaining(self, billing, seed):
        await seed.authorization(authorized_units=Decimal("20"))
        larger = await seed.authorization(authorized_units=Decimal("80"))
        await seed.authorization(
            authorized_units=Decimal("500"), status=AuthorizationStatus.EXPIRED
        )

        found = await billing.validator.find_authorization_for_service(
            seed.client_id, "T1019", date(2025, 6, 1)
        )

        assert found.id == larger.id

    @pytest.mark.asyncio
    async def test_expiring_authorizations(self, billing, seed, ctx, business_date):
        soon = await seed.authorization(end_date=business_date + timedelta(days=5))
        await seed.authorization(end_date=business_date + timedelta(days=200))

        expiring = await billing.validator.expiring_authorizations(seed.client_id, ctx)

        assert [a.id for a in expiring] == [soon.id]
