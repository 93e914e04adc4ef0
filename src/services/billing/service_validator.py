"""
Service Billing-Readiness Validator.

Provides:
- Documentation completeness checks
- Authorization coverage checks (status, dates, service type, units)
- Billing rules (units, rate, amount, future date, timely filing)
- Batch checks before service-to-claim conversion

Validation is read-only: it never mutates services or authorizations.
"""

import logging
from datetime import timedelta
from decimal import Decimal
from typing import Iterable, Optional, Sequence
from uuid import UUID

from src.core.config import BillingSettings, get_billing_settings
from src.core.context import OperationContext
from src.core.enums import (
    BILLED_STATUSES,
    AuthorizationStatus,
    BillingStatus,
    DocumentationStatus,
    ValidationCode,
)
from src.db.repositories.base import BillingRepository
from src.models import Authorization, Service
from src.schemas.validation import (
    AuthorizationCheck,
    ConversionValidationResult,
    DocumentationCheck,
    ServiceValidationResult,
    ValidationIssue,
)
from src.utils.money import line_amount, money_sum, to_money

logger = logging.getLogger(__name__)

DEFAULT_MISSING_ITEM = "service documentation"


class ServiceValidator:
    """
    Decides whether delivered services may be billed.

    Each rule is evaluated independently; a service is valid only when
    no rule reports an error.
    """

    def __init__(
        self,
        repository: BillingRepository,
        settings: Optional[BillingSettings] = None,
    ):
        self.repository = repository
        self.settings = settings or get_billing_settings()

    # =========================================================================
    # Public API
    # =========================================================================

    async def validate(
        self,
        service_ids: Sequence[UUID],
        ctx: OperationContext,
        payer_id: Optional[UUID] = None,
    ) -> list[ServiceValidationResult]:
        """Validate each service on its own; one result per requested id."""
        results = []
        for service_id in service_ids:
            service = await self.repository.get_service(service_id)
            if service is None:
                results.append(self._not_found_result(service_id))
                continue
            results.append(
                await self._validate_service(service, ctx, payer_id, pending_units={})
            )
        return results

    async def validate_for_conversion(
        self,
        service_ids: Sequence[UUID],
        payer_id: UUID,
        ctx: OperationContext,
        for_claim_id: Optional[UUID] = None,
        services: Optional[Iterable[Service]] = None,
    ) -> ConversionValidationResult:
        """
        Validate a batch that is about to become (or already is) one claim.

        Args:
            service_ids: Services in the batch
            payer_id: Payer the claim is billed to
            ctx: Operation context
            for_claim_id: Claim that already holds these services; its own
                reservation is not counted against them
            services: Pre-loaded (typically locked) service rows

        Returns:
            ConversionValidationResult covering batch and per-service checks
        """
        result = ConversionValidationResult(is_valid=False, payer_id=payer_id)

        if not service_ids:
            result.errors.append(
                ValidationIssue(
                    code=ValidationCode.EMPTY_BATCH,
                    message="At least one service is required",
                )
            )
            return result

        if len(set(service_ids)) != len(service_ids):
            result.errors.append(
                ValidationIssue(
                    code=ValidationCode.DUPLICATE_SERVICE_ID,
                    message="A service may appear only once in a claim",
                    field="service_ids",
                )
            )

        if services is None:
            services = await self.repository.get_services(service_ids)
        by_id = {s.id: s for s in services}

        client_ids = {s.client_id for s in by_id.values()}
        if len(client_ids) > 1:
            result.errors.append(
                ValidationIssue(
                    code=ValidationCode.MIXED_CLIENTS,
                    message="All services on a claim must belong to the same client",
                    field="service_ids",
                )
            )
        elif client_ids:
            result.client_id = next(iter(client_ids))

        # Units drawn by earlier services in this batch, per authorization
        pending_units: dict[UUID, Decimal] = {}
        for service_id in dict.fromkeys(service_ids):
            service = by_id.get(service_id)
            if service is None:
                result.service_results.append(self._not_found_result(service_id))
                continue
            result.service_results.append(
                await self._validate_service(
                    service,
                    ctx,
                    payer_id,
                    pending_units=pending_units,
                    check_billing_status=True,
                    for_claim_id=for_claim_id,
                )
            )

        for service_result in result.service_results:
            result.warnings.extend(service_result.warnings)

        result.total_amount = money_sum(s.amount for s in by_id.values())
        result.is_valid = not result.errors and all(
            r.is_valid for r in result.service_results
        )

        if not result.is_valid:
            logger.info(
                f"Conversion validation failed for {len(service_ids)} services: "
                f"invalid={result.invalid_service_ids}"
            )
        return result

    async def find_authorization_for_service(
        self,
        client_id: UUID,
        service_type_code: str,
        service_date,
    ) -> Optional[Authorization]:
        """Active authorization covering the service with the most units left."""
        candidates = [
            auth
            for auth in await self.repository.list_authorizations(client_id)
            if auth.status == AuthorizationStatus.ACTIVE
            and auth.covers(service_type_code)
            and auth.start_date <= service_date <= auth.end_date
            and auth.remaining_units > 0
        ]
        if not candidates:
            return None
        return max(candidates, key=lambda a: a.remaining_units)

    async def expiring_authorizations(
        self,
        client_id: UUID,
        ctx: OperationContext,
        within_days: Optional[int] = None,
    ) -> list[Authorization]:
        """Active authorizations for a client ending within the window."""
        window = (
            within_days
            if within_days is not None
            else self.settings.AUTHORIZATION_EXPIRY_WARNING_DAYS
        )
        horizon = ctx.today + timedelta(days=window)
        expiring = [
            auth
            for auth in await self.repository.list_authorizations(client_id)
            if auth.status == AuthorizationStatus.ACTIVE
            and ctx.today <= auth.end_date <= horizon
        ]
        return sorted(expiring, key=lambda a: a.end_date)

    # =========================================================================
    # Per-service rules
    # =========================================================================

    async def _validate_service(
        self,
        service: Service,
        ctx: OperationContext,
        payer_id: Optional[UUID],
        pending_units: dict[UUID, Decimal],
        check_billing_status: bool = False,
        for_claim_id: Optional[UUID] = None,
    ) -> ServiceValidationResult:
        errors: list[ValidationIssue] = []
        warnings: list[ValidationIssue] = []

        # Service already reserved under the claim being revalidated
        own_reservation = (
            for_claim_id is not None
            and service.claim_id == for_claim_id
            and service.billing_status in BILLED_STATUSES
        )

        if service.billing_status == BillingStatus.VOID:
            errors.append(
                ValidationIssue(
                    code=ValidationCode.SERVICE_VOID,
                    message="Service is void and cannot be billed",
                    field="billing_status",
                )
            )
        elif check_billing_status and not own_reservation and (
            service.billing_status in BILLED_STATUSES
            # Denied claims keep their services until voided
            or (service.claim_id is not None and service.claim_id != for_claim_id)
        ):
            errors.append(
                ValidationIssue(
                    code=ValidationCode.ALREADY_BILLED,
                    message=(
                        f"Service is already {service.billing_status.value} on claim "
                        f"{service.claim_id}; it cannot be billed twice"
                    ),
                    field="billing_status",
                )
            )

        documentation = self._check_documentation(service, errors)
        self._check_billing_rules(service, ctx, errors)
        authorization = await self._check_authorization(
            service, ctx, payer_id, pending_units, own_reservation, errors, warnings
        )
        await self._check_duplicates(service, warnings)

        return ServiceValidationResult(
            service_id=service.id,
            is_valid=not errors,
            errors=errors,
            warnings=warnings,
            documentation=documentation,
            authorization=authorization,
        )

    def _check_documentation(
        self, service: Service, errors: list[ValidationIssue]
    ) -> DocumentationCheck:
        status = service.documentation_status
        if status == DocumentationStatus.COMPLETE:
            return DocumentationCheck(is_complete=True)

        missing = list(service.missing_documentation or []) or [DEFAULT_MISSING_ITEM]
        if status == DocumentationStatus.REJECTED:
            errors.append(
                ValidationIssue(
                    code=ValidationCode.DOCUMENTATION_REJECTED,
                    message="Service documentation was rejected",
                    field="documentation_status",
                )
            )
        elif status == DocumentationStatus.PENDING_REVIEW:
            errors.append(
                ValidationIssue(
                    code=ValidationCode.DOCUMENTATION_PENDING_REVIEW,
                    message="Service documentation is awaiting review",
                    field="documentation_status",
                )
            )
        else:
            errors.append(
                ValidationIssue(
                    code=ValidationCode.DOCUMENTATION_INCOMPLETE,
                    message=f"Documentation incomplete: {', '.join(missing)}",
                    field="documentation_status",
                )
            )
        return DocumentationCheck(is_complete=False, missing_items=missing)

    def _check_billing_rules(
        self,
        service: Service,
        ctx: OperationContext,
        errors: list[ValidationIssue],
    ) -> None:
        units = Decimal(service.units)
        rate = Decimal(service.rate)

        if units <= 0:
            errors.append(
                ValidationIssue(
                    code=ValidationCode.INVALID_UNITS,
                    message="Units must be greater than zero",
                    field="units",
                )
            )
        if rate <= 0:
            errors.append(
                ValidationIssue(
                    code=ValidationCode.INVALID_RATE,
                    message="Rate must be greater than zero",
                    field="rate",
                )
            )
        if units > 0 and rate > 0 and to_money(service.amount) != line_amount(units, rate):
            errors.append(
                ValidationIssue(
                    code=ValidationCode.AMOUNT_MISMATCH,
                    message=(
                        f"Amount {to_money(service.amount)} does not equal "
                        f"units x rate ({line_amount(units, rate)})"
                    ),
                    field="amount",
                )
            )

        if service.service_date > ctx.today:
            errors.append(
                ValidationIssue(
                    code=ValidationCode.FUTURE_SERVICE_DATE,
                    message="Service date is in the future",
                    field="service_date",
                )
            )
        elif (ctx.today - service.service_date).days > self.settings.TIMELY_FILING_DAYS:
            errors.append(
                ValidationIssue(
                    code=ValidationCode.TIMELY_FILING_EXCEEDED,
                    message=(
                        f"Service is older than the {self.settings.TIMELY_FILING_DAYS}-day "
                        "timely filing limit"
                    ),
                    field="service_date",
                )
            )

    async def _check_authorization(
        self,
        service: Service,
        ctx: OperationContext,
        payer_id: Optional[UUID],
        pending_units: dict[UUID, Decimal],
        own_reservation: bool,
        errors: list[ValidationIssue],
        warnings: list[ValidationIssue],
    ) -> AuthorizationCheck:
        required = self.settings.requires_authorization(payer_id, service.program_id)

        if service.authorization_id is None:
            if required:
                errors.append(
                    ValidationIssue(
                        code=ValidationCode.AUTHORIZATION_MISSING,
                        message="Service requires an authorization",
                        field="authorization_id",
                    )
                )
            return AuthorizationCheck(required=required, is_authorized=False)

        auth = await self.repository.get_authorization(service.authorization_id)
        if auth is None:
            errors.append(
                ValidationIssue(
                    code=ValidationCode.AUTHORIZATION_NOT_FOUND,
                    message=f"Authorization {service.authorization_id} not found",
                    field="authorization_id",
                )
            )
            return AuthorizationCheck(required=required, is_authorized=False)

        auth_errors: list[ValidationIssue] = []
        pending = pending_units.get(auth.id, Decimal("0"))
        units = Decimal(service.units)
        remaining = auth.remaining_units - pending
        # A reserved service's units are already inside used_units
        requested = Decimal("0") if own_reservation else units

        if auth.status != AuthorizationStatus.ACTIVE and not (
            own_reservation and auth.status == AuthorizationStatus.EXHAUSTED
        ):
            auth_errors.append(
                ValidationIssue(
                    code=ValidationCode.AUTHORIZATION_INACTIVE,
                    message=f"Authorization is {auth.status.value}, not active",
                    field="authorization_id",
                )
            )
        if auth.client_id != service.client_id:
            auth_errors.append(
                ValidationIssue(
                    code=ValidationCode.AUTHORIZATION_CLIENT_MISMATCH,
                    message="Authorization belongs to a different client",
                    field="authorization_id",
                )
            )
        if not auth.start_date <= service.service_date <= auth.end_date:
            auth_errors.append(
                ValidationIssue(
                    code=ValidationCode.SERVICE_DATE_OUTSIDE_AUTHORIZATION,
                    message=(
                        f"Service date {service.service_date} is outside the authorization "
                        f"period {auth.start_date} to {auth.end_date}"
                    ),
                    field="service_date",
                )
            )
        if not auth.covers(service.service_type_code):
            auth_errors.append(
                ValidationIssue(
                    code=ValidationCode.SERVICE_TYPE_NOT_AUTHORIZED,
                    message=f"service type not authorized: {service.service_type_code}",
                    field="service_type_code",
                )
            )
        if requested > remaining or remaining < 0:
            auth_errors.append(
                ValidationIssue(
                    code=ValidationCode.UNITS_EXCEED_AUTHORIZATION,
                    message=(
                        f"units exceed authorization: requested {units}, "
                        f"remaining {max(remaining, Decimal('0'))}"
                    ),
                    field="units",
                )
            )

        errors.extend(auth_errors)
        if not auth_errors:
            pending_units[auth.id] = pending + requested
            self._authorization_warnings(auth, ctx, remaining - requested, warnings)

        return AuthorizationCheck(
            required=required,
            is_authorized=not auth_errors,
            authorization_id=auth.id,
            authorized_units=Decimal(auth.authorized_units),
            used_units=Decimal(auth.used_units),
            remaining_units=remaining,
            expiration_date=auth.end_date,
        )

    def _authorization_warnings(
        self,
        auth: Authorization,
        ctx: OperationContext,
        remaining_after: Decimal,
        warnings: list[ValidationIssue],
    ) -> None:
        days_left = (auth.end_date - ctx.today).days
        if 0 <= days_left <= self.settings.AUTHORIZATION_EXPIRY_WARNING_DAYS:
            warnings.append(
                ValidationIssue(
                    code=ValidationCode.AUTHORIZATION_EXPIRING,
                    message=f"Authorization expires in {days_left} days",
                    field="authorization_id",
                )
            )
        threshold = Decimal(auth.authorized_units) * Decimal(
            str(self.settings.AUTHORIZATION_LOW_UNITS_RATIO)
        )
        if remaining_after < threshold:
            warnings.append(
                ValidationIssue(
                    code=ValidationCode.AUTHORIZATION_LOW_UNITS,
                    message=f"Only {remaining_after} authorized units remain after this service",
                    field="authorization_id",
                )
            )

    async def _check_duplicates(
        self, service: Service, warnings: list[ValidationIssue]
    ) -> None:
        siblings = await self.repository.find_services(
            service.client_id, service.service_date, service.service_type_code
        )
        if any(s.id != service.id and s.billing_status != BillingStatus.VOID for s in siblings):
            warnings.append(
                ValidationIssue(
                    code=ValidationCode.POSSIBLE_DUPLICATE_SERVICE,
                    message="Another service exists for this client, date and service type",
                )
            )

    @staticmethod
    def _not_found_result(service_id: UUID) -> ServiceValidationResult:
        return ServiceValidationResult(
            service_id=service_id,
            is_valid=False,
            errors=[
                ValidationIssue(
                    code=ValidationCode.SERVICE_NOT_FOUND,
                    message=f"Service {service_id} not found",
                )
            ],
            documentation=DocumentationCheck(is_complete=False),
            authorization=AuthorizationCheck(is_authorized=False),
        )
