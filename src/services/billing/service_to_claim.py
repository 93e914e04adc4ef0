"""
Service to Claim Conversion.

Provides:
- Atomic conversion of a validated service batch into one DRAFT claim
- Batch conversion with per-group isolation
- Adding/removing services on DRAFT claims
- Bulk billing-status updates

A conversion either moves every service to IN_CLAIM under the new
claim and reserves their authorization units, or changes nothing.
"""

import logging
from typing import Optional, Sequence
from uuid import UUID, uuid4

from src.core.config import BillingSettings, get_billing_settings
from src.core.context import OperationContext
from src.core.enums import BillingStatus, ClaimStatus, ClaimType, ValidationCode
from src.core.exceptions import (
    BillingError,
    ConflictError,
    NotFoundError,
    ValidationError,
)
from src.db.repositories.base import BillingRepository
from src.models import Claim, Service
from src.schemas.claim import (
    ClaimConversionResult,
    ClaimResponse,
    ConversionRequest,
    ServiceResponse,
)
from src.schemas.common import BatchResult
from src.schemas.validation import ConversionValidationResult
from src.services.billing.authorization_units import release_units, reserve_units
from src.services.billing.service_validator import ServiceValidator
from src.services.claims.claim_lifecycle import ClaimLifecycleService
from src.utils.money import money_sum

logger = logging.getLogger(__name__)


# Billing-status changes an operator may make directly
MANUAL_BILLING_TRANSITIONS: dict[BillingStatus, frozenset[BillingStatus]] = {
    BillingStatus.UNBILLED: frozenset({BillingStatus.READY_FOR_BILLING, BillingStatus.VOID}),
    BillingStatus.READY_FOR_BILLING: frozenset({BillingStatus.UNBILLED, BillingStatus.VOID}),
}


class ClaimConversionService:
    """Creates claims from services and maintains DRAFT claim contents."""

    def __init__(
        self,
        repository: BillingRepository,
        validator: ServiceValidator,
        lifecycle: ClaimLifecycleService,
        settings: Optional[BillingSettings] = None,
    ):
        self.repository = repository
        self.validator = validator
        self.lifecycle = lifecycle
        self.settings = settings or get_billing_settings()

    # =========================================================================
    # Conversion
    # =========================================================================

    async def convert_to_claim(
        self,
        service_ids: Sequence[UUID],
        payer_id: UUID,
        ctx: OperationContext,
        claim_type: ClaimType = ClaimType.ORIGINAL,
        original_claim_id: Optional[UUID] = None,
        notes: Optional[str] = None,
    ) -> ClaimConversionResult:
        """
        Convert services into a new DRAFT claim.

        Raises:
            NotFoundError: a service or the original claim does not exist
            ConflictError: a service is already part of a claim
            ValidationError: any service fails billing validation
            InvariantViolationError: a reservation would over-consume an authorization
        """
        async with self.repository.transaction():
            # Lock in id order so concurrent conversions cannot deadlock
            services = await self.repository.get_services(service_ids, for_update=True)
            found = {s.id for s in services}
            for service_id in service_ids:
                if service_id not in found:
                    raise NotFoundError("Service", service_id)

            validation = await self.validator.validate_for_conversion(
                list(service_ids), payer_id, ctx, services=services
            )
            self._raise_if_invalid(validation)

            if original_claim_id is not None:
                if await self.repository.get_claim(original_claim_id) is None:
                    raise NotFoundError("Claim", original_claim_id)

            for service in services:
                await reserve_units(self.repository, service)

            claim = Claim(
                id=uuid4(),
                tenant_id=ctx.tenant_id,
                claim_number=await self.repository.next_claim_number(
                    self.settings.CLAIM_NUMBER_PREFIX, ctx.today.year
                ),
                claim_type=claim_type,
                client_id=services[0].client_id,
                payer_id=payer_id,
                program_id=self._uniform_program(services),
                status=ClaimStatus.DRAFT,
                total_amount=money_sum(s.amount for s in services),
                service_start_date=min(s.service_date for s in services),
                service_end_date=max(s.service_date for s in services),
                original_claim_id=original_claim_id,
                notes=notes,
                created_by=ctx.user_id,
                updated_by=ctx.user_id,
            )
            await self.repository.add(claim)

            for service in services:
                service.billing_status = BillingStatus.IN_CLAIM
                service.claim_id = claim.id

            await self.lifecycle.record_creation(claim, ctx)

        logger.info(
            f"Created claim {claim.claim_number} from {len(services)} services, "
            f"total {claim.total_amount}"
        )
        return ClaimConversionResult(
            claim=ClaimResponse.model_validate(claim),
            service_ids=[s.id for s in services],
            validation=validation,
        )

    async def convert_batch(
        self,
        requests: Sequence[ConversionRequest],
        ctx: OperationContext,
    ) -> BatchResult[ClaimConversionResult]:
        """Each conversion is atomic on its own; failures do not affect others."""
        report: BatchResult[ClaimConversionResult] = BatchResult()
        for index, request in enumerate(requests):
            try:
                result = await self.convert_to_claim(
                    request.service_ids,
                    request.payer_id,
                    ctx,
                    claim_type=request.claim_type,
                    original_claim_id=request.original_claim_id,
                    notes=request.notes,
                )
            except BillingError as e:
                logger.warning(f"Batch conversion item {index} failed: {e.message}")
                report.add_failure(index, e)
                continue
            report.add_success(result)
        return report

    # =========================================================================
    # DRAFT claim maintenance
    # =========================================================================

    async def add_service_to_claim(
        self, claim_id: UUID, service_id: UUID, ctx: OperationContext
    ) -> Claim:
        async with self.repository.transaction():
            claim = await self._draft_claim(claim_id)
            current = await self.repository.list_services_for_claim(claim.id)
            service = await self._locked_service(service_id)

            validation = await self.validator.validate_for_conversion(
                [s.id for s in current] + [service.id],
                claim.payer_id,
                ctx,
                for_claim_id=claim.id,
                services=current + [service],
            )
            self._raise_if_invalid(validation)

            await reserve_units(self.repository, service)
            service.billing_status = BillingStatus.IN_CLAIM
            service.claim_id = claim.id
            await self._refresh_claim(claim, current + [service], ctx)

        logger.info(f"Added service {service_id} to claim {claim.claim_number}")
        return claim

    async def remove_service_from_claim(
        self, claim_id: UUID, service_id: UUID, ctx: OperationContext
    ) -> Claim:
        async with self.repository.transaction():
            claim = await self._draft_claim(claim_id)
            service = await self._locked_service(service_id)
            if service.claim_id != claim.id:
                raise ValidationError(
                    "Service is not part of this claim",
                    {"claim_id": str(claim.id), "service_id": str(service.id)},
                )

            await release_units(self.repository, service, ctx.today)
            service.billing_status = BillingStatus.READY_FOR_BILLING
            service.claim_id = None
            remaining = [
                s for s in await self.repository.list_services_for_claim(claim.id)
                if s.id != service.id
            ]
            await self._refresh_claim(claim, remaining, ctx)

        logger.info(f"Removed service {service_id} from claim {claim.claim_number}")
        return claim

    # =========================================================================
    # Bulk billing status
    # =========================================================================

    async def update_billing_status(
        self,
        service_ids: Sequence[UUID],
        status: BillingStatus,
        ctx: OperationContext,
    ) -> BatchResult[ServiceResponse]:
        """Update services one by one; each succeeds or fails independently."""
        report: BatchResult[ServiceResponse] = BatchResult()
        for service_id in service_ids:
            try:
                service = await self._update_one_status(service_id, status, ctx)
            except BillingError as e:
                report.add_failure(service_id, e)
                continue
            report.add_success(ServiceResponse.model_validate(service))

        logger.info(
            f"Billing status update to {status.value}: "
            f"{report.successful} succeeded, {len(report.failed)} failed"
        )
        return report

    async def _update_one_status(
        self, service_id: UUID, status: BillingStatus, ctx: OperationContext
    ) -> Service:
        async with self.repository.transaction():
            service = await self._locked_service(service_id)
            allowed = MANUAL_BILLING_TRANSITIONS.get(service.billing_status, frozenset())
            if status not in allowed:
                raise ConflictError(
                    f"Cannot change billing status from {service.billing_status.value} "
                    f"to {status.value}",
                    {"service_id": str(service.id)},
                )
            if status == BillingStatus.READY_FOR_BILLING:
                (result,) = await self.validator.validate([service.id], ctx)
                if not result.is_valid:
                    raise ValidationError(
                        "Service is not ready for billing",
                        {"service_id": str(service.id)},
                        results=[result],
                    )
            service.billing_status = status
        return service

    # =========================================================================
    # Helpers
    # =========================================================================

    @staticmethod
    def _raise_if_invalid(validation: ConversionValidationResult) -> None:
        if validation.is_valid:
            return
        if validation.has_billing_conflict:
            conflicting = [
                str(r.service_id)
                for r in validation.service_results
                if r.has_error(ValidationCode.ALREADY_BILLED)
            ]
            raise ConflictError(
                "Service is already billed and cannot be billed twice",
                {"service_ids": conflicting},
            )
        raise ValidationError(
            "Services failed billing validation",
            {"invalid_service_ids": [str(i) for i in validation.invalid_service_ids]},
            results=[validation],
        )

    async def _draft_claim(self, claim_id: UUID) -> Claim:
        claim = await self.lifecycle.get_claim(claim_id, for_update=True)
        if claim.status != ClaimStatus.DRAFT:
            raise ConflictError(
                "Services can only be changed on a DRAFT claim",
                {"claim_id": str(claim.id), "status": claim.status.value},
            )
        return claim

    async def _locked_service(self, service_id: UUID) -> Service:
        services = await self.repository.get_services([service_id], for_update=True)
        if not services:
            raise NotFoundError("Service", service_id)
        return services[0]

    async def _refresh_claim(
        self, claim: Claim, services: list[Service], ctx: OperationContext
    ) -> None:
        """Recompute total, service range and program from the services."""
        claim.total_amount = money_sum(s.amount for s in services)
        if services:
            claim.service_start_date = min(s.service_date for s in services)
            claim.service_end_date = max(s.service_date for s in services)
        claim.program_id = self._uniform_program(services)
        claim.updated_by = ctx.user_id

    @staticmethod
    def _uniform_program(services: Sequence[Service]) -> Optional[UUID]:
        programs = {s.program_id for s in services}
        return programs.pop() if len(programs) == 1 else None
