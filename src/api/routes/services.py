"""
Service Billing API Endpoints.

Provides:
- Billing readiness validation
- Service-to-claim conversion (single and batch)
- Bulk billing-status updates
- Expiring authorization lookup
"""

import logging
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status

from src.api.deps import get_billing_services, get_operation_context
from src.core.context import OperationContext
from src.schemas.claim import (
    AuthorizationResponse,
    BatchConversionRequest,
    BillingStatusUpdateRequest,
    ClaimConversionResult,
    ConversionRequest,
    ServiceIdsRequest,
    ServiceResponse,
)
from src.schemas.common import BatchResult
from src.schemas.validation import ConversionValidationResult, ServiceValidationResult
from src.services import BillingServices

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/api/v1/services",
    tags=["services"],
)


@router.post("/validate", response_model=list[ServiceValidationResult])
async def validate_services(
    request: ServiceIdsRequest,
    payer_id: Optional[UUID] = Query(None),
    services: BillingServices = Depends(get_billing_services),
    ctx: OperationContext = Depends(get_operation_context),
) -> list[ServiceValidationResult]:
    """Validate each service for billing readiness."""
    return await services.validator.validate(request.service_ids, ctx, payer_id=payer_id)


@router.post("/validate-conversion", response_model=ConversionValidationResult)
async def validate_conversion(
    request: ConversionRequest,
    services: BillingServices = Depends(get_billing_services),
    ctx: OperationContext = Depends(get_operation_context),
) -> ConversionValidationResult:
    """Dry run of the checks a conversion would apply."""
    return await services.validator.validate_for_conversion(
        request.service_ids, request.payer_id, ctx
    )


@router.post(
    "/convert",
    response_model=ClaimConversionResult,
    status_code=status.HTTP_201_CREATED,
)
async def convert_to_claim(
    request: ConversionRequest,
    services: BillingServices = Depends(get_billing_services),
    ctx: OperationContext = Depends(get_operation_context),
) -> ClaimConversionResult:
    """Create a DRAFT claim from validated services."""
    return await services.conversion.convert_to_claim(
        request.service_ids,
        request.payer_id,
        ctx,
        claim_type=request.claim_type,
        original_claim_id=request.original_claim_id,
        notes=request.notes,
    )


@router.post("/convert/batch", response_model=BatchResult[ClaimConversionResult])
async def convert_batch(
    request: BatchConversionRequest,
    services: BillingServices = Depends(get_billing_services),
    ctx: OperationContext = Depends(get_operation_context),
) -> BatchResult[ClaimConversionResult]:
    return await services.conversion.convert_batch(request.conversions, ctx)


@router.post("/billing-status", response_model=BatchResult[ServiceResponse])
async def update_billing_status(
    request: BillingStatusUpdateRequest,
    services: BillingServices = Depends(get_billing_services),
    ctx: OperationContext = Depends(get_operation_context),
) -> BatchResult[ServiceResponse]:
    return await services.conversion.update_billing_status(
        request.service_ids, request.billing_status, ctx
    )


@router.get(
    "/authorizations/expiring",
    response_model=list[AuthorizationResponse],
)
async def expiring_authorizations(
    client_id: UUID,
    within_days: Optional[int] = Query(None, ge=0),
    services: BillingServices = Depends(get_billing_services),
    ctx: OperationContext = Depends(get_operation_context),
) -> list[AuthorizationResponse]:
    authorizations = await services.validator.expiring_authorizations(
        client_id, ctx, within_days=within_days
    )
    return [AuthorizationResponse.model_validate(a) for a in authorizations]
