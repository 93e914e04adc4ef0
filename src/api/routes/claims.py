"""
Claims API Endpoints.

Provides:
- Claim lookup and status history
- Lifecycle actions (validate, submit, acknowledge, pending, appeal,
  finalize denial, void)
- Service add/remove on DRAFT claims
- Claim payment history
"""

import logging
from uuid import UUID

from fastapi import APIRouter, Depends

from src.api.deps import get_billing_services, get_operation_context
from src.core.context import OperationContext
from src.schemas.aging import ClaimPaymentHistory
from src.schemas.claim import (
    AcknowledgeClaimRequest,
    ClaimActionRequest,
    ClaimResponse,
    ClaimServiceRequest,
    ClaimStatusHistoryResponse,
    ClaimValidationResponse,
    SubmitClaimRequest,
    ServiceResponse,
)
from src.schemas.common import BatchResult
from src.services import BillingServices

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/api/v1/claims",
    tags=["claims"],
)


# =============================================================================
# Lookups
# =============================================================================


@router.get("/{claim_id}", response_model=ClaimResponse)
async def get_claim(
    claim_id: UUID,
    services: BillingServices = Depends(get_billing_services),
) -> ClaimResponse:
    claim = await services.lifecycle.get_claim(claim_id)
    return ClaimResponse.model_validate(claim)


@router.get("/{claim_id}/history", response_model=list[ClaimStatusHistoryResponse])
async def get_claim_history(
    claim_id: UUID,
    services: BillingServices = Depends(get_billing_services),
) -> list[ClaimStatusHistoryResponse]:
    history = await services.lifecycle.get_history(claim_id)
    return [ClaimStatusHistoryResponse.model_validate(h) for h in history]


@router.get("/{claim_id}/services", response_model=list[ServiceResponse])
async def get_claim_services(
    claim_id: UUID,
    services: BillingServices = Depends(get_billing_services),
) -> list[ServiceResponse]:
    claim = await services.lifecycle.get_claim(claim_id)
    rows = await services.repository.list_services_for_claim(claim.id)
    return [ServiceResponse.model_validate(s) for s in rows]


@router.get("/{claim_id}/payments", response_model=ClaimPaymentHistory)
async def get_claim_payment_history(
    claim_id: UUID,
    services: BillingServices = Depends(get_billing_services),
) -> ClaimPaymentHistory:
    return await services.aging.claim_payment_history(claim_id)


# =============================================================================
# Lifecycle actions
# =============================================================================


@router.post("/{claim_id}/validate", response_model=ClaimValidationResponse)
async def validate_claim(
    claim_id: UUID,
    services: BillingServices = Depends(get_billing_services),
    ctx: OperationContext = Depends(get_operation_context),
) -> ClaimValidationResponse:
    """Revalidate services; DRAFT becomes VALIDATED when all pass."""
    claim, result = await services.lifecycle.validate_claim(claim_id, ctx)
    return ClaimValidationResponse(claim=ClaimResponse.model_validate(claim), validation=result)


@router.post("/{claim_id}/submit", response_model=ClaimResponse)
async def submit_claim(
    claim_id: UUID,
    request: SubmitClaimRequest,
    services: BillingServices = Depends(get_billing_services),
    ctx: OperationContext = Depends(get_operation_context),
) -> ClaimResponse:
    claim = await services.lifecycle.submit_claim(
        claim_id, request.submission_date, request.submission_method, ctx
    )
    return ClaimResponse.model_validate(claim)


@router.post("/{claim_id}/acknowledge", response_model=ClaimResponse)
async def acknowledge_claim(
    claim_id: UUID,
    request: AcknowledgeClaimRequest,
    services: BillingServices = Depends(get_billing_services),
    ctx: OperationContext = Depends(get_operation_context),
) -> ClaimResponse:
    claim = await services.lifecycle.acknowledge_claim(
        claim_id, ctx, external_claim_id=request.external_claim_id
    )
    return ClaimResponse.model_validate(claim)


@router.post("/{claim_id}/pending", response_model=ClaimResponse)
async def mark_claim_pending(
    claim_id: UUID,
    services: BillingServices = Depends(get_billing_services),
    ctx: OperationContext = Depends(get_operation_context),
) -> ClaimResponse:
    claim = await services.lifecycle.mark_pending(claim_id, ctx)
    return ClaimResponse.model_validate(claim)


@router.post("/{claim_id}/appeal", response_model=ClaimResponse)
async def appeal_claim(
    claim_id: UUID,
    request: ClaimActionRequest,
    services: BillingServices = Depends(get_billing_services),
    ctx: OperationContext = Depends(get_operation_context),
) -> ClaimResponse:
    claim = await services.lifecycle.appeal_claim(claim_id, ctx, reason=request.reason)
    return ClaimResponse.model_validate(claim)


@router.post("/{claim_id}/finalize-denial", response_model=ClaimResponse)
async def finalize_denial(
    claim_id: UUID,
    request: ClaimActionRequest,
    services: BillingServices = Depends(get_billing_services),
    ctx: OperationContext = Depends(get_operation_context),
) -> ClaimResponse:
    claim = await services.lifecycle.finalize_denial(claim_id, ctx, reason=request.reason)
    return ClaimResponse.model_validate(claim)


@router.post("/{claim_id}/void", response_model=ClaimResponse)
async def void_claim(
    claim_id: UUID,
    request: ClaimActionRequest,
    services: BillingServices = Depends(get_billing_services),
    ctx: OperationContext = Depends(get_operation_context),
) -> ClaimResponse:
    """Void the claim and hand its services back for billing."""
    claim = await services.lifecycle.void_claim(claim_id, ctx, reason=request.reason)
    return ClaimResponse.model_validate(claim)


@router.post("/appeal-windows/expire", response_model=BatchResult[ClaimResponse])
async def expire_appeal_windows(
    services: BillingServices = Depends(get_billing_services),
    ctx: OperationContext = Depends(get_operation_context),
) -> BatchResult[ClaimResponse]:
    """Finalize denials whose appeal window has elapsed."""
    return await services.lifecycle.expire_appeal_windows(ctx)


# =============================================================================
# DRAFT claim services
# =============================================================================


@router.post("/{claim_id}/services", response_model=ClaimResponse)
async def add_service(
    claim_id: UUID,
    request: ClaimServiceRequest,
    services: BillingServices = Depends(get_billing_services),
    ctx: OperationContext = Depends(get_operation_context),
) -> ClaimResponse:
    claim = await services.conversion.add_service_to_claim(claim_id, request.service_id, ctx)
    return ClaimResponse.model_validate(claim)


@router.delete("/{claim_id}/services/{service_id}", response_model=ClaimResponse)
async def remove_service(
    claim_id: UUID,
    service_id: UUID,
    services: BillingServices = Depends(get_billing_services),
    ctx: OperationContext = Depends(get_operation_context),
) -> ClaimResponse:
    claim = await services.conversion.remove_service_from_claim(claim_id, service_id, ctx)
    return ClaimResponse.model_validate(claim)
