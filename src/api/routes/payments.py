"""
Payments API Endpoints.

Provides:
- Payment entry and match suggestions
- Manual, automatic and batch reconciliation, with undo
- Remittance import
- Denial recording
"""

import logging
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status

from src.api.deps import get_billing_services, get_operation_context
from src.core.context import OperationContext
from src.schemas.claim import ClaimResponse
from src.schemas.common import BatchResult
from src.schemas.payment import (
    AutoReconcileRequest,
    BatchReconcileRequest,
    DenialRecordRequest,
    MatchSuggestion,
    PaymentCreate,
    PaymentResponse,
    ReconcileRequest,
    ReconciliationDetails,
    ReconciliationResult,
    UndoResult,
)
from src.schemas.remittance import RemittanceInfo, RemittanceProcessingResult
from src.services import BillingServices

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/api/v1/payments",
    tags=["payments"],
)


@router.post("", response_model=PaymentResponse, status_code=status.HTTP_201_CREATED)
async def create_payment(
    request: PaymentCreate,
    services: BillingServices = Depends(get_billing_services),
    ctx: OperationContext = Depends(get_operation_context),
) -> PaymentResponse:
    payment = await services.reconciliation.record_payment(request, ctx)
    return PaymentResponse.model_validate(payment)


@router.get("/{payment_id}", response_model=ReconciliationDetails)
async def get_payment_details(
    payment_id: UUID,
    services: BillingServices = Depends(get_billing_services),
) -> ReconciliationDetails:
    """Payment with every claim payment applied against it."""
    return await services.reconciliation.get_reconciliation_details(payment_id)


@router.get("/{payment_id}/suggestions", response_model=list[MatchSuggestion])
async def suggest_matches(
    payment_id: UUID,
    min_score: Optional[float] = Query(None, ge=0.0, le=1.0),
    services: BillingServices = Depends(get_billing_services),
) -> list[MatchSuggestion]:
    return await services.matcher.suggest_matches(payment_id, min_score=min_score)


@router.post("/{payment_id}/reconcile", response_model=ReconciliationResult)
async def reconcile_payment(
    payment_id: UUID,
    request: ReconcileRequest,
    services: BillingServices = Depends(get_billing_services),
    ctx: OperationContext = Depends(get_operation_context),
) -> ReconciliationResult:
    return await services.reconciliation.reconcile(payment_id, request, ctx)


@router.post("/{payment_id}/auto-reconcile", response_model=ReconciliationResult)
async def auto_reconcile_payment(
    payment_id: UUID,
    request: AutoReconcileRequest,
    services: BillingServices = Depends(get_billing_services),
    ctx: OperationContext = Depends(get_operation_context),
) -> ReconciliationResult:
    return await services.reconciliation.auto_reconcile(
        payment_id, ctx, match_threshold=request.match_threshold
    )


@router.post("/{payment_id}/undo", response_model=UndoResult)
async def undo_reconciliation(
    payment_id: UUID,
    services: BillingServices = Depends(get_billing_services),
    ctx: OperationContext = Depends(get_operation_context),
) -> UndoResult:
    """Reverse the most recent reconciliation on the payment."""
    return await services.reconciliation.undo_reconciliation(payment_id, ctx)


@router.post("/reconcile/batch", response_model=BatchResult[ReconciliationResult])
async def batch_reconcile(
    request: BatchReconcileRequest,
    services: BillingServices = Depends(get_billing_services),
    ctx: OperationContext = Depends(get_operation_context),
) -> BatchResult[ReconciliationResult]:
    return await services.reconciliation.batch_reconcile(request.items, ctx)


@router.post(
    "/remittances",
    response_model=RemittanceProcessingResult,
    status_code=status.HTTP_201_CREATED,
)
async def import_remittance(
    request: RemittanceInfo,
    services: BillingServices = Depends(get_billing_services),
    ctx: OperationContext = Depends(get_operation_context),
) -> RemittanceProcessingResult:
    return await services.remittances.import_remittance(request, ctx)


@router.post("/claims/{claim_id}/denial", response_model=ClaimResponse)
async def record_denial(
    claim_id: UUID,
    request: DenialRecordRequest,
    services: BillingServices = Depends(get_billing_services),
    ctx: OperationContext = Depends(get_operation_context),
) -> ClaimResponse:
    """Record a payer denial reported without a payment."""
    claim = await services.reconciliation.record_denial(
        claim_id, request.denial_reason, request.adjudication_date, ctx
    )
    return ClaimResponse.model_validate(claim)
