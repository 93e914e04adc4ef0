"""
Receivables Reporting API Endpoints.

Provides:
- Aging report and collection worklist
- Filing deadline and unreconciled payment views
- Adjustment and denial analysis
"""

import logging
from datetime import date
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query

from src.api.deps import get_billing_services, get_operation_context
from src.core.context import OperationContext
from src.core.enums import ClaimStatus
from src.schemas.aging import (
    AdjustmentSummary,
    AgingFilters,
    AgingReport,
    DenialAnalysis,
    FilingDeadlineItem,
    UnreconciledPaymentItem,
    WorklistItem,
)
from src.services import BillingServices

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/api/v1/reports",
    tags=["reports"],
)


def get_aging_filters(
    payer_id: Optional[UUID] = Query(None),
    program_id: Optional[UUID] = Query(None),
    client_id: Optional[UUID] = Query(None),
    statuses: Optional[list[ClaimStatus]] = Query(None),
) -> AgingFilters:
    return AgingFilters(
        payer_id=payer_id,
        program_id=program_id,
        client_id=client_id,
        statuses=statuses,
    )


@router.get("/aging", response_model=AgingReport)
async def aging_report(
    as_of: Optional[date] = Query(None),
    filters: AgingFilters = Depends(get_aging_filters),
    services: BillingServices = Depends(get_billing_services),
    ctx: OperationContext = Depends(get_operation_context),
) -> AgingReport:
    return await services.aging.compute_aging(as_of or ctx.today, filters)


@router.get("/worklist", response_model=list[WorklistItem])
async def collection_worklist(
    as_of: Optional[date] = Query(None),
    limit: Optional[int] = Query(None, ge=1, le=1000),
    filters: AgingFilters = Depends(get_aging_filters),
    services: BillingServices = Depends(get_billing_services),
    ctx: OperationContext = Depends(get_operation_context),
) -> list[WorklistItem]:
    return await services.aging.collection_worklist(as_of or ctx.today, filters, limit=limit)


@router.get("/filing-deadlines", response_model=list[FilingDeadlineItem])
async def filing_deadlines(
    as_of: Optional[date] = Query(None),
    within_days: Optional[int] = Query(None, ge=0),
    services: BillingServices = Depends(get_billing_services),
    ctx: OperationContext = Depends(get_operation_context),
) -> list[FilingDeadlineItem]:
    return await services.aging.claims_approaching_filing_deadline(
        as_of or ctx.today, within_days=within_days
    )


@router.get("/unreconciled-payments", response_model=list[UnreconciledPaymentItem])
async def unreconciled_payments(
    as_of: Optional[date] = Query(None),
    min_age_days: int = Query(0, ge=0),
    payer_id: Optional[UUID] = Query(None),
    services: BillingServices = Depends(get_billing_services),
    ctx: OperationContext = Depends(get_operation_context),
) -> list[UnreconciledPaymentItem]:
    return await services.aging.unreconciled_payments(
        as_of or ctx.today, min_age_days=min_age_days, payer_id=payer_id
    )


@router.get("/adjustments", response_model=AdjustmentSummary)
async def adjustment_summary(
    start_date: Optional[date] = Query(None),
    end_date: Optional[date] = Query(None),
    services: BillingServices = Depends(get_billing_services),
) -> AdjustmentSummary:
    return await services.adjustments.summarize(start_date, end_date)


@router.get("/denials", response_model=DenialAnalysis)
async def denial_analysis(
    start_date: Optional[date] = Query(None),
    end_date: Optional[date] = Query(None),
    services: BillingServices = Depends(get_billing_services),
) -> DenialAnalysis:
    return await services.adjustments.denial_analysis(start_date, end_date)
