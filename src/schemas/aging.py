"""
Pydantic Schemas for Accounts-Receivable Reporting.
"""

from datetime import date
from decimal import Decimal
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, Field

from src.core.enums import (
    AdjustmentType,
    AgingBasis,
    AgingBucket,
    ClaimStatus,
    ReconciliationStatus,
    WorklistPriority,
)


class AgingFilters(BaseModel):
    """Optional narrowing of the claims a report covers."""

    payer_id: Optional[UUID] = None
    program_id: Optional[UUID] = None
    client_id: Optional[UUID] = None
    statuses: Optional[list[ClaimStatus]] = None


def empty_buckets() -> dict[AgingBucket, Decimal]:
    return {bucket: Decimal("0.00") for bucket in AgingBucket}


class AgingGroup(BaseModel):
    """Bucketed balances for one payer or program."""

    group_id: Optional[UUID] = None
    buckets: dict[AgingBucket, Decimal] = Field(default_factory=empty_buckets)
    total_outstanding: Decimal = Decimal("0.00")
    claim_count: int = 0


class AgedClaim(BaseModel):
    claim_id: UUID
    claim_number: str
    payer_id: UUID
    program_id: Optional[UUID] = None
    status: ClaimStatus
    age_days: int
    bucket: AgingBucket
    total_amount: Decimal
    paid_amount: Decimal
    outstanding_amount: Decimal


class AgingReport(BaseModel):
    as_of_date: date
    basis: AgingBasis
    buckets: dict[AgingBucket, Decimal] = Field(default_factory=empty_buckets)
    total_outstanding: Decimal = Decimal("0.00")
    claim_count: int = 0
    by_payer: list[AgingGroup] = Field(default_factory=list)
    by_program: list[AgingGroup] = Field(default_factory=list)
    claims: list[AgedClaim] = Field(default_factory=list)


class WorklistItem(BaseModel):
    claim_id: UUID
    claim_number: str
    payer_id: UUID
    status: ClaimStatus
    age_days: int
    bucket: AgingBucket
    outstanding_amount: Decimal
    priority_score: Decimal
    priority: WorklistPriority
    follow_up_action: str


class FilingDeadlineItem(BaseModel):
    claim_id: UUID
    claim_number: str
    status: ClaimStatus
    service_start_date: date
    filing_deadline: date
    days_remaining: int
    total_amount: Decimal


class UnreconciledPaymentItem(BaseModel):
    payment_id: UUID
    payer_id: UUID
    payment_date: date
    amount: Decimal
    unmatched_amount: Decimal
    reconciliation_status: ReconciliationStatus
    age_days: int


class ClaimPaymentHistoryItem(BaseModel):
    claim_payment_id: UUID
    payment_id: UUID
    payment_date: date
    paid_amount: Decimal
    adjustment_amount: Decimal
    adjustment_codes: list[str] = Field(default_factory=list)


class ClaimPaymentHistory(BaseModel):
    claim_id: UUID
    total_amount: Decimal
    total_paid: Decimal
    total_adjusted: Decimal
    outstanding_amount: Decimal
    payments: list[ClaimPaymentHistoryItem] = Field(default_factory=list)


class AdjustmentCodeTotal(BaseModel):
    code: str
    adjustment_type: AdjustmentType
    count: int
    amount: Decimal


class AdjustmentSummary(BaseModel):
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    total_amount: Decimal = Decimal("0.00")
    count: int = 0
    by_type: dict[AdjustmentType, Decimal] = Field(default_factory=dict)
    by_code: list[AdjustmentCodeTotal] = Field(default_factory=list)


class DenialAnalysis(BaseModel):
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    denied_claim_count: int = 0
    denied_amount: Decimal = Decimal("0.00")
    by_code: list[AdjustmentCodeTotal] = Field(default_factory=list)
    by_reason: dict[str, int] = Field(default_factory=dict)
