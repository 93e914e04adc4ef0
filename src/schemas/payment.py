"""
Pydantic Schemas for Payments, Matching and Reconciliation.
"""

from datetime import date, datetime
from decimal import Decimal
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator

from src.core.enums import (
    AdjustmentType,
    ClaimStatus,
    PaymentMethod,
    ReconciliationActionType,
    ReconciliationStatus,
)
from src.utils.money import to_money


# =============================================================================
# Payment Schemas
# =============================================================================


class PaymentCreate(BaseModel):
    """Manually entered payment."""

    payer_id: UUID
    payment_date: date
    amount: Decimal = Field(..., gt=0)
    method: PaymentMethod
    reference_number: Optional[str] = Field(None, max_length=100)
    service_period_start: Optional[date] = None
    service_period_end: Optional[date] = None
    notes: Optional[str] = None

    @field_validator("amount")
    @classmethod
    def quantize_amount(cls, v: Decimal) -> Decimal:
        return to_money(v)


class PaymentResponse(BaseModel):
    """Schema for payment response."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    payer_id: UUID
    payment_date: date
    amount: Decimal
    method: PaymentMethod
    reference_number: Optional[str] = None
    reconciliation_status: ReconciliationStatus
    remittance_id: Optional[UUID] = None


# =============================================================================
# Match Input Schemas
# =============================================================================


class AdjustmentInput(BaseModel):
    """Adjustment requested within a claim match."""

    adjustment_type: AdjustmentType
    code: str = Field(..., min_length=1, max_length=20)
    amount: Decimal = Field(..., ge=0)
    description: Optional[str] = Field(None, max_length=255)

    @field_validator("amount")
    @classmethod
    def quantize_amount(cls, v: Decimal) -> Decimal:
        return to_money(v)


class ClaimMatchInput(BaseModel):
    """Amount and adjustments to apply to one claim."""

    claim_id: UUID
    amount: Decimal = Field(..., ge=0)
    adjustments: list[AdjustmentInput] = Field(default_factory=list)
    remittance_line_id: Optional[UUID] = None

    @field_validator("amount")
    @classmethod
    def quantize_amount(cls, v: Decimal) -> Decimal:
        return to_money(v)

    @property
    def adjustment_total(self) -> Decimal:
        return to_money(sum((a.amount for a in self.adjustments), Decimal("0")))


class ReconcileRequest(BaseModel):
    """Manual reconciliation request."""

    claim_payments: list[ClaimMatchInput] = Field(..., min_length=1)
    notes: Optional[str] = None

    @field_validator("claim_payments")
    @classmethod
    def unique_claims(cls, v: list[ClaimMatchInput]) -> list[ClaimMatchInput]:
        claim_ids = [entry.claim_id for entry in v]
        if len(set(claim_ids)) != len(claim_ids):
            raise ValueError("each claim may appear only once per request")
        return v


class AutoReconcileRequest(BaseModel):
    match_threshold: Optional[float] = Field(None, ge=0.0, le=1.0)


class BatchReconcileItem(BaseModel):
    payment_id: UUID
    request: ReconcileRequest


class BatchReconcileRequest(BaseModel):
    items: list[BatchReconcileItem] = Field(..., min_length=1)


class DenialRecordRequest(BaseModel):
    """Payer denial reported without money."""

    denial_reason: str = Field(..., min_length=1, max_length=100)
    adjudication_date: date


# =============================================================================
# Match Output Schemas
# =============================================================================


class MatchScore(BaseModel):
    """Composite score for one payment/claim pairing."""

    score: float = Field(..., ge=0.0, le=1.0)
    reason: str
    signals: dict[str, float] = Field(default_factory=dict)
    amount_difference: Decimal = Decimal("0.00")


class MatchSuggestion(BaseModel):
    """Candidate claim for a payment."""

    claim_id: UUID
    claim_number: str
    match_score: float
    match_reason: str
    outstanding_amount: Decimal
    suggested_amount: Decimal
    amount_difference: Decimal
    service_end_date: date
    remittance_line_id: Optional[UUID] = None


class AdjustmentResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    adjustment_type: AdjustmentType
    code: str
    amount: Decimal
    description: Optional[str] = None


class ClaimPaymentResponse(BaseModel):
    """Schema for claim payment response."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    payment_id: UUID
    claim_id: UUID
    paid_amount: Decimal
    reconciliation_action_id: Optional[UUID] = None
    applied_at: datetime
    adjustments: list[AdjustmentResponse] = Field(default_factory=list)


class ClaimOutcome(BaseModel):
    """What happened to one claim during a match application."""

    claim_id: UUID
    previous_status: ClaimStatus
    new_status: ClaimStatus
    paid_amount: Decimal
    cumulative_paid: Decimal
    outstanding_amount: Decimal
    warnings: list[str] = Field(default_factory=list)


class ClaimMatchError(BaseModel):
    """Per-claim rejection inside an otherwise accepted request."""

    claim_id: Optional[UUID] = None
    error: str
    message: str


class ApplyMatchResult(BaseModel):
    """Result of applying matches to a payment."""

    payment_id: UUID
    claim_payments: list[ClaimPaymentResponse] = Field(default_factory=list)
    outcomes: list[ClaimOutcome] = Field(default_factory=list)
    errors: list[ClaimMatchError] = Field(default_factory=list)

    @property
    def applied_amount(self) -> Decimal:
        return to_money(sum((cp.paid_amount for cp in self.claim_payments), Decimal("0")))


class ReconciliationResult(BaseModel):
    """Payment state after a reconciliation call."""

    payment_id: UUID
    action_id: Optional[UUID] = None
    action_type: ReconciliationActionType
    reconciliation_status: ReconciliationStatus
    payment_amount: Decimal
    matched_amount: Decimal
    unmatched_amount: Decimal
    claim_payments: list[ClaimPaymentResponse] = Field(default_factory=list)
    outcomes: list[ClaimOutcome] = Field(default_factory=list)
    errors: list[ClaimMatchError] = Field(default_factory=list)


class UndoResult(BaseModel):
    """Reversal of the most recent reconciliation action."""

    payment_id: UUID
    action_id: UUID
    removed_claim_payment_ids: list[UUID]
    restored_claims: dict[str, ClaimStatus]
    reconciliation_status: ReconciliationStatus
    matched_amount: Decimal


class ReconciliationDetails(BaseModel):
    """Everything applied against a payment."""

    payment: PaymentResponse
    claim_payments: list[ClaimPaymentResponse]
    matched_amount: Decimal
    unmatched_amount: Decimal
