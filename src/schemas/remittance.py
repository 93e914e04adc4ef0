"""
Pydantic Schemas for Remittance Import.

Parsing the remittance file happens upstream; these are the structured
records handed to the core.
"""

from datetime import date
from decimal import Decimal
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, Field, field_validator, model_validator

from src.core.enums import AdjustmentType, PaymentMethod, ReconciliationStatus
from src.schemas.payment import ClaimMatchError
from src.utils.money import to_money


class RemittanceDetail(BaseModel):
    """Claim-level remittance line."""

    claim_number: Optional[str] = Field(None, max_length=50)
    claim_id: Optional[UUID] = None
    service_date: Optional[date] = None
    billed_amount: Decimal = Field(..., ge=0)
    paid_amount: Decimal = Field(..., ge=0)
    adjustment_amount: Decimal = Field(default=Decimal("0"), ge=0)
    adjustment_codes: list[str] = Field(default_factory=list)
    adjustment_type: AdjustmentType = AdjustmentType.CONTRACTUAL

    @field_validator("billed_amount", "paid_amount", "adjustment_amount")
    @classmethod
    def quantize_amount(cls, v: Decimal) -> Decimal:
        return to_money(v)


class RemittanceInfo(BaseModel):
    """Remittance header with its detail lines."""

    remittance_number: str = Field(..., min_length=1, max_length=50)
    remittance_date: date
    payer_id: UUID
    payer_identifier: Optional[str] = Field(None, max_length=50)
    payer_name: Optional[str] = Field(None, max_length=200)
    total_amount: Decimal = Field(..., ge=0)
    claim_count: Optional[int] = Field(None, ge=0)
    file_type: str = Field(default="835", max_length=20)
    payment_method: PaymentMethod = PaymentMethod.EFT
    reference_number: Optional[str] = Field(None, max_length=100)
    details: list[RemittanceDetail] = Field(default_factory=list)

    @field_validator("total_amount")
    @classmethod
    def quantize_amount(cls, v: Decimal) -> Decimal:
        return to_money(v)

    @model_validator(mode="after")
    def default_claim_count(self) -> "RemittanceInfo":
        if self.claim_count is None:
            self.claim_count = len(self.details)
        return self


class RemittanceLineOutcome(BaseModel):
    line_number: int
    claim_number: Optional[str] = None
    matched_claim_id: Optional[UUID] = None
    match_score: Optional[float] = None
    match_reason: Optional[str] = None
    paid_amount: Decimal
    applied: bool = False


class RemittanceProcessingResult(BaseModel):
    """Operator review summary of an imported remittance."""

    remittance_id: UUID
    payment_id: UUID
    reconciliation_status: ReconciliationStatus
    claims_matched: int = 0
    claims_unmatched: int = 0
    matched_amount: Decimal = Decimal("0.00")
    unmatched_amount: Decimal = Decimal("0.00")
    lines: list[RemittanceLineOutcome] = Field(default_factory=list)
    errors: list[ClaimMatchError] = Field(default_factory=list)
