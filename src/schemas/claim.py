"""
Pydantic Schemas for Services and Claims.
"""

from datetime import date, datetime
from decimal import Decimal
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator

from src.core.enums import (
    AuthorizationStatus,
    BillingStatus,
    ClaimStatus,
    ClaimType,
    DocumentationStatus,
    SubmissionMethod,
    TransitionSource,
)
from src.schemas.validation import ConversionValidationResult


# =============================================================================
# Service Schemas
# =============================================================================


class ServiceResponse(BaseModel):
    """Schema for service response."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    client_id: UUID
    program_id: Optional[UUID] = None
    authorization_id: Optional[UUID] = None
    service_type_code: str
    service_date: date
    units: Decimal
    rate: Decimal
    amount: Decimal
    documentation_status: DocumentationStatus
    billing_status: BillingStatus
    claim_id: Optional[UUID] = None


class AuthorizationResponse(BaseModel):
    """Schema for authorization response."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    authorization_number: str
    client_id: UUID
    payer_id: Optional[UUID] = None
    program_id: Optional[UUID] = None
    service_type_codes: list[str]
    start_date: date
    end_date: date
    authorized_units: Decimal
    used_units: Decimal
    status: AuthorizationStatus


class ServiceIdsRequest(BaseModel):
    """Request carrying a list of service ids."""

    service_ids: list[UUID] = Field(..., min_length=1)


class BillingStatusUpdateRequest(BaseModel):
    """Bulk billing-status update."""

    service_ids: list[UUID] = Field(..., min_length=1)
    billing_status: BillingStatus


# =============================================================================
# Conversion Schemas
# =============================================================================


class ConversionRequest(BaseModel):
    """Convert a set of services into one claim."""

    service_ids: list[UUID] = Field(..., min_length=1)
    payer_id: UUID
    claim_type: ClaimType = ClaimType.ORIGINAL
    original_claim_id: Optional[UUID] = None
    notes: Optional[str] = Field(None, max_length=2000)

    @field_validator("service_ids")
    @classmethod
    def unique_ids(cls, v: list[UUID]) -> list[UUID]:
        if len(set(v)) != len(v):
            raise ValueError("service_ids must be unique")
        return v


class BatchConversionRequest(BaseModel):
    """Independent conversions, each atomic on its own."""

    conversions: list[ConversionRequest] = Field(..., min_length=1)


# =============================================================================
# Claim Schemas
# =============================================================================


class ClaimResponse(BaseModel):
    """Schema for claim response."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    claim_number: str
    claim_type: ClaimType
    client_id: UUID
    payer_id: UUID
    program_id: Optional[UUID] = None
    status: ClaimStatus
    total_amount: Decimal
    service_start_date: date
    service_end_date: date
    submission_date: Optional[date] = None
    submission_method: Optional[SubmissionMethod] = None
    external_claim_id: Optional[str] = None
    adjudication_date: Optional[date] = None
    denial_reason: Optional[str] = None
    appeal_date: Optional[date] = None
    original_claim_id: Optional[UUID] = None


class ClaimConversionResult(BaseModel):
    """Claim created from a validated service batch."""

    claim: ClaimResponse
    service_ids: list[UUID]
    validation: ConversionValidationResult


class ClaimStatusHistoryResponse(BaseModel):
    """Schema for claim status history entry."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    claim_id: UUID
    previous_status: Optional[ClaimStatus] = None
    new_status: ClaimStatus
    changed_at: datetime
    changed_by: Optional[UUID] = None
    actor_type: str
    source: TransitionSource
    reason: Optional[str] = None


class SubmitClaimRequest(BaseModel):
    submission_date: date
    submission_method: SubmissionMethod


class AcknowledgeClaimRequest(BaseModel):
    external_claim_id: Optional[str] = Field(None, max_length=100)


class ClaimActionRequest(BaseModel):
    """Free-text reason for appeal, void or final denial."""

    reason: Optional[str] = Field(None, max_length=500)


class ClaimServiceRequest(BaseModel):
    service_id: UUID


class ClaimValidationResponse(BaseModel):
    """Claim status after revalidation, with the checks that were run."""

    claim: ClaimResponse
    validation: ConversionValidationResult
