"""
Pydantic Schemas for Service Validation Results.
"""

from datetime import date
from decimal import Decimal
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, Field

from src.core.enums import ValidationCode


class ValidationIssue(BaseModel):
    """A single blocking error or non-blocking warning."""

    code: ValidationCode
    message: str
    field: Optional[str] = None


class DocumentationCheck(BaseModel):
    """Documentation completeness sub-result."""

    is_complete: bool
    missing_items: list[str] = Field(default_factory=list)


class AuthorizationCheck(BaseModel):
    """Authorization coverage sub-result."""

    required: bool = True
    is_authorized: bool = False
    authorization_id: Optional[UUID] = None
    authorized_units: Optional[Decimal] = None
    used_units: Optional[Decimal] = None
    remaining_units: Optional[Decimal] = None
    expiration_date: Optional[date] = None


class ServiceValidationResult(BaseModel):
    """Validation outcome for one service."""

    service_id: UUID
    is_valid: bool
    errors: list[ValidationIssue] = Field(default_factory=list)
    warnings: list[ValidationIssue] = Field(default_factory=list)
    documentation: DocumentationCheck
    authorization: AuthorizationCheck

    @property
    def error_codes(self) -> set[ValidationCode]:
        return {issue.code for issue in self.errors}

    def has_error(self, code: ValidationCode) -> bool:
        return code in self.error_codes


class ConversionValidationResult(BaseModel):
    """Validation outcome for a service batch about to become one claim."""

    is_valid: bool
    payer_id: UUID
    client_id: Optional[UUID] = None
    total_amount: Decimal = Decimal("0.00")
    errors: list[ValidationIssue] = Field(default_factory=list)
    warnings: list[ValidationIssue] = Field(default_factory=list)
    service_results: list[ServiceValidationResult] = Field(default_factory=list)

    @property
    def has_billing_conflict(self) -> bool:
        """True when any service is already part of a claim."""
        return any(
            r.has_error(ValidationCode.ALREADY_BILLED) for r in self.service_results
        )

    @property
    def invalid_service_ids(self) -> list[UUID]:
        return [r.service_id for r in self.service_results if not r.is_valid]
