"""
Pydantic Schemas for the HCBS Revenue Cycle Core.

This module exports the request/result schemas used by services and the API.
"""

from src.schemas.common import BatchItemFailure, BatchResult
from src.schemas.validation import (
    AuthorizationCheck,
    ConversionValidationResult,
    DocumentationCheck,
    ServiceValidationResult,
    ValidationIssue,
)
from src.schemas.claim import (
    ClaimConversionResult,
    ClaimResponse,
    ClaimStatusHistoryResponse,
    ConversionRequest,
    ServiceResponse,
)
from src.schemas.payment import (
    AdjustmentInput,
    ApplyMatchResult,
    ClaimMatchInput,
    ClaimPaymentResponse,
    MatchScore,
    MatchSuggestion,
    PaymentCreate,
    PaymentResponse,
    ReconcileRequest,
    ReconciliationResult,
    UndoResult,
)
from src.schemas.remittance import (
    RemittanceDetail,
    RemittanceInfo,
    RemittanceProcessingResult,
)
from src.schemas.aging import AgingFilters, AgingReport, WorklistItem

__all__ = [
    "BatchItemFailure",
    "BatchResult",
    "AuthorizationCheck",
    "ConversionValidationResult",
    "DocumentationCheck",
    "ServiceValidationResult",
    "ValidationIssue",
    "ClaimConversionResult",
    "ClaimResponse",
    "ClaimStatusHistoryResponse",
    "ConversionRequest",
    "ServiceResponse",
    "AdjustmentInput",
    "ApplyMatchResult",
    "ClaimMatchInput",
    "ClaimPaymentResponse",
    "MatchScore",
    "MatchSuggestion",
    "PaymentCreate",
    "PaymentResponse",
    "ReconcileRequest",
    "ReconciliationResult",
    "UndoResult",
    "RemittanceDetail",
    "RemittanceInfo",
    "RemittanceProcessingResult",
    "AgingFilters",
    "AgingReport",
    "WorklistItem",
]
