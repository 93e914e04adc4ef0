"""
Core Enumerations for the HCBS Revenue Cycle Core.

Closed status vocabularies for services, authorizations, claims,
payments and reporting. Values are persisted as lowercase strings.
"""

from enum import Enum


# =============================================================================
# Service & Authorization Enums
# =============================================================================


class DocumentationStatus(str, Enum):
    """Documentation state of a delivered service."""

    INCOMPLETE = "incomplete"
    COMPLETE = "complete"
    REJECTED = "rejected"
    PENDING_REVIEW = "pending_review"


class BillingStatus(str, Enum):
    """Billing state of a delivered service."""

    UNBILLED = "unbilled"
    READY_FOR_BILLING = "ready_for_billing"
    IN_CLAIM = "in_claim"
    BILLED = "billed"
    PAID = "paid"
    DENIED = "denied"
    VOID = "void"


# Statuses that mean the service already belongs to a claim
BILLED_STATUSES = frozenset(
    {BillingStatus.IN_CLAIM, BillingStatus.BILLED, BillingStatus.PAID}
)


class AuthorizationStatus(str, Enum):
    """Payer authorization state."""

    DRAFT = "draft"
    ACTIVE = "active"
    EXPIRED = "expired"
    EXHAUSTED = "exhausted"
    CANCELLED = "cancelled"


# =============================================================================
# Claim Enums
# =============================================================================


class ClaimStatus(str, Enum):
    """Claim lifecycle status."""

    DRAFT = "draft"
    VALIDATED = "validated"
    SUBMITTED = "submitted"
    ACKNOWLEDGED = "acknowledged"
    PENDING = "pending"
    PAID = "paid"
    PARTIAL_PAID = "partial_paid"
    DENIED = "denied"
    APPEALED = "appealed"
    VOID = "void"
    FINAL_DENIED = "final_denied"


class ClaimType(str, Enum):
    """Claim frequency type."""

    ORIGINAL = "original"
    ADJUSTMENT = "adjustment"
    REPLACEMENT = "replacement"
    VOID = "void"


class SubmissionMethod(str, Enum):
    """How a claim was sent to the payer."""

    ELECTRONIC = "electronic"
    PAPER = "paper"
    PORTAL = "portal"
    CLEARINGHOUSE = "clearinghouse"
    DIRECT = "direct"


class DenialReason(str, Enum):
    """Normalized denial reasons."""

    DUPLICATE_CLAIM = "duplicate_claim"
    SERVICE_NOT_COVERED = "service_not_covered"
    AUTHORIZATION_MISSING = "authorization_missing"
    AUTHORIZATION_INVALID = "authorization_invalid"
    CLIENT_INELIGIBLE = "client_ineligible"
    PROVIDER_INELIGIBLE = "provider_ineligible"
    TIMELY_FILING = "timely_filing"
    INVALID_CODING = "invalid_coding"
    MISSING_INFORMATION = "missing_information"
    OTHER = "other"


class TransitionSource(str, Enum):
    """Who drives a claim status change."""

    USER = "user"
    SYSTEM = "system"
    RECONCILIATION = "reconciliation"


# =============================================================================
# Payment Enums
# =============================================================================


class PaymentMethod(str, Enum):
    """Payment instrument."""

    CHECK = "check"
    EFT = "eft"
    CREDIT_CARD = "credit_card"
    CASH = "cash"
    OTHER = "other"


class ReconciliationStatus(str, Enum):
    """Aggregate reconciliation state of a payment."""

    UNRECONCILED = "unreconciled"
    PARTIALLY_RECONCILED = "partially_reconciled"
    RECONCILED = "reconciled"
    EXCEPTION = "exception"


class AdjustmentType(str, Enum):
    """Adjustment categories applied within a claim payment."""

    CONTRACTUAL = "contractual"
    DEDUCTIBLE = "deductible"
    COINSURANCE = "coinsurance"
    COPAY = "copay"
    NONCOVERED = "noncovered"
    TRANSFER = "transfer"
    OTHER = "other"


class ReconciliationActionType(str, Enum):
    """Origin of a reconciliation action."""

    MANUAL = "manual"
    AUTO = "auto"
    REMITTANCE = "remittance"


# =============================================================================
# Reporting Enums
# =============================================================================


class AgingBasis(str, Enum):
    """Date a claim's age is measured from."""

    SERVICE_END_DATE = "service_end_date"
    SUBMISSION_DATE = "submission_date"


class AgingBucket(str, Enum):
    """Accounts-receivable aging buckets."""

    CURRENT = "current"
    DAYS_0_30 = "0-30"
    DAYS_31_60 = "31-60"
    DAYS_61_90 = "61-90"
    DAYS_90_PLUS = "90+"


class WorklistPriority(str, Enum):
    """Collection worklist priority label."""

    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class RepositoryBackend(str, Enum):
    """Persistence backend for the billing repository."""

    MEMORY = "memory"  # Demo mode: process-local store
    DATABASE = "database"  # PostgreSQL via asyncpg


# =============================================================================
# Validation Codes
# =============================================================================


class ValidationCode(str, Enum):
    """Codes carried by validation errors and warnings."""

    # Documentation
    DOCUMENTATION_INCOMPLETE = "DOCUMENTATION_INCOMPLETE"
    DOCUMENTATION_PENDING_REVIEW = "DOCUMENTATION_PENDING_REVIEW"
    DOCUMENTATION_REJECTED = "DOCUMENTATION_REJECTED"

    # Authorization
    AUTHORIZATION_MISSING = "AUTHORIZATION_MISSING"
    AUTHORIZATION_NOT_FOUND = "AUTHORIZATION_NOT_FOUND"
    AUTHORIZATION_INACTIVE = "AUTHORIZATION_INACTIVE"
    AUTHORIZATION_CLIENT_MISMATCH = "AUTHORIZATION_CLIENT_MISMATCH"
    SERVICE_DATE_OUTSIDE_AUTHORIZATION = "SERVICE_DATE_OUTSIDE_AUTHORIZATION"
    UNITS_EXCEED_AUTHORIZATION = "UNITS_EXCEED_AUTHORIZATION"
    SERVICE_TYPE_NOT_AUTHORIZED = "SERVICE_TYPE_NOT_AUTHORIZED"
    AUTHORIZATION_EXPIRING = "AUTHORIZATION_EXPIRING"
    AUTHORIZATION_LOW_UNITS = "AUTHORIZATION_LOW_UNITS"

    # Billing rules
    ALREADY_BILLED = "ALREADY_BILLED"
    SERVICE_VOID = "SERVICE_VOID"
    SERVICE_NOT_FOUND = "SERVICE_NOT_FOUND"
    INVALID_UNITS = "INVALID_UNITS"
    INVALID_RATE = "INVALID_RATE"
    AMOUNT_MISMATCH = "AMOUNT_MISMATCH"
    FUTURE_SERVICE_DATE = "FUTURE_SERVICE_DATE"
    TIMELY_FILING_EXCEEDED = "TIMELY_FILING_EXCEEDED"
    POSSIBLE_DUPLICATE_SERVICE = "POSSIBLE_DUPLICATE_SERVICE"

    # Batch
    EMPTY_BATCH = "EMPTY_BATCH"
    DUPLICATE_SERVICE_ID = "DUPLICATE_SERVICE_ID"
    MIXED_CLIENTS = "MIXED_CLIENTS"
