"""
Billing Core Error Taxonomy.

Provides:
- BillingError base carrying a stable code and structured details
- ValidationError, ConflictError, InvalidTransitionError
- OverAllocationError, NotFoundError, InvariantViolationError

Every rejected operation raises one of these; the API layer maps them
onto HTTP 400/404/409.
"""

from decimal import Decimal
from typing import Any, Optional


class BillingError(Exception):
    """Base exception for billing core errors."""

    code = "BILLING_ERROR"

    def __init__(
        self,
        message: str,
        details: Optional[dict[str, Any]] = None,
        code: Optional[str] = None,
    ):
        self.message = message
        self.details = details or {}
        if code is not None:
            self.code = code
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        return {"error": self.code, "message": self.message, "details": self.details}


class ValidationError(BillingError):
    """Documentation, authorization or billing-rule failure."""

    code = "VALIDATION_ERROR"

    def __init__(
        self,
        message: str,
        details: Optional[dict[str, Any]] = None,
        results: Optional[list[Any]] = None,
        code: Optional[str] = None,
    ):
        self.results = results or []
        super().__init__(message, details, code)

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        if self.results:
            data["results"] = [
                r.model_dump(mode="json") if hasattr(r, "model_dump") else r
                for r in self.results
            ]
        return data


class ConflictError(BillingError):
    """Operation conflicts with current state or a concurrent request."""

    code = "CONFLICT"


class InvalidTransitionError(ConflictError):
    """Claim status change outside the lifecycle graph or its guards."""

    code = "INVALID_TRANSITION"

    def __init__(
        self,
        current_status: Any,
        target_status: Any,
        message: Optional[str] = None,
    ):
        self.current_status = current_status
        self.target_status = target_status
        current = getattr(current_status, "value", current_status)
        target = getattr(target_status, "value", target_status)
        super().__init__(
            message or f"Invalid transition from {current} to {target}",
            {"current_status": current, "target_status": target},
        )


class OverAllocationError(BillingError):
    """Reconciliation request exceeds the payment's available amount."""

    code = "OVER_ALLOCATION"

    def __init__(self, requested: Decimal, available: Decimal, payment_id: Any = None):
        self.requested = requested
        self.available = available
        super().__init__(
            f"Requested allocation {requested} exceeds available payment amount {available}",
            {
                "payment_id": str(payment_id) if payment_id is not None else None,
                "requested": str(requested),
                "available": str(available),
            },
        )


class NotFoundError(BillingError):
    """Referenced entity does not exist."""

    code = "NOT_FOUND"

    def __init__(self, entity: str, entity_id: Any):
        self.entity = entity
        self.entity_id = entity_id
        super().__init__(
            f"{entity} not found: {entity_id}",
            {"entity": entity, "id": str(entity_id)},
        )


class InvariantViolationError(BillingError):
    """A write would break a data invariant (never clamped)."""

    code = "INVARIANT_VIOLATION"
