"""
Operation context passed explicitly into every core operation.

Carries the acting user and tenant for audit fields and the business
date used for date-relative rules.
"""

from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from typing import Optional
from uuid import UUID, uuid4


@dataclass(frozen=True)
class OperationContext:
    """Who is acting, for which tenant, and on what business date."""

    user_id: Optional[UUID] = None
    tenant_id: Optional[UUID] = None
    request_id: str = field(default_factory=lambda: uuid4().hex)
    business_date: Optional[date] = None

    @property
    def today(self) -> date:
        if self.business_date is not None:
            return self.business_date
        return datetime.now(timezone.utc).date()

    @property
    def actor_type(self) -> str:
        return "user" if self.user_id is not None else "system"

    def now(self) -> datetime:
        return datetime.now(timezone.utc)

    @classmethod
    def system(cls, business_date: Optional[date] = None) -> "OperationContext":
        """Context for operations not triggered by a user."""
        return cls(business_date=business_date)
