"""
Billing repositories: interface plus database and in-memory backends.
"""

from src.db.repositories.base import (
    PAYMENT_LOCK_CONFLICT,
    BillingRepository,
    ClaimFilters,
)
from src.db.repositories.memory import InMemoryBillingRepository
from src.db.repositories.sqlalchemy_repository import SqlAlchemyBillingRepository

__all__ = [
    "PAYMENT_LOCK_CONFLICT",
    "BillingRepository",
    "ClaimFilters",
    "InMemoryBillingRepository",
    "SqlAlchemyBillingRepository",
]
