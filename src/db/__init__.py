"""
Database module for the HCBS Revenue Cycle Core.

Exports connection utilities and the billing repositories.
"""

from src.db.connection import (
    check_db_connection,
    close_db_connection,
    create_schema,
    get_engine,
    get_session_maker,
)
from src.db.repositories import (
    BillingRepository,
    ClaimFilters,
    InMemoryBillingRepository,
    SqlAlchemyBillingRepository,
)

__all__ = [
    # Connection
    "get_engine",
    "get_session_maker",
    "create_schema",
    "close_db_connection",
    "check_db_connection",
    # Repositories
    "BillingRepository",
    "ClaimFilters",
    "InMemoryBillingRepository",
    "SqlAlchemyBillingRepository",
]
