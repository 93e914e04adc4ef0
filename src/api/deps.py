"""
FastAPI Dependencies
Repository selection, service wiring and per-request operation context
Source: https://fastapi.tiangolo.com/tutorial/dependencies/
"""

from datetime import date
from typing import Optional
from uuid import UUID

from fastapi import Depends, Header

from src.core.config import get_billing_settings
from src.core.context import OperationContext
from src.core.enums import RepositoryBackend
from src.db.connection import get_session_maker
from src.db.repositories import (
    BillingRepository,
    InMemoryBillingRepository,
    SqlAlchemyBillingRepository,
)
from src.services import BillingServices, build_billing_services
from src.utils.logging import get_logger

logger = get_logger(__name__)

_repository: Optional[BillingRepository] = None


def get_repository() -> BillingRepository:
    """
    Process-wide repository for the configured backend.

    MEMORY keeps all state in this process (demo mode); DATABASE uses
    the async PostgreSQL session maker.
    """
    global _repository

    if _repository is None:
        settings = get_billing_settings()
        if settings.REPOSITORY_BACKEND == RepositoryBackend.DATABASE:
            _repository = SqlAlchemyBillingRepository(get_session_maker())
        else:
            _repository = InMemoryBillingRepository()
        logger.info(f"Using {settings.REPOSITORY_BACKEND.value} billing repository")

    return _repository


def get_billing_services(
    repository: BillingRepository = Depends(get_repository),
) -> BillingServices:
    return build_billing_services(repository, get_billing_settings())


def get_operation_context(
    x_user_id: Optional[UUID] = Header(None),
    x_tenant_id: Optional[UUID] = Header(None),
    x_request_id: Optional[str] = Header(None),
    x_business_date: Optional[date] = Header(None),
) -> OperationContext:
    """Acting user, tenant and business date from request headers."""
    if x_request_id:
        return OperationContext(
            user_id=x_user_id,
            tenant_id=x_tenant_id,
            request_id=x_request_id,
            business_date=x_business_date,
        )
    return OperationContext(
        user_id=x_user_id,
        tenant_id=x_tenant_id,
        business_date=x_business_date,
    )
