"""
SQLAlchemy Repository Tests.

Session behaviour is stubbed with unittest.mock; these tests cover the
error mapping and unit-of-work nesting, not SQL generation.
"""

from unittest.mock import AsyncMock, MagicMock
from uuid import uuid4

import pytest
from sqlalchemy.exc import DBAPIError, IntegrityError

from src.core.exceptions import ConflictError
from src.db.repositories import PAYMENT_LOCK_CONFLICT, SqlAlchemyBillingRepository
from src.models import Payment


class _AsyncContext:
    def __init__(self, value=None):
        self.value = value

    async def __aenter__(self):
        return self.value

    async def __aexit__(self, *exc_info):
        return False


def _repository(session):
    session.begin = MagicMock(side_effect=lambda: _AsyncContext())
    session_maker = MagicMock(side_effect=lambda: _AsyncContext(session))
    return SqlAlchemyBillingRepository(session_maker), session_maker


@pytest.mark.unit
class TestSqlAlchemyRepository:
    """Error mapping and transaction nesting."""

    @pytest.mark.asyncio
    async def test_payment_lock_not_available(self):
        session = MagicMock()
        session.flush = AsyncMock()
        session.execute = AsyncMock(
            side_effect=DBAPIError("SELECT ... FOR UPDATE NOWAIT", {}, Exception("lock not available"))
        )
        repository, _ = _repository(session)

        with pytest.raises(ConflictError) as exc_info:
            await repository.lock_payment(uuid4())

        assert exc_info.value.message == PAYMENT_LOCK_CONFLICT

    @pytest.mark.asyncio
    async def test_integrity_error_becomes_conflict(self):
        session = MagicMock()
        session.flush = AsyncMock(
            side_effect=IntegrityError("INSERT", {}, Exception("duplicate key value"))
        )
        repository, _ = _repository(session)

        with pytest.raises(ConflictError):
            await repository.add(Payment(id=uuid4()))

    @pytest.mark.asyncio
    async def test_nested_transactions_share_one_session(self):
        session = MagicMock()
        session.flush = AsyncMock()
        repository, session_maker = _repository(session)

        async with repository.transaction():
            async with repository.transaction():
                await repository.flush()
            await repository.flush()

        assert session_maker.call_count == 1
        assert session.flush.await_count == 2
