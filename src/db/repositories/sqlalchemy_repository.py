"""
SQLAlchemy Billing Repository.

Async SQLAlchemy 2.0 implementation of the billing repository.
Row locks use ``SELECT ... FOR UPDATE``; payments are locked with
``NOWAIT`` so a second reconciliation fails fast instead of queueing.
Source: https://docs.sqlalchemy.org/en/20/orm/queryguide/select.html#orm-queryguide-with-for-update
"""

from contextlib import asynccontextmanager
from contextvars import ContextVar
from datetime import date, datetime
from typing import AsyncIterator, Iterable, Optional, Sequence
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.exc import DBAPIError, IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from src.core.enums import ReconciliationStatus
from src.core.exceptions import ConflictError
from src.db.repositories.base import (
    PAYMENT_LOCK_CONFLICT,
    BillingRepository,
    ClaimFilters,
)
from src.models import (
    Authorization,
    Base,
    Claim,
    ClaimPayment,
    ClaimStatusHistory,
    Payment,
    PaymentAdjustment,
    ReconciliationAction,
    Remittance,
    RemittanceLine,
    Service,
)
from src.utils.logging import get_logger

logger = get_logger(__name__)


class SqlAlchemyBillingRepository(BillingRepository):
    """Billing repository backed by PostgreSQL through an async session factory."""

    def __init__(self, session_maker: async_sessionmaker[AsyncSession]):
        self._session_maker = session_maker
        self._current: ContextVar[Optional[AsyncSession]] = ContextVar(
            f"billing_session_{id(self)}", default=None
        )

    # =========================================================================
    # Unit of work
    # =========================================================================

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[None]:
        if self._current.get() is not None:
            yield
            return

        async with self._session_maker() as session:
            token = self._current.set(session)
            try:
                async with session.begin():
                    yield
            except IntegrityError as e:
                logger.warning(f"Integrity error, transaction rolled back: {e.orig}")
                raise ConflictError("Concurrent modification detected") from e
            finally:
                self._current.reset(token)

    @asynccontextmanager
    async def _session(self) -> AsyncIterator[AsyncSession]:
        session = self._current.get()
        if session is not None:
            yield session
            return
        async with self.transaction():
            yield self._current.get()

    async def add(self, entity: Base) -> Base:
        async with self._session() as session:
            session.add(entity)
            await session.flush()
        return entity

    async def delete(self, entity: Base) -> None:
        async with self._session() as session:
            await session.delete(entity)
            await session.flush()

    async def flush(self) -> None:
        session = self._current.get()
        if session is not None:
            await session.flush()

    async def _scalars(self, stmt) -> list:
        async with self._session() as session:
            await session.flush()
            result = await session.execute(stmt)
            return list(result.scalars().all())

    async def _scalar(self, stmt):
        async with self._session() as session:
            await session.flush()
            result = await session.execute(stmt)
            return result.scalar_one_or_none()

    # =========================================================================
    # Services & Authorizations
    # =========================================================================

    async def get_service(self, service_id: UUID) -> Optional[Service]:
        return await self._scalar(select(Service).where(Service.id == service_id))

    async def get_services(
        self, service_ids: Iterable[UUID], for_update: bool = False
    ) -> list[Service]:
        stmt = select(Service).where(Service.id.in_(list(set(service_ids)))).order_by(Service.id)
        if for_update:
            stmt = stmt.with_for_update()
        return await self._scalars(stmt)

    async def list_services_for_claim(self, claim_id: UUID) -> list[Service]:
        return await self._scalars(
            select(Service)
            .where(Service.claim_id == claim_id)
            .order_by(Service.service_date, Service.id)
        )

    async def find_services(
        self, client_id: UUID, service_date: date, service_type_code: str
    ) -> list[Service]:
        return await self._scalars(
            select(Service).where(
                Service.client_id == client_id,
                Service.service_date == service_date,
                Service.service_type_code == service_type_code,
            )
        )

    async def get_authorization(
        self, authorization_id: UUID, for_update: bool = False
    ) -> Optional[Authorization]:
        stmt = select(Authorization).where(Authorization.id == authorization_id)
        if for_update:
            stmt = stmt.with_for_update()
        return await self._scalar(stmt)

    async def list_authorizations(self, client_id: UUID) -> list[Authorization]:
        return await self._scalars(
            select(Authorization)
            .where(Authorization.client_id == client_id)
            .order_by(Authorization.start_date)
        )

    # =========================================================================
    # Claims
    # =========================================================================

    async def get_claim(self, claim_id: UUID, for_update: bool = False) -> Optional[Claim]:
        stmt = select(Claim).where(Claim.id == claim_id)
        if for_update:
            stmt = stmt.with_for_update()
        return await self._scalar(stmt)

    async def get_claim_by_number(self, claim_number: str) -> Optional[Claim]:
        return await self._scalar(select(Claim).where(Claim.claim_number == claim_number))

    async def list_claims(self, filters: Optional[ClaimFilters] = None) -> list[Claim]:
        filters = filters or ClaimFilters()
        stmt = select(Claim)
        if filters.payer_id is not None:
            stmt = stmt.where(Claim.payer_id == filters.payer_id)
        if filters.program_id is not None:
            stmt = stmt.where(Claim.program_id == filters.program_id)
        if filters.client_id is not None:
            stmt = stmt.where(Claim.client_id == filters.client_id)
        if filters.statuses is not None:
            stmt = stmt.where(Claim.status.in_(list(filters.statuses)))
        if filters.exclude_statuses is not None:
            stmt = stmt.where(Claim.status.not_in(list(filters.exclude_statuses)))
        return await self._scalars(stmt.order_by(Claim.service_end_date, Claim.claim_number))

    async def next_claim_number(self, prefix: str, year: int) -> str:
        series = f"{prefix}-{year}-"
        last = await self._scalar(
            select(func.max(Claim.claim_number)).where(Claim.claim_number.like(f"{series}%"))
        )
        sequence = int(last[len(series):]) + 1 if last else 1
        return f"{series}{sequence:06d}"

    async def list_status_history(self, claim_id: UUID) -> list[ClaimStatusHistory]:
        return await self._scalars(
            select(ClaimStatusHistory)
            .where(ClaimStatusHistory.claim_id == claim_id)
            .order_by(ClaimStatusHistory.changed_at)
        )

    # =========================================================================
    # Payments
    # =========================================================================

    async def get_payment(self, payment_id: UUID) -> Optional[Payment]:
        return await self._scalar(select(Payment).where(Payment.id == payment_id))

    async def lock_payment(self, payment_id: UUID) -> Optional[Payment]:
        stmt = select(Payment).where(Payment.id == payment_id).with_for_update(nowait=True)
        try:
            return await self._scalar(stmt)
        except DBAPIError as e:
            raise ConflictError(
                PAYMENT_LOCK_CONFLICT, {"payment_id": str(payment_id)}
            ) from e

    async def list_payments(
        self,
        statuses: Optional[Sequence[ReconciliationStatus]] = None,
        payer_id: Optional[UUID] = None,
    ) -> list[Payment]:
        stmt = select(Payment)
        if statuses is not None:
            stmt = stmt.where(Payment.reconciliation_status.in_(list(statuses)))
        if payer_id is not None:
            stmt = stmt.where(Payment.payer_id == payer_id)
        return await self._scalars(stmt.order_by(Payment.payment_date, Payment.id))

    async def list_claim_payments(
        self,
        claim_id: Optional[UUID] = None,
        payment_id: Optional[UUID] = None,
        action_id: Optional[UUID] = None,
        applied_from: Optional[datetime] = None,
        applied_to: Optional[datetime] = None,
    ) -> list[ClaimPayment]:
        stmt = select(ClaimPayment)
        if claim_id is not None:
            stmt = stmt.where(ClaimPayment.claim_id == claim_id)
        if payment_id is not None:
            stmt = stmt.where(ClaimPayment.payment_id == payment_id)
        if action_id is not None:
            stmt = stmt.where(ClaimPayment.reconciliation_action_id == action_id)
        if applied_from is not None:
            stmt = stmt.where(ClaimPayment.applied_at >= applied_from)
        if applied_to is not None:
            stmt = stmt.where(ClaimPayment.applied_at <= applied_to)
        return await self._scalars(stmt.order_by(ClaimPayment.applied_at))

    async def list_adjustments(
        self, claim_payment_ids: Iterable[UUID]
    ) -> list[PaymentAdjustment]:
        ids = list(claim_payment_ids)
        if not ids:
            return []
        return await self._scalars(
            select(PaymentAdjustment).where(PaymentAdjustment.claim_payment_id.in_(ids))
        )

    async def get_reconciliation_action(
        self, action_id: UUID
    ) -> Optional[ReconciliationAction]:
        return await self._scalar(
            select(ReconciliationAction).where(ReconciliationAction.id == action_id)
        )

    async def list_reconciliation_actions(
        self, payment_id: UUID, include_undone: bool = False
    ) -> list[ReconciliationAction]:
        stmt = select(ReconciliationAction).where(ReconciliationAction.payment_id == payment_id)
        if not include_undone:
            stmt = stmt.where(ReconciliationAction.undone.is_(False))
        return await self._scalars(stmt.order_by(ReconciliationAction.performed_at))

    # =========================================================================
    # Remittances
    # =========================================================================

    async def get_remittance(self, remittance_id: UUID) -> Optional[Remittance]:
        return await self._scalar(select(Remittance).where(Remittance.id == remittance_id))

    async def list_remittance_lines(self, remittance_id: UUID) -> list[RemittanceLine]:
        return await self._scalars(
            select(RemittanceLine)
            .where(RemittanceLine.remittance_id == remittance_id)
            .order_by(RemittanceLine.line_number)
        )
