"""
In-Memory Billing Repository (demo mode).

Keeps ORM instances in process-local tables. Transactions snapshot
column state on entry and restore it on error; ``for_update`` reads
take per-row asyncio locks held until the outermost transaction ends;
payment locks never wait.
"""

import asyncio
import copy
from collections import defaultdict
from contextlib import asynccontextmanager
from contextvars import ContextVar
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any, AsyncIterator, Iterable, Optional, Sequence
from uuid import UUID

from sqlalchemy import inspect

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

RowKey = tuple[type, UUID]


@dataclass
class _TransactionState:
    depth: int = 0
    snapshot: dict[RowKey, tuple[Base, dict[str, Any]]] = field(default_factory=dict)
    added: list[Base] = field(default_factory=list)
    deleted: list[Base] = field(default_factory=list)
    held_locks: dict[RowKey, asyncio.Lock] = field(default_factory=dict)


def _column_state(entity: Base) -> dict[str, Any]:
    mapper = inspect(type(entity))
    return {
        attr.key: copy.deepcopy(getattr(entity, attr.key, None))
        for attr in mapper.column_attrs
    }


def _apply_defaults(entity: Base) -> None:
    """Fill Python-side column defaults the way a flush would."""
    mapper = inspect(type(entity))
    for attr in mapper.column_attrs:
        if getattr(entity, attr.key, None) is not None:
            continue
        column = attr.columns[0]
        default = column.default
        if default is None:
            continue
        if default.is_callable:
            setattr(entity, attr.key, default.arg(None))
        elif default.is_scalar:
            setattr(entity, attr.key, copy.deepcopy(default.arg))


class InMemoryBillingRepository(BillingRepository):
    """Process-local billing store."""

    def __init__(self) -> None:
        self._tables: dict[type, dict[UUID, Base]] = defaultdict(dict)
        self._row_locks: dict[RowKey, asyncio.Lock] = {}
        self._state: ContextVar[Optional[_TransactionState]] = ContextVar(
            f"memory_repository_tx_{id(self)}", default=None
        )

    # =========================================================================
    # Unit of work
    # =========================================================================

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[None]:
        state = self._state.get()
        if state is not None:
            state.depth += 1
            try:
                yield
            finally:
                state.depth -= 1
            return

        state = _TransactionState(depth=1, snapshot=self._snapshot())
        token = self._state.set(state)
        try:
            yield
        except BaseException:
            self._rollback(state)
            raise
        finally:
            for lock in state.held_locks.values():
                lock.release()
            self._state.reset(token)

    def _snapshot(self) -> dict[RowKey, tuple[Base, dict[str, Any]]]:
        return {
            (model, key): (entity, _column_state(entity))
            for model, table in self._tables.items()
            for key, entity in table.items()
        }

    def _rollback(self, state: _TransactionState) -> None:
        for entity in state.added:
            self._tables[type(entity)].pop(entity.id, None)
        for entity in state.deleted:
            self._tables[type(entity)][entity.id] = entity
        for (model, key), (entity, saved) in state.snapshot.items():
            if _column_state(entity) != saved:
                for attr, value in saved.items():
                    setattr(entity, attr, value)
            self._tables[model][key] = entity

    async def _lock_row(self, model: type, row_id: UUID, wait: bool = True) -> None:
        state = self._state.get()
        if state is None:
            return
        key = (model, row_id)
        if key in state.held_locks:
            return
        lock = self._row_locks.setdefault(key, asyncio.Lock())
        if not wait and lock.locked():
            raise ConflictError(PAYMENT_LOCK_CONFLICT, {"payment_id": str(row_id)})
        await lock.acquire()
        state.held_locks[key] = lock

    async def add(self, entity: Base) -> Base:
        _apply_defaults(entity)
        self._tables[type(entity)][entity.id] = entity
        state = self._state.get()
        if state is not None:
            state.added.append(entity)
        return entity

    async def delete(self, entity: Base) -> None:
        removed = self._tables[type(entity)].pop(entity.id, None)
        state = self._state.get()
        if removed is not None and state is not None:
            if entity in state.added:
                state.added.remove(entity)
            else:
                state.deleted.append(entity)

    async def flush(self) -> None:
        return None

    def _rows(self, model: type) -> list[Any]:
        return list(self._tables[model].values())

    # =========================================================================
    # Services & Authorizations
    # =========================================================================

    async def get_service(self, service_id: UUID) -> Optional[Service]:
        return self._tables[Service].get(service_id)

    async def get_services(
        self, service_ids: Iterable[UUID], for_update: bool = False
    ) -> list[Service]:
        found = []
        for service_id in sorted(set(service_ids), key=str):
            if for_update:
                await self._lock_row(Service, service_id)
            service = self._tables[Service].get(service_id)
            if service is not None:
                found.append(service)
        return found

    async def list_services_for_claim(self, claim_id: UUID) -> list[Service]:
        services = [s for s in self._rows(Service) if s.claim_id == claim_id]
        return sorted(services, key=lambda s: (s.service_date, str(s.id)))

    async def find_services(
        self, client_id: UUID, service_date: date, service_type_code: str
    ) -> list[Service]:
        return [
            s
            for s in self._rows(Service)
            if s.client_id == client_id
            and s.service_date == service_date
            and s.service_type_code == service_type_code
        ]

    async def get_authorization(
        self, authorization_id: UUID, for_update: bool = False
    ) -> Optional[Authorization]:
        if for_update:
            await self._lock_row(Authorization, authorization_id)
        return self._tables[Authorization].get(authorization_id)

    async def list_authorizations(self, client_id: UUID) -> list[Authorization]:
        return [a for a in self._rows(Authorization) if a.client_id == client_id]

    # =========================================================================
    # Claims
    # =========================================================================

    async def get_claim(self, claim_id: UUID, for_update: bool = False) -> Optional[Claim]:
        if for_update:
            await self._lock_row(Claim, claim_id)
        return self._tables[Claim].get(claim_id)

    async def get_claim_by_number(self, claim_number: str) -> Optional[Claim]:
        for claim in self._rows(Claim):
            if claim.claim_number == claim_number:
                return claim
        return None

    async def list_claims(self, filters: Optional[ClaimFilters] = None) -> list[Claim]:
        filters = filters or ClaimFilters()
        claims = [c for c in self._rows(Claim) if filters.matches(c)]
        return sorted(claims, key=lambda c: (c.service_end_date, c.claim_number))

    async def next_claim_number(self, prefix: str, year: int) -> str:
        series = f"{prefix}-{year}-"
        sequences = [
            int(c.claim_number[len(series):])
            for c in self._rows(Claim)
            if c.claim_number.startswith(series) and c.claim_number[len(series):].isdigit()
        ]
        return f"{series}{max(sequences, default=0) + 1:06d}"

    async def list_status_history(self, claim_id: UUID) -> list[ClaimStatusHistory]:
        rows = [h for h in self._rows(ClaimStatusHistory) if h.claim_id == claim_id]
        return sorted(rows, key=lambda h: h.changed_at)

    # =========================================================================
    # Payments
    # =========================================================================

    async def get_payment(self, payment_id: UUID) -> Optional[Payment]:
        return self._tables[Payment].get(payment_id)

    async def lock_payment(self, payment_id: UUID) -> Optional[Payment]:
        payment = self._tables[Payment].get(payment_id)
        if payment is None:
            return None
        await self._lock_row(Payment, payment_id, wait=False)
        return payment

    async def list_payments(
        self,
        statuses: Optional[Sequence[ReconciliationStatus]] = None,
        payer_id: Optional[UUID] = None,
    ) -> list[Payment]:
        payments = [
            p
            for p in self._rows(Payment)
            if (statuses is None or p.reconciliation_status in statuses)
            and (payer_id is None or p.payer_id == payer_id)
        ]
        return sorted(payments, key=lambda p: (p.payment_date, str(p.id)))

    async def list_claim_payments(
        self,
        claim_id: Optional[UUID] = None,
        payment_id: Optional[UUID] = None,
        action_id: Optional[UUID] = None,
        applied_from: Optional[datetime] = None,
        applied_to: Optional[datetime] = None,
    ) -> list[ClaimPayment]:
        rows = [
            cp
            for cp in self._rows(ClaimPayment)
            if (claim_id is None or cp.claim_id == claim_id)
            and (payment_id is None or cp.payment_id == payment_id)
            and (action_id is None or cp.reconciliation_action_id == action_id)
            and (applied_from is None or cp.applied_at >= applied_from)
            and (applied_to is None or cp.applied_at <= applied_to)
        ]
        return sorted(rows, key=lambda cp: cp.applied_at)

    async def list_adjustments(
        self, claim_payment_ids: Iterable[UUID]
    ) -> list[PaymentAdjustment]:
        wanted = set(claim_payment_ids)
        return [a for a in self._rows(PaymentAdjustment) if a.claim_payment_id in wanted]

    async def get_reconciliation_action(
        self, action_id: UUID
    ) -> Optional[ReconciliationAction]:
        return self._tables[ReconciliationAction].get(action_id)

    async def list_reconciliation_actions(
        self, payment_id: UUID, include_undone: bool = False
    ) -> list[ReconciliationAction]:
        actions = [
            a
            for a in self._rows(ReconciliationAction)
            if a.payment_id == payment_id and (include_undone or not a.undone)
        ]
        return sorted(actions, key=lambda a: a.performed_at)

    # =========================================================================
    # Remittances
    # =========================================================================

    async def get_remittance(self, remittance_id: UUID) -> Optional[Remittance]:
        return self._tables[Remittance].get(remittance_id)

    async def list_remittance_lines(self, remittance_id: UUID) -> list[RemittanceLine]:
        lines = [l for l in self._rows(RemittanceLine) if l.remittance_id == remittance_id]
        return sorted(lines, key=lambda l: l.line_number)
