"""
Billing Repository Interface.

The core reads and writes entities only through this interface. Every
state-changing operation runs inside ``async with repo.transaction()``;
nested calls join the outer unit of work and any exception rolls the
whole unit back.
"""

from abc import ABC, abstractmethod
from contextlib import AbstractAsyncContextManager
from dataclasses import dataclass
from datetime import date, datetime
from typing import Iterable, Optional, Sequence
from uuid import UUID

from src.core.enums import ClaimStatus, ReconciliationStatus
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

PAYMENT_LOCK_CONFLICT = "payment already being reconciled"


@dataclass
class ClaimFilters:
    """Filters for claim listings."""

    payer_id: Optional[UUID] = None
    program_id: Optional[UUID] = None
    client_id: Optional[UUID] = None
    statuses: Optional[Sequence[ClaimStatus]] = None
    exclude_statuses: Optional[Sequence[ClaimStatus]] = None

    def matches(self, claim: Claim) -> bool:
        if self.payer_id is not None and claim.payer_id != self.payer_id:
            return False
        if self.program_id is not None and claim.program_id != self.program_id:
            return False
        if self.client_id is not None and claim.client_id != self.client_id:
            return False
        if self.statuses is not None and claim.status not in self.statuses:
            return False
        if self.exclude_statuses is not None and claim.status in self.exclude_statuses:
            return False
        return True


class BillingRepository(ABC):
    """Persistence operations consumed by the billing core."""

    # =========================================================================
    # Unit of work
    # =========================================================================

    @abstractmethod
    def transaction(self) -> AbstractAsyncContextManager[None]:
        """Open (or join) a transaction."""

    @abstractmethod
    async def add(self, entity: Base) -> Base:
        """Stage a new entity; ids and defaults are assigned immediately."""

    @abstractmethod
    async def delete(self, entity: Base) -> None:
        """Remove an entity."""

    @abstractmethod
    async def flush(self) -> None:
        """Push pending changes to the store."""

    # =========================================================================
    # Services & Authorizations
    # =========================================================================

    @abstractmethod
    async def get_service(self, service_id: UUID) -> Optional[Service]:
        ...

    @abstractmethod
    async def get_services(
        self, service_ids: Iterable[UUID], for_update: bool = False
    ) -> list[Service]:
        """Found services ordered by id; missing ids are omitted."""

    @abstractmethod
    async def list_services_for_claim(self, claim_id: UUID) -> list[Service]:
        ...

    @abstractmethod
    async def find_services(
        self, client_id: UUID, service_date: date, service_type_code: str
    ) -> list[Service]:
        """Services for the same client, date and service type."""

    @abstractmethod
    async def get_authorization(
        self, authorization_id: UUID, for_update: bool = False
    ) -> Optional[Authorization]:
        ...

    @abstractmethod
    async def list_authorizations(self, client_id: UUID) -> list[Authorization]:
        ...

    # =========================================================================
    # Claims
    # =========================================================================

    @abstractmethod
    async def get_claim(self, claim_id: UUID, for_update: bool = False) -> Optional[Claim]:
        ...

    @abstractmethod
    async def get_claim_by_number(self, claim_number: str) -> Optional[Claim]:
        ...

    @abstractmethod
    async def list_claims(self, filters: Optional[ClaimFilters] = None) -> list[Claim]:
        ...

    async def list_claims_by_payer(
        self, payer_id: UUID, statuses: Optional[Sequence[ClaimStatus]] = None
    ) -> list[Claim]:
        return await self.list_claims(ClaimFilters(payer_id=payer_id, statuses=statuses))

    @abstractmethod
    async def next_claim_number(self, prefix: str, year: int) -> str:
        """Next number in the ``{prefix}-{year}-{seq:06d}`` series."""

    @abstractmethod
    async def list_status_history(self, claim_id: UUID) -> list[ClaimStatusHistory]:
        """History rows, oldest first."""

    # =========================================================================
    # Payments
    # =========================================================================

    @abstractmethod
    async def get_payment(self, payment_id: UUID) -> Optional[Payment]:
        ...

    @abstractmethod
    async def lock_payment(self, payment_id: UUID) -> Optional[Payment]:
        """
        Lock a payment for reconciliation without waiting.

        Raises:
            ConflictError: another transaction holds the lock
        """

    @abstractmethod
    async def list_payments(
        self,
        statuses: Optional[Sequence[ReconciliationStatus]] = None,
        payer_id: Optional[UUID] = None,
    ) -> list[Payment]:
        ...

    @abstractmethod
    async def list_claim_payments(
        self,
        claim_id: Optional[UUID] = None,
        payment_id: Optional[UUID] = None,
        action_id: Optional[UUID] = None,
        applied_from: Optional[datetime] = None,
        applied_to: Optional[datetime] = None,
    ) -> list[ClaimPayment]:
        """Claim payments matching every given filter, oldest first."""

    @abstractmethod
    async def list_adjustments(
        self, claim_payment_ids: Iterable[UUID]
    ) -> list[PaymentAdjustment]:
        ...

    @abstractmethod
    async def get_reconciliation_action(
        self, action_id: UUID
    ) -> Optional[ReconciliationAction]:
        ...

    @abstractmethod
    async def list_reconciliation_actions(
        self, payment_id: UUID, include_undone: bool = False
    ) -> list[ReconciliationAction]:
        """Actions on a payment, oldest first."""

    # =========================================================================
    # Remittances
    # =========================================================================

    @abstractmethod
    async def get_remittance(self, remittance_id: UUID) -> Optional[Remittance]:
        ...

    @abstractmethod
    async def list_remittance_lines(self, remittance_id: UUID) -> list[RemittanceLine]:
        ...
