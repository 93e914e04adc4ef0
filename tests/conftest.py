"""
Pytest Configuration and Fixtures.
Shared test fixtures for all test modules.
"""

from datetime import date, timedelta
from decimal import Decimal
from itertools import count
from typing import Optional
from uuid import UUID, uuid4

import pytest

from src.core.config import BillingSettings
from src.core.context import OperationContext
from src.core.enums import (
    AuthorizationStatus,
    BillingStatus,
    ClaimStatus,
    DocumentationStatus,
    PaymentMethod,
    ReconciliationStatus,
)
from src.db.repositories import InMemoryBillingRepository
from src.models import Authorization, Claim, Payment, Service
from src.services import BillingServices, build_billing_services
from src.utils.money import line_amount

# Fixed business date so date-relative rules are deterministic
BUSINESS_DATE = date(2025, 6, 30)


class BillingSeeder:
    """Creates rows directly in the repository for test setup."""

    def __init__(self, repository: InMemoryBillingRepository):
        self.repository = repository
        self.payer_id = uuid4()
        self.client_id = uuid4()
        self.program_id = uuid4()
        self._claim_numbers = count(1)

    async def authorization(
        self,
        client_id: Optional[UUID] = None,
        authorized_units: Decimal = Decimal("100"),
        used_units: Decimal = Decimal("0"),
        service_type_codes: tuple[str, ...] = ("T1019",),
        start_date: date = date(2025, 1, 1),
        end_date: date = date(2025, 12, 31),
        status: AuthorizationStatus = AuthorizationStatus.ACTIVE,
    ) -> Authorization:
        auth = Authorization(
            id=uuid4(),
            authorization_number=f"AUTH-{uuid4().hex[:8].upper()}",
            client_id=client_id or self.client_id,
            payer_id=self.payer_id,
            program_id=self.program_id,
            service_type_codes=list(service_type_codes),
            start_date=start_date,
            end_date=end_date,
            authorized_units=authorized_units,
            used_units=used_units,
            status=status,
        )
        return await self.repository.add(auth)

    async def service(
        self,
        authorization: Optional[Authorization] = None,
        client_id: Optional[UUID] = None,
        service_date: date = date(2025, 6, 1),
        units: Decimal = Decimal("4"),
        rate: Decimal = Decimal("25.00"),
        amount: Optional[Decimal] = None,
        service_type_code: str = "T1019",
        documentation_status: DocumentationStatus = DocumentationStatus.COMPLETE,
        missing_documentation: Optional[list[str]] = None,
        billing_status: BillingStatus = BillingStatus.UNBILLED,
    ) -> Service:
        service = Service(
            id=uuid4(),
            client_id=client_id or self.client_id,
            program_id=self.program_id,
            caregiver_id=uuid4(),
            authorization_id=authorization.id if authorization is not None else None,
            service_type_code=service_type_code,
            service_date=service_date,
            units=units,
            rate=rate,
            amount=amount if amount is not None else line_amount(units, rate),
            documentation_status=documentation_status,
            missing_documentation=missing_documentation or [],
            billing_status=billing_status,
        )
        return await self.repository.add(service)

    async def claim(
        self,
        status: ClaimStatus = ClaimStatus.PENDING,
        total_amount: Decimal = Decimal("500.00"),
        payer_id: Optional[UUID] = None,
        service_start_date: date = date(2025, 5, 1),
        service_end_date: date = date(2025, 5, 31),
        submission_date: Optional[date] = date(2025, 5, 31),
        adjudication_date: Optional[date] = None,
        external_claim_id: Optional[str] = None,
    ) -> Claim:
        """A claim without services, already in the given status."""
        claim = Claim(
            id=uuid4(),
            claim_number=f"CLM-TEST-{next(self._claim_numbers):06d}",
            client_id=self.client_id,
            payer_id=payer_id or self.payer_id,
            program_id=self.program_id,
            status=status,
            total_amount=total_amount,
            service_start_date=service_start_date,
            service_end_date=service_end_date,
            submission_date=submission_date,
            adjudication_date=adjudication_date,
            external_claim_id=external_claim_id,
        )
        return await self.repository.add(claim)

    async def payment(
        self,
        amount: Decimal = Decimal("500.00"),
        payer_id: Optional[UUID] = None,
        payment_date: date = BUSINESS_DATE,
        reference_number: Optional[str] = None,
        service_period_start: Optional[date] = None,
        service_period_end: Optional[date] = None,
        status: ReconciliationStatus = ReconciliationStatus.UNRECONCILED,
    ) -> Payment:
        payment = Payment(
            id=uuid4(),
            payer_id=payer_id or self.payer_id,
            payment_date=payment_date,
            amount=amount,
            method=PaymentMethod.EFT,
            reference_number=reference_number or f"EFT-{uuid4().hex[:8].upper()}",
            reconciliation_status=status,
            service_period_start=service_period_start,
            service_period_end=service_period_end,
        )
        return await self.repository.add(payment)


@pytest.fixture
def settings():
    """Default billing settings, ignoring any local .env file."""
    return BillingSettings(_env_file=None)


@pytest.fixture
def repository():
    """Fresh in-memory repository per test."""
    return InMemoryBillingRepository()


@pytest.fixture
def billing(repository, settings) -> BillingServices:
    """All core services wired to the test repository."""
    return build_billing_services(repository, settings)


@pytest.fixture
def ctx():
    """Operation context for a user on the fixed business date."""
    return OperationContext(user_id=uuid4(), business_date=BUSINESS_DATE)


@pytest.fixture
def seed(repository) -> BillingSeeder:
    return BillingSeeder(repository)


@pytest.fixture
def business_date():
    return BUSINESS_DATE


@pytest.fixture
def days_ago():
    """Date helper relative to the business date."""

    def _days_ago(days: int) -> date:
        return BUSINESS_DATE - timedelta(days=days)

    return _days_ago


# Configure pytest markers
def pytest_configure(config):
    """Configure pytest markers."""
    config.addinivalue_line(
        "markers", "unit: mark test as a unit test"
    )
    config.addinivalue_line(
        "markers", "integration: mark test as an integration test"
    )
    config.addinivalue_line(
        "markers", "api: mark test as an API test"
    )
    config.addinivalue_line(
        "markers", "slow: mark test as slow running"
    )
