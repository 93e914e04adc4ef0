"""
Service and Authorization Models for HCBS Billing.

A Service is one billable unit of delivered care; an Authorization is
the payer-granted allowance it draws units from.
"""

from datetime import date
from decimal import Decimal
from typing import Optional
from uuid import UUID

from sqlalchemy import (
    CheckConstraint,
    Date,
    Enum,
    ForeignKey,
    Index,
    String,
    Text,
)
from sqlalchemy.dialects.postgresql import ARRAY, UUID as PG_UUID
from sqlalchemy.orm import Mapped, mapped_column

from src.core.enums import AuthorizationStatus, BillingStatus, DocumentationStatus
from src.models.base import Base, Money, TimeStampedModel, Units, UUIDModel


class Authorization(Base, UUIDModel, TimeStampedModel):
    """
    Payer authorization to bill up to N units of covered service types
    within a date range.

    used_units never exceeds authorized_units; the conversion flow
    reserves units and a claim void releases them.
    """

    __tablename__ = "authorizations"

    tenant_id: Mapped[Optional[UUID]] = mapped_column(
        PG_UUID(as_uuid=True),
        nullable=True,
        index=True,
        comment="Owning tenant ID",
    )
    authorization_number: Mapped[str] = mapped_column(
        String(50),
        nullable=False,
        index=True,
        comment="Payer-issued authorization number",
    )
    client_id: Mapped[UUID] = mapped_column(
        PG_UUID(as_uuid=True),
        nullable=False,
        index=True,
        comment="Authorized client",
    )
    payer_id: Mapped[Optional[UUID]] = mapped_column(
        PG_UUID(as_uuid=True),
        nullable=True,
        index=True,
    )
    program_id: Mapped[Optional[UUID]] = mapped_column(
        PG_UUID(as_uuid=True),
        nullable=True,
        index=True,
    )
    service_type_codes: Mapped[list[str]] = mapped_column(
        ARRAY(String(20)),
        nullable=False,
        default=list,
        comment="Covered service type codes (e.g., T1019, S5125)",
    )
    start_date: Mapped[date] = mapped_column(Date, nullable=False)
    end_date: Mapped[date] = mapped_column(Date, nullable=False)
    authorized_units: Mapped[Decimal] = mapped_column(Units, nullable=False)
    used_units: Mapped[Decimal] = mapped_column(
        Units,
        nullable=False,
        default=Decimal("0"),
    )
    status: Mapped[AuthorizationStatus] = mapped_column(
        Enum(AuthorizationStatus),
        nullable=False,
        default=AuthorizationStatus.DRAFT,
        index=True,
    )
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    __table_args__ = (
        CheckConstraint("used_units >= 0", name="ck_authorizations_used_nonneg"),
        CheckConstraint(
            "used_units <= authorized_units", name="ck_authorizations_used_le_authorized"
        ),
        Index("ix_authorizations_client_dates", "client_id", "start_date", "end_date"),
    )

    @property
    def remaining_units(self) -> Decimal:
        return Decimal(self.authorized_units) - Decimal(self.used_units or 0)

    def covers(self, service_type_code: str) -> bool:
        return service_type_code in (self.service_type_codes or [])

    def __repr__(self) -> str:
        return (
            f"<Authorization(number={self.authorization_number}, "
            f"used={self.used_units}/{self.authorized_units}, status={self.status})>"
        )


class Service(Base, UUIDModel, TimeStampedModel):
    """
    A delivered, billable unit of care.

    amount = units x rate. claim_id is set while the service belongs to
    a claim (billing status IN_CLAIM, BILLED, PAID or DENIED).
    """

    __tablename__ = "services"

    tenant_id: Mapped[Optional[UUID]] = mapped_column(
        PG_UUID(as_uuid=True),
        nullable=True,
        index=True,
    )
    client_id: Mapped[UUID] = mapped_column(
        PG_UUID(as_uuid=True),
        nullable=False,
        index=True,
    )
    program_id: Mapped[Optional[UUID]] = mapped_column(
        PG_UUID(as_uuid=True),
        nullable=True,
        index=True,
    )
    caregiver_id: Mapped[Optional[UUID]] = mapped_column(
        PG_UUID(as_uuid=True),
        nullable=True,
    )
    authorization_id: Mapped[Optional[UUID]] = mapped_column(
        PG_UUID(as_uuid=True),
        ForeignKey("authorizations.id", ondelete="RESTRICT"),
        nullable=True,
        index=True,
    )
    service_type_code: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        comment="Billing code of the service type",
    )
    service_date: Mapped[date] = mapped_column(Date, nullable=False, index=True)
    units: Mapped[Decimal] = mapped_column(Units, nullable=False)
    rate: Mapped[Decimal] = mapped_column(Money, nullable=False)
    amount: Mapped[Decimal] = mapped_column(Money, nullable=False)

    documentation_status: Mapped[DocumentationStatus] = mapped_column(
        Enum(DocumentationStatus),
        nullable=False,
        default=DocumentationStatus.INCOMPLETE,
    )
    missing_documentation: Mapped[list[str]] = mapped_column(
        ARRAY(String(100)),
        nullable=False,
        default=list,
        comment="Outstanding documentation items",
    )
    billing_status: Mapped[BillingStatus] = mapped_column(
        Enum(BillingStatus),
        nullable=False,
        default=BillingStatus.UNBILLED,
        index=True,
    )
    claim_id: Mapped[Optional[UUID]] = mapped_column(
        PG_UUID(as_uuid=True),
        ForeignKey("claims.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    __table_args__ = (
        Index("ix_services_client_date_type", "client_id", "service_date", "service_type_code"),
    )

    def __repr__(self) -> str:
        return (
            f"<Service(id={self.id}, date={self.service_date}, "
            f"amount={self.amount}, billing={self.billing_status})>"
        )
