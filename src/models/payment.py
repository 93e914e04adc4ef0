"""
Payment Models for Reconciliation.

Provides:
- Payment: money received from a payer
- ClaimPayment: the portion of a payment applied to one claim
- PaymentAdjustment: adjustments recorded within a claim payment
- ReconciliationAction: one reconcile call, kept so it can be undone
"""

from datetime import date, datetime
from decimal import Decimal
from typing import Optional
from uuid import UUID

from sqlalchemy import (
    Boolean,
    Date,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    String,
    Text,
)
from sqlalchemy.dialects.postgresql import JSONB, UUID as PG_UUID
from sqlalchemy.orm import Mapped, mapped_column

from src.core.enums import (
    AdjustmentType,
    PaymentMethod,
    ReconciliationActionType,
    ReconciliationStatus,
)
from src.models.base import Base, Money, TimeStampedModel, UUIDModel, utcnow


class Payment(Base, UUIDModel, TimeStampedModel):
    """
    Money received from a payer.

    Created UNRECONCILED; reconciliation_status changes only through the
    reconciliation engine.
    """

    __tablename__ = "payments"

    tenant_id: Mapped[Optional[UUID]] = mapped_column(
        PG_UUID(as_uuid=True),
        nullable=True,
        index=True,
    )
    payer_id: Mapped[UUID] = mapped_column(PG_UUID(as_uuid=True), nullable=False, index=True)
    payment_date: Mapped[date] = mapped_column(Date, nullable=False, index=True)
    amount: Mapped[Decimal] = mapped_column(Money, nullable=False)
    method: Mapped[PaymentMethod] = mapped_column(Enum(PaymentMethod), nullable=False)
    reference_number: Mapped[Optional[str]] = mapped_column(
        String(100),
        nullable=True,
        comment="Check number or EFT trace number",
    )
    reconciliation_status: Mapped[ReconciliationStatus] = mapped_column(
        Enum(ReconciliationStatus),
        nullable=False,
        default=ReconciliationStatus.UNRECONCILED,
        index=True,
    )
    remittance_id: Mapped[Optional[UUID]] = mapped_column(
        PG_UUID(as_uuid=True),
        ForeignKey("remittances.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )

    # Period the payer reports the payment covers (matching signal)
    service_period_start: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    service_period_end: Mapped[Optional[date]] = mapped_column(Date, nullable=True)

    reconciled_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    reconciled_by: Mapped[Optional[UUID]] = mapped_column(PG_UUID(as_uuid=True), nullable=True)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_by: Mapped[Optional[UUID]] = mapped_column(PG_UUID(as_uuid=True), nullable=True)

    __table_args__ = (
        Index("ix_payments_payer_status", "payer_id", "reconciliation_status"),
    )

    def __repr__(self) -> str:
        return f"<Payment(id={self.id}, amount={self.amount}, status={self.reconciliation_status})>"


class ReconciliationAction(Base, UUIDModel):
    """
    Audit record of one reconciliation call on a payment.

    Stores what the claims and the payment looked like before the call
    so the most recent action can be reversed.
    """

    __tablename__ = "reconciliation_actions"

    payment_id: Mapped[UUID] = mapped_column(
        PG_UUID(as_uuid=True),
        ForeignKey("payments.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    action_type: Mapped[ReconciliationActionType] = mapped_column(
        Enum(ReconciliationActionType),
        nullable=False,
    )
    performed_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        nullable=False,
    )
    performed_by: Mapped[Optional[UUID]] = mapped_column(PG_UUID(as_uuid=True), nullable=True)
    request_fingerprint: Mapped[str] = mapped_column(
        String(64),
        nullable=False,
        comment="SHA-256 of the normalized request, for duplicate detection",
    )
    prior_payment_status: Mapped[ReconciliationStatus] = mapped_column(
        Enum(ReconciliationStatus),
        nullable=False,
    )
    resulting_status: Mapped[ReconciliationStatus] = mapped_column(
        Enum(ReconciliationStatus),
        nullable=False,
    )
    # {claim_id: {"status", "adjudication_date", "denial_reason"}}
    prior_claim_states: Mapped[dict] = mapped_column(JSONB, nullable=False, default=dict)

    undone: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    undone_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    undone_by: Mapped[Optional[UUID]] = mapped_column(PG_UUID(as_uuid=True), nullable=True)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    __table_args__ = (
        Index("ix_reconciliation_actions_payment_performed", "payment_id", "performed_at"),
    )

    def __repr__(self) -> str:
        return f"<ReconciliationAction(payment_id={self.payment_id}, type={self.action_type}, undone={self.undone})>"


class ClaimPayment(Base, UUIDModel, TimeStampedModel):
    """Portion of a payment applied to a claim."""

    __tablename__ = "claim_payments"

    payment_id: Mapped[UUID] = mapped_column(
        PG_UUID(as_uuid=True),
        ForeignKey("payments.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    claim_id: Mapped[UUID] = mapped_column(
        PG_UUID(as_uuid=True),
        ForeignKey("claims.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    reconciliation_action_id: Mapped[Optional[UUID]] = mapped_column(
        PG_UUID(as_uuid=True),
        ForeignKey("reconciliation_actions.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    remittance_line_id: Mapped[Optional[UUID]] = mapped_column(
        PG_UUID(as_uuid=True),
        ForeignKey("remittance_lines.id", ondelete="SET NULL"),
        nullable=True,
    )
    paid_amount: Mapped[Decimal] = mapped_column(Money, nullable=False)
    applied_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        nullable=False,
    )
    applied_by: Mapped[Optional[UUID]] = mapped_column(PG_UUID(as_uuid=True), nullable=True)

    def __repr__(self) -> str:
        return f"<ClaimPayment(claim_id={self.claim_id}, paid={self.paid_amount})>"


class PaymentAdjustment(Base, UUIDModel):
    """Adjustment recorded against a claim payment (CARC-style code)."""

    __tablename__ = "payment_adjustments"

    claim_payment_id: Mapped[UUID] = mapped_column(
        PG_UUID(as_uuid=True),
        ForeignKey("claim_payments.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    adjustment_type: Mapped[AdjustmentType] = mapped_column(Enum(AdjustmentType), nullable=False)
    code: Mapped[str] = mapped_column(String(20), nullable=False, index=True)
    amount: Mapped[Decimal] = mapped_column(Money, nullable=False)
    description: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    def __repr__(self) -> str:
        return f"<PaymentAdjustment({self.adjustment_type} {self.code} {self.amount})>"
