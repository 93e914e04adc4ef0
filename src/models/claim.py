"""
Claim Model for HCBS Billing.

A claim bundles services for one client into a billing request to a
payer. total_amount always equals the sum of its services' amounts.
"""

from datetime import date, datetime
from decimal import Decimal
from typing import Optional
from uuid import UUID

from sqlalchemy import (
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

from src.core.enums import ClaimStatus, ClaimType, SubmissionMethod, TransitionSource
from src.models.base import Base, Money, TimeStampedModel, UUIDModel, utcnow


class Claim(Base, UUIDModel, TimeStampedModel):
    """
    Billing claim to a payer.

    Status changes only along the lifecycle graph in
    src.services.claims.claim_state_machine.
    """

    __tablename__ = "claims"

    tenant_id: Mapped[Optional[UUID]] = mapped_column(
        PG_UUID(as_uuid=True),
        nullable=True,
        index=True,
    )

    # Claim Identification
    claim_number: Mapped[str] = mapped_column(
        String(50),
        unique=True,
        nullable=False,
        index=True,
        comment="Human-readable claim number (e.g., CLM-2025-000001)",
    )
    external_claim_id: Mapped[Optional[str]] = mapped_column(
        String(100),
        nullable=True,
        index=True,
        comment="Payer/clearinghouse claim control number",
    )
    claim_type: Mapped[ClaimType] = mapped_column(
        Enum(ClaimType),
        nullable=False,
        default=ClaimType.ORIGINAL,
    )

    # Parties
    client_id: Mapped[UUID] = mapped_column(PG_UUID(as_uuid=True), nullable=False, index=True)
    payer_id: Mapped[UUID] = mapped_column(PG_UUID(as_uuid=True), nullable=False, index=True)
    program_id: Mapped[Optional[UUID]] = mapped_column(
        PG_UUID(as_uuid=True),
        nullable=True,
        index=True,
        comment="Set when every service on the claim shares one program",
    )

    # Status
    status: Mapped[ClaimStatus] = mapped_column(
        Enum(ClaimStatus),
        default=ClaimStatus.DRAFT,
        nullable=False,
        index=True,
    )

    # Amounts & Dates
    total_amount: Mapped[Decimal] = mapped_column(Money, nullable=False)
    service_start_date: Mapped[date] = mapped_column(Date, nullable=False)
    service_end_date: Mapped[date] = mapped_column(Date, nullable=False, index=True)
    submission_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    submission_method: Mapped[Optional[SubmissionMethod]] = mapped_column(
        Enum(SubmissionMethod),
        nullable=True,
    )
    adjudication_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    denial_reason: Mapped[Optional[str]] = mapped_column(
        String(100),
        nullable=True,
        comment="Denial reason or dominant denial adjustment code",
    )
    appeal_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)

    # Resubmission chain
    original_claim_id: Mapped[Optional[UUID]] = mapped_column(
        PG_UUID(as_uuid=True),
        ForeignKey("claims.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
        comment="Claim this one replaces or adjusts",
    )

    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_by: Mapped[Optional[UUID]] = mapped_column(PG_UUID(as_uuid=True), nullable=True)
    updated_by: Mapped[Optional[UUID]] = mapped_column(PG_UUID(as_uuid=True), nullable=True)

    __table_args__ = (
        Index("ix_claims_payer_status", "payer_id", "status"),
        Index("ix_claims_client_status", "client_id", "status"),
    )

    def __repr__(self) -> str:
        return f"<Claim(claim_number={self.claim_number}, status={self.status}, total={self.total_amount})>"


class ClaimStatusHistory(Base, UUIDModel):
    """
    Status change history for a claim.

    Provides complete audit trail of claim status changes.
    """

    __tablename__ = "claim_status_history"

    claim_id: Mapped[UUID] = mapped_column(
        PG_UUID(as_uuid=True),
        ForeignKey("claims.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    # Status Change
    previous_status: Mapped[Optional[ClaimStatus]] = mapped_column(
        Enum(ClaimStatus),
        nullable=True,
        comment="Previous status (null on creation)",
    )
    new_status: Mapped[ClaimStatus] = mapped_column(Enum(ClaimStatus), nullable=False)
    changed_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        nullable=False,
        index=True,
    )

    # Actor
    changed_by: Mapped[Optional[UUID]] = mapped_column(PG_UUID(as_uuid=True), nullable=True)
    actor_type: Mapped[str] = mapped_column(
        String(20),
        default="system",
        nullable=False,
        comment="Actor type: system, user",
    )
    source: Mapped[TransitionSource] = mapped_column(
        Enum(TransitionSource),
        nullable=False,
        default=TransitionSource.USER,
    )

    # Details
    reason: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    details: Mapped[Optional[dict]] = mapped_column(JSONB, nullable=True)

    __table_args__ = (
        Index("ix_claim_status_history_claim_changed", "claim_id", "changed_at"),
    )

    def __repr__(self) -> str:
        return f"<ClaimStatusHistory(claim_id={self.claim_id}, {self.previous_status} -> {self.new_status})>"
