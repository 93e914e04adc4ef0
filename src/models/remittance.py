"""
Remittance Models.

Persisted copy of an imported remittance advice (835-style) and its
claim-level detail lines.
"""

from datetime import date
from decimal import Decimal
from typing import Optional
from uuid import UUID

from sqlalchemy import Date, Float, ForeignKey, Integer, String
from sqlalchemy.dialects.postgresql import ARRAY, UUID as PG_UUID
from sqlalchemy.orm import Mapped, mapped_column

from src.models.base import Base, Money, TimeStampedModel, UUIDModel


class Remittance(Base, UUIDModel, TimeStampedModel):
    """Remittance advice header."""

    __tablename__ = "remittances"

    remittance_number: Mapped[str] = mapped_column(String(50), nullable=False, index=True)
    remittance_date: Mapped[date] = mapped_column(Date, nullable=False)
    payer_id: Mapped[UUID] = mapped_column(PG_UUID(as_uuid=True), nullable=False, index=True)
    payer_identifier: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    payer_name: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    total_amount: Mapped[Decimal] = mapped_column(Money, nullable=False)
    claim_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    file_type: Mapped[str] = mapped_column(String(20), nullable=False, default="835")

    def __repr__(self) -> str:
        return f"<Remittance(number={self.remittance_number}, total={self.total_amount})>"


class RemittanceLine(Base, UUIDModel):
    """One claim-level line of a remittance."""

    __tablename__ = "remittance_lines"

    remittance_id: Mapped[UUID] = mapped_column(
        PG_UUID(as_uuid=True),
        ForeignKey("remittances.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    line_number: Mapped[int] = mapped_column(Integer, nullable=False)
    claim_number: Mapped[Optional[str]] = mapped_column(String(50), nullable=True, index=True)
    claim_id: Mapped[Optional[UUID]] = mapped_column(
        PG_UUID(as_uuid=True),
        nullable=True,
        comment="Claim id reported by the payer, if any",
    )
    service_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    billed_amount: Mapped[Decimal] = mapped_column(Money, nullable=False)
    paid_amount: Mapped[Decimal] = mapped_column(Money, nullable=False)
    adjustment_amount: Mapped[Decimal] = mapped_column(Money, nullable=False, default=Decimal("0"))
    adjustment_codes: Mapped[list[str]] = mapped_column(ARRAY(String(20)), nullable=False, default=list)

    # Matching outcome
    matched_claim_id: Mapped[Optional[UUID]] = mapped_column(
        PG_UUID(as_uuid=True),
        ForeignKey("claims.id", ondelete="SET NULL"),
        nullable=True,
    )
    match_score: Mapped[Optional[float]] = mapped_column(Float, nullable=True)

    def __repr__(self) -> str:
        return f"<RemittanceLine(claim_number={self.claim_number}, paid={self.paid_amount})>"
