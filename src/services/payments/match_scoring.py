"""
Payment-to-Claim Match Scoring.

Pure scoring over (payment, candidate claim, optional remittance line);
no database access.

Signals:
- reference: remittance line names the claim (near-certain, score 1.0)
- amount: payment or line amount against the claim's outstanding balance
- date_overlap: reported service dates against the claim's service range
- age: time from submission to payment against typical payer turnaround
"""

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Any, Optional

from src.core.config import BillingSettings
from src.schemas.payment import MatchScore
from src.utils.money import to_money


@dataclass(frozen=True)
class MatchWeights:
    """Signal weights and thresholds for composite scoring."""

    amount: float = 0.6
    date_overlap: float = 0.2
    age: float = 0.2
    near_amount_ratio: float = 0.10
    tolerance: Decimal = Decimal("0.01")

    # Partial credit when a claim fits inside a multi-claim payment
    FITS_WITHIN_PAYMENT = 0.3
    # Date signal when no service period is reported
    UNKNOWN_PERIOD = 0.5

    @classmethod
    def from_settings(cls, settings: BillingSettings) -> "MatchWeights":
        return cls(
            amount=settings.MATCH_WEIGHT_AMOUNT,
            date_overlap=settings.MATCH_WEIGHT_DATE_OVERLAP,
            age=settings.MATCH_WEIGHT_AGE,
            near_amount_ratio=settings.NEAR_AMOUNT_RATIO,
            tolerance=settings.PAYMENT_ROUNDING_TOLERANCE,
        )


def references_claim(detail: Any, claim: Any) -> bool:
    """True when a remittance line carries the claim's id or number."""
    if detail is None:
        return False
    if detail.claim_id is not None and detail.claim_id == claim.id:
        return True
    number = (detail.claim_number or "").strip()
    if not number:
        return False
    return number == claim.claim_number or number == (claim.external_claim_id or "")


def _amount_signal(
    target: Decimal, outstanding: Decimal, weights: MatchWeights
) -> tuple[float, str]:
    if outstanding <= 0:
        return 0.0, "Claim has no outstanding balance"
    difference = abs(target - outstanding)
    if difference < weights.tolerance:
        return 1.0, "Exact outstanding balance match"
    ratio = float(difference / outstanding)
    if ratio <= weights.near_amount_ratio:
        return (
            1.0 - 0.5 * (ratio / weights.near_amount_ratio),
            f"Outstanding balance within {ratio:.0%} of payment",
        )
    if outstanding < target:
        return weights.FITS_WITHIN_PAYMENT, "Outstanding balance fits within payment"
    return 0.0, "Amount does not match"


def _date_signal(
    payment: Any, claim: Any, detail: Any, weights: MatchWeights
) -> tuple[float, str]:
    period: Optional[tuple[date, date]] = None
    if detail is not None and detail.service_date is not None:
        period = (detail.service_date, detail.service_date)
    elif payment.service_period_start is not None and payment.service_period_end is not None:
        period = (payment.service_period_start, payment.service_period_end)

    if period is None:
        if claim.service_end_date <= payment.payment_date:
            return weights.UNKNOWN_PERIOD, "Service dates precede payment"
        return 0.0, "Service dates after payment"

    start, end = period
    if start <= claim.service_end_date and claim.service_start_date <= end:
        return 1.0, "Service dates overlap reported period"
    return 0.0, "Service dates outside reported period"


def _age_signal(payment: Any, claim: Any, turnaround_days: int) -> tuple[float, str]:
    anchor = claim.submission_date or claim.service_end_date
    elapsed = (payment.payment_date - anchor).days
    if elapsed < 0:
        return 0.0, "Payment precedes claim"
    proximity = max(0.0, 1.0 - abs(elapsed - turnaround_days) / (2 * turnaround_days))
    return proximity, f"Claim age {elapsed} days vs {turnaround_days}-day payer turnaround"


def score_claim_match(
    payment: Any,
    claim: Any,
    outstanding: Decimal,
    remittance_detail: Any = None,
    available_amount: Optional[Decimal] = None,
    turnaround_days: int = 30,
    weights: Optional[MatchWeights] = None,
) -> MatchScore:
    """
    Score how well a claim explains a payment (or remittance line).

    Args:
        payment: Payment-like object (amount, payment_date, service period)
        claim: Claim-like object
        outstanding: Claim total minus amounts already paid
        remittance_detail: Remittance line being matched, if any
        available_amount: Unallocated part of the payment
        turnaround_days: Typical payer turnaround
        weights: Signal weights

    Returns:
        MatchScore with composite score in [0, 1] and the dominant reason
    """
    weights = weights or MatchWeights()
    outstanding = to_money(outstanding)

    if references_claim(remittance_detail, claim):
        target = to_money(remittance_detail.paid_amount)
        return MatchScore(
            score=1.0,
            reason=f"Remittance line references claim {claim.claim_number}",
            signals={"reference": 1.0},
            amount_difference=abs(target - outstanding),
        )

    if remittance_detail is not None:
        target = to_money(remittance_detail.paid_amount)
    elif available_amount is not None:
        target = to_money(available_amount)
    else:
        target = to_money(payment.amount)

    amount, amount_reason = _amount_signal(target, outstanding, weights)
    overlap, overlap_reason = _date_signal(payment, claim, remittance_detail, weights)
    age, age_reason = _age_signal(payment, claim, turnaround_days)

    contributions = [
        (weights.amount * amount, amount_reason),
        (weights.date_overlap * overlap, overlap_reason),
        (weights.age * age, age_reason),
    ]
    total_weight = weights.amount + weights.date_overlap + weights.age
    score = sum(c for c, _ in contributions) / total_weight if total_weight else 0.0
    dominant = max(contributions, key=lambda c: c[0])

    return MatchScore(
        score=round(min(max(score, 0.0), 1.0), 4),
        reason=dominant[1],
        signals={
            "amount": round(amount, 4),
            "date_overlap": round(overlap, 4),
            "age": round(age, 4),
        },
        amount_difference=abs(target - outstanding),
    )
