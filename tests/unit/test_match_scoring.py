"""
Match Scoring Tests.

Tests for:
- Reference matches from remittance lines
- Amount, date-overlap and age signals
- Weighted composite score
"""

from datetime import date
from decimal import Decimal
from types import SimpleNamespace
from uuid import uuid4

import pytest

from src.core.config import BillingSettings
from src.services.payments.match_scoring import (
    MatchWeights,
    references_claim,
    score_claim_match,
)


def _payment(amount="100.00", payment_date=date(2025, 6, 30), start=None, end=None):
    return SimpleNamespace(
        amount=Decimal(amount),
        payment_date=payment_date,
        service_period_start=start,
        service_period_end=end,
    )


def _claim(
    submission_date=date(2025, 5, 31),
    start=date(2025, 5, 1),
    end=date(2025, 5, 31),
    claim_number="CLM-2025-000001",
    external_claim_id=None,
):
    return SimpleNamespace(
        id=uuid4(),
        claim_number=claim_number,
        external_claim_id=external_claim_id,
        service_start_date=start,
        service_end_date=end,
        submission_date=submission_date,
    )


def _line(claim_id=None, claim_number=None, paid="100.00", service_date=None):
    return SimpleNamespace(
        claim_id=claim_id,
        claim_number=claim_number,
        paid_amount=Decimal(paid),
        service_date=service_date,
    )


@pytest.mark.unit
class TestReferenceMatch:
    """Remittance lines naming the claim."""

    def test_claim_id_reference(self):
        claim = _claim()
        score = score_claim_match(
            _payment(), claim, Decimal("500.00"), remittance_detail=_line(claim_id=claim.id)
        )

        assert score.score == 1.0
        assert score.signals == {"reference": 1.0}
        assert score.amount_difference == Decimal("400.00")

    def test_claim_number_reference(self):
        claim = _claim()

        assert references_claim(_line(claim_number=" CLM-2025-000001 "), claim)

    def test_external_claim_id_reference(self):
        claim = _claim(external_claim_id="ICN-42")

        assert references_claim(_line(claim_number="ICN-42"), claim)

    def test_no_reference(self):
        assert not references_claim(None, _claim())
        assert not references_claim(_line(claim_number=""), _claim())
        assert not references_claim(_line(claim_number="OTHER"), _claim())


@pytest.mark.unit
class TestSignals:
    """Individual scoring signals."""

    def test_perfect_match(self):
        """Exact amount, overlapping period, paid at typical turnaround."""
        score = score_claim_match(
            _payment(start=date(2025, 5, 1), end=date(2025, 5, 31)),
            _claim(),
            Decimal("100.00"),
            turnaround_days=30,
        )

        assert score.signals == {"amount": 1.0, "date_overlap": 1.0, "age": 1.0}
        assert score.score == 1.0
        assert score.amount_difference == Decimal("0.00")

    def test_near_amount(self):
        score = score_claim_match(_payment(amount="95.00"), _claim(), Decimal("100.00"))

        assert score.signals["amount"] == 0.75

    def test_outstanding_fits_within_payment(self):
        score = score_claim_match(_payment(amount="200.00"), _claim(), Decimal("50.00"))

        assert score.signals["amount"] == MatchWeights.FITS_WITHIN_PAYMENT

    def test_amount_mismatch(self):
        score = score_claim_match(_payment(amount="100.00"), _claim(), Decimal("500.00"))

        assert score.signals["amount"] == 0.0

    def test_available_amount_overrides_payment_amount(self):
        score = score_claim_match(
            _payment(amount="1000.00"),
            _claim(),
            Decimal("100.00"),
            available_amount=Decimal("100.00"),
        )

        assert score.signals["amount"] == 1.0

    def test_unknown_period_before_payment(self):
        score = score_claim_match(_payment(), _claim(), Decimal("100.00"))

        assert score.signals["date_overlap"] == MatchWeights.UNKNOWN_PERIOD

    def test_period_outside_claim_dates(self):
        score = score_claim_match(
            _payment(start=date(2025, 3, 1), end=date(2025, 3, 31)),
            _claim(),
            Decimal("100.00"),
        )

        assert score.signals["date_overlap"] == 0.0

    def test_line_service_date_overlap(self):
        score = score_claim_match(
            _payment(),
            _claim(),
            Decimal("100.00"),
            remittance_detail=_line(service_date=date(2025, 5, 15)),
        )

        assert score.signals["date_overlap"] == 1.0

    @pytest.mark.parametrize(
        "payment_date,expected",
        [
            (date(2025, 6, 30), 1.0),
            (date(2025, 7, 30), 0.5),
            (date(2025, 8, 29), 0.0),
            (date(2025, 5, 1), 0.0),
        ],
    )
    def test_age_signal(self, payment_date, expected):
        score = score_claim_match(
            _payment(payment_date=payment_date), _claim(), Decimal("100.00"), turnaround_days=30
        )

        assert score.signals["age"] == expected

    def test_age_falls_back_to_service_end(self):
        score = score_claim_match(
            _payment(), _claim(submission_date=None), Decimal("100.00"), turnaround_days=30
        )

        assert score.signals["age"] == 1.0


@pytest.mark.unit
class TestCompositeScore:
    def test_weighted_average(self):
        """0.6 x 0.75 + 0.2 x 0.5 + 0.2 x 0.5 = 0.65."""
        score = score_claim_match(
            _payment(amount="95.00", payment_date=date(2025, 7, 30)),
            _claim(),
            Decimal("100.00"),
            turnaround_days=30,
        )

        assert score.score == 0.65

    def test_no_outstanding_balance(self):
        score = score_claim_match(_payment(), _claim(), Decimal("0.00"))

        assert score.signals["amount"] == 0.0
        assert score.score < 0.5

    def test_custom_weights(self):
        weights = MatchWeights(amount=1.0, date_overlap=0.0, age=0.0)
        score = score_claim_match(
            _payment(amount="95.00"), _claim(), Decimal("100.00"), weights=weights
        )

        assert score.score == 0.75
        assert score.reason.startswith("Outstanding balance within")

    def test_weights_from_settings(self):
        settings = BillingSettings(
            _env_file=None, MATCH_WEIGHT_AMOUNT=0.5, NEAR_AMOUNT_RATIO=0.2
        )

        weights = MatchWeights.from_settings(settings)

        assert weights.amount == 0.5
        assert weights.near_amount_ratio == 0.2
        assert weights.tolerance == Decimal("0.01")
