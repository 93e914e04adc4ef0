"""
Payments and Reconciliation.

Provides:
- Payment-to-claim match scoring and suggestions
- Manual, automatic and batch reconciliation with undo
- Remittance import
- Adjustment and denial analysis
"""

from src.services.payments.adjustment_tracking import AdjustmentAnalyzer
from src.services.payments.match_scoring import MatchWeights, score_claim_match
from src.services.payments.payment_matcher import PaymentMatcher, paid_to_date
from src.services.payments.reconciliation import ReconciliationEngine, request_fingerprint
from src.services.payments.remittance_processing import RemittanceProcessor

__all__ = [
    "AdjustmentAnalyzer",
    "MatchWeights",
    "score_claim_match",
    "PaymentMatcher",
    "paid_to_date",
    "ReconciliationEngine",
    "request_fingerprint",
    "RemittanceProcessor",
]
