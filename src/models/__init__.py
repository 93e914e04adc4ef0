"""
SQLAlchemy Models for the HCBS Revenue Cycle Core.

This module exports all database models for the application.
"""

from src.models.base import Base, TimeStampedModel, UUIDModel
from src.models.service import Authorization, Service
from src.models.claim import Claim, ClaimStatusHistory
from src.models.remittance import Remittance, RemittanceLine
from src.models.payment import (
    ClaimPayment,
    Payment,
    PaymentAdjustment,
    ReconciliationAction,
)

__all__ = [
    "Base",
    "TimeStampedModel",
    "UUIDModel",
    "Authorization",
    "Service",
    "Claim",
    "ClaimStatusHistory",
    "Remittance",
    "RemittanceLine",
    "Payment",
    "ClaimPayment",
    "PaymentAdjustment",
    "ReconciliationAction",
]
