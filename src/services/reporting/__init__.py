"""Accounts-receivable reporting."""

from src.services.reporting.aging import AgingCalculator, bucket_for_age

__all__ = ["AgingCalculator", "bucket_for_age"]
