"""
Services Layer for the HCBS Billing Core.

BillingServices wires every core service to one repository and one
settings object.
"""

from dataclasses import dataclass
from typing import Optional

from src.core.config import BillingSettings, get_billing_settings
from src.db.repositories.base import BillingRepository
from src.services.billing import ServiceValidator
from src.services.billing.service_to_claim import ClaimConversionService
from src.services.claims import ClaimLifecycleService
from src.services.payments import (
    AdjustmentAnalyzer,
    PaymentMatcher,
    ReconciliationEngine,
    RemittanceProcessor,
)
from src.services.reporting import AgingCalculator


@dataclass
class BillingServices:
    """All core services sharing one repository."""

    repository: BillingRepository
    settings: BillingSettings
    validator: ServiceValidator
    lifecycle: ClaimLifecycleService
    conversion: ClaimConversionService
    matcher: PaymentMatcher
    reconciliation: ReconciliationEngine
    remittances: RemittanceProcessor
    adjustments: AdjustmentAnalyzer
    aging: AgingCalculator


def build_billing_services(
    repository: BillingRepository,
    settings: Optional[BillingSettings] = None,
) -> BillingServices:
    settings = settings or get_billing_settings()
    validator = ServiceValidator(repository, settings)
    lifecycle = ClaimLifecycleService(repository, validator, settings)
    matcher = PaymentMatcher(repository, lifecycle, settings)
    reconciliation = ReconciliationEngine(repository, matcher, lifecycle, settings)
    return BillingServices(
        repository=repository,
        settings=settings,
        validator=validator,
        lifecycle=lifecycle,
        conversion=ClaimConversionService(repository, validator, lifecycle, settings),
        matcher=matcher,
        reconciliation=reconciliation,
        remittances=RemittanceProcessor(repository, reconciliation, settings),
        adjustments=AdjustmentAnalyzer(repository, settings),
        aging=AgingCalculator(repository, settings),
    )


__all__ = ["BillingServices", "build_billing_services"]
