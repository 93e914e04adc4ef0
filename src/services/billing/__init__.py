"""
Service Billing.

Provides:
- Billing readiness validation of services (documentation, authorization, rules)
- Authorization unit reservation and release

Service-to-claim conversion lives in src.services.billing.service_to_claim;
it depends on the claim lifecycle, which in turn imports this package.
"""

from src.services.billing.authorization_units import release_units, reserve_units
from src.services.billing.service_validator import ServiceValidator

__all__ = [
    "ServiceValidator",
    "reserve_units",
    "release_units",
]
