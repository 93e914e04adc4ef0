"""
Authorization unit reservation and release.

used_units moves only through these helpers, always under a row lock,
and is never clamped: a change that would leave it outside
[0, authorized_units] raises InvariantViolationError.
"""

import logging
from datetime import date
from decimal import Decimal
from typing import Optional

from src.core.enums import AuthorizationStatus
from src.core.exceptions import InvariantViolationError
from src.db.repositories.base import BillingRepository
from src.models import Authorization, Service

logger = logging.getLogger(__name__)


async def reserve_units(repository: BillingRepository, service: Service) -> Optional[Authorization]:
    """Draw the service's units from its authorization."""
    if service.authorization_id is None:
        return None
    auth = await repository.get_authorization(service.authorization_id, for_update=True)
    if auth is None:
        raise InvariantViolationError(
            f"Authorization {service.authorization_id} disappeared during reservation",
            {"authorization_id": str(service.authorization_id)},
        )

    units = Decimal(service.units)
    new_used = Decimal(auth.used_units) + units
    if new_used > Decimal(auth.authorized_units):
        raise InvariantViolationError(
            "Authorization used units would exceed authorized units",
            {
                "authorization_id": str(auth.id),
                "authorized_units": str(auth.authorized_units),
                "used_units": str(auth.used_units),
                "requested_units": str(units),
            },
        )

    auth.used_units = new_used
    if new_used == Decimal(auth.authorized_units):
        auth.status = AuthorizationStatus.EXHAUSTED
    logger.debug(f"Reserved {units} units on authorization {auth.id} ({new_used}/{auth.authorized_units})")
    return auth


async def release_units(
    repository: BillingRepository, service: Service, today: date
) -> Optional[Authorization]:
    """Return the service's units to its authorization."""
    if service.authorization_id is None:
        return None
    auth = await repository.get_authorization(service.authorization_id, for_update=True)
    if auth is None:
        return None

    units = Decimal(service.units)
    new_used = Decimal(auth.used_units) - units
    if new_used < 0:
        raise InvariantViolationError(
            "Authorization used units would become negative",
            {
                "authorization_id": str(auth.id),
                "used_units": str(auth.used_units),
                "released_units": str(units),
            },
        )

    auth.used_units = new_used
    if auth.status == AuthorizationStatus.EXHAUSTED and new_used < Decimal(auth.authorized_units):
        auth.status = (
            AuthorizationStatus.EXPIRED if auth.end_date < today else AuthorizationStatus.ACTIVE
        )
    logger.debug(f"Released {units} units on authorization {auth.id} ({new_used}/{auth.authorized_units})")
    return auth
