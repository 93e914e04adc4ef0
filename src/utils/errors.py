"""
HTTP Error Mapping
Translates billing core errors into HTTP responses
Source: https://fastapi.tiangolo.com/tutorial/handling-errors/
"""

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

from src.core.exceptions import (
    BillingError,
    ConflictError,
    InvariantViolationError,
    NotFoundError,
    OverAllocationError,
    ValidationError,
)
from src.utils.logging import get_logger

logger = get_logger(__name__)

# Most specific class first
STATUS_FOR_ERROR: list[tuple[type[BillingError], int]] = [
    (NotFoundError, status.HTTP_404_NOT_FOUND),
    (OverAllocationError, status.HTTP_400_BAD_REQUEST),
    (ValidationError, status.HTTP_400_BAD_REQUEST),
    (ConflictError, status.HTTP_409_CONFLICT),
    (InvariantViolationError, status.HTTP_409_CONFLICT),
]


def status_code_for(error: BillingError) -> int:
    for error_type, code in STATUS_FOR_ERROR:
        if isinstance(error, error_type):
            return code
    return status.HTTP_400_BAD_REQUEST


async def billing_error_handler(request: Request, exc: BillingError) -> JSONResponse:
    code = status_code_for(exc)
    logger.warning(f"{request.method} {request.url.path} -> {code} {exc.code}: {exc.message}")
    return JSONResponse(status_code=code, content=exc.to_dict())


def register_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(BillingError, billing_error_handler)  # type: ignore[arg-type]
