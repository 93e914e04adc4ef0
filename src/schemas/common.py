"""
Shared schemas for batch operations.
"""

from typing import Any, Generic, Optional, TypeVar

from pydantic import BaseModel, Field

from src.core.exceptions import BillingError

T = TypeVar("T")


class BatchItemFailure(BaseModel):
    """Why one batch item failed."""

    item_id: str
    error: str
    message: str
    details: dict[str, Any] = Field(default_factory=dict)

    @classmethod
    def from_error(cls, item_id: Any, error: BillingError) -> "BatchItemFailure":
        return cls(
            item_id=str(item_id),
            error=error.code,
            message=error.message,
            details=error.details,
        )


class BatchResult(BaseModel, Generic[T]):
    """Partial-success report: each item succeeded or failed on its own."""

    successful: int = 0
    failed: list[BatchItemFailure] = Field(default_factory=list)
    results: list[T] = Field(default_factory=list)

    def add_success(self, result: T) -> None:
        self.successful += 1
        self.results.append(result)

    def add_failure(self, item_id: Any, error: BillingError) -> None:
        self.failed.append(BatchItemFailure.from_error(item_id, error))

    @property
    def total(self) -> int:
        return self.successful + len(self.failed)

    @property
    def first_failure(self) -> Optional[BatchItemFailure]:
        return self.failed[0] if self.failed else None
