# services/exceptions.py

"""
SALE ENGINE ERRORS

Centralized domain errors for the sale transaction engine.

ValidationError lives in sale_engine.validation (it is also raised by payload
parsing in the routes) and is re-exported here so callers can import every
engine error from one place.
"""

from __future__ import annotations

from ..validation import ValidationError

__all__ = [
    "ValidationError",
    "SaleEngineError",
    "NotFoundError",
    "InsufficientStockError",
    "InsufficientForExitError",
    "ConcurrentModificationError",
    "PartialFailureError",
    "BadConfirmationError",
    "AuditWriteError",
]


class SaleEngineError(Exception):
    """Base exception for all sale engine failures."""
    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.details = details or {}


class NotFoundError(SaleEngineError):
    """Referenced sale, product or promotion does not exist."""


class InsufficientStockError(SaleEngineError):
    """Requested quantity exceeds available stock at reservation time."""
    def __init__(self, product_id: int, requested: int, available: int, message: str | None = None):
        super().__init__(
            message or "Insufficient stock",
            details={
                "product_id": product_id,
                "requested_quantity": requested,
                "available": available,
            },
        )
        self.product_id = product_id
        self.requested = requested
        self.available = available


class InsufficientForExitError(InsufficientStockError):
    """A manual stock exit asked for more units than are on hand."""


class ConcurrentModificationError(SaleEngineError):
    """The conditional stock write lost a race with another writer."""


class PartialFailureError(SaleEngineError):
    """
    A later step failed after an earlier, side-effecting step succeeded.

    critical is True when no compensation ran or the compensation itself
    failed; stock then needs manual reconciliation.
    """
    def __init__(
        self,
        message: str,
        *,
        operation: str,
        failed_step: str,
        completed_steps: list[str],
        compensated: bool,
        details: dict | None = None,
    ):
        super().__init__(message, details=details)
        self.operation = operation
        self.failed_step = failed_step
        self.completed_steps = list(completed_steps)
        self.compensated = compensated

    @property
    def critical(self) -> bool:
        return not self.compensated

    def to_dict(self) -> dict:
        return {
            "message": str(self),
            "operation": self.operation,
            "failed_step": self.failed_step,
            "completed_steps": self.completed_steps,
            "compensated": self.compensated,
            "critical": self.critical,
            "details": self.details,
        }


class BadConfirmationError(SaleEngineError):
    """Audit purge attempted without the exact confirmation phrase."""


class AuditWriteError(SaleEngineError):
    """An audit entry could not be appended."""
