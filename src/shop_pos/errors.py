"""Exception taxonomy for the sale engine.

Every error here is local and recoverable: callers are expected to report the
message (and ``details`` where present) back to whoever issued the request.
"""

from __future__ import annotations

from typing import Any, Dict, Optional


class ShopError(Exception):
    """Base class for all domain errors raised by the package."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.details = details or {}


class BusinessRuleViolation(ShopError):
    """Raised when a requested operation violates a domain constraint."""


class MissingReferenceError(BusinessRuleViolation):
    """Raised when a referenced employee, product, or sale is unknown."""


class SaleRejected(BusinessRuleViolation):
    """A sale request failed validation before anything was written."""


class EmployeeInvalid(SaleRejected):
    """The employee id is missing, unknown, or inactive."""


class EmptyOrder(SaleRejected):
    """The sale carries no line items."""


class ItemInvalid(SaleRejected):
    """A line item is structurally invalid (product id, quantity, price)."""


class ProductInvalid(SaleRejected):
    """A line references a product that is unknown or inactive."""


class TotalMismatch(SaleRejected):
    """The declared total disagrees with the calculated one, or a whole-sale
    amount is not a number.
    """


class CommitFailed(ShopError):
    """The catalog or the atomic write failed; nothing was persisted."""


class RequestRejected(ShopError):
    """The request filter refused the caller before the core ran."""


__all__ = [
    "ShopError",
    "BusinessRuleViolation",
    "MissingReferenceError",
    "SaleRejected",
    "EmployeeInvalid",
    "EmptyOrder",
    "ItemInvalid",
    "ProductInvalid",
    "TotalMismatch",
    "CommitFailed",
    "RequestRejected",
]
