"""Domain exceptions raised by the processors and the cash ledger."""

from __future__ import annotations

from decimal import Decimal


class BusinessRuleViolation(Exception):
    """Raised when a requested operation violates a domain constraint."""


class MissingReferenceError(BusinessRuleViolation):
    """Raised when a referenced item, purchase, or sale is unknown."""


class InsufficientFundsError(BusinessRuleViolation):
    """Raised when requested cash usage exceeds the available business cash."""

    def __init__(self, requested: Decimal, available: Decimal) -> None:
        self.requested = requested
        self.available = available
        super().__init__(
            f"Insufficient cash available. Need {requested:.2f}, "
            f"but only {available:.2f} available."
        )


class InvalidPurchaseDraft(BusinessRuleViolation):
    """Raised when a purchase draft cannot be allocated."""


class MixedSourceMismatch(BusinessRuleViolation):
    """Raised when a mixed cash/external split is inconsistent."""


__all__ = [
    "BusinessRuleViolation",
    "MissingReferenceError",
    "InsufficientFundsError",
    "InvalidPurchaseDraft",
    "MixedSourceMismatch",
]
