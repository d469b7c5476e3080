"""Enumerations and defaults shared across the Nanis Books modules.

Keeps domain identifiers in one place so the allocation engine, the cash
ledger, the persistence layer and the CLI agree on the stored vocabulary.
"""

from __future__ import annotations

from decimal import Decimal
from enum import Enum


# Schema version every layer expects before writing to the dataset file.
EXPECTED_SCHEMA_VERSION = "1.0.0"

DEFAULT_WEIGHT_COST_PER_LB = Decimal("7.00")
DEFAULT_TAX_RATE_PERCENT = Decimal("8.775")

# Markup pairs: manual item entry vs. automatic recompute after a purchase.
ITEM_ENTRY_MIN_MARKUP = Decimal("1.20")
ITEM_ENTRY_MAX_MARKUP = Decimal("1.30")
PURCHASE_MIN_MARKUP = Decimal("1.25")
PURCHASE_MAX_MARKUP = Decimal("1.40")

DEFAULT_QUOTE_TARGET_PROFIT = Decimal("5.00")

# Tolerances for reconciling derived values.
LINE_TOLERANCE = Decimal("0.0001")
CURRENCY_TOLERANCE = Decimal("0.01")

DEFAULT_WITHDRAWAL_REASON = "Business re-investment"
TRANSACTION_REASON_PREFIX = "Transaction:"


class PaymentSource(str, Enum):
    """How a purchase or transaction was funded.

    ``REVENUE`` means business cash; the stored value keeps the legacy word so
    existing documents stay readable.
    """

    EXTERNAL = "external"
    REVENUE = "revenue"
    MIXED = "mixed"


class TransactionType(str, Enum):
    """Kinds of non-sale money movements."""

    EXPENSE = "expense"
    FEE = "fee"
    INCOME = "income"
    DISCOUNT = "discount"


class PaymentMethod(str, Enum):
    """Payment methods accepted on sales and transactions."""

    CASH = "cash"
    TRANSFER = "transfer"
    INSTALLMENTS = "installments"
    PAYMENT_LINK = "payment_link"
    CREDIT_CARD = "credit_card"


class Category(str, Enum):
    """Inventory categories."""

    HAIR_CARE = "Hair Care"
    BODY_CARE = "Body Care"
    MAKEUP = "Makeup"
    FRAGRANCE = "Fragrance"
    SKIN_CARE = "Skin Care"
    OTHER = "Other"


# Transaction types that can draw on business cash.
CASH_CONSUMING_TYPES: frozenset[TransactionType] = frozenset(
    {TransactionType.EXPENSE, TransactionType.FEE}
)


__all__ = [
    "EXPECTED_SCHEMA_VERSION",
    "DEFAULT_WEIGHT_COST_PER_LB",
    "DEFAULT_TAX_RATE_PERCENT",
    "ITEM_ENTRY_MIN_MARKUP",
    "ITEM_ENTRY_MAX_MARKUP",
    "PURCHASE_MIN_MARKUP",
    "PURCHASE_MAX_MARKUP",
    "DEFAULT_QUOTE_TARGET_PROFIT",
    "LINE_TOLERANCE",
    "CURRENCY_TOLERANCE",
    "DEFAULT_WITHDRAWAL_REASON",
    "TRANSACTION_REASON_PREFIX",
    "PaymentSource",
    "TransactionType",
    "PaymentMethod",
    "Category",
    "CASH_CONSUMING_TYPES",
]
