"""Business cash ledger.

The balance is never stored. It is recomputed from the full history every time
it is needed::

    available = max(0, sales revenue + income transactions - withdrawals)

Callers that read it repeatedly cache it through the runtime context in
:mod:`nanis_books.core_logic`, which invalidates the cache on every commit.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC, datetime
from decimal import Decimal
from typing import Iterable, Optional

from . import log
from .constants import (
    CASH_CONSUMING_TYPES,
    CURRENCY_TOLERANCE,
    TRANSACTION_REASON_PREFIX,
    PaymentSource,
    TransactionType,
)
from .data_manager import CashFunding, CashWithdrawal, Dataset, MixedFunding, Transaction
from .errors import InsufficientFundsError, MixedSourceMismatch

ZERO = Decimal("0")


@dataclass(frozen=True)
class PaymentBreakdown:
    cash_used: Decimal
    external_payment: Decimal
    payment_source: PaymentSource


@dataclass(frozen=True)
class CashFlowStats:
    total_revenue: Decimal
    total_withdrawn: Decimal
    available_cash: Decimal
    reinvestment_rate: Decimal
    monthly_withdrawals: Decimal
    withdrawal_count: int


@dataclass(frozen=True)
class CashFlowStatement:
    """Operating / investing / financing split of the whole history."""

    sales_inflow: Decimal
    income_inflow: Decimal
    expenses_outflow: Decimal
    operating: Decimal
    investing: Decimal
    financing: Decimal

    @property
    def net(self) -> Decimal:
        return self.operating + self.investing + self.financing


def _total(values: Iterable[Decimal]) -> Decimal:
    return sum(values, ZERO)


def total_revenue(dataset: Dataset) -> Decimal:
    return _total(sale.total_amount for sale in dataset.sales)


def total_income(dataset: Dataset) -> Decimal:
    return _total(
        transaction.amount
        for transaction in dataset.transactions
        if transaction.type is TransactionType.INCOME
    )


def total_withdrawn(dataset: Dataset) -> Decimal:
    return _total(withdrawal.amount for withdrawal in dataset.cash_withdrawals)


def total_transaction_withdrawals(dataset: Dataset) -> Decimal:
    """Withdrawals that paid for expenses or fees rather than purchases."""

    return _total(
        withdrawal.amount
        for withdrawal in dataset.cash_withdrawals
        if withdrawal.reason.startswith(TRANSACTION_REASON_PREFIX)
    )


def get_available_cash(sales_total: Decimal, income_total: Decimal, withdrawals_total: Decimal) -> Decimal:
    """Clamp the running balance at zero."""

    return max(ZERO, sales_total + income_total - withdrawals_total)


def calculate_available_cash(dataset: Dataset) -> Decimal:
    return get_available_cash(
        total_revenue(dataset),
        total_income(dataset),
        total_withdrawn(dataset),
    )


def can_withdraw_cash(dataset: Dataset, amount: Decimal) -> bool:
    if amount <= 0:
        return False
    return amount <= calculate_available_cash(dataset)


def require_available_cash(dataset: Dataset, amount: Decimal) -> None:
    """Raise :class:`InsufficientFundsError` unless ``amount`` can be withdrawn."""

    if can_withdraw_cash(dataset, amount):
        return
    available = calculate_available_cash(dataset)
    log.warning("Rejected cash usage of %s (available %s)", amount, available)
    raise InsufficientFundsError(requested=amount, available=available)


def calculate_payment_breakdown(total_cost: Decimal, cash_to_use: Decimal) -> PaymentBreakdown:
    """Split ``total_cost`` between business cash and external funds.

    ``cash_to_use`` is clamped to ``[0, total_cost]``. No availability check
    happens here; the result is a display value until validated.
    """

    cash_used = max(ZERO, min(cash_to_use, total_cost))
    external_payment = total_cost - cash_used

    if cash_used == 0:
        source = PaymentSource.EXTERNAL
    elif external_payment == 0:
        source = PaymentSource.REVENUE
    else:
        source = PaymentSource.MIXED

    return PaymentBreakdown(
        cash_used=cash_used,
        external_payment=external_payment,
        payment_source=source,
    )


def generate_record_id(*, prefix: str, when: Optional[datetime] = None) -> str:
    """Sortable identifier formed as ``{prefix}{YYYYMMDDHHMMSSffffff}``."""

    when = when or datetime.now(UTC)
    return f"{prefix}{when.strftime('%Y%m%d%H%M%S%f')}"


def create_cash_withdrawal(
    amount: Decimal,
    reason: str,
    linked_purchase_id: Optional[str] = None,
    notes: Optional[str] = None,
    *,
    timestamp: Optional[datetime] = None,
) -> CashWithdrawal:
    """Build a withdrawal record; zero or negative amounts are refused.

    Raises:
        ValueError: If ``amount`` is not positive.
    """

    if amount <= 0:
        raise ValueError("Withdrawal amount must be greater than zero")
    when = timestamp or datetime.now(UTC)
    return CashWithdrawal(
        withdrawal_id=generate_record_id(prefix="W", when=when),
        amount=amount,
        reason=reason,
        withdrawn_at=when.isoformat(),
        linked_purchase_id=linked_purchase_id,
        notes=notes or None,
    )


def cash_required_by(transaction: Transaction) -> Decimal:
    """Business cash a transaction draws: full amount, the cash side of a mix, or nothing."""

    if transaction.type not in CASH_CONSUMING_TYPES:
        return ZERO
    funding = transaction.funding
    if isinstance(funding, CashFunding):
        return transaction.amount
    if isinstance(funding, MixedFunding):
        return funding.cash_amount
    return ZERO


def validate_transaction_funding(dataset: Dataset, transaction: Transaction) -> None:
    """Reject a transaction whose funding cannot be honoured.

    Raises:
        MixedSourceMismatch: For a mixed split with a negative side, a side
            larger than ``amount``, sides that do not add up to ``amount``
            within one cent, or a cash side above the available balance.
        InsufficientFundsError: For a cash-funded expense or fee larger than
            the available balance.
        ValueError: For a negative amount.
    """

    if transaction.amount < 0:
        raise ValueError("Transaction amount must be zero or positive")
    if transaction.type not in CASH_CONSUMING_TYPES:
        return

    funding = transaction.funding
    available = calculate_available_cash(dataset)
    if isinstance(funding, MixedFunding):
        cash, external = funding.cash_amount, funding.external_amount
        if cash < 0 or external < 0:
            raise MixedSourceMismatch("Mixed amounts must be zero or positive")
        if cash > transaction.amount or external > transaction.amount:
            raise MixedSourceMismatch("Mixed amounts cannot exceed the transaction amount")
        if abs(cash + external - transaction.amount) > CURRENCY_TOLERANCE:
            raise MixedSourceMismatch(
                f"Cash ({cash:.2f}) + external ({external:.2f}) must equal the amount ({transaction.amount:.2f})"
            )
        if cash > available:
            raise MixedSourceMismatch(
                f"Cash amount exceeds available funds. Available: {available:.2f}"
            )
    elif isinstance(funding, CashFunding) and transaction.amount > available:
        raise InsufficientFundsError(requested=transaction.amount, available=available)


def get_cash_flow_stats(dataset: Dataset, *, now: Optional[datetime] = None) -> CashFlowStats:
    revenue = total_revenue(dataset)
    withdrawn = total_withdrawn(dataset)
    month = (now or datetime.now(UTC)).strftime("%Y-%m")
    monthly = _total(
        withdrawal.amount
        for withdrawal in dataset.cash_withdrawals
        if withdrawal.withdrawn_at.startswith(month)
    )
    stats = CashFlowStats(
        total_revenue=revenue,
        total_withdrawn=withdrawn,
        available_cash=calculate_available_cash(dataset),
        reinvestment_rate=(withdrawn / revenue * 100) if revenue > 0 else ZERO,
        monthly_withdrawals=monthly,
        withdrawal_count=len(dataset.cash_withdrawals),
    )
    log.debug("Cash flow stats: %s", stats)
    return stats


def build_cash_flow_statement(dataset: Dataset) -> CashFlowStatement:
    sales_inflow = total_revenue(dataset)
    income_inflow = total_income(dataset)
    expenses_outflow = _total(
        transaction.amount
        for transaction in dataset.transactions
        if transaction.type in CASH_CONSUMING_TYPES
    )
    return CashFlowStatement(
        sales_inflow=sales_inflow,
        income_inflow=income_inflow,
        expenses_outflow=expenses_outflow,
        operating=sales_inflow + income_inflow - expenses_outflow,
        investing=-_total(purchase.total_cost for purchase in dataset.purchases),
        financing=-total_withdrawn(dataset),
    )
