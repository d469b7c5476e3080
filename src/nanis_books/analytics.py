"""Sales and profitability analytics over a dataset snapshot.

Figures are computed for a period: the current month, the previous month, or
the whole history. Sales, transactions and purchase costs are filtered by
their creation timestamp; inventory value always reflects current stock.
Ratios whose denominator is zero are reported as zero.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC, date, datetime, timedelta
from decimal import Decimal
from enum import Enum
from typing import Dict, Iterable, List, Optional, Tuple

from . import log
from .constants import PaymentMethod, TransactionType
from .data_manager import Dataset, InventoryItem, Sale

ZERO = Decimal("0")
HUNDRED = Decimal("100")


class Period(str, Enum):
    CURRENT_MONTH = "current-month"
    PREVIOUS_MONTH = "previous-month"
    OVERALL = "overall"


@dataclass(frozen=True)
class CategoryPerformance:
    name: str
    revenue: Decimal
    quantity: int


@dataclass(frozen=True)
class PaymentMethodSummary:
    method: PaymentMethod
    count: int
    amount: Decimal


@dataclass(frozen=True)
class SalesAnalytics:
    """Headline figures for one period."""

    total_sales: Decimal
    number_of_sales: int
    items_sold: int
    total_expenses: Decimal
    total_fees: Decimal
    total_income: Decimal
    purchase_costs: Decimal
    net_profit: Decimal
    roi: Decimal
    average_order_value: Decimal
    gross_profit_margin: Decimal
    profit_margin: Decimal
    operating_expense_ratio: Decimal
    inventory_value: Decimal
    inventory_turnover: Decimal
    stock_to_sales_ratio: Decimal
    most_popular_item: Optional[InventoryItem]
    categories: Tuple[CategoryPerformance, ...]
    payment_methods: Tuple[PaymentMethodSummary, ...]

    @property
    def best_category(self) -> Optional[CategoryPerformance]:
        return self.categories[0] if self.categories else None

    @property
    def worst_category(self) -> Optional[CategoryPerformance]:
        return self.categories[-1] if self.categories else None


@dataclass(frozen=True)
class ChannelStats:
    channel: str
    sales_count: int
    total_amount: Decimal
    average_order_value: Decimal


@dataclass(frozen=True)
class ChannelReport:
    channels: Tuple[ChannelStats, ...]
    untracked_amount: Decimal

    @property
    def tracked_amount(self) -> Decimal:
        return sum((stats.total_amount for stats in self.channels), ZERO)


@dataclass(frozen=True)
class WeeklySales:
    week_start: date
    week_end: date
    total_sales: Decimal
    sales_count: int
    total_items: int
    average_sale: Decimal


def parse_timestamp(value: Optional[str]) -> Optional[datetime]:
    """Parse a stored ISO timestamp; naive values are taken as UTC."""

    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(value)
    except ValueError:
        log.debug("Ignoring unparseable timestamp '%s'", value)
        return None
    return parsed if parsed.tzinfo is not None else parsed.replace(tzinfo=UTC)


def period_bounds(period: Period, *, now: Optional[datetime] = None) -> Tuple[Optional[datetime], Optional[datetime]]:
    """Return ``(start, end)`` for ``period``; ``end`` is exclusive, ``None`` is unbounded."""

    if period is Period.OVERALL:
        return None, None
    now = now or datetime.now(UTC)
    month_start = datetime(now.year, now.month, 1, tzinfo=UTC)
    if period is Period.CURRENT_MONTH:
        return month_start, _next_month(month_start)
    previous_start = datetime(
        now.year - 1 if now.month == 1 else now.year,
        12 if now.month == 1 else now.month - 1,
        1,
        tzinfo=UTC,
    )
    return previous_start, month_start


def _next_month(moment: datetime) -> datetime:
    if moment.month == 12:
        return moment.replace(year=moment.year + 1, month=1)
    return moment.replace(month=moment.month + 1)


def in_range(stamp: Optional[str], start: Optional[datetime], end: Optional[datetime]) -> bool:
    if start is None and end is None:
        return True
    moment = parse_timestamp(stamp)
    if moment is None:
        return False
    if start is not None and moment < start:
        return False
    return end is None or moment < end


def _ratio(numerator: Decimal, denominator: Decimal, scale: Decimal = Decimal("1")) -> Decimal:
    return numerator / denominator * scale if denominator > 0 else ZERO


def _units(sale: Sale) -> int:
    return sum(line.quantity for line in sale.lines)


def inventory_value(items: Iterable[InventoryItem]) -> Decimal:
    """Stock valued at landed cost, falling back to the pre-shipping cost."""

    return sum(
        (item.stock * (item.cost_post_shipping or item.cost_pre_shipping or ZERO) for item in items),
        ZERO,
    )


def _most_popular_item(sales: Iterable[Sale], items: Iterable[InventoryItem]) -> Optional[InventoryItem]:
    counts: Dict[str, int] = {}
    for sale in sales:
        for line in sale.lines:
            counts[line.item_id] = counts.get(line.item_id, 0) + line.quantity
    top_id, top_count = "", 0
    for item_id, count in counts.items():
        if count > top_count:
            top_id, top_count = item_id, count
    return next((item for item in items if item.item_id == top_id), None)


def category_performance(sales: Iterable[Sale], items: Iterable[InventoryItem]) -> Tuple[CategoryPerformance, ...]:
    """Revenue and units per item category, best first; unknown items are skipped."""

    by_id = {item.item_id: item for item in items}
    totals: Dict[str, List] = {}
    for sale in sales:
        for line in sale.lines:
            item = by_id.get(line.item_id)
            if item is None:
                continue
            bucket = totals.setdefault(item.category, [ZERO, 0])
            bucket[0] += line.unit_price * line.quantity
            bucket[1] += line.quantity
    ranked = sorted(totals.items(), key=lambda entry: entry[1][0], reverse=True)
    return tuple(CategoryPerformance(name, revenue, quantity) for name, (revenue, quantity) in ranked)


def payment_method_summary(sales: Iterable[Sale]) -> Tuple[PaymentMethodSummary, ...]:
    counts: Dict[PaymentMethod, List] = {}
    for sale in sales:
        bucket = counts.setdefault(sale.payment_method, [0, ZERO])
        bucket[0] += 1
        bucket[1] += sale.total_amount
    return tuple(
        PaymentMethodSummary(method, *counts[method]) for method in PaymentMethod if method in counts
    )


def get_sales_analytics(
    dataset: Dataset,
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
) -> SalesAnalytics:
    """Compute the headline analytics for records created in ``[start, end)``.

    Net profit is sales plus income minus purchase costs, expenses and fees.
    ROI divides it by purchase costs; the margins divide by sales. Inventory
    turnover uses the period's purchase costs as the cost of goods.
    """

    sales = [sale for sale in dataset.sales if in_range(sale.created_at, start, end)]
    transactions = [t for t in dataset.transactions if in_range(t.created_at, start, end)]

    def _transactions_total(kind: TransactionType) -> Decimal:
        return sum((t.amount for t in transactions if t.type is kind), ZERO)

    total_sales = sum((sale.total_amount for sale in sales), ZERO)
    expenses = _transactions_total(TransactionType.EXPENSE)
    fees = _transactions_total(TransactionType.FEE)
    income = _transactions_total(TransactionType.INCOME)
    purchase_costs = sum(
        (p.total_cost for p in dataset.purchases if in_range(p.created_at, start, end)),
        ZERO,
    )
    net_profit = total_sales + income - purchase_costs - expenses - fees
    stock_value = inventory_value(dataset.items)

    analytics = SalesAnalytics(
        total_sales=total_sales,
        number_of_sales=len(sales),
        items_sold=sum(_units(sale) for sale in sales),
        total_expenses=expenses,
        total_fees=fees,
        total_income=income,
        purchase_costs=purchase_costs,
        net_profit=net_profit,
        roi=_ratio(net_profit, purchase_costs, HUNDRED),
        average_order_value=_ratio(total_sales, Decimal(len(sales))),
        gross_profit_margin=_ratio(total_sales - purchase_costs, total_sales, HUNDRED),
        profit_margin=_ratio(net_profit, total_sales, HUNDRED),
        operating_expense_ratio=_ratio(expenses + fees, total_sales, HUNDRED),
        inventory_value=stock_value,
        inventory_turnover=_ratio(purchase_costs, stock_value),
        stock_to_sales_ratio=_ratio(stock_value, total_sales),
        most_popular_item=_most_popular_item(sales, dataset.items),
        categories=category_performance(sales, dataset.items),
        payment_methods=payment_method_summary(sales),
    )
    log.debug("Computed analytics for %d sales (total=%s)", len(sales), total_sales)
    return analytics


def channel_performance(
    dataset: Dataset,
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
) -> ChannelReport:
    """Sales per channel, largest first; sales without a channel are totalled apart."""

    totals: Dict[str, List] = {}
    untracked = ZERO
    for sale in dataset.sales:
        if not in_range(sale.created_at, start, end):
            continue
        if not sale.channel:
            untracked += sale.total_amount
            continue
        bucket = totals.setdefault(sale.channel, [0, ZERO])
        bucket[0] += 1
        bucket[1] += sale.total_amount
    channels = sorted(
        (ChannelStats(name, count, amount, amount / count) for name, (count, amount) in totals.items()),
        key=lambda stats: stats.total_amount,
        reverse=True,
    )
    return ChannelReport(channels=tuple(channels), untracked_amount=untracked)


def start_of_week(day: date) -> date:
    """Weeks run Sunday to Saturday."""

    return day - timedelta(days=(day.weekday() + 1) % 7)


def weeks_in_range(first: date, last: date) -> List[Tuple[date, date]]:
    weeks = []
    current = start_of_week(first)
    while current <= last:
        weeks.append((current, min(current + timedelta(days=6), last)))
        current += timedelta(days=7)
    return weeks


def weekly_sales_summary(
    dataset: Dataset,
    period: Period = Period.CURRENT_MONTH,
    *,
    now: Optional[datetime] = None,
) -> Tuple[WeeklySales, ...]:
    """Per-week sales totals for ``period``.

    Month periods list every week that has started, including empty ones.
    The overall period spans the first to the last sale and lists only weeks
    with sales.
    """

    now = now or datetime.now(UTC)
    start, end = period_bounds(period, now=now)
    dated = [
        (moment.date(), sale)
        for sale in dataset.sales
        if in_range(sale.created_at, start, end)
        for moment in [parse_timestamp(sale.created_at)]
        if moment is not None
    ]

    if period is Period.OVERALL:
        if not dated:
            return ()
        first = min(day for day, _ in dated)
        last = max(day for day, _ in dated)
    else:
        first = start.date()
        last = (end - timedelta(days=1)).date()

    summary = []
    for week_start, week_end in weeks_in_range(first, last):
        if week_start > now.date():
            continue
        week_sales = [sale for day, sale in dated if week_start <= day <= week_end]
        if period is Period.OVERALL and not week_sales:
            continue
        total = sum((sale.total_amount for sale in week_sales), ZERO)
        summary.append(
            WeeklySales(
                week_start=week_start,
                week_end=week_end,
                total_sales=total,
                sales_count=len(week_sales),
                total_items=sum(_units(sale) for sale in week_sales),
                average_sale=_ratio(total, Decimal(len(week_sales))),
            )
        )
    return tuple(summary)
