"""Unit tests for period analytics over dataset snapshots."""

from __future__ import annotations

from datetime import UTC, date, datetime
from decimal import Decimal

import pytest

from nanis_books import analytics
from nanis_books.analytics import Period
from nanis_books.constants import PaymentMethod, TransactionType
from nanis_books.data_manager import Dataset, InventoryItem, Purchase, Sale, SaleLine, Transaction

NOW = datetime(2024, 3, 20, 15, 0, tzinfo=UTC)
ZERO = Decimal("0")


def _item(item_id, name, category, *, stock, post=None, pre=None):
    return InventoryItem(
        item_id=item_id,
        name=name,
        category=category,
        stock=stock,
        cost_post_shipping=Decimal(post) if post is not None else None,
        cost_pre_shipping=Decimal(pre) if pre is not None else None,
    )


def _sale(sale_id, created_at, item_id, quantity, unit_price, *, method=PaymentMethod.CASH, channel=None):
    price = Decimal(unit_price)
    return Sale(
        sale_id=sale_id,
        created_at=created_at,
        payment_method=method,
        lines=(SaleLine(item_id=item_id, quantity=quantity, unit_price=price),),
        total_amount=price * quantity,
        channel=channel,
    )


def _transaction(transaction_id, kind, amount, created_at):
    return Transaction(
        transaction_id=transaction_id,
        type=kind,
        amount=Decimal(amount),
        description=kind.value,
        category="General",
        created_at=created_at,
    )


def _purchase(purchase_id, created_at, total_cost):
    return Purchase(
        purchase_id=purchase_id,
        created_at=created_at,
        lines=(),
        subtotal=Decimal(total_cost),
        tax=ZERO,
        shipping_us=ZERO,
        shipping_intl=ZERO,
        weight_lbs=Decimal("1"),
        total_units=0,
        total_cost=Decimal(total_cost),
    )


@pytest.fixture
def shop() -> Dataset:
    """Three March sales, one February sale, and a month of transactions each side."""

    return Dataset(
        items=(
            _item("A", "Argan Oil", "Hair Care", stock=4, post="10"),
            _item("B", "Rose Mist", "Fragrance", stock=2, pre="6"),
            _item("C", "Lip Tint", "Makeup", stock=0),
        ),
        sales=(
            _sale("S1", "2024-03-02T11:00:00+00:00", "A", 2, "25", channel="instagram"),
            _sale("S2", "2024-03-12T11:00:00+00:00", "B", 1, "40", method=PaymentMethod.TRANSFER, channel="instagram"),
            _sale("S3", "2024-03-13T11:00:00+00:00", "A", 1, "30"),
            _sale("S4", "2024-02-20T11:00:00+00:00", "B", 3, "20", channel="whatsapp"),
        ),
        transactions=(
            _transaction("T1", TransactionType.EXPENSE, "10", "2024-03-05T09:00:00+00:00"),
            _transaction("T2", TransactionType.FEE, "2", "2024-03-06T09:00:00+00:00"),
            _transaction("T3", TransactionType.INCOME, "5", "2024-03-07T09:00:00+00:00"),
            _transaction("T4", TransactionType.DISCOUNT, "4", "2024-03-08T09:00:00+00:00"),
            _transaction("T5", TransactionType.EXPENSE, "100", "2024-02-10T09:00:00+00:00"),
        ),
        purchases=(
            _purchase("P1", "2024-03-01T08:00:00+00:00", "40"),
            _purchase("P2", "2024-02-01T08:00:00+00:00", "70"),
        ),
    )


# ---------------------------------------------------------------------------
# Periods
# ---------------------------------------------------------------------------


def test_period_bounds_for_current_month():
    start, end = analytics.period_bounds(Period.CURRENT_MONTH, now=NOW)
    assert (start, end) == (datetime(2024, 3, 1, tzinfo=UTC), datetime(2024, 4, 1, tzinfo=UTC))


def test_period_bounds_wrap_across_the_year():
    january = datetime(2024, 1, 15, tzinfo=UTC)
    assert analytics.period_bounds(Period.PREVIOUS_MONTH, now=january) == (
        datetime(2023, 12, 1, tzinfo=UTC),
        datetime(2024, 1, 1, tzinfo=UTC),
    )
    december = datetime(2023, 12, 31, tzinfo=UTC)
    assert analytics.period_bounds(Period.CURRENT_MONTH, now=december)[1] == datetime(2024, 1, 1, tzinfo=UTC)


def test_overall_period_is_unbounded():
    assert analytics.period_bounds(Period.OVERALL, now=NOW) == (None, None)


def test_in_range_treats_naive_stamps_as_utc_and_skips_garbage():
    start, end = analytics.period_bounds(Period.CURRENT_MONTH, now=NOW)
    assert analytics.in_range("2024-03-31T23:59:59", start, end)
    assert not analytics.in_range("2024-04-01T00:00:00", start, end)
    assert not analytics.in_range("not a date", start, end)
    assert analytics.in_range("not a date", None, None)


# ---------------------------------------------------------------------------
# Headline figures
# ---------------------------------------------------------------------------


def test_current_month_headline_figures(shop):
    start, end = analytics.period_bounds(Period.CURRENT_MONTH, now=NOW)

    summary = analytics.get_sales_analytics(shop, start, end)

    assert summary.total_sales == Decimal("120")
    assert (summary.number_of_sales, summary.items_sold) == (3, 4)
    assert (summary.total_expenses, summary.total_fees, summary.total_income) == (
        Decimal("10"),
        Decimal("2"),
        Decimal("5"),
    )
    assert summary.purchase_costs == Decimal("40")
    assert summary.net_profit == Decimal("73")
    assert summary.roi == Decimal("182.5")
    assert summary.average_order_value == Decimal("40")
    assert summary.operating_expense_ratio == Decimal("10")
    assert summary.gross_profit_margin.quantize(Decimal("0.01")) == Decimal("66.67")
    assert summary.profit_margin.quantize(Decimal("0.01")) == Decimal("60.83")


def test_inventory_value_uses_current_stock_with_pre_shipping_fallback(shop):
    start, end = analytics.period_bounds(Period.PREVIOUS_MONTH, now=NOW)

    summary = analytics.get_sales_analytics(shop, start, end)

    assert summary.inventory_value == Decimal("52")
    assert summary.inventory_turnover == Decimal("70") / Decimal("52")
    assert summary.stock_to_sales_ratio == Decimal("52") / Decimal("60")


def test_previous_month_excludes_current_records(shop):
    start, end = analytics.period_bounds(Period.PREVIOUS_MONTH, now=NOW)

    summary = analytics.get_sales_analytics(shop, start, end)

    assert (summary.total_sales, summary.number_of_sales) == (Decimal("60"), 1)
    assert summary.net_profit == Decimal("60") - Decimal("70") - Decimal("100")


def test_most_popular_item_counts_units_not_sales(shop):
    summary = analytics.get_sales_analytics(shop)
    assert summary.most_popular_item.item_id == "B"


def test_category_ranking_and_payment_methods(shop):
    start, end = analytics.period_bounds(Period.CURRENT_MONTH, now=NOW)

    summary = analytics.get_sales_analytics(shop, start, end)

    assert [(c.name, c.revenue, c.quantity) for c in summary.categories] == [
        ("Hair Care", Decimal("80"), 3),
        ("Fragrance", Decimal("40"), 1),
    ]
    assert summary.best_category.name == "Hair Care"
    assert summary.worst_category.name == "Fragrance"
    assert [(m.method, m.count, m.amount) for m in summary.payment_methods] == [
        (PaymentMethod.CASH, 2, Decimal("80")),
        (PaymentMethod.TRANSFER, 1, Decimal("40")),
    ]


def test_empty_dataset_reports_zero_ratios():
    summary = analytics.get_sales_analytics(Dataset())

    assert summary.roi == summary.profit_margin == summary.average_order_value == ZERO
    assert summary.inventory_turnover == summary.stock_to_sales_ratio == ZERO
    assert summary.most_popular_item is None
    assert summary.best_category is None


def test_category_performance_skips_unknown_items():
    sales = [_sale("S1", "2024-03-02T11:00:00+00:00", "ghost", 1, "9")]
    assert analytics.category_performance(sales, []) == ()


# ---------------------------------------------------------------------------
# Channels
# ---------------------------------------------------------------------------


def test_channel_performance_sorts_by_amount_and_totals_untracked(shop):
    start, end = analytics.period_bounds(Period.CURRENT_MONTH, now=NOW)

    report = analytics.channel_performance(shop, start, end)

    (instagram,) = report.channels
    assert (instagram.channel, instagram.sales_count, instagram.total_amount) == ("instagram", 2, Decimal("90"))
    assert instagram.average_order_value == Decimal("45")
    assert report.untracked_amount == Decimal("30")


def test_channel_performance_overall(shop):
    report = analytics.channel_performance(shop)
    assert [stats.channel for stats in report.channels] == ["instagram", "whatsapp"]
    assert report.tracked_amount == Decimal("150")


# ---------------------------------------------------------------------------
# Weekly summary
# ---------------------------------------------------------------------------


def test_start_of_week_is_sunday():
    assert analytics.start_of_week(date(2024, 3, 20)) == date(2024, 3, 17)
    assert analytics.start_of_week(date(2024, 3, 17)) == date(2024, 3, 17)


def test_weeks_in_range_clamps_the_last_week():
    weeks = analytics.weeks_in_range(date(2024, 3, 1), date(2024, 3, 31))
    assert weeks[0] == (date(2024, 2, 25), date(2024, 3, 2))
    assert weeks[-1] == (date(2024, 3, 31), date(2024, 3, 31))
    assert len(weeks) == 6


def test_month_summary_keeps_empty_weeks_but_not_future_ones(shop):
    weeks = analytics.weekly_sales_summary(shop, Period.CURRENT_MONTH, now=NOW)

    assert [week.week_start for week in weeks] == [
        date(2024, 2, 25),
        date(2024, 3, 3),
        date(2024, 3, 10),
        date(2024, 3, 17),
    ]
    assert [week.total_sales for week in weeks] == [Decimal("50"), ZERO, Decimal("70"), ZERO]
    assert (weeks[2].sales_count, weeks[2].total_items, weeks[2].average_sale) == (2, 2, Decimal("35"))
    assert weeks[1].average_sale == ZERO


def test_overall_summary_lists_only_weeks_with_sales(shop):
    weeks = analytics.weekly_sales_summary(shop, Period.OVERALL, now=NOW)

    assert [week.week_start for week in weeks] == [date(2024, 2, 18), date(2024, 2, 25), date(2024, 3, 10)]
    assert weeks[-1].week_end == date(2024, 3, 13)


def test_overall_summary_without_sales_is_empty():
    assert analytics.weekly_sales_summary(Dataset(), Period.OVERALL, now=NOW) == ()
