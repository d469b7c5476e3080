"""Spreadsheet export of the dataset for accountants and manual review.

The JSON document stays the system of record; the workbook written here is a
read-only snapshot. One sheet per collection, plus a ``CashFlow`` sheet with
the ledger totals.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from pathlib import Path
from typing import Any, Iterable, Mapping, Optional, Sequence

import openpyxl
from openpyxl.styles import Font

from . import cash_ledger, log
from .data_manager import Dataset, payment_source_of

SHEET_COLUMNS: Mapping[str, Sequence[str]] = {
    "Inventory": [
        "ItemID",
        "Name",
        "Category",
        "Stock",
        "WeightLbs",
        "CostPreShipping",
        "CostPostShipping",
        "MinPrice",
        "MaxPrice",
        "MinProfit",
        "MaxProfit",
    ],
    "Purchases": [
        "PurchaseID",
        "CreatedAt",
        "Subtotal",
        "Tax",
        "ShippingUS",
        "ShippingIntl",
        "WeightLbs",
        "TotalUnits",
        "TotalCost",
        "CashUsed",
        "PaymentSource",
    ],
    "PurchaseLines": [
        "PurchaseID",
        "LineID",
        "ItemID",
        "Quantity",
        "SubItemsQty",
        "UnitCost",
        "PerUnitTax",
        "PerUnitShippingUS",
        "PerUnitShippingIntl",
        "UnitCostPostShipping",
    ],
    "Sales": ["SaleID", "CreatedAt", "PaymentMethod", "Units", "TotalAmount", "Buyer"],
    "Transactions": [
        "TransactionID",
        "CreatedAt",
        "Type",
        "Category",
        "Description",
        "Amount",
        "PaymentSource",
        "CashRequired",
    ],
    "CashWithdrawals": ["WithdrawalID", "WithdrawnAt", "Amount", "Reason", "LinkedPurchaseID", "Notes"],
    "CashFlow": ["Metric", "Value"],
}


def _cell_value(value: Any) -> Any:
    # openpyxl stores Decimal as a number but reads it back as float
    if isinstance(value, Decimal):
        return float(value)
    return value


def _append_rows(worksheet, rows: Iterable[Sequence[Any]]) -> int:
    count = 0
    for row in rows:
        worksheet.append([_cell_value(value) for value in row])
        count += 1
    return count


def _inventory_rows(dataset: Dataset):
    for item in dataset.items:
        yield (
            item.item_id,
            item.name,
            item.category,
            item.stock,
            item.weight_lbs,
            item.cost_pre_shipping,
            item.cost_post_shipping,
            item.min_price,
            item.max_price,
            item.min_profit,
            item.max_profit,
        )


def _purchase_rows(dataset: Dataset):
    for purchase in dataset.purchases:
        yield (
            purchase.purchase_id,
            purchase.created_at,
            purchase.subtotal,
            purchase.tax,
            purchase.shipping_us,
            purchase.shipping_intl,
            purchase.weight_lbs,
            purchase.total_units,
            purchase.total_cost,
            purchase.cash_used,
            purchase.payment_source.value,
        )


def _purchase_line_rows(dataset: Dataset):
    for purchase in dataset.purchases:
        for line in purchase.lines:
            yield (
                purchase.purchase_id,
                line.line_id,
                line.item_id,
                line.quantity,
                line.sub_items_qty if line.has_sub_items else 0,
                line.unit_cost,
                line.per_unit_tax,
                line.per_unit_shipping_us,
                line.per_unit_shipping_intl,
                line.unit_cost_post_shipping,
            )


def _sale_rows(dataset: Dataset):
    for sale in dataset.sales:
        yield (
            sale.sale_id,
            sale.created_at,
            sale.payment_method.value,
            sum(line.quantity for line in sale.lines),
            sale.total_amount,
            sale.buyer_name,
        )


def _transaction_rows(dataset: Dataset):
    for transaction in dataset.transactions:
        yield (
            transaction.transaction_id,
            transaction.created_at,
            transaction.type.value,
            transaction.category,
            transaction.description,
            transaction.amount,
            payment_source_of(transaction.funding).value,
            cash_ledger.cash_required_by(transaction),
        )


def _withdrawal_rows(dataset: Dataset):
    for withdrawal in dataset.cash_withdrawals:
        yield (
            withdrawal.withdrawal_id,
            withdrawal.withdrawn_at,
            withdrawal.amount,
            withdrawal.reason,
            withdrawal.linked_purchase_id,
            withdrawal.notes,
        )


def _cash_flow_rows(dataset: Dataset, now: Optional[datetime]):
    stats = cash_ledger.get_cash_flow_stats(dataset, now=now)
    statement = cash_ledger.build_cash_flow_statement(dataset)
    return (
        ("Total revenue", stats.total_revenue),
        ("Total withdrawn", stats.total_withdrawn),
        ("Available cash", stats.available_cash),
        ("Reinvestment rate %", stats.reinvestment_rate),
        ("Withdrawals this month", stats.monthly_withdrawals),
        ("Withdrawal count", stats.withdrawal_count),
        ("Transaction withdrawals", cash_ledger.total_transaction_withdrawals(dataset)),
        ("Operating", statement.operating),
        ("Investing", statement.investing),
        ("Financing", statement.financing),
        ("Net", statement.net),
    )


def export_workbook(
    dataset: Dataset,
    destination: Path,
    *,
    overwrite: bool = False,
    now: Optional[datetime] = None,
) -> Path:
    """Write ``dataset`` to an ``.xlsx`` workbook at ``destination``.

    Raises:
        FileExistsError: If ``destination`` exists and ``overwrite`` is false.
    """

    destination = Path(destination).expanduser().resolve()
    if destination.exists() and not overwrite:
        raise FileExistsError(f"Refusing to overwrite existing report: {destination}")
    destination.parent.mkdir(parents=True, exist_ok=True)

    workbook = openpyxl.Workbook()
    if workbook.active and workbook.active.title == "Sheet":
        workbook.remove(workbook.active)

    bold_font = Font(bold=True)
    row_sources = {
        "Inventory": _inventory_rows(dataset),
        "Purchases": _purchase_rows(dataset),
        "PurchaseLines": _purchase_line_rows(dataset),
        "Sales": _sale_rows(dataset),
        "Transactions": _transaction_rows(dataset),
        "CashWithdrawals": _withdrawal_rows(dataset),
        "CashFlow": _cash_flow_rows(dataset, now),
    }

    for sheet_name, columns in SHEET_COLUMNS.items():
        worksheet = workbook.create_sheet(title=sheet_name)
        for column_index, column_name in enumerate(columns, start=1):
            cell = worksheet.cell(row=1, column=column_index)
            cell.value = column_name
            cell.font = bold_font
        written = _append_rows(worksheet, row_sources[sheet_name])
        log.debug("Exported %d rows to sheet '%s'", written, sheet_name)

    workbook.save(destination)
    log.info("Exported report workbook to '%s'", destination)
    return destination
