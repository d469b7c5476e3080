"""Command-line entry points for Nanis Books.

All orchestration in this module is limited to argparse wiring and translating
command-line arguments into the command objects consumed by the business
layer. Each write command computes a new dataset snapshot, commits it to the
runtime context, and the snapshot is persisted only after the command
succeeded.
"""

from __future__ import annotations

import argparse
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Callable, Dict, Iterable, Mapping, MutableMapping, Optional, Sequence

from . import analytics, cash_ledger, core_logic, log, pricing, report_export
from .constants import DEFAULT_WITHDRAWAL_REASON, Category, PaymentMethod, PaymentSource, TransactionType
from .data_manager import PurchaseLine, SaleLine, funding_from_fields


@dataclass(frozen=True)
class CommandSpec:
    """Describe how a CLI sub-command is configured and executed."""

    name: str
    help_text: str
    register: Callable[[argparse._SubParsersAction[argparse.ArgumentParser]], argparse.ArgumentParser]
    execute: Callable[[core_logic.RuntimeContext, argparse.Namespace], int]
    mutates: bool = True


def build_parser() -> argparse.ArgumentParser:
    """Construct the top-level CLI argument parser."""
    parser = argparse.ArgumentParser(
        prog="nanis-books",
        description="Command-line tools for the Nanis Books dataset.",
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="Optional path to config.ini (defaults to the nearest config.ini).",
    )
    return parser


def configure_subcommands(
    parser: argparse.ArgumentParser,
) -> Mapping[str, CommandSpec]:
    """Wire all CLI sub-commands onto the supplied parser."""
    subparsers = parser.add_subparsers(dest="command", required=True, title="commands")
    write_specs = register_write_commands(subparsers)
    read_specs = register_read_commands(subparsers)
    return build_command_table([*write_specs.values(), *read_specs.values()])


def register_write_commands(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> Dict[str, CommandSpec]:
    """Declare mutating CLI commands such as purchases and sales."""
    specs = {
        "add-item": register_add_item_command(subparsers),
        "purchase": register_purchase_command(subparsers),
        "delete-purchase": register_delete_purchase_command(subparsers),
        "sale": register_sale_command(subparsers),
        "delete-sale": register_delete_sale_command(subparsers),
        "transaction": register_transaction_command(subparsers),
        "recalculate": register_recalculate_command(subparsers),
        "settings": register_settings_command(subparsers),
    }
    for spec in specs.values():
        spec.register(subparsers)
    return specs


def register_read_commands(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> Dict[str, CommandSpec]:
    """Declare read-only CLI commands such as reports."""
    specs = {
        "cash": register_cash_command(subparsers),
        "stock": register_stock_command(subparsers),
        "quote": register_quote_command(subparsers),
        "audit": register_audit_command(subparsers),
        "export": register_export_command(subparsers),
        "analytics": register_analytics_command(subparsers),
    }
    for spec in specs.values():
        spec.register(subparsers)
    return specs


def parse_money(raw: str) -> Decimal:
    """argparse ``type`` for currency and rate values."""
    try:
        return Decimal(raw)
    except InvalidOperation as exc:
        raise argparse.ArgumentTypeError(f"Not a number: {raw!r}") from exc


def parse_purchase_line(raw: str) -> PurchaseLine:
    """Parse ``ITEM:QTY:UNIT_COST[:SUB_ITEMS]`` into a purchase line."""
    parts = raw.split(":")
    if len(parts) not in (3, 4):
        raise argparse.ArgumentTypeError(f"Expected ITEM:QTY:UNIT_COST[:SUB_ITEMS], got {raw!r}")
    try:
        quantity = int(parts[1])
        unit_cost = Decimal(parts[2])
        sub_items = int(parts[3]) if len(parts) == 4 else 0
    except (ValueError, InvalidOperation) as exc:
        raise argparse.ArgumentTypeError(f"Invalid purchase line {raw!r}") from exc
    return PurchaseLine(
        line_id="",
        item_id=parts[0],
        quantity=quantity,
        unit_cost=unit_cost,
        has_sub_items=sub_items > 0,
        sub_items_qty=sub_items,
    )


def parse_sale_line(raw: str) -> SaleLine:
    """Parse ``ITEM:QTY:UNIT_PRICE`` into a sale line."""
    parts = raw.split(":")
    if len(parts) != 3:
        raise argparse.ArgumentTypeError(f"Expected ITEM:QTY:UNIT_PRICE, got {raw!r}")
    try:
        return SaleLine(item_id=parts[0], quantity=int(parts[1]), unit_price=Decimal(parts[2]))
    except (ValueError, InvalidOperation) as exc:
        raise argparse.ArgumentTypeError(f"Invalid sale line {raw!r}") from exc


def register_add_item_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``add-item``."""
    name = "add-item"
    help_text = "Register a new inventory item."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.add_argument("--name", required=True)
        parser.add_argument("--category", choices=[member.value for member in Category], default=Category.OTHER.value)
        parser.add_argument("--stock", type=int, default=0)
        parser.add_argument("--weight-lbs", type=parse_money, default=None)
        parser.add_argument("--cost-pre-shipping", type=parse_money, default=None)
        parser.add_argument("--cost-post-shipping", type=parse_money, default=None)
        parser.add_argument("--description", default=None)
        parser.add_argument("--notes", default=None)
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_add_item)


def register_purchase_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``purchase``."""
    name = "purchase"
    help_text = "Create or edit a purchase, optionally paying with business cash."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.add_argument(
            "--line",
            dest="lines",
            action="append",
            type=parse_purchase_line,
            required=True,
            help="ITEM:QTY:UNIT_COST[:SUB_ITEMS]; repeat for each line.",
        )
        parser.add_argument("--purchase-id", default=None, help="Edit this purchase instead of creating one.")
        parser.add_argument("--shipping-us", type=parse_money, default=None)
        parser.add_argument("--shipping-intl", type=parse_money, default=None)
        parser.add_argument("--subtotal", type=parse_money, default=None)
        parser.add_argument("--tax", type=parse_money, default=None)
        parser.add_argument("--weight-lbs", type=parse_money, default=None)
        parser.add_argument("--ordered-date", default=None)
        parser.add_argument("--payment-date", default=None)
        parser.add_argument(
            "--cash",
            dest="cash_to_use",
            type=parse_money,
            default=None,
            help="Business cash to apply; an edit keeps the stored amount when omitted.",
        )
        parser.add_argument("--reason", default=None, help=f"Withdrawal reason (default: {DEFAULT_WITHDRAWAL_REASON!r}).")
        parser.add_argument("--notes", default=None)
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_purchase)


def register_delete_purchase_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``delete-purchase``."""
    name = "delete-purchase"
    help_text = "Delete a purchase and reverse its stock and cash effects."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.add_argument("--purchase-id", required=True)
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_delete_purchase)


def register_sale_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``sale``."""
    name = "sale"
    help_text = "Record a sale."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.add_argument(
            "--line",
            dest="lines",
            action="append",
            type=parse_sale_line,
            required=True,
            help="ITEM:QTY:UNIT_PRICE; repeat for each line.",
        )
        parser.add_argument(
            "--payment-method",
            choices=[member.value for member in PaymentMethod],
            default=PaymentMethod.CASH.value,
        )
        parser.add_argument("--buyer", dest="buyer_name", default=None)
        parser.add_argument("--channel", default=None)
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_sale)


def register_delete_sale_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``delete-sale``."""
    name = "delete-sale"
    help_text = "Delete a sale and restore its stock."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.add_argument("--sale-id", required=True)
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_delete_sale)


def register_transaction_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``transaction``."""
    name = "transaction"
    help_text = "Record an expense, fee, income, or discount."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.add_argument("--type", dest="transaction_type", choices=[m.value for m in TransactionType], required=True)
        parser.add_argument("--amount", type=parse_money, required=True)
        parser.add_argument("--description", required=True)
        parser.add_argument("--category", default="Other")
        parser.add_argument(
            "--source",
            dest="payment_source",
            choices=[member.value for member in PaymentSource],
            default=PaymentSource.EXTERNAL.value,
        )
        parser.add_argument("--cash-amount", type=parse_money, default=None)
        parser.add_argument("--external-amount", type=parse_money, default=None)
        parser.add_argument("--payment-method", choices=[m.value for m in PaymentMethod], default=None)
        parser.add_argument("--notes", default=None)
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_transaction)


def register_recalculate_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``recalculate``."""
    name = "recalculate"
    help_text = "Re-run allocation and pricing over every stored purchase."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_recalculate)


def register_settings_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``settings``."""
    name = "settings"
    help_text = "Update the weight cost and tax rate stored in the dataset."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.add_argument("--weight-cost-per-lb", type=parse_money, default=None)
        parser.add_argument("--tax-rate-percent", type=parse_money, default=None)
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_settings)


def register_cash_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``cash``."""
    name = "cash"
    help_text = "Display available business cash and the cash flow statement."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_cash_report, mutates=False)


def register_stock_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``stock``."""
    name = "stock"
    help_text = "Display stock levels, costs, and price bands."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_stock_report, mutates=False)


def register_quote_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``quote``."""
    name = "quote"
    help_text = "Estimate landed cost and minimum selling price for a supplier offer."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.add_argument("--product", dest="product_name", required=True)
        parser.add_argument("--price", type=parse_money, required=True)
        parser.add_argument("--weight-lbs", type=parse_money, default=Decimal("1"))
        parser.add_argument("--coupon", type=parse_money, default=Decimal("0"))
        parser.add_argument("--target-profit", type=parse_money, default=None)
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_quote, mutates=False)


def register_audit_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``audit``."""
    name = "audit"
    help_text = "Compare a purchase's stored allocation with a fresh one."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.add_argument("--purchase-id", required=True)
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_audit, mutates=False)


def register_export_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``export``."""
    name = "export"
    help_text = "Write the dataset to an .xlsx workbook."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.add_argument("--output", type=Path, required=True)
        parser.add_argument("--force", action="store_true", help="Overwrite an existing workbook.")
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_export, mutates=False)


def register_analytics_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``analytics``."""
    name = "analytics"
    help_text = "Display sales, profitability, channel, and weekly figures for a period."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.add_argument(
            "--period",
            choices=[period.value for period in analytics.Period],
            default=analytics.Period.CURRENT_MONTH.value,
            help="Reporting window (default: current-month).",
        )
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_analytics, mutates=False)


def load_runtime_context(config_path: Optional[Path] = None) -> core_logic.RuntimeContext:
    """Resolve the runtime context for CLI operations."""
    context = core_logic.load_runtime_context(config_path)
    core_logic.ensure_schema_version(context)
    return context


def dispatch_command(
    context: core_logic.RuntimeContext,
    args: argparse.Namespace,
    command_table: Mapping[str, CommandSpec],
) -> int:
    """Dispatch the parsed arguments to the configured executor."""
    if not hasattr(args, "command") or args.command is None:
        raise KeyError("No command specified")
    spec = command_table.get(args.command)
    if spec is None:
        raise KeyError(f"Unknown command: {args.command}")
    return spec.execute(context, args)


def build_command_table(
    specs: Iterable[CommandSpec],
) -> MutableMapping[str, CommandSpec]:
    """Build an index of command specifications keyed by command name."""
    table: Dict[str, CommandSpec] = {}
    for spec in specs:
        if spec.name in table:
            raise ValueError(f"Duplicate command name: {spec.name}")
        table[spec.name] = spec
    return table


def translate_add_item(args: argparse.Namespace) -> core_logic.AddItemCommand:
    return core_logic.AddItemCommand(
        name=args.name,
        category=args.category,
        stock=args.stock,
        weight_lbs=args.weight_lbs,
        cost_pre_shipping=args.cost_pre_shipping,
        cost_post_shipping=args.cost_post_shipping,
        description=args.description,
        notes=args.notes,
    )


def translate_purchase(args: argparse.Namespace) -> core_logic.PurchaseDraft:
    """Translate CLI args into a purchase draft."""
    return core_logic.PurchaseDraft(
        lines=tuple(args.lines),
        shipping_us=args.shipping_us,
        purchase_id=args.purchase_id,
        subtotal=args.subtotal,
        tax=args.tax,
        shipping_intl=args.shipping_intl,
        weight_lbs=args.weight_lbs,
        ordered_date=args.ordered_date,
        payment_date=args.payment_date,
    )


def translate_sale(args: argparse.Namespace) -> core_logic.SaleCommand:
    return core_logic.SaleCommand(
        lines=tuple(args.lines),
        payment_method=PaymentMethod(args.payment_method),
        buyer_name=args.buyer_name,
        channel=args.channel,
    )


def translate_transaction(args: argparse.Namespace) -> core_logic.TransactionCommand:
    """Translate CLI args into a transaction command; flat source fields become a funding variant."""
    return core_logic.TransactionCommand(
        type=TransactionType(args.transaction_type),
        amount=args.amount,
        description=args.description,
        category=args.category,
        funding=funding_from_fields(args.payment_source, args.cash_amount, args.external_amount),
        payment_method=PaymentMethod(args.payment_method) if args.payment_method else None,
        notes=args.notes,
    )


def run_add_item(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    dataset, item = core_logic.add_item(
        context.dataset,
        translate_add_item(args),
        markup=context.settings.item_entry_markup,
    )
    core_logic.commit(context, dataset)
    print(f"Added item {item.item_id} ({item.name})")
    return 0


def run_purchase(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    """Execute the purchase workflow via the BLL."""
    result = core_logic.save_purchase(
        context.dataset,
        translate_purchase(args),
        cash_to_use=args.cash_to_use,
        reason=args.reason,
        notes=args.notes,
        markup=context.settings.purchase_markup,
    )
    core_logic.commit(context, result.dataset)
    breakdown = result.breakdown
    print(
        f"Saved purchase {result.purchase.purchase_id}: total {result.purchase.total_cost:.2f} "
        f"(cash {breakdown.cash_used:.2f}, external {breakdown.external_payment:.2f}, "
        f"source {breakdown.payment_source.value})"
    )
    return 0


def run_delete_purchase(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    core_logic.commit(context, core_logic.delete_purchase(context.dataset, args.purchase_id))
    print(f"Deleted purchase {args.purchase_id}")
    return 0


def run_sale(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    dataset, sale = core_logic.record_sale(context.dataset, translate_sale(args))
    core_logic.commit(context, dataset)
    print(f"Recorded sale {sale.sale_id}: {sale.total_amount:.2f}")
    return 0


def run_delete_sale(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    core_logic.commit(context, core_logic.delete_sale(context.dataset, args.sale_id))
    print(f"Deleted sale {args.sale_id}")
    return 0


def run_transaction(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    """Execute the transaction workflow; a cash shortfall aborts without changes."""
    result = core_logic.record_transaction(context.dataset, translate_transaction(args))
    if result.error is not None:
        raise result.error
    core_logic.commit(context, result.dataset)
    print(f"Recorded {args.transaction_type} {result.transaction.transaction_id}")
    for withdrawal in result.withdrawals:
        print(f"  withdrew {withdrawal.amount:.2f} of business cash")
    return 0


def run_recalculate(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    dataset = core_logic.recalculate_all(context.dataset, markup=context.settings.purchase_markup)
    core_logic.commit(context, dataset)
    print(f"Recalculated {len(dataset.purchases)} purchases")
    return 0


def run_settings(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    dataset = core_logic.update_settings(
        context.dataset,
        weight_cost_per_lb=args.weight_cost_per_lb,
        tax_rate_percent=args.tax_rate_percent,
    )
    core_logic.commit(context, dataset)
    print(
        f"Weight cost per lb: {dataset.settings.weight_cost_per_lb}, "
        f"tax rate: {dataset.settings.tax_rate_percent}%"
    )
    return 0


def run_cash_report(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    """Execute the cash reporting workflow."""
    stats = cash_ledger.get_cash_flow_stats(context.dataset)
    statement = cash_ledger.build_cash_flow_statement(context.dataset)
    print(f"Available cash:      {core_logic.available_cash(context):.2f}")
    print(f"Total revenue:       {stats.total_revenue:.2f}")
    print(f"Total withdrawn:     {stats.total_withdrawn:.2f} ({stats.withdrawal_count} withdrawals)")
    print(f"Reinvestment rate:   {stats.reinvestment_rate:.1f}%")
    print(f"This month:          {stats.monthly_withdrawals:.2f}")
    print(f"Operating:           {statement.operating:.2f}")
    print(f"Investing:           {statement.investing:.2f}")
    print(f"Financing:           {statement.financing:.2f}")
    print(f"Net:                 {statement.net:.2f}")
    return 0


def run_stock_report(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    """Execute the stock reporting workflow."""
    for item in context.dataset.items:
        band = (
            f"{item.min_price:.2f}-{item.max_price:.2f}"
            if item.min_price is not None and item.max_price is not None
            else "-"
        )
        cost = f"{item.cost_post_shipping:.2f}" if item.cost_post_shipping is not None else "-"
        print(f"{item.item_id}\t{item.name}\tstock={item.stock}\tcost={cost}\tprice={band}")
    return 0


def run_quote(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    settings = context.dataset.settings
    options = {}
    if args.target_profit is not None:
        options["target_profit"] = args.target_profit
    quote = pricing.calculate_quote(
        args.product_name,
        args.price,
        weight_lbs=args.weight_lbs,
        coupon=args.coupon,
        tax_rate_percent=settings.tax_rate_percent,
        weight_cost_per_lb=settings.weight_cost_per_lb,
        **options,
    )
    print(f"{quote.product_name}: landed {quote.unit_cost_post_shipping:.2f}")
    print(f"  tax {quote.tax:.2f}, international shipping {quote.shipping_intl:.2f}")
    print(f"  minimum selling price {quote.minimum_selling_price:.2f} (profit {quote.target_profit:.2f})")
    return 0


def run_audit(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    """Print the allocation audit; exit code 4 flags stored lines that drifted."""
    audit = core_logic.audit_purchase(context.dataset, args.purchase_id)
    print(f"Purchase {audit.purchase_id} (effective tax rate {audit.effective_tax_rate_percent:.3f}%)")
    for line in audit.lines:
        status = "ok" if not line.mismatched_fields else "MISMATCH " + ", ".join(line.mismatched_fields)
        print(
            f"  {line.line_id} {line.item_id} x{line.units}: "
            f"post-shipping {line.expected.unit_cost_post_shipping:.4f} [{status}]"
        )
    for component in audit.components:
        flag = "ok" if component.reconciles else "differs"
        print(
            f"  {component.component}: allocated {component.allocated_total:.2f} "
            f"vs footer {component.footer_value:.2f} ({flag})"
        )
    return 0 if audit.is_consistent else 4


def run_export(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    path = report_export.export_workbook(context.dataset, args.output, overwrite=args.force)
    print(f"Exported report to {path}")
    return 0


def run_analytics(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    """Print the analytics summary for the selected period."""
    period = analytics.Period(args.period)
    start, end = analytics.period_bounds(period)
    summary = analytics.get_sales_analytics(context.dataset, start, end)
    popular = summary.most_popular_item.name if summary.most_popular_item is not None else "-"
    print(f"Period:              {period.value}")
    print(f"Total sales:         {summary.total_sales:.2f} ({summary.number_of_sales} sales, {summary.items_sold} units)")
    print(f"Average order:       {summary.average_order_value:.2f}")
    print(f"Purchase costs:      {summary.purchase_costs:.2f}")
    print(f"Expenses and fees:   {summary.total_expenses + summary.total_fees:.2f}")
    print(f"Other income:        {summary.total_income:.2f}")
    print(f"Net profit:          {summary.net_profit:.2f}")
    print(f"ROI:                 {summary.roi:.1f}%")
    print(f"Gross margin:        {summary.gross_profit_margin:.1f}%")
    print(f"Profit margin:       {summary.profit_margin:.1f}%")
    print(f"Inventory value:     {summary.inventory_value:.2f}")
    print(f"Most popular item:   {popular}")
    for category in summary.categories:
        print(f"  category {category.name}: {category.revenue:.2f} ({category.quantity} units)")
    for method in summary.payment_methods:
        print(f"  method {method.method.value}: {method.amount:.2f} ({method.count} sales)")
    channels = analytics.channel_performance(context.dataset, start, end)
    for stats in channels.channels:
        print(f"  channel {stats.channel}: {stats.total_amount:.2f} ({stats.sales_count} sales)")
    if channels.untracked_amount:
        print(f"  channel untracked: {channels.untracked_amount:.2f}")
    for week in analytics.weekly_sales_summary(context.dataset, period):
        print(f"  week {week.week_start:%Y-%m-%d}..{week.week_end:%Y-%m-%d}: {week.total_sales:.2f} ({week.sales_count} sales)")
    return 0


def handle_cli_error(error: Exception) -> int:
    """Convert raised exceptions into user-friendly exit codes."""
    if isinstance(error, core_logic.BusinessRuleViolation):
        log.error("%s", error)
        return 2
    if isinstance(error, FileNotFoundError):
        log.error("%s", error)
        return 3
    log.error("%s", error)
    return 1


def persist_dataset(context: core_logic.RuntimeContext) -> None:
    """Persist dataset changes after successful execution."""
    try:
        core_logic.persist_context(context)
    except PermissionError as error:
        raise RuntimeError(str(error)) from error


def main(argv: Sequence[str] | None = None) -> int:
    """CLI entry point that orchestrates parsing and execution."""
    parser = build_parser()
    command_table = configure_subcommands(parser)
    args = parser.parse_args(argv)
    try:
        context = load_runtime_context(getattr(args, "config", None))
        exit_code = dispatch_command(context, args, command_table)
        if exit_code == 0 and command_table[args.command].mutates:
            persist_dataset(context)
        return exit_code
    except Exception as error:  # pragma: no cover - centralised error handler tested separately
        return handle_cli_error(error)
