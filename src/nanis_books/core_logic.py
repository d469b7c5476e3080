"""Business logic layer for Nanis Books.

Orchestrates the allocation engine, the pricing deriver and the cash ledger
into operations that turn one dataset snapshot into the next. Every processor
is pure: it receives a :class:`~nanis_books.data_manager.Dataset` and returns a
new one, leaving the input untouched so that a caller can drop the result when
a later step fails. The :class:`RuntimeContext` is the only mutable piece; it
holds the snapshot currently committed and the caches derived from it.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import UTC, datetime
from decimal import Decimal
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Tuple

from . import allocation, cash_ledger, data_manager, log
from .constants import (
    DEFAULT_WITHDRAWAL_REASON,
    EXPECTED_SCHEMA_VERSION,
    TRANSACTION_REASON_PREFIX,
    Category,
    PaymentMethod,
    PaymentSource,
    TransactionType,
)
from .data_manager import (
    CashWithdrawal,
    Dataset,
    ExternalFunding,
    Funding,
    InventoryItem,
    Purchase,
    PurchaseLine,
    Sale,
    SaleLine,
    Settings,
    Transaction,
)
from .errors import (
    BusinessRuleViolation,
    InsufficientFundsError,
    InvalidPurchaseDraft,
    MissingReferenceError,
)
from .pricing import ITEM_ENTRY_MARKUP, PURCHASE_MARKUP, MarkupFactors, derive_pricing

ZERO = Decimal("0")


@dataclass
class RuntimeContext:
    """Configuration plus the dataset snapshot currently committed."""

    settings: data_manager.ConfigSettings
    dataset: Dataset
    _cache: Dict[str, Dict[str, Any]] = field(default_factory=dict, repr=False, compare=False)


@dataclass(frozen=True)
class PurchaseDraft:
    """User intent for creating or editing a purchase.

    Footer fields left as ``None`` take their defaults. For a new purchase
    these are the line subtotal, the auto-computed tax, no US shipping, the
    suggested weight and weight-priced international shipping. An edit keeps
    the stored values instead; only the subtotal follows the lines when their
    sum moved.
    """

    lines: Sequence[PurchaseLine]
    shipping_us: Optional[Decimal] = None
    purchase_id: Optional[str] = None
    subtotal: Optional[Decimal] = None
    tax: Optional[Decimal] = None
    shipping_intl: Optional[Decimal] = None
    weight_lbs: Optional[Decimal] = None
    ordered_date: Optional[str] = None
    payment_date: Optional[str] = None
    timestamp: Optional[datetime] = None


@dataclass(frozen=True)
class AddItemCommand:
    """User intent for registering an inventory item by hand."""

    name: str
    category: str = Category.OTHER.value
    stock: int = 0
    weight_lbs: Optional[Decimal] = None
    cost_pre_shipping: Optional[Decimal] = None
    cost_post_shipping: Optional[Decimal] = None
    description: Optional[str] = None
    notes: Optional[str] = None
    timestamp: Optional[datetime] = None


@dataclass(frozen=True)
class SaleCommand:
    lines: Sequence[SaleLine]
    payment_method: PaymentMethod = PaymentMethod.CASH
    buyer_name: Optional[str] = None
    channel: Optional[str] = None
    timestamp: Optional[datetime] = None


@dataclass(frozen=True)
class TransactionCommand:
    type: TransactionType
    amount: Decimal
    description: str
    category: str = "Other"
    funding: Funding = ExternalFunding()
    payment_method: Optional[PaymentMethod] = None
    notes: Optional[str] = None
    timestamp: Optional[datetime] = None


@dataclass(frozen=True)
class PurchaseCashResult:
    dataset: Dataset
    withdrawal: Optional[CashWithdrawal]
    breakdown: cash_ledger.PaymentBreakdown


@dataclass(frozen=True)
class TransactionCashResult:
    """Outcome of charging a transaction to business cash.

    On insufficient cash ``dataset`` is the unmodified input and ``error``
    describes the shortfall.
    """

    dataset: Dataset
    withdrawals: Tuple[CashWithdrawal, ...] = ()
    error: Optional[InsufficientFundsError] = None
    transaction: Optional[Transaction] = None

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass(frozen=True)
class PurchaseSaveResult:
    dataset: Dataset
    purchase: Purchase
    withdrawal: Optional[CashWithdrawal]
    breakdown: cash_ledger.PaymentBreakdown
    stock_moved: bool


def _resolve_timestamp(candidate: Optional[datetime]) -> datetime:
    """Return ``candidate`` or the current UTC time."""

    return candidate if candidate is not None else datetime.now(UTC)


def _get_cache_bucket(context: RuntimeContext, name: str) -> Dict[str, Any]:
    bucket = context._cache.get(name)
    if bucket is None:
        log.debug("Initializing cache bucket '%s'", name)
        bucket = {}
        context._cache[name] = bucket
    return bucket


def _invalidate_cache(context: RuntimeContext, *names: str) -> None:
    """Evict cache buckets; with no names every bucket is dropped."""

    targets = names or tuple(context._cache)
    if not targets:
        return
    log.debug("Invalidating cache buckets: %s", ", ".join(targets))
    for name in targets:
        context._cache.pop(name, None)


def _ensure_items_cache(context: RuntimeContext) -> Dict[str, Any]:
    bucket = _get_cache_bucket(context, "items")
    if "by_id" not in bucket:
        bucket["by_id"] = {item.item_id: item for item in context.dataset.items}
        log.debug("Populated items cache with %d entries", len(bucket["by_id"]))
    return bucket


def _ensure_cash_cache(context: RuntimeContext) -> Dict[str, Any]:
    """Cache the recomputed cash balance until the next commit."""

    bucket = _get_cache_bucket(context, "cash")
    if "available" not in bucket:
        dataset = context.dataset
        bucket["revenue"] = cash_ledger.total_revenue(dataset)
        bucket["income"] = cash_ledger.total_income(dataset)
        bucket["withdrawn"] = cash_ledger.total_withdrawn(dataset)
        bucket["available"] = cash_ledger.get_available_cash(
            bucket["revenue"], bucket["income"], bucket["withdrawn"]
        )
        log.debug("Populated cash cache: available=%s", bucket["available"])
    return bucket


def load_runtime_context(config_path: Optional[Path] = None) -> RuntimeContext:
    """Resolve ``config.ini`` and open the dataset it points at.

    Raises:
        FileNotFoundError: If the configuration file or the dataset is missing.
        KeyError: When mandatory configuration options are missing.
    """

    located_config = data_manager.find_config_file(config_path)
    resolved_config = Path(located_config).expanduser().resolve()
    parser = data_manager.read_config(resolved_config)
    settings = data_manager.parse_settings(parser, base_path=resolved_config.parent)
    dataset = data_manager.open_dataset(settings.data_file, default_settings=default_settings_for(settings))
    log.info("Loaded runtime context for dataset '%s'", settings.data_file)
    return RuntimeContext(settings=settings, dataset=dataset)


def default_settings_for(settings: data_manager.ConfigSettings) -> Settings:
    """Dataset settings used when a document carries none."""

    return Settings(
        weight_cost_per_lb=settings.default_weight_cost_per_lb,
        tax_rate_percent=settings.default_tax_rate_percent,
    )


def ensure_schema_version(context: RuntimeContext) -> None:
    """Refuse to work on a dataset declared with another schema version.

    Raises:
        RuntimeError: If ``config.ini`` declares a different schema version.
    """

    if context.settings.schema_version != EXPECTED_SCHEMA_VERSION:
        log.error(
            "Dataset schema mismatch: expected %s, found %s",
            EXPECTED_SCHEMA_VERSION,
            context.settings.schema_version,
        )
        raise RuntimeError(
            "Dataset schema mismatch: expected %s, found %s"
            % (EXPECTED_SCHEMA_VERSION, context.settings.schema_version)
        )
    log.debug("Schema version '%s' validated", context.settings.schema_version)


def commit(context: RuntimeContext, dataset: Dataset) -> RuntimeContext:
    """Adopt ``dataset`` as the current snapshot and drop derived caches."""

    context.dataset = dataset
    _invalidate_cache(context)
    return context


def persist_context(context: RuntimeContext) -> None:
    data_manager.save_dataset(context.dataset, destination=context.settings.data_file)
    log.info("Persisted dataset '%s'", context.settings.data_file)


def refresh_context(context: RuntimeContext) -> RuntimeContext:
    """Reload the dataset from disk, discarding uncommitted edits and caches."""

    dataset = data_manager.refresh_dataset(
        context.settings.data_file,
        default_settings=default_settings_for(context.settings),
    )
    log.info("Reloaded dataset '%s'", context.settings.data_file)
    return RuntimeContext(settings=context.settings, dataset=dataset)


def get_item(context: RuntimeContext, item_id: str) -> InventoryItem:
    """Resolve an inventory item by id.

    Raises:
        MissingReferenceError: If ``item_id`` is unknown.
    """

    cache = _ensure_items_cache(context)
    try:
        return cache["by_id"][item_id]
    except KeyError as exc:
        log.warning("Item lookup failed for id '%s'", item_id)
        raise MissingReferenceError(f"Unknown item id: {item_id}") from exc


def available_cash(context: RuntimeContext) -> Decimal:
    return _ensure_cash_cache(context)["available"]


def find_purchase(dataset: Dataset, purchase_id: Optional[str]) -> Optional[Purchase]:
    if purchase_id is None:
        return None
    return next((purchase for purchase in dataset.purchases if purchase.purchase_id == purchase_id), None)


def get_purchase(dataset: Dataset, purchase_id: str) -> Purchase:
    purchase = find_purchase(dataset, purchase_id)
    if purchase is None:
        log.warning("Purchase lookup failed for id '%s'", purchase_id)
        raise MissingReferenceError(f"Unknown purchase id: {purchase_id}")
    return purchase


def require_positive_quantity(quantity: int) -> None:
    if quantity <= 0:
        log.error("Quantity validation failed: %s", quantity)
        raise ValueError("Quantity must be greater than zero")


def require_nonnegative_money(amount: Decimal) -> None:
    if amount < ZERO:
        log.error("Monetary value validation failed: %s", amount)
        raise ValueError("Amount must be zero or positive")


def generate_record_id(*, prefix: str, when: Optional[datetime] = None) -> str:
    return cash_ledger.generate_record_id(prefix=prefix, when=_resolve_timestamp(when))


def _upsert_purchase(purchases: Sequence[Purchase], purchase: Purchase) -> Tuple[Purchase, ...]:
    """Replace the purchase with the same id in place, or append it."""

    if any(existing.purchase_id == purchase.purchase_id for existing in purchases):
        return tuple(purchase if existing.purchase_id == purchase.purchase_id else existing for existing in purchases)
    return (*purchases, purchase)


def process_purchase_with_cash(
    dataset: Dataset,
    purchase: Purchase,
    cash_to_use: Decimal,
    reason: str = DEFAULT_WITHDRAWAL_REASON,
    notes: Optional[str] = None,
    *,
    timestamp: Optional[datetime] = None,
) -> PurchaseCashResult:
    """Fund ``purchase`` partly or fully from business cash.

    Cash availability is checked against ``dataset`` first. The returned
    dataset carries the purchase with ``cash_used``/``payment_source`` set and,
    when cash was consumed, one new withdrawal linked to the purchase.

    Raises:
        InsufficientFundsError: If ``cash_to_use`` exceeds the available cash.
    """

    if cash_to_use > 0:
        cash_ledger.require_available_cash(dataset, cash_to_use)

    breakdown = cash_ledger.calculate_payment_breakdown(purchase.total_cost, cash_to_use)
    withdrawal: Optional[CashWithdrawal] = None
    withdrawals = dataset.cash_withdrawals
    if breakdown.cash_used > 0:
        withdrawal = cash_ledger.create_cash_withdrawal(
            breakdown.cash_used,
            reason,
            purchase.purchase_id,
            notes,
            timestamp=timestamp,
        )
        withdrawals = (*withdrawals, withdrawal)

    updated = replace(purchase, cash_used=breakdown.cash_used, payment_source=breakdown.payment_source)
    log.info(
        "Applied cash to purchase '%s' (cash=%s, external=%s, source=%s)",
        purchase.purchase_id,
        breakdown.cash_used,
        breakdown.external_payment,
        breakdown.payment_source.value,
    )
    return PurchaseCashResult(
        dataset=replace(
            dataset,
            purchases=_upsert_purchase(dataset.purchases, updated),
            cash_withdrawals=withdrawals,
        ),
        withdrawal=withdrawal,
        breakdown=breakdown,
    )


def process_transaction_with_cash(
    dataset: Dataset,
    transaction: Transaction,
    *,
    timestamp: Optional[datetime] = None,
) -> TransactionCashResult:
    """Withdraw the business cash a transaction consumes.

    Income and discount entries pass through. Cash-funded expenses and fees
    withdraw their full amount, mixed ones only their cash side. A shortfall
    is reported in the result instead of raised; the dataset is then returned
    unchanged.
    """

    cash_needed = cash_ledger.cash_required_by(transaction)
    if cash_needed <= 0:
        return TransactionCashResult(dataset=dataset)

    if not cash_ledger.can_withdraw_cash(dataset, cash_needed):
        available = cash_ledger.calculate_available_cash(dataset)
        log.warning(
            "Transaction '%s' needs %s of cash but only %s is available",
            transaction.transaction_id,
            cash_needed,
            available,
        )
        return TransactionCashResult(
            dataset=dataset,
            error=InsufficientFundsError(requested=cash_needed, available=available),
        )

    withdrawal = cash_ledger.create_cash_withdrawal(
        cash_needed,
        f"{TRANSACTION_REASON_PREFIX} {transaction.description}",
        None,
        f"{transaction.type.value} - {transaction.category}",
        timestamp=timestamp,
    )
    log.info("Withdrew %s of cash for transaction '%s'", cash_needed, transaction.transaction_id)
    return TransactionCashResult(
        dataset=replace(dataset, cash_withdrawals=(*dataset.cash_withdrawals, withdrawal)),
        withdrawals=(withdrawal,),
    )


def record_transaction(dataset: Dataset, command: TransactionCommand) -> TransactionCashResult:
    """Validate, charge, and append a transaction.

    Malformed funding raises before anything is recorded. Insufficient cash
    comes back as ``result.error`` with the input dataset untouched.

    Raises:
        MixedSourceMismatch: If a mixed split is inconsistent.
        ValueError: If the amount is negative.
    """

    require_nonnegative_money(command.amount)
    timestamp = _resolve_timestamp(command.timestamp)
    transaction = Transaction(
        transaction_id=generate_record_id(prefix="X", when=timestamp),
        type=command.type,
        amount=command.amount,
        description=command.description,
        category=command.category,
        created_at=timestamp.isoformat(),
        funding=command.funding,
        payment_method=command.payment_method,
        notes=command.notes,
    )
    try:
        cash_ledger.validate_transaction_funding(dataset, transaction)
    except InsufficientFundsError as error:
        return TransactionCashResult(dataset=dataset, error=error)

    result = process_transaction_with_cash(dataset, transaction, timestamp=timestamp)
    if not result.ok:
        return result
    log.info(
        "Recorded %s transaction '%s' (amount=%s)",
        transaction.type.value,
        transaction.transaction_id,
        transaction.amount,
    )
    return replace(
        result,
        dataset=replace(result.dataset, transactions=(*result.dataset.transactions, transaction)),
        transaction=transaction,
    )


def billable_units_by_item(lines: Sequence[PurchaseLine]) -> Dict[str, int]:
    """Total billable units per item across ``lines``."""

    totals: Dict[str, int] = {}
    for line in lines:
        totals[line.item_id] = totals.get(line.item_id, 0) + allocation.billable_units(line)
    return totals


def quantities_changed(previous: Optional[Purchase], lines: Sequence[PurchaseLine]) -> bool:
    """True for a new purchase or when any item's billable-unit total moved."""

    if previous is None:
        return True
    return billable_units_by_item(previous.lines) != billable_units_by_item(lines)


def _refresh_item_costs(item: InventoryItem, line: PurchaseLine, markup: MarkupFactors, stamp: str) -> InventoryItem:
    cost_post = line.unit_cost_post_shipping if line.unit_cost_post_shipping is not None else line.unit_cost
    band = derive_pricing(cost_post, markup)
    return replace(
        item,
        cost_pre_shipping=line.unit_cost,
        cost_post_shipping=cost_post,
        min_price=band.min_price,
        max_price=band.max_price,
        min_profit=band.min_profit,
        max_profit=band.max_profit,
        updated_at=stamp,
    )


def apply_purchase_to_inventory(
    items: Sequence[InventoryItem],
    lines: Sequence[PurchaseLine],
    *,
    previous_lines: Sequence[PurchaseLine] = (),
    move_stock: bool,
    markup: MarkupFactors,
    stamp: str,
) -> Tuple[InventoryItem, ...]:
    """Refresh item costs from allocated ``lines`` and optionally move stock.

    With ``move_stock`` the previous version's units are taken back first
    (never below zero) and the new units added. Cost and price fields are
    always overwritten; when an item appears on several lines the last line
    wins.
    """

    by_id: Dict[str, InventoryItem] = {item.item_id: item for item in items}

    if move_stock:
        old_units = billable_units_by_item(previous_lines)
        new_units = billable_units_by_item(lines)
        for item_id in (*old_units, *new_units):
            item = by_id.get(item_id)
            if item is None:
                continue
            stock = max(0, item.stock - old_units.pop(item_id, 0)) + new_units.pop(item_id, 0)
            by_id[item_id] = replace(item, stock=stock, updated_at=stamp)

    for line in lines:
        item = by_id.get(line.item_id)
        if item is None:
            log.warning("Purchase line references unknown item '%s'; inventory untouched", line.item_id)
            continue
        by_id[line.item_id] = _refresh_item_costs(item, line, markup, stamp)

    return tuple(by_id[item.item_id] for item in items)


def require_known_items(dataset: Dataset, item_ids: Sequence[str]) -> None:
    known = {item.item_id for item in dataset.items}
    for item_id in item_ids:
        if item_id not in known:
            log.warning("Item lookup failed for id '%s'", item_id)
            raise MissingReferenceError(f"Unknown item id: {item_id}")


def validate_purchase_draft(draft: PurchaseDraft) -> None:
    """Reject drafts that cannot be allocated.

    Raises:
        InvalidPurchaseDraft: For an empty line list or a line without item.
        ValueError: For non-positive quantities or negative costs.
    """

    if not draft.lines:
        raise InvalidPurchaseDraft("A purchase needs at least one line")
    for index, line in enumerate(draft.lines, start=1):
        if not line.item_id:
            raise InvalidPurchaseDraft(f"Line {index} has no item selected")
        require_positive_quantity(line.quantity)
        require_nonnegative_money(line.unit_cost)
        if line.has_sub_items and line.sub_items_qty < 0:
            raise ValueError("Sub-item quantity must be zero or positive")
    for amount in (draft.shipping_us, draft.subtotal, draft.tax, draft.shipping_intl, draft.weight_lbs):
        if amount is not None:
            require_nonnegative_money(amount)


def build_purchase(
    dataset: Dataset,
    draft: PurchaseDraft,
    *,
    purchase_id: str,
    created_at: str,
    previous: Optional[Purchase] = None,
) -> Purchase:
    """Resolve footer fields and allocate the draft lines.

    Without ``previous`` the missing footer fields get their defaults. With it
    they keep the stored values, except the subtotal, which is recomputed when
    the line total differs from the stored lines' total.
    """

    settings = dataset.settings
    lookup = allocation.weight_lookup_from_items(dataset.items)
    lines = tuple(
        line if line.line_id else replace(line, line_id=f"{purchase_id}-{index}")
        for index, line in enumerate(draft.lines, start=1)
    )

    line_total = allocation.default_subtotal(lines)
    if draft.subtotal is not None:
        subtotal = draft.subtotal
    elif previous is not None and allocation.default_subtotal(previous.lines) == line_total:
        subtotal = previous.subtotal
    else:
        subtotal = line_total

    if previous is not None:
        tax = _pick(draft.tax, previous.tax)
        shipping_us = _pick(draft.shipping_us, previous.shipping_us)
        weight = _pick(draft.weight_lbs, previous.weight_lbs)
        shipping_intl = _pick(draft.shipping_intl, previous.shipping_intl)
        ordered_date = _pick(draft.ordered_date, previous.ordered_date)
        payment_date = _pick(draft.payment_date, previous.payment_date)
    else:
        tax = _pick(draft.tax, allocation.auto_tax(subtotal, settings.tax_rate_percent))
        shipping_us = _pick(draft.shipping_us, ZERO)
        weight = _pick(draft.weight_lbs, allocation.suggested_weight(lines, lookup))
        shipping_intl = _pick(draft.shipping_intl, allocation.default_shipping_intl(weight, settings.weight_cost_per_lb))
        ordered_date = draft.ordered_date
        payment_date = draft.payment_date

    allocated = allocation.allocate_lines(
        lines,
        item_weight_lookup=lookup,
        tax_rate_percent=settings.tax_rate_percent,
        shipping_us=shipping_us,
        shipping_intl=shipping_intl,
    )
    return Purchase(
        purchase_id=purchase_id,
        created_at=created_at,
        ordered_date=ordered_date,
        payment_date=payment_date,
        lines=allocated,
        subtotal=subtotal,
        tax=tax,
        shipping_us=shipping_us,
        shipping_intl=shipping_intl,
        weight_lbs=weight,
        total_units=allocation.total_units(allocated),
        total_cost=allocation.footer_total(subtotal, tax, shipping_us, shipping_intl),
    )


def _pick(value: Any, fallback: Any) -> Any:
    return value if value is not None else fallback


def save_purchase(
    dataset: Dataset,
    draft: PurchaseDraft,
    *,
    cash_to_use: Optional[Decimal] = None,
    reason: Optional[str] = None,
    notes: Optional[str] = None,
    markup: MarkupFactors = PURCHASE_MARKUP,
) -> PurchaseSaveResult:
    """Create or edit a purchase end to end.

    Allocation runs before any cash handling. Stock moves only when the
    per-item billable units differ from the previous version (or the purchase
    is new); footer-only edits refresh item costs and prices but leave stock
    alone. Withdrawals already linked to an edited purchase are replaced by the
    one computed for the new version. An edit that passes no ``cash_to_use``,
    ``reason`` or ``notes`` keeps the stored funding and withdrawal wording.

    Raises:
        InvalidPurchaseDraft: If the draft has no lines or a line lacks an item.
        MissingReferenceError: If ``draft.purchase_id`` names an unknown
            purchase or a line names an unknown item.
        InsufficientFundsError: If ``cash_to_use`` exceeds the available cash.
    """

    validate_purchase_draft(draft)
    require_known_items(dataset, [line.item_id for line in draft.lines])
    timestamp = _resolve_timestamp(draft.timestamp)
    previous = get_purchase(dataset, draft.purchase_id) if draft.purchase_id else None
    purchase_id = previous.purchase_id if previous else generate_record_id(prefix="P", when=timestamp)
    created_at = previous.created_at if previous else timestamp.isoformat()

    linked = next(
        (w for w in dataset.cash_withdrawals if previous and w.linked_purchase_id == purchase_id),
        None,
    )
    if cash_to_use is None:
        cash_to_use = previous.cash_used if previous else ZERO
    if reason is None:
        reason = linked.reason if linked else DEFAULT_WITHDRAWAL_REASON
    if notes is None and linked is not None:
        notes = linked.notes

    purchase = build_purchase(dataset, draft, purchase_id=purchase_id, created_at=created_at, previous=previous)
    move_stock = quantities_changed(previous, purchase.lines)
    items = apply_purchase_to_inventory(
        dataset.items,
        purchase.lines,
        previous_lines=previous.lines if previous else (),
        move_stock=move_stock,
        markup=markup,
        stamp=timestamp.isoformat(),
    )
    staged = replace(
        dataset,
        items=items,
        purchases=_upsert_purchase(dataset.purchases, purchase),
        cash_withdrawals=tuple(
            withdrawal
            for withdrawal in dataset.cash_withdrawals
            if withdrawal.linked_purchase_id != purchase_id
        ),
    )

    result = process_purchase_with_cash(staged, purchase, cash_to_use, reason, notes, timestamp=timestamp)
    saved = find_purchase(result.dataset, purchase_id)
    log.info(
        "Saved purchase '%s' (%d lines, total=%s, stock_moved=%s)",
        purchase_id,
        len(purchase.lines),
        purchase.total_cost,
        move_stock,
    )
    return PurchaseSaveResult(
        dataset=result.dataset,
        purchase=saved if saved is not None else purchase,
        withdrawal=result.withdrawal,
        breakdown=result.breakdown,
        stock_moved=move_stock,
    )


def delete_purchase(dataset: Dataset, purchase_id: str) -> Dataset:
    """Remove a purchase, take its units back out of stock, and release its cash."""

    purchase = get_purchase(dataset, purchase_id)
    units = billable_units_by_item(purchase.lines)
    items = tuple(
        replace(item, stock=max(0, item.stock - units[item.item_id])) if item.item_id in units else item
        for item in dataset.items
    )
    log.info("Deleted purchase '%s'", purchase_id)
    return replace(
        dataset,
        items=items,
        purchases=tuple(p for p in dataset.purchases if p.purchase_id != purchase_id),
        cash_withdrawals=tuple(
            withdrawal
            for withdrawal in dataset.cash_withdrawals
            if withdrawal.linked_purchase_id != purchase_id
        ),
    )


def add_item(
    dataset: Dataset,
    command: AddItemCommand,
    *,
    markup: MarkupFactors = ITEM_ENTRY_MARKUP,
) -> Tuple[Dataset, InventoryItem]:
    """Register an item; its price band comes from the item-entry markup pair."""

    if not command.name.strip():
        raise ValueError("Item name is required")
    if command.stock < 0:
        raise ValueError("Stock must be zero or positive")
    for amount in (command.weight_lbs, command.cost_pre_shipping, command.cost_post_shipping):
        if amount is not None:
            require_nonnegative_money(amount)

    timestamp = _resolve_timestamp(command.timestamp)
    cost_post = command.cost_post_shipping
    band = derive_pricing(cost_post, markup) if cost_post is not None else None
    profit_base = cost_post if cost_post is not None else command.cost_pre_shipping
    item = InventoryItem(
        item_id=generate_record_id(prefix="I", when=timestamp),
        name=command.name.strip(),
        category=command.category,
        stock=command.stock,
        weight_lbs=command.weight_lbs,
        cost_pre_shipping=command.cost_pre_shipping,
        cost_post_shipping=cost_post,
        min_price=band.min_price if band else None,
        max_price=band.max_price if band else None,
        min_profit=band.min_price - profit_base if band else None,
        max_profit=band.max_price - profit_base if band else None,
        description=command.description,
        notes=command.notes,
        created_at=timestamp.isoformat(),
    )
    log.info("Added item '%s' (%s)", item.item_id, item.name)
    return replace(dataset, items=(*dataset.items, item)), item


def record_sale(dataset: Dataset, command: SaleCommand) -> Tuple[Dataset, Sale]:
    """Append a sale and take its units out of stock (never below zero).

    Raises:
        BusinessRuleViolation: If the sale has no lines.
        MissingReferenceError: If a line names an unknown item.
    """

    if not command.lines:
        raise BusinessRuleViolation("A sale needs at least one line")
    known = {item.item_id for item in dataset.items}
    sold: Dict[str, int] = {}
    for line in command.lines:
        if line.item_id not in known:
            raise MissingReferenceError(f"Unknown item id: {line.item_id}")
        require_positive_quantity(line.quantity)
        require_nonnegative_money(line.unit_price)
        sold[line.item_id] = sold.get(line.item_id, 0) + line.quantity

    timestamp = _resolve_timestamp(command.timestamp)
    stamp = timestamp.isoformat()
    sale = Sale(
        sale_id=generate_record_id(prefix="S", when=timestamp),
        created_at=stamp,
        payment_method=command.payment_method,
        lines=tuple(command.lines),
        total_amount=sum((line.unit_price * line.quantity for line in command.lines), ZERO),
        buyer_name=command.buyer_name,
        channel=command.channel,
    )
    items = tuple(
        replace(item, stock=max(0, item.stock - sold[item.item_id]), updated_at=stamp)
        if item.item_id in sold
        else item
        for item in dataset.items
    )
    log.info("Recorded sale '%s' (total=%s)", sale.sale_id, sale.total_amount)
    return replace(dataset, items=items, sales=(*dataset.sales, sale)), sale


def delete_sale(dataset: Dataset, sale_id: str) -> Dataset:
    """Remove a sale and put its units back into stock."""

    sale = next((s for s in dataset.sales if s.sale_id == sale_id), None)
    if sale is None:
        raise MissingReferenceError(f"Unknown sale id: {sale_id}")
    returned: Dict[str, int] = {}
    for line in sale.lines:
        returned[line.item_id] = returned.get(line.item_id, 0) + line.quantity
    items = tuple(
        replace(item, stock=item.stock + returned[item.item_id]) if item.item_id in returned else item
        for item in dataset.items
    )
    log.info("Deleted sale '%s'", sale_id)
    return replace(dataset, items=items, sales=tuple(s for s in dataset.sales if s.sale_id != sale_id))


def update_settings(
    dataset: Dataset,
    *,
    weight_cost_per_lb: Optional[Decimal] = None,
    tax_rate_percent: Optional[Decimal] = None,
) -> Dataset:
    settings = dataset.settings
    if weight_cost_per_lb is not None:
        require_nonnegative_money(weight_cost_per_lb)
        settings = replace(settings, weight_cost_per_lb=weight_cost_per_lb)
    if tax_rate_percent is not None:
        require_nonnegative_money(tax_rate_percent)
        settings = replace(settings, tax_rate_percent=tax_rate_percent)
    return replace(dataset, settings=settings)


def recalculate_all(
    dataset: Dataset,
    *,
    markup: MarkupFactors = PURCHASE_MARKUP,
    timestamp: Optional[datetime] = None,
) -> Dataset:
    """Re-run allocation and pricing over every stored purchase.

    Purchases are visited in storage order, each with its own footer values.
    Item cost and price fields end up reflecting the last line, in that
    order, that touches the item. Stock is not changed.
    """

    stamp = _resolve_timestamp(timestamp).isoformat()
    rate = dataset.settings.tax_rate_percent
    lookup = allocation.weight_lookup_from_items(dataset.items)
    by_id: Dict[str, InventoryItem] = {item.item_id: item for item in dataset.items}
    purchases: List[Purchase] = []

    for purchase in dataset.purchases:
        allocated = allocation.allocate_purchase(purchase, lookup, rate)
        purchases.append(allocated)
        for line in allocated.lines:
            item = by_id.get(line.item_id)
            if item is not None:
                by_id[line.item_id] = _refresh_item_costs(item, line, markup, stamp)

    log.info("Recalculated %d purchases and %d items", len(purchases), len(by_id))
    return replace(
        dataset,
        items=tuple(by_id[item.item_id] for item in dataset.items),
        purchases=tuple(purchases),
    )


def audit_purchase(dataset: Dataset, purchase_id: str) -> allocation.AllocationAudit:
    purchase = get_purchase(dataset, purchase_id)
    return allocation.audit_allocation(
        purchase,
        allocation.weight_lookup_from_items(dataset.items),
        dataset.settings.tax_rate_percent,
    )


def purchase_payment_source(purchase: Purchase) -> PaymentSource:
    return cash_ledger.calculate_payment_breakdown(purchase.total_cost, purchase.cash_used).payment_source
