"""Allocation engine for purchase costs.

Spreads the purchase footer over its lines:

* tax per unit is the line's own unit cost times the tax rate;
* US shipping is split equally over every billable unit of the purchase;
* international shipping follows each line's share of the purchase weight.

Every function here is total. Missing items weigh nothing and zero
denominators yield zero allocations instead of raising.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from decimal import ROUND_CEILING, Decimal
from typing import Callable, Iterable, List, Mapping, Optional, Sequence, Tuple

from . import log
from .constants import CURRENCY_TOLERANCE, LINE_TOLERANCE
from .data_manager import InventoryItem, Purchase, PurchaseLine
from .pricing import round_cents

ZERO = Decimal("0")

ItemWeightLookup = Callable[[str], Optional[Decimal]]


def weight_lookup_from_items(items: Iterable[InventoryItem]) -> ItemWeightLookup:
    """Build a by-id weight lookup over an item collection."""

    weights: Mapping[str, Optional[Decimal]] = {item.item_id: item.weight_lbs for item in items}
    return weights.get


def billable_units(line: PurchaseLine) -> int:
    """Units that carry cost: parent units plus bundled sub-units."""

    return line.quantity + (line.sub_items_qty if line.has_sub_items else 0)


def total_units(lines: Iterable[PurchaseLine]) -> int:
    return sum(billable_units(line) for line in lines)


def _item_weight(lookup: ItemWeightLookup, item_id: str) -> Decimal:
    weight = lookup(item_id)
    return weight if weight is not None else ZERO


def total_weight(lines: Iterable[PurchaseLine], lookup: ItemWeightLookup) -> Decimal:
    return sum(
        (_item_weight(lookup, line.item_id) * billable_units(line) for line in lines),
        ZERO,
    )


def allocate_line(
    line: PurchaseLine,
    *,
    item_weight: Decimal,
    purchase_units: int,
    purchase_weight: Decimal,
    tax_rate_percent: Decimal,
    shipping_us: Decimal,
    shipping_intl: Decimal,
) -> PurchaseLine:
    """Return ``line`` with its per-unit tax and shipping shares filled in."""

    units = billable_units(line)
    per_unit_tax = line.unit_cost * (tax_rate_percent / 100)

    if shipping_us > 0 and purchase_units > 0:
        per_unit_shipping_us = shipping_us / purchase_units
    else:
        per_unit_shipping_us = ZERO

    line_weight = item_weight * units
    weight_ratio = line_weight / purchase_weight if purchase_weight > 0 else ZERO
    per_unit_shipping_intl = (shipping_intl * weight_ratio) / units if units > 0 else ZERO

    return replace(
        line,
        per_unit_tax=per_unit_tax,
        per_unit_shipping_us=per_unit_shipping_us,
        per_unit_shipping_intl=per_unit_shipping_intl,
        unit_cost_post_shipping=line.unit_cost + per_unit_tax + per_unit_shipping_us + per_unit_shipping_intl,
    )


def allocate_lines(
    lines: Sequence[PurchaseLine],
    *,
    item_weight_lookup: ItemWeightLookup,
    tax_rate_percent: Decimal,
    shipping_us: Decimal,
    shipping_intl: Decimal,
) -> Tuple[PurchaseLine, ...]:
    """Allocate the footer amounts over ``lines``; output order follows input."""

    purchase_units = total_units(lines)
    purchase_weight = total_weight(lines, item_weight_lookup)
    return tuple(
        allocate_line(
            line,
            item_weight=_item_weight(item_weight_lookup, line.item_id),
            purchase_units=purchase_units,
            purchase_weight=purchase_weight,
            tax_rate_percent=tax_rate_percent,
            shipping_us=shipping_us,
            shipping_intl=shipping_intl,
        )
        for line in lines
    )


def allocate_purchase(
    purchase: Purchase,
    item_weight_lookup: ItemWeightLookup,
    tax_rate_percent: Decimal,
) -> Purchase:
    """Re-derive every line allocation of ``purchase`` from its own footer.

    The footer values (subtotal, tax, shipping, total cost) are inputs and are
    left untouched; only the lines and ``total_units`` change. Calling the
    function on its own output yields the same allocations.
    """

    lines = allocate_lines(
        purchase.lines,
        item_weight_lookup=item_weight_lookup,
        tax_rate_percent=tax_rate_percent,
        shipping_us=purchase.shipping_us,
        shipping_intl=purchase.shipping_intl,
    )
    return replace(purchase, lines=lines, total_units=total_units(lines))


def default_subtotal(lines: Iterable[PurchaseLine]) -> Decimal:
    return sum((line.unit_cost * line.quantity for line in lines), ZERO)


def auto_tax(subtotal: Decimal, tax_rate_percent: Decimal) -> Decimal:
    """Footer tax suggested for a new purchase, rounded to cents."""

    return round_cents(subtotal * (tax_rate_percent / 100))


def default_shipping_intl(weight_lbs: Decimal, weight_cost_per_lb: Decimal) -> Decimal:
    return weight_lbs * weight_cost_per_lb


def suggested_weight(lines: Iterable[PurchaseLine], item_weight_lookup: ItemWeightLookup) -> Decimal:
    """Billable weight of a purchase, rounded up to whole pounds with a floor of one."""

    raw = total_weight(lines, item_weight_lookup)
    return max(Decimal("1"), raw.to_integral_value(rounding=ROUND_CEILING))


def footer_total(subtotal: Decimal, tax: Decimal, shipping_us: Decimal, shipping_intl: Decimal) -> Decimal:
    return subtotal + tax + shipping_us + shipping_intl


@dataclass(frozen=True)
class LineAudit:
    line_id: str
    item_id: str
    units: int
    expected: PurchaseLine
    stored: PurchaseLine
    mismatched_fields: Tuple[str, ...]


@dataclass(frozen=True)
class ComponentReconciliation:
    """Sum of one allocated component across the purchase vs. its footer field."""

    component: str
    allocated_total: Decimal
    footer_value: Decimal

    @property
    def difference(self) -> Decimal:
        return self.allocated_total - self.footer_value

    @property
    def reconciles(self) -> bool:
        return abs(self.difference) <= CURRENCY_TOLERANCE


@dataclass(frozen=True)
class AllocationAudit:
    purchase_id: str
    effective_tax_rate_percent: Decimal
    lines: Tuple[LineAudit, ...]
    components: Tuple[ComponentReconciliation, ...]

    @property
    def is_consistent(self) -> bool:
        return not any(line.mismatched_fields for line in self.lines)


_AUDITED_FIELDS = (
    "per_unit_tax",
    "per_unit_shipping_us",
    "per_unit_shipping_intl",
    "unit_cost_post_shipping",
)


def audit_allocation(
    purchase: Purchase,
    item_weight_lookup: ItemWeightLookup,
    tax_rate_percent: Decimal,
) -> AllocationAudit:
    """Compare stored line allocations with a fresh allocation.

    Lines are flagged when a stored per-unit value differs from the expected one
    by more than ``LINE_TOLERANCE``. Each component is also summed over billable
    units and set against the footer field it was derived from. Tax only
    reconciles when the footer tax was the auto-computed one.
    """

    expected = allocate_purchase(purchase, item_weight_lookup, tax_rate_percent)
    line_audits: List[LineAudit] = []
    for stored, fresh in zip(purchase.lines, expected.lines):
        mismatched = []
        for name in _AUDITED_FIELDS:
            stored_value = getattr(stored, name)
            fresh_value = getattr(fresh, name)
            if stored_value is None or abs(stored_value - fresh_value) > LINE_TOLERANCE:
                mismatched.append(name)
        line_audits.append(
            LineAudit(
                line_id=stored.line_id,
                item_id=stored.item_id,
                units=billable_units(stored),
                expected=fresh,
                stored=stored,
                mismatched_fields=tuple(mismatched),
            )
        )

    def _sum(name: str) -> Decimal:
        return sum(
            (getattr(line, name) * billable_units(line) for line in expected.lines),
            ZERO,
        )

    components = (
        ComponentReconciliation("tax", _sum("per_unit_tax"), purchase.tax),
        ComponentReconciliation("shipping_us", _sum("per_unit_shipping_us"), purchase.shipping_us),
        ComponentReconciliation("shipping_intl", _sum("per_unit_shipping_intl"), purchase.shipping_intl),
    )
    effective_rate = purchase.tax / purchase.subtotal * 100 if purchase.subtotal > 0 else ZERO
    audit = AllocationAudit(
        purchase_id=purchase.purchase_id,
        effective_tax_rate_percent=effective_rate,
        lines=tuple(line_audits),
        components=components,
    )
    log.debug(
        "Audited purchase '%s': %d lines, consistent=%s",
        purchase.purchase_id,
        len(line_audits),
        audit.is_consistent,
    )
    return audit
