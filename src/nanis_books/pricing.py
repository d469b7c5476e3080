"""Price band derivation from landed unit cost.

Two markup pairs are in use:

* ``ITEM_ENTRY_MARKUP`` (1.20 / 1.30) when an item is entered by hand, see
  :func:`nanis_books.core_logic.add_item`;
* ``PURCHASE_MARKUP`` (1.25 / 1.40) when a saved purchase or the
  recalculation sweep refreshes item costs.

Both pairs can be overridden from the ``[Pricing]`` section of ``config.ini``.
Prices are always rounded *up* to whole currency units.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import ROUND_CEILING, ROUND_HALF_UP, Decimal

from .constants import (
    DEFAULT_QUOTE_TARGET_PROFIT,
    ITEM_ENTRY_MAX_MARKUP,
    ITEM_ENTRY_MIN_MARKUP,
    PURCHASE_MAX_MARKUP,
    PURCHASE_MIN_MARKUP,
)

CENT = Decimal("0.01")
ONE = Decimal("1")


@dataclass(frozen=True)
class MarkupFactors:
    """Multipliers applied to landed cost to obtain the min and max price."""

    min_factor: Decimal
    max_factor: Decimal


ITEM_ENTRY_MARKUP = MarkupFactors(ITEM_ENTRY_MIN_MARKUP, ITEM_ENTRY_MAX_MARKUP)
PURCHASE_MARKUP = MarkupFactors(PURCHASE_MIN_MARKUP, PURCHASE_MAX_MARKUP)


@dataclass(frozen=True)
class PriceBand:
    min_price: Decimal
    max_price: Decimal
    min_profit: Decimal
    max_profit: Decimal


@dataclass(frozen=True)
class Quote:
    """Result of pricing a product that has not been bought yet."""

    product_name: str
    base_price: Decimal
    weight_lbs: Decimal
    coupon_discount: Decimal
    price_after_coupon: Decimal
    tax: Decimal
    shipping_intl: Decimal
    unit_cost_post_shipping: Decimal
    minimum_selling_price: Decimal
    target_profit: Decimal


def ceil_currency(value: Decimal) -> Decimal:
    """Round ``value`` up to the next whole currency unit."""

    return value.to_integral_value(rounding=ROUND_CEILING)


def round_cents(value: Decimal) -> Decimal:
    """Round half away from zero to two decimal places."""

    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def derive_pricing(unit_cost_post_shipping: Decimal, markup: MarkupFactors = PURCHASE_MARKUP) -> PriceBand:
    """Map a landed unit cost to a suggested price band.

    Args:
        unit_cost_post_shipping (Decimal): Fully allocated per-unit cost.
        markup (MarkupFactors): Factor pair; defaults to the purchase pair.

    Returns:
        PriceBand: Ceiling-rounded prices and the profit each leaves over the
            landed cost.
    """

    min_price = ceil_currency(unit_cost_post_shipping * markup.min_factor)
    max_price = ceil_currency(unit_cost_post_shipping * markup.max_factor)
    return PriceBand(
        min_price=min_price,
        max_price=max_price,
        min_profit=min_price - unit_cost_post_shipping,
        max_profit=max_price - unit_cost_post_shipping,
    )


def calculate_quote(
    product_name: str,
    price: Decimal,
    *,
    weight_lbs: Decimal = ONE,
    coupon: Decimal = Decimal("0"),
    tax_rate_percent: Decimal,
    weight_cost_per_lb: Decimal,
    target_profit: Decimal = DEFAULT_QUOTE_TARGET_PROFIT,
) -> Quote:
    """Estimate the landed cost and minimum selling price of a supplier offer.

    The coupon is taken off before tax; international shipping is charged on
    the full weight; the minimum selling price guarantees ``target_profit``.

    Raises:
        ValueError: If the product name is blank or ``price`` is not positive.
    """

    if not product_name.strip():
        raise ValueError("Product name is required for a quote")
    if price <= 0:
        raise ValueError("Quote price must be greater than zero")

    coupon_discount = coupon if coupon > 0 else Decimal("0")
    price_after_coupon = max(Decimal("0"), price - coupon_discount)
    tax = round_cents(price_after_coupon * (tax_rate_percent / 100))
    shipping_intl = weight_lbs * weight_cost_per_lb
    landed = price_after_coupon + tax + shipping_intl
    return Quote(
        product_name=product_name.strip(),
        base_price=price,
        weight_lbs=weight_lbs,
        coupon_discount=coupon_discount,
        price_after_coupon=price_after_coupon,
        tax=tax,
        shipping_intl=shipping_intl,
        unit_cost_post_shipping=landed,
        minimum_selling_price=ceil_currency(landed + target_profit),
        target_profit=target_profit,
    )
