"""Unit tests for price band derivation and the quote calculator."""

from __future__ import annotations

from decimal import Decimal

import pytest

from nanis_books import pricing


def test_derive_pricing_uses_purchase_markup_by_default():
    band = pricing.derive_pricing(Decimal("10"))
    assert band.min_price == Decimal("13")
    assert band.max_price == Decimal("14")
    assert band.min_profit == Decimal("3")
    assert band.max_profit == Decimal("4")


def test_derive_pricing_with_item_entry_markup():
    band = pricing.derive_pricing(Decimal("10"), pricing.ITEM_ENTRY_MARKUP)
    assert (band.min_price, band.max_price) == (Decimal("12"), Decimal("13"))


def test_derive_pricing_rounds_prices_up():
    """Fractional prices always round up to the next whole unit."""

    band = pricing.derive_pricing(Decimal("10.8775"))
    assert band.min_price == Decimal("14")
    assert band.max_price == Decimal("16")
    assert band.min_profit == Decimal("3.1225")


def test_derive_pricing_keeps_exact_whole_prices():
    band = pricing.derive_pricing(Decimal("20"))
    assert band.min_price == Decimal("25")
    assert band.max_price == Decimal("28")


def test_price_band_never_below_cost():
    for cost in ("0.01", "3.33", "57.123", "999.99"):
        band = pricing.derive_pricing(Decimal(cost))
        assert band.min_price >= Decimal(cost)
        assert band.max_price >= band.min_price
        assert band.min_profit >= 0


def test_round_cents_half_up():
    assert pricing.round_cents(Decimal("1.755")) == Decimal("1.76")
    assert pricing.round_cents(Decimal("1.754")) == Decimal("1.75")


def test_calculate_quote_builds_landed_cost():
    quote = pricing.calculate_quote(
        "Argan Serum",
        Decimal("20"),
        weight_lbs=Decimal("1"),
        tax_rate_percent=Decimal("8.775"),
        weight_cost_per_lb=Decimal("7"),
    )
    assert quote.tax == Decimal("1.76")
    assert quote.shipping_intl == Decimal("7")
    assert quote.unit_cost_post_shipping == Decimal("28.76")
    assert quote.minimum_selling_price == Decimal("34")
    assert quote.target_profit == Decimal("5.00")


def test_calculate_quote_applies_coupon_before_tax():
    quote = pricing.calculate_quote(
        "Hair Mask",
        Decimal("30"),
        coupon=Decimal("10"),
        weight_lbs=Decimal("2"),
        tax_rate_percent=Decimal("10"),
        weight_cost_per_lb=Decimal("5"),
        target_profit=Decimal("8"),
    )
    assert quote.price_after_coupon == Decimal("20")
    assert quote.tax == Decimal("2.00")
    assert quote.unit_cost_post_shipping == Decimal("32.00")
    assert quote.minimum_selling_price == Decimal("40")


def test_calculate_quote_coupon_cannot_push_price_negative():
    quote = pricing.calculate_quote(
        "Lip Tint",
        Decimal("5"),
        coupon=Decimal("9"),
        tax_rate_percent=Decimal("8"),
        weight_cost_per_lb=Decimal("7"),
    )
    assert quote.price_after_coupon == Decimal("0")
    assert quote.tax == Decimal("0.00")


@pytest.mark.parametrize(
    ("name", "price"),
    [("", Decimal("10")), ("   ", Decimal("10")), ("Serum", Decimal("0")), ("Serum", Decimal("-1"))],
)
def test_calculate_quote_rejects_invalid_input(name, price):
    with pytest.raises(ValueError):
        pricing.calculate_quote(name, price, tax_rate_percent=Decimal("8"), weight_cost_per_lb=Decimal("7"))
