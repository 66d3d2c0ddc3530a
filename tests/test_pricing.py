"""Tests for order pricing."""

from decimal import Decimal

import pytest

from checkout_service.catalog import Product
from checkout_service.errors import InvalidPricingInput
from checkout_service.pricing import effective_unit_price, order_total, quote


class TestOrderTotal:
    def test_discount_applied_once_per_unit(self):
        assert order_total(Decimal("100.00"), Decimal("10"), 1) == Decimal("90.00")
        assert order_total(Decimal("100.00"), Decimal("10"), 3) == Decimal("270.00")

    def test_no_discount(self):
        assert order_total(Decimal("49.90"), Decimal("0"), 2) == Decimal("99.80")

    def test_rounds_half_up_to_cents(self):
        # 0.05 * 0.5 = 0.025
        assert order_total("0.05", "50", 1) == Decimal("0.03")
        # 19.99 * 0.85 = 16.9915
        assert order_total("19.99", "15", 1) == Decimal("16.99")

    def test_rounding_happens_on_the_total(self):
        # 3 * 0.333 = 0.999, not 3 * 0.33
        assert order_total("0.333", "0", 3) == Decimal("1.00")

    def test_accepts_plain_numbers(self):
        assert order_total(100, 10, 1) == Decimal("90.00")
        assert order_total(12.5, 0, 2) == Decimal("25.00")

    @pytest.mark.parametrize(
        "price, discount",
        [
            ("-1", "0"),
            ("10", "-5"),
            ("10", "101"),
            ("abc", "0"),
            ("10", None),
            ("NaN", "0"),
            ("Infinity", "0"),
        ],
    )
    def test_invalid_product_data(self, price, discount):
        with pytest.raises(InvalidPricingInput):
            order_total(price, discount, 1)

    def test_zero_total_is_rejected(self):
        with pytest.raises(InvalidPricingInput):
            order_total("0", "0", 1)
        with pytest.raises(InvalidPricingInput):
            order_total("10", "100", 1)


class TestEffectiveUnitPrice:
    def test_unrounded(self):
        assert effective_unit_price("19.99", "15") == Decimal("16.9915")

    def test_full_discount_boundary_is_allowed(self):
        assert effective_unit_price("10", "100") == Decimal("0")


class TestQuote:
    def test_quote_from_product(self):
        product = Product(
            id=1, name="Keyboard", price=Decimal("100.00"), discount=Decimal("10"), stock=5
        )
        q = quote(product, 3)
        assert q.unit_price == Decimal("90.00")
        assert q.quantity == 3
        assert q.total == Decimal("270.00")
