"""
Checkout Service — Pricing

Pure functions. The caller must pass the same product snapshot it used for
the stock check; PIX orders are priced once, at initiation, and keep that
price for the whole payment window.
"""

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation

from .catalog import Product
from .errors import InvalidPricingInput

CENT = Decimal("0.01")
HUNDRED = Decimal(100)


@dataclass(frozen=True)
class Quote:
    unit_price: Decimal
    quantity: int
    total: Decimal


def _to_decimal(value, field: str) -> Decimal:
    try:
        number = value if isinstance(value, Decimal) else Decimal(str(value))
    except (InvalidOperation, ValueError, TypeError):
        raise InvalidPricingInput(f"Product {field} is not a number: {value!r}") from None
    if not number.is_finite():
        raise InvalidPricingInput(f"Product {field} is not finite: {value!r}")
    return number


def effective_unit_price(price, discount) -> Decimal:
    """``price * (1 - discount/100)``, unrounded."""
    price = _to_decimal(price, "price")
    discount = _to_decimal(discount, "discount")
    if price < 0:
        raise InvalidPricingInput(f"Product price is negative: {price}")
    if not 0 <= discount <= 100:
        raise InvalidPricingInput(f"Product discount out of range 0-100: {discount}")
    return price * (1 - discount / HUNDRED)


def order_total(price, discount, quantity: int) -> Decimal:
    total = (effective_unit_price(price, discount) * quantity).quantize(
        CENT, rounding=ROUND_HALF_UP
    )
    if total <= 0:
        raise InvalidPricingInput(
            "Could not compute the order total. Check the product data."
        )
    return total


def quote(product: Product, quantity: int) -> Quote:
    return Quote(
        unit_price=effective_unit_price(product.price, product.discount).quantize(
            CENT, rounding=ROUND_HALF_UP
        ),
        quantity=quantity,
        total=order_total(product.price, product.discount, quantity),
    )
