"""
Purpose: Cart arithmetic.
What it does:
- Coerces client quantities (integer valued, 1..max)
- Prices a single line from catalog prices
- Summarizes a cart: subtotal, discount, total, item count

Rule: No database access. The cart service feeds live catalog prices in.
"""
from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Iterable, Optional

CENT = Decimal("0.01")


class InvalidQuantity(ValueError):
    """Raised when a requested quantity is not an integer in the allowed range."""
    pass


def coerce_quantity(value, *, max_quantity: int = 999) -> int:
    """
    Accepts 3, 3.0 or "3". Rejects booleans, fractions, zero, negatives and values above max.
    """
    if isinstance(value, bool) or value is None:
        raise InvalidQuantity("Quantity must be a positive integer")
    try:
        number = Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        raise InvalidQuantity("Quantity must be a positive integer")
    if not number.is_finite() or number != number.to_integral_value() or number <= 0:
        raise InvalidQuantity("Quantity must be a positive integer")
    if number > max_quantity:
        raise InvalidQuantity(f"Quantity cannot exceed {max_quantity}")
    return int(number)


def _money(value) -> Decimal:
    return Decimal(str(value)) if value is not None else Decimal("0")


@dataclass(frozen=True)
class LinePrice:
    unit_price: Decimal
    original_unit_price: Decimal
    quantity: int

    @property
    def subtotal(self) -> Decimal:
        return self.unit_price * self.quantity

    @property
    def original_total(self) -> Decimal:
        return self.original_unit_price * self.quantity

    @property
    def discount(self) -> Decimal:
        return self.original_total - self.subtotal

    def to_dict(self) -> dict:
        return {
            "unit_price": str(self.unit_price.quantize(CENT)),
            "original_unit_price": str(self.original_unit_price.quantize(CENT)),
            "total_price": str(self.subtotal.quantize(CENT)),
            "total_original_price": str(self.original_total.quantize(CENT)),
            "discount_amount": str(self.discount.quantize(CENT)),
        }


def price_line(discount_price: Optional[Decimal], original_price: Optional[Decimal], quantity: int) -> LinePrice:
    """
    The customer pays the discount price when there is one, the original price otherwise.
    A missing original price means no discount on the line.
    """
    unit = _money(discount_price) if discount_price is not None else _money(original_price)
    original = _money(original_price) if original_price is not None else unit
    return LinePrice(unit_price=unit, original_unit_price=original, quantity=quantity)


@dataclass(frozen=True)
class PriceSummary:
    total_items: int
    subtotal: Decimal
    total_original_price: Decimal
    total_discount: Decimal
    total: Decimal
    currency: str = "INR"

    def to_dict(self) -> dict:
        return {
            "total_items": self.total_items,
            "subtotal": str(self.subtotal),
            "total_original_price": str(self.total_original_price),
            "total_discount": str(self.total_discount),
            "total": str(self.total),
            "currency": self.currency,
            "savings": str(self.total_discount),
        }


def summarize(lines: Iterable[LinePrice], currency: str = "INR") -> PriceSummary:
    """
    subtotal = sum(unit_price * qty), total_discount = sum((original - unit) * qty).
    No delivery fee or tax, so total == subtotal.
    """
    total_items = 0
    subtotal = Decimal("0")
    original = Decimal("0")
    discount = Decimal("0")
    for line in lines:
        total_items += line.quantity
        subtotal += line.subtotal
        original += line.original_total
        discount += line.discount

    return PriceSummary(
        total_items=total_items,
        subtotal=subtotal.quantize(CENT),
        total_original_price=original.quantize(CENT),
        total_discount=discount.quantize(CENT),
        total=subtotal.quantize(CENT),
        currency=currency,
    )
