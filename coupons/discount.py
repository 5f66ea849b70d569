"""Order total computation with optional coupon discounts.

Everything here is pure: no ORM access and no settings lookups. Callers are
expected to resolve the coupon (enabled and not expired) before calling
:func:`compute_total`; the minimum order amount is the only eligibility rule
enforced here.
"""

from dataclasses import dataclass
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Iterable, List, Optional

PERCENTAGE = "PERCENTAGE"
FIXED = "FIXED"
COUPON_TYPES = (PERCENTAGE, FIXED)

ZERO = Decimal("0")
CENT = Decimal("0.01")
HUNDRED = Decimal("100")


class DiscountError(ValueError):
    pass


class InvalidLineItem(DiscountError):
    pass


class InvalidCoupon(DiscountError):
    pass


@dataclass(frozen=True)
class LineItem:
    unit_price: Decimal
    quantity: int


@dataclass(frozen=True)
class Totals:
    subtotal: Decimal
    discount: Decimal
    total: Decimal

    def as_dict(self) -> dict:
        return {
            "subtotal": str(self.subtotal),
            "discount": str(self.discount),
            "total": str(self.total),
        }


def to_decimal(value) -> Decimal:
    # floats go through str() so 0.1 stays 0.1 instead of its binary expansion
    if isinstance(value, Decimal):
        return value
    if isinstance(value, bool):
        raise TypeError("boolean is not an amount")
    if isinstance(value, float):
        return Decimal(str(value))
    if isinstance(value, str):
        value = value.strip()
    return Decimal(value)


def quantize_money(value) -> Decimal:
    return to_decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def _checked(item) -> LineItem:
    try:
        price = to_decimal(item.unit_price)
    except (InvalidOperation, TypeError, ValueError):
        raise InvalidLineItem(f"Invalid unit price: {item.unit_price!r}")
    if not price.is_finite() or price < 0:
        raise InvalidLineItem(f"Unit price must be >= 0, got {price}")

    quantity = item.quantity
    if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity < 1:
        raise InvalidLineItem(f"Quantity must be an integer >= 1, got {quantity!r}")
    return LineItem(unit_price=price, quantity=quantity)


def subtotal_of(line_items: Iterable) -> Decimal:
    """Sum of ``unit_price * quantity`` at full precision."""
    total = ZERO
    for item in line_items:
        item = _checked(item)
        total += item.unit_price * item.quantity
    return total


def coupon_type(coupon) -> str:
    raw = getattr(coupon, "type", None)
    ctype = str(raw or "").strip().upper()
    if ctype not in COUPON_TYPES:
        raise InvalidCoupon(f"Unknown coupon type: {raw!r}")
    return ctype


def discount_for(subtotal: Decimal, coupon) -> Decimal:
    """Discount a coupon grants on ``subtotal``, never more than the subtotal.

    The minimum order amount is an inclusive floor: a subtotal equal to it
    qualifies.
    """
    if coupon is None:
        return ZERO
    ctype = coupon_type(coupon)

    try:
        value = to_decimal(coupon.value)
        minimum = getattr(coupon, "minimum_order_amount", None)
        minimum = None if minimum is None else to_decimal(minimum)
    except (InvalidOperation, TypeError, ValueError):
        raise InvalidCoupon(f"Coupon {getattr(coupon, 'code', '')!r} has a non-numeric amount")

    if minimum is not None and subtotal < minimum:
        return ZERO

    if ctype == PERCENTAGE:
        discount = subtotal * value / HUNDRED
    else:
        discount = value
    return min(max(discount, ZERO), subtotal)


def compute_total(line_items: Iterable, coupon=None, shipping_cost=ZERO) -> Totals:
    """Compute ``{subtotal, discount, total}`` for an order.

    ``line_items`` is any iterable of objects exposing ``unit_price`` and
    ``quantity``. ``coupon`` is duck-typed: anything with ``type``, ``value``
    and ``minimum_order_amount`` works, including :class:`coupons.models.Coupon`.
    Amounts are rounded half-up to two decimal places.

    Raises :class:`InvalidLineItem` for a negative price or a quantity below
    one, and :class:`InvalidCoupon` for an unrecognized coupon type.
    """
    try:
        shipping = to_decimal(shipping_cost if shipping_cost is not None else ZERO)
    except (InvalidOperation, TypeError, ValueError):
        raise DiscountError(f"Invalid shipping cost: {shipping_cost!r}")
    if not shipping.is_finite() or shipping < 0:
        raise DiscountError(f"Shipping cost must be >= 0, got {shipping}")

    subtotal = subtotal_of(line_items)
    discount = discount_for(subtotal, coupon)

    # total is rounded once from the exact figures; subtotal and discount
    # are rounded separately for display
    total = quantize_money(subtotal - discount + shipping)
    return Totals(subtotal=quantize_money(subtotal), discount=quantize_money(discount), total=total)


def coerce_line_items(raw) -> List[LineItem]:
    """Build line items from decoded JSON (``[{"price": .., "quantity": ..}]``)."""
    if not isinstance(raw, (list, tuple)):
        raise InvalidLineItem("Line items must be a list")
    items = []
    for entry in raw:
        if not isinstance(entry, dict):
            raise InvalidLineItem(f"Line item must be an object, got {entry!r}")
        price = entry.get("unit_price", entry.get("price"))
        quantity = entry.get("quantity", 1)
        if isinstance(quantity, str) and quantity.strip().isdigit():
            quantity = int(quantity)
        items.append(_checked(LineItem(unit_price=price, quantity=quantity)))
    return items


def describe(totals: Totals, coupon: Optional[object] = None) -> dict:
    data = totals.as_dict()
    data["coupon"] = getattr(coupon, "code", None) if coupon is not None and totals.discount > 0 else None
    return data
