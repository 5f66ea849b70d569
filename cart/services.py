"""Session-backed cart and wishlist.

Only product ids, quantities and colours live in the session; prices are
always read from the catalog so the cart can't carry stale or forged prices.
"""

import logging

from django.conf import settings

from catalog.models import Product
from coupons.discount import LineItem, compute_total, describe
from coupons.services import coupon_from_session

logger = logging.getLogger(__name__)

CART_KEY = "cart"
WISHLIST_KEY = "wishlist"


class CartError(Exception):
    status_code = 400


class ProductNotFound(CartError):
    status_code = 404


class ItemNotInCart(CartError):
    status_code = 404


class NotEnoughStock(CartError):
    pass


def _line_key(product_id: int, color: str) -> str:
    return f"{product_id}:{color}" if color else str(product_id)


def _quantity(raw) -> int:
    if isinstance(raw, str) and raw.strip().isdigit():
        raw = int(raw)
    if isinstance(raw, bool) or not isinstance(raw, int) or raw < 1:
        raise CartError("Quantity must be an integer >= 1")
    return raw


def _product(product_id) -> Product:
    try:
        pk = int(product_id)
    except (TypeError, ValueError):
        raise CartError("Product ID is required")
    product = Product.objects.filter(pk=pk, is_active=True).first()
    if product is None:
        raise ProductNotFound("Product not found")
    return product


def _lines(request) -> dict:
    return dict(request.session.get(CART_KEY) or {})


def _save(request, lines: dict) -> None:
    request.session[CART_KEY] = lines
    request.session.modified = True


def add_item(request, product_id, quantity=1, color: str = "") -> dict:
    product = _product(product_id)
    quantity = _quantity(quantity)
    color = (color or "").strip()
    lines = _lines(request)
    key = _line_key(product.pk, color)
    wanted = lines.get(key, {}).get("quantity", 0) + quantity
    if wanted > product.stock:
        raise NotEnoughStock("Not enough stock")
    lines[key] = {"product_id": product.pk, "quantity": wanted, "color": color}
    _save(request, lines)
    return lines[key]


def update_item(request, product_id, quantity, color: str = "") -> dict:
    product = _product(product_id)
    quantity = _quantity(quantity)
    lines = _lines(request)
    key = _line_key(product.pk, (color or "").strip())
    if key not in lines:
        raise ItemNotInCart("Item not found in cart")
    if quantity > product.stock:
        raise NotEnoughStock("Not enough stock available")
    lines[key]["quantity"] = quantity
    _save(request, lines)
    return lines[key]


def remove_item(request, product_id, color: str = "") -> None:
    try:
        pk = int(product_id)
    except (TypeError, ValueError):
        raise CartError("Product ID is required")
    lines = _lines(request)
    if lines.pop(_line_key(pk, (color or "").strip()), None) is None:
        raise ItemNotInCart("Item not found in cart")
    _save(request, lines)


def clear_cart(request) -> None:
    if CART_KEY in request.session:
        del request.session[CART_KEY]
        request.session.modified = True


def order_items(request) -> list:
    """Cart lines in the shape ``orders.services.create_order`` accepts."""
    return [
        {"id": line["product_id"], "quantity": line["quantity"], "color": line.get("color", "")}
        for line in _lines(request).values()
    ]


def cart_summary(request) -> dict:
    lines = list(_lines(request).values())
    products = Product.objects.filter(pk__in=[l["product_id"] for l in lines], is_active=True).in_bulk()
    items = []
    for line in lines:
        product = products.get(line["product_id"])
        if product is None:
            # product was removed or hidden since it was added
            continue
        items.append({
            "product_id": product.pk,
            "name": product.name,
            "slug": product.slug,
            "price": str(product.price),
            "quantity": line["quantity"],
            "color": line.get("color", ""),
            "line_total": str(product.price * line["quantity"]),
            "in_stock": product.stock >= line["quantity"],
        })

    coupon = coupon_from_session(request)
    totals = compute_total(
        [LineItem(unit_price=products[i["product_id"]].price, quantity=i["quantity"]) for i in items],
        coupon,
        settings.SHIPPING_COST,
    )
    data = describe(totals, coupon)
    data.update(items=items, shipping=str(settings.SHIPPING_COST), currency=settings.CURRENCY)
    return data


# ---------- wishlist ----------
def wishlist_ids(request) -> list:
    return list(request.session.get(WISHLIST_KEY) or [])


def add_to_wishlist(request, product_id) -> list:
    product = _product(product_id)
    ids = wishlist_ids(request)
    if product.pk not in ids:
        ids.append(product.pk)
        request.session[WISHLIST_KEY] = ids
    return ids


def remove_from_wishlist(request, product_id) -> list:
    try:
        pk = int(product_id)
    except (TypeError, ValueError):
        raise CartError("Product ID is required")
    ids = [i for i in wishlist_ids(request) if i != pk]
    request.session[WISHLIST_KEY] = ids
    return ids
