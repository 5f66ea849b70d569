import logging
from collections import OrderedDict

from django.conf import settings
from django.db import transaction
from django.db.models import Count, F, Sum
from django.db.models.functions import TruncDate

from catalog.models import Product
from coupons.discount import ZERO, InvalidLineItem, LineItem, compute_total, quantize_money
from coupons.models import Coupon
from payments.paymob import to_cents
from .emails import send_order_confirmation, send_order_status_email
from .models import Order, OrderItem, OrderStatusHistory

logger = logging.getLogger(__name__)

REQUIRED_SHIPPING_FIELDS = ("name", "phone", "address", "city")
ATTRIBUTION_FIELDS = ("utm_source", "utm_medium", "utm_campaign", "fbclid", "gclid")

PAYMENT_METHODS = {
    "cash": Order.PaymentMethod.CASH,
    "cash_store_pickup": Order.PaymentMethod.CASH_STORE_PICKUP,
    "online": Order.PaymentMethod.ONLINE,
    "online_store_pickup": Order.PaymentMethod.ONLINE_STORE_PICKUP,
}
CASH_METHODS = (Order.PaymentMethod.CASH, Order.PaymentMethod.CASH_STORE_PICKUP)


class OrderError(Exception):
    status_code = 400


class EmptyOrder(OrderError):
    pass


class UnknownProduct(OrderError):
    pass


class InsufficientStock(OrderError):
    pass


class InvalidShipping(OrderError):
    pass


class MaintenanceMode(OrderError):
    status_code = 503


class PaymentMismatch(OrderError):
    pass


def normalize_payment_method(raw) -> str:
    key = str(raw or "").strip().lower()
    if key in PAYMENT_METHODS:
        return PAYMENT_METHODS[key]
    if str(raw or "").upper() in Order.PaymentMethod.values:
        return str(raw).upper()
    raise OrderError(f"Unknown payment method: {raw!r}")


def _requested_quantities(items) -> "OrderedDict[int, dict]":
    requested = OrderedDict()
    for entry in items:
        try:
            pid = int(entry.get("id") or entry.get("product_id"))
        except (TypeError, ValueError, AttributeError):
            raise InvalidLineItem(f"Invalid product reference: {entry!r}")
        quantity = entry.get("quantity", 1)
        if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity < 1:
            raise InvalidLineItem(f"Quantity must be an integer >= 1, got {quantity!r}")
        line = requested.setdefault(pid, {"quantity": 0, "color": ""})
        line["quantity"] += quantity
        line["color"] = line["color"] or (entry.get("selected_color") or entry.get("color") or "")
    return requested


def _clean_shipping(shipping) -> dict:
    shipping = shipping or {}
    cleaned = {k: str(shipping.get(k) or "").strip() for k in REQUIRED_SHIPPING_FIELDS}
    missing = [k for k, v in cleaned.items() if not v]
    if missing:
        raise InvalidShipping(f"Missing required shipping information: {', '.join(missing)}")
    cleaned["notes"] = str(shipping.get("notes") or "").strip()
    return cleaned


@transaction.atomic
def create_order(*, user, items, shipping, payment_method, coupon=None, shipping_cost=None, attribution=None) -> Order:
    """Create an order priced from the catalog.

    Client-supplied prices are ignored. ``coupon`` must already be resolved as
    active (see :func:`coupons.services.resolve_coupon_for_checkout`); a coupon
    whose minimum is not met is simply not applied.
    """
    if getattr(settings, "SITE_MAINTENANCE_MODE", False):
        raise MaintenanceMode(getattr(settings, "SITE_MAINTENANCE_MESSAGE", "Under maintenance"))
    if not items:
        raise EmptyOrder("No items provided")

    method = normalize_payment_method(payment_method)
    ship = _clean_shipping(shipping)
    requested = _requested_quantities(items)

    products = Product.objects.select_for_update().filter(pk__in=list(requested), is_active=True).in_bulk()
    missing = [pid for pid in requested if pid not in products]
    if missing:
        logger.warning("Order rejected, unknown product ids=%s", missing)
        raise UnknownProduct("Some products in the order do not exist")

    for pid, line in requested.items():
        product = products[pid]
        if product.stock < line["quantity"]:
            raise InsufficientStock(f"Insufficient stock for {product.name}. Available: {product.stock}")

    if shipping_cost is None:
        shipping_cost = settings.SHIPPING_COST
    lines = [LineItem(unit_price=products[pid].price, quantity=line["quantity"]) for pid, line in requested.items()]
    totals = compute_total(lines, coupon, shipping_cost)
    applied = coupon if (coupon is not None and totals.discount > 0) else None

    attribution = attribution or {}
    order = Order.objects.create(
        user=user,
        status=Order.Status.PENDING,
        payment_method=method,
        payment_status=Order.PaymentStatus.SUCCESS if method in CASH_METHODS else Order.PaymentStatus.PENDING,
        subtotal=totals.subtotal,
        discount_amount=totals.discount,
        shipping_cost=quantize_money(shipping_cost),
        total=totals.total,
        coupon=applied,
        shipping_name=ship["name"],
        shipping_phone=ship["phone"],
        shipping_address=ship["address"],
        shipping_city=ship["city"],
        shipping_notes=ship["notes"],
        **{k: str(attribution.get(k) or "")[:255] for k in ATTRIBUTION_FIELDS},
    )
    OrderItem.objects.bulk_create([
        OrderItem(
            order=order,
            product=products[pid],
            quantity=line["quantity"],
            price=products[pid].price,
            color=line["color"],
        )
        for pid, line in requested.items()
    ])

    for pid, line in requested.items():
        Product.objects.filter(pk=pid).update(stock=F("stock") - line["quantity"])
    if applied is not None:
        Coupon.objects.filter(pk=applied.pk).update(used_count=F("used_count") + 1)

    OrderStatusHistory.objects.create(order=order, status=order.status, comment="Order placed")
    logger.info(
        "Order %s created for user=%s subtotal=%s discount=%s total=%s coupon=%s",
        order.pk, user.pk, totals.subtotal, totals.discount, totals.total, applied.code if applied else None,
    )

    transaction.on_commit(lambda: send_order_confirmation(order=order))
    return order


def _release_stock(order: Order) -> None:
    """Put the stock of every live line of ``order`` back on the shelf."""
    for item in order.items.filter(is_cancelled=False):
        Product.objects.filter(pk=item.product_id).update(stock=F("stock") + item.quantity)
    logger.info("Stock released for order %s", order.pk)


@transaction.atomic
def transition_status(order: Order, status: str, comment: str = "", notify: bool = True) -> Order:
    status = str(status or "").upper()
    if status not in Order.Status.values:
        raise OrderError(f"Unknown order status: {status!r}")

    order = Order.objects.select_for_update().get(pk=order.pk)
    if status == Order.Status.CANCELLED and order.status != Order.Status.CANCELLED:
        _release_stock(order)
    order.status = status
    order.save(update_fields=["status", "updated_at"])
    OrderStatusHistory.objects.create(order=order, status=status, comment=comment or "")
    logger.info("Order %s moved to %s", order.pk, status)

    if notify:
        transaction.on_commit(lambda: send_order_status_email(order=order))
    return order


@transaction.atomic
def cancel_order(order: Order, comment: str = "Cancelled by customer") -> Order:
    """Cancel a pending order; its items go back in stock."""
    order = Order.objects.select_for_update().get(pk=order.pk)
    if order.status != Order.Status.PENDING:
        raise OrderError("Only pending orders can be cancelled")
    return transition_status(order, Order.Status.CANCELLED, comment)


def bulk_transition(order_ids, status: str, comment: str = "Bulk status update"):
    """Move several orders to ``status``; returns ``(updated, missing_ids)``."""
    try:
        ids = [int(pk) for pk in order_ids]
    except (TypeError, ValueError):
        raise OrderError("orderIds must be a list of order ids")
    if not ids:
        raise OrderError("No orders selected")

    with transaction.atomic():
        orders = list(Order.objects.filter(pk__in=ids))
        updated = [transition_status(order, status, comment) for order in orders]
    found = {o.pk for o in orders}
    return updated, [pk for pk in ids if pk not in found]


@transaction.atomic
def cancel_items(order: Order, item_ids, comment: str = "") -> list:
    """Cancel single lines of an order and return their stock.

    The order keeps its status; a CANCELLED history row records the change.
    """
    try:
        ids = [int(pk) for pk in item_ids]
    except (TypeError, ValueError):
        raise OrderError("itemIds must be a list of item ids")
    if not ids:
        raise OrderError("No items selected for cancellation")

    order = Order.objects.select_for_update().get(pk=order.pk)
    items = list(order.items.filter(pk__in=ids, is_cancelled=False))
    if not items:
        raise OrderError("No matching order items found")

    for item in items:
        Product.objects.filter(pk=item.product_id).update(stock=F("stock") + item.quantity)
        item.is_cancelled = True
        item.save(update_fields=["is_cancelled"])
    OrderStatusHistory.objects.create(
        order=order, status=Order.Status.CANCELLED, comment=comment or "Items cancelled by admin"
    )
    logger.info("Cancelled items %s of order %s", [i.pk for i in items], order.pk)
    return items


def order_analytics() -> dict:
    """Headline numbers for the back-office dashboard."""
    totals = Order.objects.aggregate(count=Count("id"), revenue=Sum("total"))
    count = totals["count"] or 0
    revenue = totals["revenue"] or ZERO
    by_day = (
        Order.objects.annotate(day=TruncDate("created_at"))
        .values("day")
        .annotate(revenue=Sum("total"), orders=Count("id"))
        .order_by("day")
    )
    return {
        "total_orders": count,
        "total_revenue": str(quantize_money(revenue)),
        "average_order_value": str(quantize_money(revenue / count)) if count else "0.00",
        "orders_by_status": {
            row["status"]: row["n"] for row in Order.objects.values("status").annotate(n=Count("id")).order_by()
        },
        "revenue_by_day": [
            {"date": row["day"].isoformat(), "revenue": str(quantize_money(row["revenue"])), "orders": row["orders"]}
            for row in by_day
        ],
    }


def payment_outcome(success: bool, pending: bool):
    """Map a provider result onto ``(payment_status, order_status)``."""
    if success and not pending:
        return Order.PaymentStatus.SUCCESS, Order.Status.PROCESSING
    if not success and not pending:
        return Order.PaymentStatus.FAILED, Order.Status.CANCELLED
    return Order.PaymentStatus.PENDING, Order.Status.PENDING


def _check_gateway_match(order, *, amount_cents, currency, gateway_order_id, transaction_id):
    """Refuse a signed result that belongs to a different payment.

    The signature only covers the transaction, not the reference that points
    at our order, so the transaction itself has to agree with the order.
    """
    if amount_cents is not None:
        try:
            cents = int(str(amount_cents))
        except ValueError:
            raise PaymentMismatch(f"Invalid amount_cents {amount_cents!r}")
        if cents != to_cents(order.total):
            raise PaymentMismatch(f"Amount {cents} does not match order total {order.total}")
    if currency is not None and str(currency).upper() != str(settings.CURRENCY).upper():
        raise PaymentMismatch(f"Currency {currency!r} does not match {settings.CURRENCY}")

    bound = (order.gateway_meta or {}).get("paymob_order_id")
    if bound and gateway_order_id is not None and str(gateway_order_id) != str(bound):
        raise PaymentMismatch(f"Gateway order {gateway_order_id} is not bound to order {order.pk}")

    if transaction_id and Order.objects.filter(trnx_id=str(transaction_id)).exclude(pk=order.pk).exists():
        raise PaymentMismatch(f"Transaction {transaction_id} already settled another order")


def apply_payment_result(order_id, *, success: bool, pending: bool, transaction_id=None, payload=None,
                         amount_cents=None, currency=None, gateway_order_id=None):
    """Record a verified payment callback on the order.

    Must only be called after the callback signature has been verified.
    ``amount_cents``, ``currency`` and ``gateway_order_id`` come from the
    signed transaction and are checked against the order; a mismatch raises
    :class:`PaymentMismatch` without touching the order. Returns the updated
    order, or ``None`` when ``order_id`` is unknown.
    """
    try:
        pk = int(str(order_id).strip())
    except (TypeError, ValueError):
        logger.warning("Payment result for non-numeric order id %r ignored", order_id)
        return None

    with transaction.atomic():
        order = Order.objects.select_for_update().filter(pk=pk).first()
        if order is None:
            logger.warning("Payment result for unknown order %s ignored", pk)
            return None
        if order.payment_status == Order.PaymentStatus.SUCCESS:
            logger.info("Order %s already paid; duplicate callback ignored", pk)
            return order

        try:
            _check_gateway_match(
                order,
                amount_cents=amount_cents,
                currency=currency,
                gateway_order_id=gateway_order_id,
                transaction_id=transaction_id,
            )
        except PaymentMismatch as e:
            logger.warning("Payment result rejected for order %s: %s", pk, e)
            raise

        payment_status, status = payment_outcome(bool(success), bool(pending))
        if status == Order.Status.CANCELLED and order.status != Order.Status.CANCELLED:
            _release_stock(order)
        order.payment_status = payment_status
        order.status = status
        if transaction_id:
            order.trnx_id = str(transaction_id)
        order.gateway_meta = {**(order.gateway_meta or {}), "callback": payload or {}}
        order.save(update_fields=["payment_status", "status", "trnx_id", "gateway_meta", "updated_at"])
        OrderStatusHistory.objects.create(
            order=order,
            status=status,
            comment=f"Payment {payment_status.lower()} - Updated by Paymob webhook",
        )
    logger.info("Order %s payment=%s status=%s", pk, payment_status, status)
    return order
