import json
import logging

from django.http import JsonResponse
from django.shortcuts import get_object_or_404
from django.views.decorators.http import require_GET, require_POST

from cart.services import clear_cart, order_items as cart_items
from coupons.discount import DiscountError
from coupons.services import forget_coupon, resolve_coupon_for_checkout
from .models import Order
from .services import (
    ATTRIBUTION_FIELDS,
    OrderError,
    bulk_transition,
    cancel_items,
    cancel_order,
    create_order,
    order_analytics,
    transition_status,
)

logger = logging.getLogger(__name__)


def _json_body(request):
    try: return json.loads(request.body.decode("utf-8"))
    except (ValueError, UnicodeDecodeError): return None


def _unauthorized():
    return JsonResponse({"error": "Unauthorized"}, status=401)


def _order_json(order):
    return {
        "id": order.pk,
        "status": order.status,
        "payment_method": order.payment_method,
        "payment_status": order.payment_status,
        "subtotal": str(order.subtotal),
        "discount": str(order.discount_amount),
        "shipping": str(order.shipping_cost),
        "total": str(order.total),
        "coupon": order.coupon.code if order.coupon_id else None,
        "items": [
            {
                "id": i.pk, "product_id": i.product_id, "quantity": i.quantity,
                "price": str(i.price), "color": i.color, "cancelled": i.is_cancelled,
            }
            for i in order.items.all()
        ],
        "history": [
            {"status": h.status, "comment": h.comment, "at": h.created_at.isoformat()}
            for h in order.status_history.all()
        ],
        "created_at": order.created_at.isoformat(),
    }


@require_POST
def create_order_view(request):
    if not request.user.is_authenticated:
        return _unauthorized()
    body = _json_body(request)
    if body is None:
        return JsonResponse({"error": "Invalid JSON body"}, status=400)

    # Coupon from the request body first, then the one applied to the session.
    coupon_info = body.get("coupon") or request.session.get("coupon") or {}
    if isinstance(coupon_info, str):
        coupon_info = {"code": coupon_info}
    coupon = resolve_coupon_for_checkout(
        code=coupon_info.get("code"),
        coupon_id=coupon_info.get("id"),
        user=request.user,
    )

    # explicit items win; otherwise check out the session cart
    items = body.get("items") or cart_items(request)
    from_cart = not body.get("items")

    try:
        order = create_order(
            user=request.user,
            items=items,
            shipping=body.get("shipping") or {},
            payment_method=body.get("payment_method"),
            coupon=coupon,
            attribution={k: body.get(k) for k in ATTRIBUTION_FIELDS},
        )
    except OrderError as e:
        return JsonResponse({"error": str(e)}, status=e.status_code)
    except DiscountError as e:
        return JsonResponse({"error": str(e)}, status=400)

    if coupon_info:
        forget_coupon(request)
    if from_cart:
        clear_cart(request)
    return JsonResponse(_order_json(order), status=201)


@require_GET
def order_detail_view(request, order_id: int):
    if not request.user.is_authenticated:
        return _unauthorized()
    qs = Order.objects.prefetch_related("items", "status_history")
    if not request.user.is_staff:
        qs = qs.filter(user=request.user)
    order = get_object_or_404(qs, pk=order_id)
    return JsonResponse(_order_json(order))


@require_GET
def my_orders_view(request):
    if not request.user.is_authenticated:
        return _unauthorized()
    orders = Order.objects.filter(user=request.user).prefetch_related("items", "status_history")[:50]
    return JsonResponse({"orders": [_order_json(o) for o in orders]})


@require_POST
def cancel_order_view(request, order_id: int):
    if not request.user.is_authenticated:
        return _unauthorized()
    order = get_object_or_404(Order, pk=order_id, user=request.user)
    try:
        order = cancel_order(order)
    except OrderError as e:
        return JsonResponse({"error": str(e)}, status=e.status_code)
    return JsonResponse(_order_json(order))


@require_POST
def order_status_view(request, order_id: int):
    """Admin-triggered status transition."""
    if not (request.user.is_authenticated and request.user.is_staff):
        return _unauthorized()
    body = _json_body(request) or {}
    order = get_object_or_404(Order, pk=order_id)
    try:
        order = transition_status(order, body.get("status"), body.get("comment") or "")
    except OrderError as e:
        return JsonResponse({"error": str(e)}, status=e.status_code)
    logger.info("Staff %s set order %s to %s", request.user.pk, order.pk, order.status)
    return JsonResponse(_order_json(order))


@require_POST
def bulk_update_view(request):
    if not (request.user.is_authenticated and request.user.is_staff):
        return _unauthorized()
    body = _json_body(request) or {}
    order_ids = body.get("orderIds") or body.get("order_ids") or []
    if not isinstance(order_ids, list):
        return JsonResponse({"error": "orderIds must be a list"}, status=400)
    try:
        updated, missing = bulk_transition(order_ids, body.get("status"), body.get("comment") or "Bulk status update")
    except OrderError as e:
        return JsonResponse({"error": str(e)}, status=e.status_code)
    logger.info("Staff %s bulk-updated %s order(s) to %s", request.user.pk, len(updated), body.get("status"))
    return JsonResponse({"success": True, "updated": [o.pk for o in updated], "missing": missing})


@require_POST
def cancel_items_view(request, order_id: int):
    if not (request.user.is_authenticated and request.user.is_staff):
        return _unauthorized()
    body = _json_body(request) or {}
    item_ids = body.get("itemIds") or body.get("item_ids") or []
    if not isinstance(item_ids, list) or not item_ids:
        return JsonResponse({"error": "No items selected for cancellation"}, status=400)
    order = get_object_or_404(Order, pk=order_id)
    try:
        items = cancel_items(order, item_ids, body.get("comment") or "")
    except OrderError as e:
        return JsonResponse({"error": str(e)}, status=e.status_code)
    return JsonResponse({
        "success": True,
        "message": f"{len(items)} items cancelled successfully",
        "cancelled_items": [i.pk for i in items],
    })


@require_GET
def order_analytics_view(request):
    if not (request.user.is_authenticated and request.user.is_staff):
        return _unauthorized()
    return JsonResponse(order_analytics())
