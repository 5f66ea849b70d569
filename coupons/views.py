import json
import logging

from django.conf import settings
from django.http import JsonResponse
from django.views.decorators.http import require_GET, require_POST

from .discount import DiscountError, coerce_line_items, compute_total, describe
from .models import Coupon
from .services import (
    coupon_from_session,
    current_coupon,
    find_active_coupon_by_code,
    forget_coupon,
    remember_coupon,
    user_has_reached_limit,
)

logger = logging.getLogger(__name__)


def _json_body(request):
    try: return json.loads(request.body.decode("utf-8"))
    except (ValueError, UnicodeDecodeError): return None


@require_POST
def verify_coupon_view(request):
    """Apply a coupon code to the visitor's session."""
    body = _json_body(request) or {}
    code = body.get("code")
    if not code:
        return JsonResponse({"error": "Coupon code is required"}, status=400)

    coupon = find_active_coupon_by_code(code)
    if coupon is None:
        return JsonResponse({"error": "Invalid or expired coupon code"}, status=404)

    if user_has_reached_limit(coupon, request.user):
        logger.info("User %s hit the usage limit of coupon %s", request.user.pk, coupon.code)
        return JsonResponse({"error": "This coupon has expired"}, status=400)

    remember_coupon(request, coupon)
    return JsonResponse({"message": "Coupon applied successfully", "coupon": coupon.as_session_data()})


@require_GET
def current_coupon_view(request):
    return JsonResponse({"coupon": current_coupon(request)})


@require_POST
def remove_coupon_view(request):
    forget_coupon(request)
    return JsonResponse({"message": "Coupon removed successfully"})


@require_GET
def active_coupons_view(request):
    coupons = Coupon.objects.active().order_by("-created_at")[:5]
    return JsonResponse(
        [
            {"id": c.pk, "code": c.code, "type": c.type, "value": str(c.value), "name": c.name}
            for c in coupons
        ],
        safe=False,
    )


@require_POST
def quote_view(request):
    """Price a cart with the session coupon and the flat shipping cost."""
    body = _json_body(request)
    if body is None:
        return JsonResponse({"error": "Invalid JSON body"}, status=400)

    coupon = coupon_from_session(request)
    try:
        items = coerce_line_items(body.get("items") or [])
        totals = compute_total(items, coupon, settings.SHIPPING_COST)
    except DiscountError as e:
        return JsonResponse({"error": str(e)}, status=400)

    data = describe(totals, coupon)
    data["shipping"] = str(settings.SHIPPING_COST)
    data["currency"] = settings.CURRENCY
    return JsonResponse(data)
