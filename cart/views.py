import json
import logging

from django.http import JsonResponse
from django.views.decorators.http import require_GET, require_POST

from catalog.models import Product
from coupons.discount import DiscountError
from . import services
from .services import CartError

logger = logging.getLogger(__name__)


def _json_body(request):
    try: return json.loads(request.body.decode("utf-8"))
    except (ValueError, UnicodeDecodeError): return None


def _error(e):
    return JsonResponse({"error": str(e)}, status=getattr(e, "status_code", 400))


@require_GET
def cart_view(request):
    try:
        return JsonResponse(services.cart_summary(request))
    except DiscountError as e:
        return _error(e)


@require_POST
def add_view(request):
    body = _json_body(request) or {}
    try:
        services.add_item(request, body.get("productId") or body.get("product_id"),
                          body.get("quantity", 1), body.get("color") or "")
    except CartError as e:
        return _error(e)
    return cart_view(request)


@require_POST
def update_view(request):
    body = _json_body(request) or {}
    try:
        services.update_item(request, body.get("productId") or body.get("product_id"),
                             body.get("quantity"), body.get("color") or "")
    except CartError as e:
        return _error(e)
    return cart_view(request)


@require_POST
def remove_view(request):
    body = _json_body(request) or {}
    try:
        services.remove_item(request, body.get("productId") or body.get("product_id"), body.get("color") or "")
    except CartError as e:
        return _error(e)
    return cart_view(request)


@require_POST
def clear_view(request):
    services.clear_cart(request)
    return JsonResponse({"success": True})


@require_GET
def wishlist_view(request):
    ids = services.wishlist_ids(request)
    products = Product.objects.filter(pk__in=ids, is_active=True)
    return JsonResponse({
        "items": [{"product_id": p.pk, "name": p.name, "slug": p.slug, "price": str(p.price)} for p in products]
    })


@require_POST
def wishlist_add_view(request):
    body = _json_body(request) or {}
    try:
        ids = services.add_to_wishlist(request, body.get("productId") or body.get("product_id"))
    except CartError as e:
        return _error(e)
    return JsonResponse({"success": True, "product_ids": ids})


@require_POST
def wishlist_remove_view(request):
    body = _json_body(request) or {}
    try:
        ids = services.remove_from_wishlist(request, body.get("productId") or body.get("product_id"))
    except CartError as e:
        return _error(e)
    return JsonResponse({"success": True, "product_ids": ids})
