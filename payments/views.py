import json
import logging

from django.conf import settings
from django.http import HttpResponseRedirect, JsonResponse
from django.views.decorators.csrf import csrf_exempt
from django.views.decorators.http import require_GET, require_POST

from orders.models import Order
from orders.services import PaymentMismatch, apply_payment_result
from .paymob import PaymobError, create_intention
from .utils import PROCESSED_ORDERED_KEYS, REDIRECT_ORDERED_KEYS, MissingSecret, verify_callback

logger = logging.getLogger(__name__)


def _json_body(request):
    try: return json.loads(request.body.decode("utf-8"))
    except (ValueError, UnicodeDecodeError): return None


def _hmac_secret() -> str:
    return (getattr(settings, "PAYMOB", None) or {}).get("HMAC_SECRET", "")


def _truthy(value) -> bool:
    if isinstance(value, str):
        return value.strip().lower() == "true"
    return bool(value)


def _dig(data, *path):
    for key in path:
        if not isinstance(data, dict):
            return None
        data = data.get(key)
    return data


def _origin(request) -> str:
    base = getattr(settings, "PUBLIC_APP_URL", "") or ""
    if base:
        return base.rstrip("/")
    return request.build_absolute_uri("/").rstrip("/")


@require_POST
def create_intention_view(request):
    if not request.user.is_authenticated:
        return JsonResponse({"error": "Unauthorized"}, status=401)
    body = _json_body(request)
    if not body:
        return JsonResponse({"error": "Invalid JSON body"}, status=400)

    order_id = str(body.get("order_id") or "")
    order = Order.objects.filter(pk=int(order_id), user=request.user).first() if order_id.isdigit() else None
    if order is None:
        return JsonResponse({"error": "Order not found"}, status=404)
    if not order.is_online:
        return JsonResponse({"error": "Order is not payable online"}, status=400)
    if order.is_paid:
        return JsonResponse({"error": "Order is already paid"}, status=400)

    billing = body.get("billing") or {
        "name": order.shipping_name,
        "email": request.user.email,
        "phone": order.shipping_phone,
        "city": order.shipping_city,
    }
    try:
        result = create_intention(order=order, billing=billing, payment_methods=body.get("payment_methods"))
    except PaymobError as e:
        return JsonResponse({"error": str(e)}, status=502)

    # callbacks must carry this gateway order id to settle the order
    if result.get("paymob_order_id"):
        order.gateway_meta = {**(order.gateway_meta or {}), "paymob_order_id": result["paymob_order_id"]}
        order.save(update_fields=["gateway_meta", "updated_at"])
    return JsonResponse(result)


@csrf_exempt
@require_POST
def paymob_processed_webhook(request):
    """Server-to-server transaction callback.

    Accepts both the Unified Intention shape ``{hmac, transaction, intention}``
    and the integration shape ``?hmac=...`` with ``{type, obj}``. Nothing is
    written unless the HMAC verifies.
    """
    payload = _json_body(request)
    if not isinstance(payload, dict):
        return JsonResponse({"error": "Invalid JSON"}, status=400)

    received = payload.get("hmac") or request.GET.get("hmac") or ""
    data = payload.get("transaction") or payload.get("obj")
    if not received:
        logger.warning("Paymob processed callback without HMAC")
        return JsonResponse({"error": "Missing HMAC"}, status=400)
    if not isinstance(data, dict):
        return JsonResponse({"error": "Missing transaction data"}, status=400)

    try:
        valid = verify_callback(data, received, PROCESSED_ORDERED_KEYS, _hmac_secret())
    except MissingSecret:
        return JsonResponse({"error": "Server error"}, status=500)
    if not valid:
        logger.warning("Invalid Paymob HMAC for processed callback, transaction=%s", data.get("id"))
        return JsonResponse({"error": "Invalid HMAC"}, status=400)

    merchant_order_id = (
        _dig(payload, "intention", "special_reference")
        or _dig(payload, "payment_key_claims", "extra", "merchant_order_id")
        or _dig(payload, "obj", "order", "merchant_order_id")
        or ""
    )
    local_order_id = merchant_order_id or _dig(data, "order", "id") or ""
    if not local_order_id:
        logger.warning("Verified Paymob callback without a local order reference")
        return JsonResponse({"ok": True, "order": None}, status=202)

    if data.get("amount_cents") is None or not data.get("currency"):
        logger.warning("Verified Paymob callback without amount or currency, transaction=%s", data.get("id"))
        return JsonResponse({"error": "Missing amount or currency"}, status=400)

    gateway_order = data.get("order")
    if isinstance(gateway_order, dict):
        gateway_order = gateway_order.get("id")

    try:
        order = apply_payment_result(
            local_order_id,
            success=_truthy(data.get("success")),
            pending=_truthy(data.get("pending")),
            transaction_id=data.get("id"),
            payload=payload,
            amount_cents=data.get("amount_cents"),
            currency=data.get("currency"),
            gateway_order_id=gateway_order,
        )
    except PaymentMismatch:
        return JsonResponse({"error": "Transaction does not match order"}, status=400)
    if order is None:
        return JsonResponse({"ok": True, "order": None}, status=202)
    return JsonResponse({"ok": True, "order": order.pk, "status": order.status})


@require_GET
def paymob_redirect_webhook(request):
    """Browser redirect after checkout; only decides where to send the shopper."""
    origin = _origin(request)
    params = request.GET.dict()
    received = params.pop("hmac", "")
    merchant_order_id = params.get("merchant_order_id") or params.get("order.merchant_order_id") or ""

    if not received:
        order_id = merchant_order_id or params.get("order_id")
        if order_id:
            return HttpResponseRedirect(f"{origin}/orders/{order_id}?payment=failed")
        return HttpResponseRedirect(f"{origin}/payment/result?status=failed")

    try:
        valid = verify_callback(params, received, REDIRECT_ORDERED_KEYS, _hmac_secret())
    except MissingSecret:
        valid = False
    if not valid:
        logger.warning("Invalid Paymob HMAC on redirect for order=%s", merchant_order_id)
        return HttpResponseRedirect(f"{origin}/payment/result?status=failed")

    success = params.get("success") == "true"
    pending = params.get("pending") == "true"
    status = "success" if success and not pending else ("pending" if pending else "failed")

    if status == "failed" and merchant_order_id:
        return HttpResponseRedirect(f"{origin}/orders/{merchant_order_id}?payment=failed")
    if status == "success" and merchant_order_id:
        return HttpResponseRedirect(f"{origin}/orders/{merchant_order_id}")
    return HttpResponseRedirect(f"{origin}/payment/result?status={status}")
