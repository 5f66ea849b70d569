import json
import logging
from decimal import Decimal, ROUND_HALF_UP
from urllib.parse import quote

import requests
from requests import RequestException
from django.conf import settings

logger = logging.getLogger(__name__)

UNIFIED_CHECKOUT_URL = "https://accept.paymob.com/unifiedcheckout/"


class PaymobError(Exception):
    pass


def _conf(key, default=""):
    return (getattr(settings, "PAYMOB", None) or {}).get(key, default)


def _base_url() -> str:
    return str(_conf("BASE_URL", "https://accept.paymob.com")).rstrip("/")


def build_headers() -> dict:
    secret_key = _conf("SECRET_KEY")
    if not secret_key:
        raise PaymobError("Missing PAYMOB_SECRET_KEY")
    return {
        "Content-Type": "application/json",
        "Accept": "application/json",
        "Authorization": f"Token {secret_key}",
    }


def to_cents(amount) -> int:
    try:
        q = (Decimal(str(amount)) * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP)
    except Exception:
        raise PaymobError("Invalid amount value")
    return int(q)


def _callback_base() -> str:
    base = getattr(settings, "PUBLIC_APP_URL", "") or ""
    if not base:
        logger.warning("PUBLIC_APP_URL not set, defaulting to http://localhost:8000")
        base = "http://localhost:8000"
    return base.rstrip("/")


def _billing_data(billing: dict) -> dict:
    name = (billing.get("name") or "").strip()
    parts = name.split(" ")
    return {
        "first_name": parts[0] or "Customer",
        "last_name": " ".join(parts[1:]) or "User",
        "email": billing.get("email") or "",
        "phone_number": billing.get("phone") or "",
        "country": billing.get("country") or "Egypt",
        "city": billing.get("city") or "N/A",
        "street": "N/A",
        "building": "N/A",
        "apartment": "N/A",
        "floor": "N/A",
        "state": "N/A",
    }


def create_intention(*, order, billing: dict, currency=None, payment_methods=None) -> dict:
    """Create a Unified Intention for ``order`` and return checkout URLs.

    The order id travels as ``special_reference`` so the processed callback
    can find the order again.
    """
    cents = to_cents(order.total)
    if payment_methods is None:
        integration_id = _conf("INTEGRATION_ID")
        try:
            payment_methods = [int(integration_id)]
        except (TypeError, ValueError):
            raise PaymobError("Missing or invalid PAYMOB_INTEGRATION_ID")

    base = _callback_base()
    payload = {
        "amount": cents,
        "currency": currency or getattr(settings, "CURRENCY", "EGP"),
        "payment_methods": payment_methods,
        "items": [
            {"name": "Order Items", "amount": cents, "description": f"Order {order.pk}", "quantity": 1},
        ],
        "billing_data": _billing_data(billing or {}),
        "special_reference": str(order.pk),
        "expiration": int(_conf("INTENTION_EXPIRATION", 300)),
        "single_payment_attempt": True,
        "notification_url": f"{base}/payments/paymob/webhooks/processed",
        "redirection_url": f"{base}/payments/paymob/webhooks/redirect",
    }

    url = f"{_base_url()}/v1/intention/"
    try:
        resp = requests.post(url, headers=build_headers(), json=payload, timeout=30)
    except RequestException as e:
        raise PaymobError(f"Gateway request failed: {e}")
    try: data = resp.json()
    except ValueError: data = {"raw": resp.text}

    if resp.status_code not in (200, 201):
        logger.error("Paymob intention failed for order=%s status=%s body=%s",
                     order.pk, resp.status_code, json.dumps(data)[:800])
        if resp.status_code == 400: hint = "Invalid request, please check your data."
        elif resp.status_code == 401: hint = "Authorization error, please try again."
        else: hint = "Payment service unavailable, try again later."
        raise PaymobError(hint)

    payment_url = data.get("payment_link") or data.get("payment_url") or data.get("redirect_url")
    client_secret = data.get("client_secret")
    iframe_id = _conf("IFRAME_ID")
    iframe_url = data.get("iframe_url") or (
        f"{_base_url()}/api/acceptance/iframes/{iframe_id}?client_secret={quote(client_secret)}"
        if iframe_id and client_secret else None
    )
    if not payment_url and not client_secret:
        raise PaymobError("Payment initiation did not return a redirect URL or client_secret.")

    public_key = _conf("PUBLIC_KEY")
    unified_url = (
        f"{UNIFIED_CHECKOUT_URL}?publicKey={quote(public_key)}&clientSecret={quote(client_secret)}"
        if client_secret and public_key else None
    )
    return {
        "payment_url": payment_url or iframe_url,
        "iframe_url": iframe_url,
        "client_secret": client_secret,
        "unified_checkout_url": unified_url,
        "order_id": order.pk,
        "paymob_order_id": data.get("intention_order_id"),
        "status": "pending",
    }
