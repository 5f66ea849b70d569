import logging
from typing import List

from django.conf import settings
from django.core.mail import EmailMultiAlternatives
from django.template.loader import render_to_string

logger = logging.getLogger(__name__)


def _fail_silently() -> bool:
    return getattr(settings, "EMAIL_FAIL_SILENTLY", True)


def _admin_recipients() -> List[str]:
    raw = getattr(settings, "ORDERS_ADMIN_EMAILS", None) or getattr(settings, "DEFAULT_FROM_EMAIL", "") or ""
    emails = [e.strip() for e in raw.split(",") if e and e.strip()]
    # Deduplicate while preserving order
    seen = set()
    uniq: List[str] = []
    for e in emails:
        if e.lower() not in seen:
            seen.add(e.lower())
            uniq.append(e)
    return uniq


def _order_context(order) -> dict:
    return {
        "order_id": order.pk,
        "status": order.get_status_display(),
        "payment_method": order.get_payment_method_display(),
        "subtotal": order.subtotal,
        "discount": order.discount_amount,
        "shipping": order.shipping_cost,
        "total": order.total,
        "currency": getattr(settings, "CURRENCY", ""),
        "coupon_code": order.coupon.code if order.coupon_id else None,
        "items": [
            {"name": item.product.name, "quantity": item.quantity, "price": item.price}
            for item in order.items.select_related("product")
        ],
        "shipping_name": order.shipping_name,
        "shipping_phone": order.shipping_phone,
        "shipping_address": order.shipping_address,
        "shipping_city": order.shipping_city,
    }


def _send(subject, template, context, recipients) -> None:
    from_email = getattr(settings, "DEFAULT_FROM_EMAIL", None)
    text = render_to_string(f"emails/{template}.txt", context)
    html = render_to_string(f"emails/{template}.html", context)
    msg = EmailMultiAlternatives(subject, text, from_email, recipients)
    msg.attach_alternative(html, "text/html")
    msg.send(fail_silently=_fail_silently())


def send_order_confirmation(*, order) -> None:
    """Send the customer a confirmation and notify admins about a new order.

    Never raises: a failing mail server must not undo a placed order.
    """
    try:
        context = _order_context(order)
        currency = context["currency"]

        try:
            if order.user.email:
                _send(
                    f"Order #{order.pk} confirmed – {currency} {order.total}",
                    "order_confirmation",
                    context,
                    [order.user.email],
                )
        except Exception:
            logger.exception("Failed to send order confirmation to %s", order.user.email)

        try:
            admins = _admin_recipients()
            if admins:
                _send(
                    f"New order #{order.pk} – {currency} {order.total} ({order.get_payment_method_display()})",
                    "order_notification_admin",
                    context,
                    admins,
                )
        except Exception:
            logger.exception("Failed to send admin notification for order %s", order.pk)

    except Exception:
        logger.exception("send_order_confirmation crashed for order=%s", getattr(order, "pk", None))


def send_order_status_email(*, order) -> None:
    try:
        if not order.user.email:
            return
        _send(
            f"Order #{order.pk} is now {order.get_status_display().lower()}",
            "order_status",
            _order_context(order),
            [order.user.email],
        )
    except Exception:
        logger.exception("Failed to send status email for order=%s", getattr(order, "pk", None))
