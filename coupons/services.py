import logging

from .models import Coupon

logger = logging.getLogger(__name__)

SESSION_KEY = "coupon"


def normalize_code(code) -> str:
    return (code or "").strip().upper()


def find_active_coupon_by_code(code):
    code = normalize_code(code)
    if not code:
        return None
    return Coupon.objects.active().filter(code=code).first()


def user_usage_count(coupon, user) -> int:
    from orders.models import Order

    if user is None or not getattr(user, "is_authenticated", False):
        return 0
    return Order.objects.filter(user=user, coupon=coupon).count()


def user_has_reached_limit(coupon, user) -> bool:
    if not coupon.user_limit:
        return False
    return user_usage_count(coupon, user) >= coupon.user_limit


def resolve_coupon_for_checkout(*, code=None, coupon_id=None, user=None):
    """Return the coupon to apply at checkout, or ``None``.

    Unknown, disabled, expired and exhausted coupons all resolve to ``None``
    so the order is simply priced without a discount.
    """
    qs = Coupon.objects.active()
    if coupon_id:
        coupon = qs.filter(pk=coupon_id).first()
    elif code:
        coupon = qs.filter(code=normalize_code(code)).first()
    else:
        return None

    if coupon is None:
        logger.info("Ignoring inactive or unknown coupon code=%s id=%s", code, coupon_id)
        return None
    if user_has_reached_limit(coupon, user):
        logger.info("Ignoring coupon %s: user %s reached its limit", coupon.code, getattr(user, "pk", None))
        return None
    return coupon


# ---------- session storage ----------
def remember_coupon(request, coupon) -> None:
    request.session[SESSION_KEY] = coupon.as_session_data()
    request.session.modified = True


def current_coupon(request):
    return request.session.get(SESSION_KEY)


def forget_coupon(request) -> None:
    if SESSION_KEY in request.session:
        del request.session[SESSION_KEY]
        request.session.modified = True


def coupon_from_session(request):
    """Re-resolve the coupon stored in the session against the database."""
    data = current_coupon(request) or {}
    if not data.get("id"):
        return None
    return resolve_coupon_for_checkout(coupon_id=data["id"], user=getattr(request, "user", None))
