import json
import logging
import re
import uuid

from django.http import JsonResponse
from django.views.decorators.http import require_POST

from .models import AnalyticsEvent

logger = logging.getLogger(__name__)

SESSION_KEY = "analytics_session_id"


def _json_body(request):
    try: return json.loads(request.body.decode("utf-8"))
    except (ValueError, UnicodeDecodeError): return None


def device_type(user_agent: str) -> str:
    ua = (user_agent or "").lower()
    if re.search(r"ipad|tablet", ua):
        return AnalyticsEvent.Device.TABLET
    if re.search(r"mobile|iphone|ipod|android", ua):
        return AnalyticsEvent.Device.MOBILE
    if re.search(r"windows|macintosh|linux", ua):
        return AnalyticsEvent.Device.DESKTOP
    return AnalyticsEvent.Device.OTHER


def _session_id(request) -> str:
    # own id rather than the session key, which rotates on login
    sid = request.session.get(SESSION_KEY)
    if not sid:
        sid = request.session[SESSION_KEY] = uuid.uuid4().hex
    return sid


@require_POST
def track_view(request):
    """Record a storefront event with its campaign attribution."""
    body = _json_body(request)
    if not isinstance(body, dict):
        return JsonResponse({"error": "Invalid JSON body"}, status=400)
    event = str(body.get("event") or "").strip().upper()
    if not event:
        return JsonResponse({"error": "Event type is required"}, status=400)
    if event not in AnalyticsEvent.Event.values:
        return JsonResponse({"error": f"Unknown event type: {event}"}, status=400)

    metadata = body.get("metadata") if isinstance(body.get("metadata"), dict) else {}
    tracked = AnalyticsEvent.objects.create(
        event=event,
        user=request.user if request.user.is_authenticated else None,
        session_id=_session_id(request),
        metadata=metadata,
        device_type=device_type(request.META.get("HTTP_USER_AGENT", "")),
        utm_source=str(body.get("utm_source") or "")[:128],
        utm_medium=str(body.get("utm_medium") or "")[:128],
        utm_campaign=str(body.get("utm_campaign") or "")[:128],
        country=(request.META.get("HTTP_X_VERCEL_IP_COUNTRY") or request.META.get("HTTP_CF_IPCOUNTRY") or "")[:8],
        region=(request.META.get("HTTP_X_VERCEL_IP_COUNTRY_REGION") or request.META.get("HTTP_CF_REGION") or "")[:32],
    )
    logger.debug("Tracked %s device=%s session=%s", tracked.event, tracked.device_type, tracked.session_id)
    return JsonResponse({"success": True})
