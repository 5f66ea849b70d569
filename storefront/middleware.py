from django.conf import settings
from django.http import JsonResponse


class MaintenanceModeMiddleware:
    """Answer storefront requests with 503 while maintenance mode is on.

    The admin and the payment callbacks stay reachable so in-flight payments
    can still be settled.
    """

    def __init__(self, get_response):
        self.get_response = get_response

    def __call__(self, request):
        if getattr(settings, "SITE_MAINTENANCE_MODE", False):
            excluded_paths = ["/admin/", "/payments/paymob/webhooks/"]
            static_prefix = getattr(settings, "STATIC_URL", "/static/")
            media_prefix = getattr(settings, "MEDIA_URL", "/media/")
            if (
                not request.path.startswith(tuple(excluded_paths))
                and not request.path.startswith(static_prefix)
                and not request.path.startswith(media_prefix)
            ):
                return JsonResponse(
                    {"error": getattr(settings, "SITE_MAINTENANCE_MESSAGE", "Under maintenance")},
                    status=503,
                )
        return self.get_response(request)
