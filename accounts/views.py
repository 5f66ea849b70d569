import json
import logging

from django.contrib.auth import get_user_model
from django.http import JsonResponse
from django.views.decorators.csrf import csrf_exempt
from django.views.decorators.http import require_POST

from .tokens import sign_mobile_token

logger = logging.getLogger(__name__)
User = get_user_model()


@csrf_exempt
@require_POST
def mobile_login_view(request):
    """Password login for the mobile admin app; answers with a bearer token."""
    try:
        body = json.loads(request.body.decode("utf-8"))
    except (ValueError, UnicodeDecodeError):
        body = None
    if not isinstance(body, dict):
        return JsonResponse({"error": "Email and password are required"}, status=400)

    email = str(body.get("email") or "").strip().lower()
    password = str(body.get("password") or "")
    if not email or not password:
        return JsonResponse({"error": "Email and password are required"}, status=400)

    user = User.objects.filter(email__iexact=email).first()
    if user is None or not user.has_usable_password() or not user.check_password(password):
        logger.info("Mobile login failed for email=%s", email)
        return JsonResponse({"error": "Invalid email or password"}, status=401)
    if not user.is_active:
        return JsonResponse({"error": "Account is disabled"}, status=403)
    if not user.is_staff:
        return JsonResponse({"error": "Admin access only"}, status=403)

    logger.info("Mobile token issued for user=%s", user.pk)
    return JsonResponse({"token": sign_mobile_token(user)})
