"""HS256 tokens for the mobile admin client."""

import logging
from datetime import datetime, timedelta, timezone

import jwt
from django.conf import settings
from django.core.exceptions import ImproperlyConfigured

logger = logging.getLogger(__name__)

ALGORITHM = "HS256"


def _secret() -> str:
    secret = getattr(settings, "MOBILE_JWT_SECRET", "") or settings.SECRET_KEY
    if not secret:
        logger.error("MOBILE_JWT_SECRET and SECRET_KEY are both empty")
        raise ImproperlyConfigured("MOBILE_JWT_SECRET or SECRET_KEY is required to sign mobile tokens")
    return secret


def role_of(user) -> str:
    return "ADMIN" if user.is_staff else "USER"


def sign_mobile_token(user) -> str:
    now = datetime.now(timezone.utc)
    ttl = timedelta(days=getattr(settings, "MOBILE_JWT_TTL_DAYS", 7))
    payload = {
        "sub": str(user.pk),
        "role": role_of(user),
        "iat": int(now.timestamp()),
        "exp": int((now + ttl).timestamp()),
    }
    return jwt.encode(payload, _secret(), algorithm=ALGORITHM)


def verify_mobile_token(token: str):
    """Return the token claims, or ``None`` if it is invalid or expired."""
    try:
        claims = jwt.decode(token, _secret(), algorithms=[ALGORITHM])
    except jwt.PyJWTError:
        return None
    if not claims.get("sub") or not claims.get("role"):
        return None
    return claims
