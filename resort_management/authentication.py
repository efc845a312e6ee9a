"""
Bearer-token authentication and the development bypass.

Tokens are HS256 JWTs carrying ``sub`` (user id), ``username`` and ``role``.
"""
import logging
from datetime import datetime, timedelta, timezone

from django.conf import settings
from jose import JWTError, jwt
from rest_framework import authentication, exceptions

from .models import User

logger = logging.getLogger(__name__)


def create_access_token(user, expires_delta=None):
    expire = datetime.now(timezone.utc) + (expires_delta or timedelta(minutes=settings.JWT_EXPIRE_MINUTES))
    payload = {"sub": str(user.pk), "username": user.username, "role": user.role, "exp": expire}
    return jwt.encode(payload, settings.JWT_SECRET, algorithm=settings.JWT_ALGORITHM)


def decode_access_token(token):
    try:
        return jwt.decode(token, settings.JWT_SECRET, algorithms=[settings.JWT_ALGORITHM])
    except JWTError as e:
        logger.warning("JWT verification failed: %s", e)
        raise exceptions.AuthenticationFailed("Could not validate credentials")


class BearerTokenAuthentication(authentication.BaseAuthentication):
    keyword = "Bearer"

    def authenticate(self, request):
        auth = authentication.get_authorization_header(request).split()
        if not auth or auth[0].lower() != self.keyword.lower().encode():
            return None
        if len(auth) != 2:
            raise exceptions.AuthenticationFailed("Invalid token header.")

        try:
            token = auth[1].decode()
        except UnicodeError:
            raise exceptions.AuthenticationFailed("Invalid token header.")

        payload = decode_access_token(token)
        try:
            user = User.objects.filter(pk=int(payload.get("sub")), is_active=True).first()
        except (TypeError, ValueError):
            user = None
        if user is None:
            raise exceptions.AuthenticationFailed("User not found or inactive.")
        return user, payload

    def authenticate_header(self, request):
        return self.keyword


class DevelopmentAuthentication(authentication.BaseAuthentication):
    """Injects a fixed admin identity when ``AUTH_BYPASS`` is on. Never enable in production."""

    def authenticate(self, request):
        if not settings.AUTH_BYPASS:
            return None
        logger.warning("[TEST MODE] authentication bypassed for %s %s", request.method, request.path)
        user, _ = User.objects.get_or_create(
            username=settings.DEV_AUTH_USERNAME,
            defaults={
                "email": f"{settings.DEV_AUTH_USERNAME}@localhost",
                "full_name": "Development Admin",
                "role": User.Role.ADMIN,
            },
        )
        return user, None
