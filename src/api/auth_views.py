"""Authentication API views with HttpOnly JWT cookies."""

import logging
from datetime import timedelta

from django.conf import settings
from django.core.exceptions import ImproperlyConfigured
from django.middleware import csrf
from django.utils.decorators import method_decorator
from django.views.decorators.csrf import ensure_csrf_cookie
from rest_framework import permissions, status
from rest_framework.response import Response
from rest_framework.throttling import ScopedRateThrottle
from rest_framework.views import APIView
from rest_framework_simplejwt.exceptions import TokenError
from rest_framework_simplejwt.tokens import RefreshToken
from rest_framework_simplejwt.views import TokenObtainPairView, TokenRefreshView

from api.v1.serializers import CustomTokenObtainPairSerializer

logger = logging.getLogger("circleops")


class SafeScopedRateThrottle(ScopedRateThrottle):
    """Scoped throttle that falls back to a strict default if scope config is missing."""

    def get_rate(self):
        try:
            return super().get_rate()
        except ImproperlyConfigured:
            logger.warning("Throttle scope '%s' not configured, applying strict default 5/min.", self.scope)
            return "5/min"


def _cookie_names():
    return (
        getattr(settings, "JWT_AUTH_COOKIE", "access_token"),
        getattr(settings, "JWT_AUTH_REFRESH_COOKIE", "refresh_token"),
    )


def _cookie_scope():
    return {
        "path": getattr(settings, "JWT_AUTH_COOKIE_PATH", "/"),
        "domain": getattr(settings, "JWT_AUTH_COOKIE_DOMAIN", None),
    }


def _set_cookie(response: Response, key: str, value: str, lifetime: timedelta) -> None:
    response.set_cookie(
        key=key,
        value=value,
        max_age=int(lifetime.total_seconds()),
        httponly=True,
        secure=getattr(settings, "JWT_AUTH_COOKIE_SECURE", not settings.DEBUG),
        samesite=getattr(settings, "JWT_AUTH_COOKIE_SAMESITE", "Lax"),
        **_cookie_scope(),
    )


def _set_auth_cookies(response: Response, *, access: str, refresh: str | None) -> None:
    access_cookie, refresh_cookie = _cookie_names()
    _set_cookie(response, access_cookie, access, settings.SIMPLE_JWT["ACCESS_TOKEN_LIFETIME"])
    if refresh:
        _set_cookie(response, refresh_cookie, refresh, settings.SIMPLE_JWT["REFRESH_TOKEN_LIFETIME"])


def _clear_auth_cookies(response: Response) -> None:
    for name in _cookie_names():
        response.delete_cookie(name, **_cookie_scope())


def _token_body(access, refresh):
    if getattr(settings, "JWT_RETURN_TOKENS_IN_BODY", False):
        return {"access": access, "refresh": refresh}
    return {}


class CookieTokenObtainPairView(TokenObtainPairView):
    """Issue JWT for email/password and set HttpOnly auth cookies."""

    serializer_class = CustomTokenObtainPairSerializer
    throttle_classes = [SafeScopedRateThrottle]
    throttle_scope = "auth_burst"
    permission_classes = [permissions.AllowAny]

    def post(self, request, *args, **kwargs):
        serializer = self.get_serializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        validated = serializer.validated_data

        access = validated["access"]
        refresh = validated["refresh"]
        response = Response(
            {"employee": validated["employee"], **_token_body(access, refresh)},
            status=status.HTTP_200_OK,
        )
        _set_auth_cookies(response, access=access, refresh=refresh)
        logger.info("Login: %s", validated["employee"]["id"])
        return response


class CookieTokenRefreshView(TokenRefreshView):
    """Refresh access token using body token or HttpOnly refresh cookie."""

    throttle_classes = [SafeScopedRateThrottle]
    throttle_scope = "auth_sustained"
    permission_classes = [permissions.AllowAny]

    def post(self, request, *args, **kwargs):
        _, refresh_cookie = _cookie_names()
        payload = request.data.copy()
        if not payload.get("refresh") and request.COOKIES.get(refresh_cookie):
            payload["refresh"] = request.COOKIES[refresh_cookie]

        serializer = self.get_serializer(data=payload)
        serializer.is_valid(raise_exception=True)
        access = serializer.validated_data["access"]
        refresh = serializer.validated_data.get("refresh", payload.get("refresh"))

        response = Response({"detail": "Token refreshed.", **_token_body(access, refresh)}, status=status.HTTP_200_OK)
        _set_auth_cookies(response, access=access, refresh=refresh)
        return response


class LogoutAPIView(APIView):
    """Blacklist the refresh token (when present) and clear auth cookies."""

    permission_classes = [permissions.AllowAny]

    def post(self, request):
        _, refresh_cookie = _cookie_names()
        raw_refresh = request.data.get("refresh") or request.COOKIES.get(refresh_cookie)
        if raw_refresh:
            try:
                RefreshToken(raw_refresh).blacklist()
            except TokenError:
                logger.debug("Logout with an invalid or already blacklisted refresh token")
        response = Response(status=status.HTTP_204_NO_CONTENT)
        _clear_auth_cookies(response)
        return response


@method_decorator(ensure_csrf_cookie, name="dispatch")
class CSRFTokenAPIView(APIView):
    """Return a CSRF token and ensure CSRF cookie is set."""

    permission_classes = [permissions.AllowAny]

    def get(self, request):
        return Response({"csrfToken": csrf.get_token(request)}, status=status.HTTP_200_OK)
