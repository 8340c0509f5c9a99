"""
Local JWT authentication.

Access tokens are HS256 JWTs signed with ``JWT_SECRET``. Clients send them
as ``Authorization: Bearer <token>`` or in the ``token`` cookie.
"""

import time
import uuid
from typing import Any

import structlog
from authlib.jose import JoseError, JsonWebToken
from django.conf import settings
from django.contrib.auth import get_user_model
from django.utils.translation import gettext_lazy as gettext
from rest_framework import authentication, exceptions

from config.observability import bind_context

User = get_user_model()

logger = structlog.get_logger(__name__)

ALGORITHM = "HS256"


class LocalJWTError(Exception):
    """Base exception for local JWT operations."""


class TokenExpiredError(LocalJWTError):
    """Token has expired."""


class InvalidTokenError(LocalJWTError):
    """Token is invalid."""


def _signing_key() -> bytes:
    secret = getattr(settings, "JWT_SECRET", "") or settings.SECRET_KEY
    return secret.encode("utf-8")


def generate_access_token(user, ttl: int | None = None) -> str:
    """
    Generate an access token for the given user.

    Args:
        user: The Django user to create a token for
        ttl: Token time-to-live in seconds (default from settings)

    Returns:
        JWT access token string
    """
    if ttl is None:
        ttl = getattr(settings, "JWT_ACCESS_TOKEN_TTL", 86400)

    now = int(time.time())
    profile = getattr(user, "profile", None)
    claims = {
        "sub": str(user.pk),
        "exp": now + ttl,
        "iat": now,
        "nbf": now,
        "jti": str(uuid.uuid4()),
        "email": user.email,
        "role": profile.role if profile is not None else "",
    }

    jwt = JsonWebToken([ALGORITHM])
    header = {"alg": ALGORITHM, "typ": "JWT"}
    return jwt.encode(header, claims, _signing_key()).decode("utf-8")


def verify_token(token: str) -> dict[str, Any]:
    """
    Verify and decode an access token.

    Raises:
        TokenExpiredError: If the token has expired
        InvalidTokenError: If the token is invalid
    """
    try:
        jwt = JsonWebToken([ALGORITHM])
        claims = jwt.decode(token, _signing_key(), claims_options={"sub": {"essential": True}})
        claims.validate()
        return dict(claims)
    except JoseError as e:
        if "expired" in str(e).lower():
            raise TokenExpiredError("Token has expired") from e
        raise InvalidTokenError(f"Invalid token: {e}") from e
    except ValueError as e:
        raise InvalidTokenError(f"Token verification failed: {e}") from e


def is_account_active(user) -> bool:
    if not user.is_active:
        return False
    profile = getattr(user, "profile", None)
    return profile is None or profile.is_active_account


class LocalJWTAuthentication(authentication.BaseAuthentication):
    """DRF auth for locally issued JWTs, from the bearer header or the token cookie."""

    www_authenticate_realm = "api"

    def authenticate(self, request):
        token = self._get_token(request)
        if token is None:
            return None

        try:
            claims = verify_token(token)
        except TokenExpiredError:
            raise exceptions.AuthenticationFailed(gettext("Token has expired."))
        except LocalJWTError:
            raise exceptions.AuthenticationFailed(gettext("Invalid token."))

        try:
            user = User.objects.select_related("profile").get(pk=claims["sub"])
        except (User.DoesNotExist, ValueError):
            raise exceptions.AuthenticationFailed(gettext("User not found."))

        if not is_account_active(user):
            logger.warning("auth_inactive_account_rejected", user_id=user.pk)
            raise exceptions.AuthenticationFailed(gettext("Account is inactive."))

        bind_context(actor=str(user.pk))
        request.token_claims = claims
        return user, token

    def authenticate_header(self, request):
        return f'Bearer realm="{self.www_authenticate_realm}"'

    def _get_token(self, request) -> str | None:
        auth = authentication.get_authorization_header(request).split()
        if auth and auth[0].lower() == b"bearer":
            if len(auth) == 1:
                raise exceptions.AuthenticationFailed(
                    gettext("Invalid token header. No credentials provided.")
                )
            if len(auth) > 2:
                raise exceptions.AuthenticationFailed(
                    gettext("Invalid token header. Token string should not contain spaces.")
                )
            return auth[1].decode("utf-8")

        cookie_name = getattr(settings, "JWT_COOKIE_NAME", "token")
        return request.COOKIES.get(cookie_name) or None
