"""
Production settings with strict security hardening.

These settings enforce HTTPS, secure cookies, HSTS, and refuse to start
without the secrets that protect borrower card details.

Usage:
    Set DJANGO_SETTINGS_MODULE=config.settings.production in production.
"""

from .base import *  # noqa: F401,F403

# Force DEBUG off in production
DEBUG = False

# Require SECRET_KEY to be set (fail-fast if not configured)
if SECRET_KEY == "changeme":  # noqa: F405
    raise ValueError("DJANGO_SECRET_KEY must be set in production")

# The card codec refuses the development fallback key when DEBUG is off,
# fail here so a misconfigured deploy never boots.
if not CARD_ENCRYPTION_KEY:  # noqa: F405
    raise ValueError("ENCRYPTION_KEY must be set in production")

if JWT_SECRET == "changeme":  # noqa: F405
    raise ValueError("JWT_SECRET must be set in production")

# HTTPS enforcement
SECURE_SSL_REDIRECT = True
SECURE_PROXY_SSL_HEADER = ("HTTP_X_FORWARDED_PROTO", "https")

# HSTS (HTTP Strict Transport Security)
SECURE_HSTS_SECONDS = 31536000  # 1 year
SECURE_HSTS_INCLUDE_SUBDOMAINS = True
SECURE_HSTS_PRELOAD = True

# Secure cookies (the JWT may travel in the "token" cookie)
SESSION_COOKIE_SECURE = True
SESSION_COOKIE_HTTPONLY = True
SESSION_COOKIE_SAMESITE = "Lax"

CSRF_COOKIE_SECURE = True
CSRF_COOKIE_HTTPONLY = True
CSRF_COOKIE_SAMESITE = "Lax"

# Additional security headers
SECURE_BROWSER_XSS_FILTER = True
SECURE_CONTENT_TYPE_NOSNIFF = True
X_FRAME_OPTIONS = "DENY"

# CORS_ALLOWED_ORIGINS should be set via environment variable to exact origins
