import logging
import os
from pathlib import Path

import structlog
from sentry_sdk import init as sentry_init
from sentry_sdk.integrations.django import DjangoIntegration

from config.logging import add_request_context, add_service_info, pii_redactor

BASE_DIR = Path(__file__).resolve().parents[2]

SECRET_KEY = os.getenv("DJANGO_SECRET_KEY", "changeme")
DEBUG = os.getenv("DJANGO_DEBUG", "true").lower() == "true"
ALLOWED_HOSTS = os.getenv("DJANGO_ALLOWED_HOSTS", "localhost,127.0.0.1").split(",")

INSTALLED_APPS = [
    "django.contrib.auth",
    "django.contrib.contenttypes",
    "django.contrib.staticfiles",
    # DRF and other apps
    "rest_framework",
    "corsheaders",
    "drf_spectacular",
    # Project apps
    "lending",
]

MIDDLEWARE = [
    "django.middleware.security.SecurityMiddleware",
    "corsheaders.middleware.CorsMiddleware",
    "django.middleware.common.CommonMiddleware",
    "django.middleware.clickjacking.XFrameOptionsMiddleware",
    "config.middleware.RequestIDMiddleware",
]

ROOT_URLCONF = "config.urls"

TEMPLATES = [
    {
        "BACKEND": "django.template.backends.django.DjangoTemplates",
        "DIRS": [],
        "APP_DIRS": True,
        "OPTIONS": {
            "context_processors": [
                "django.template.context_processors.debug",
                "django.template.context_processors.request",
            ],
        },
    },
]

WSGI_APPLICATION = "config.wsgi.application"

DATABASES = {
    "default": {
        "ENGINE": "django.db.backends.postgresql",
        "NAME": os.getenv("POSTGRES_DB", "lending"),
        "USER": os.getenv("POSTGRES_USER", "lending"),
        "PASSWORD": os.getenv("POSTGRES_PASSWORD", "changeme"),
        "HOST": os.getenv("POSTGRES_HOST", "postgres"),
        "PORT": os.getenv("POSTGRES_PORT", "5432"),
    }
}

CACHES = {
    "default": {"BACKEND": "django.core.cache.backends.locmem.LocMemCache"},
}

AUTH_PASSWORD_VALIDATORS = [
    {"NAME": "django.contrib.auth.password_validation.UserAttributeSimilarityValidator"},
    {"NAME": "django.contrib.auth.password_validation.MinimumLengthValidator"},
    {"NAME": "django.contrib.auth.password_validation.CommonPasswordValidator"},
    {"NAME": "django.contrib.auth.password_validation.NumericPasswordValidator"},
]

LANGUAGE_CODE = "en-us"
TIME_ZONE = "UTC"
USE_I18N = True
USE_TZ = True

STATIC_URL = "/static/"
STATIC_ROOT = BASE_DIR / "staticfiles"

DEFAULT_AUTO_FIELD = "django.db.models.BigAutoField"

REST_FRAMEWORK = {
    "DEFAULT_AUTHENTICATION_CLASSES": [
        "lending.auth.LocalJWTAuthentication",
    ],
    "DEFAULT_PERMISSION_CLASSES": ["rest_framework.permissions.IsAuthenticated"],
    "DEFAULT_PARSER_CLASSES": [
        "rest_framework.parsers.JSONParser",
        "rest_framework.parsers.FormParser",
        "rest_framework.parsers.MultiPartParser",
    ],
    "DEFAULT_THROTTLE_CLASSES": [
        "rest_framework.throttling.AnonRateThrottle",
        "rest_framework.throttling.UserRateThrottle",
    ],
    "DEFAULT_THROTTLE_RATES": {
        "anon": os.getenv("THROTTLE_RATE_ANON", "100/hour"),
        "user": os.getenv("THROTTLE_RATE_USER", "1000/hour"),
        "reauth": os.getenv("THROTTLE_RATE_REAUTH", "10/minute"),
        "card_verify": os.getenv("THROTTLE_RATE_CARD_VERIFY", "5/hour"),
    },
    "EXCEPTION_HANDLER": "lending.exceptions.card_exception_handler",
    "DEFAULT_SCHEMA_CLASS": "drf_spectacular.openapi.AutoSchema",
}

# OpenAPI / Swagger documentation settings
SPECTACULAR_SETTINGS = {
    "TITLE": "Lending Card Vault API",
    "DESCRIPTION": "Protected storage, migration and re-authenticated reveal of borrower card secrets",
    "VERSION": "1.0.0",
    "SERVE_INCLUDE_SCHEMA": False,
    "COMPONENT_SPLIT_REQUEST": True,
}

CORS_ALLOWED_ORIGINS = os.getenv(
    "CORS_ALLOWED_ORIGINS", "http://localhost:5173,http://localhost:8080"
).split(",")
CORS_ALLOW_CREDENTIALS = True

# Structlog logging configuration with request context and PII redaction
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
LOG_PII_POLICY = os.getenv("LOG_PII_POLICY", "mask")  # mask or drop
ENVIRONMENT = os.getenv("ENVIRONMENT", "development")

# Convert string log level to int for structlog
_LOG_LEVEL_INT = getattr(logging, LOG_LEVEL.upper(), logging.INFO)

structlog.configure(
    processors=[
        structlog.contextvars.merge_contextvars,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.add_log_level,
        add_service_info,
        add_request_context,
        pii_redactor,
        structlog.processors.EventRenamer("message"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.JSONRenderer(),
    ],
    wrapper_class=structlog.make_filtering_bound_logger(_LOG_LEVEL_INT),
    context_class=dict,
    logger_factory=structlog.PrintLoggerFactory(),
    cache_logger_on_first_use=True,
)

LOGGING = {
    "version": 1,
    "disable_existing_loggers": False,
    "handlers": {
        "console": {
            "class": "logging.StreamHandler",
        },
    },
    "root": {
        "handlers": ["console"],
        "level": "INFO",
    },
}

SENTRY_DSN = os.getenv("SENTRY_DSN")
SENTRY_ENVIRONMENT = os.getenv("SENTRY_ENVIRONMENT", os.getenv("ENVIRONMENT", "development"))
if SENTRY_DSN:
    sentry_init(
        dsn=SENTRY_DSN,
        integrations=[DjangoIntegration()],
        traces_sample_rate=float(os.getenv("SENTRY_TRACES_SAMPLE_RATE", "0.0")),
        environment=SENTRY_ENVIRONMENT,
        send_default_pii=False,  # Don't send PII to Sentry
    )

# Local JWT authentication (HS256, bearer header or "token" cookie)
JWT_SECRET = os.getenv("JWT_SECRET", SECRET_KEY)
JWT_ACCESS_TOKEN_TTL = int(os.getenv("JWT_ACCESS_TOKEN_TTL", "86400"))
JWT_COOKIE_NAME = "token"

# Card secret encryption
# The key may be any length; it is padded with "0" or truncated to 32 bytes.
CARD_ENCRYPTION_KEY = os.getenv("ENCRYPTION_KEY", "")
CARD_SECRET_HASH_ROUNDS = int(os.getenv("CARD_SECRET_HASH_ROUNDS", "12"))

if not DEBUG and not CARD_ENCRYPTION_KEY:
    import warnings

    warnings.warn("ENCRYPTION_KEY not set! Card secrets cannot be encrypted or revealed.")

# Re-authentication before revealing card secrets
REVEAL_TICKET_TTL_SECONDS = int(os.getenv("REVEAL_TICKET_TTL_SECONDS", "60"))
REVEAL_TICKET_HEADER = "X-Reveal-Ticket"

# Admin import of card details
CARD_IMPORT_MAX_BYTES = int(os.getenv("CARD_IMPORT_MAX_BYTES", str(5 * 1024 * 1024)))

# Security settings (environment-dependent, enforced in production)
SECURE_BROWSER_XSS_FILTER = True
SECURE_CONTENT_TYPE_NOSNIFF = True
X_FRAME_OPTIONS = "DENY"
