from .base import *  # noqa: F401,F403

# Fixed key for card secret encryption tests
CARD_ENCRYPTION_KEY = "test-card-encryption-key"
# Minimum work factor keeps the legacy-hash tests fast
CARD_SECRET_HASH_ROUNDS = 10

JWT_SECRET = "test-jwt-secret"

DATABASES = {
    "default": {
        "ENGINE": "django.db.backends.sqlite3",
        "NAME": ":memory:",
    }
}

CACHES = {
    "default": {"BACKEND": "django.core.cache.backends.locmem.LocMemCache"},
}

PASSWORD_HASHERS = ["django.contrib.auth.hashers.MD5PasswordHasher"]

DEBUG = True

# Generous limits; throttle tests lower the rate on the class under test
REST_FRAMEWORK["DEFAULT_THROTTLE_RATES"].update(  # noqa: F405
    {"anon": "10000/minute", "user": "10000/minute", "reauth": "1000/minute", "card_verify": "1000/minute"}
)
