"""
Rate limiting for password re-entry and card value checks.

Re-authentication endpoints accept a password, so they get their own
per-user budget on top of the global user throttle. verify-card-details
answers match/no-match for a short secret, so guesses are budgeted per
actor, borrower and field.
"""

from rest_framework.settings import api_settings
from rest_framework.throttling import UserRateThrottle


class ReauthRateThrottle(UserRateThrottle):
    """Throttle password re-entry per user (``reauth`` rate in settings)."""

    scope = "reauth"

    def allow_request(self, request, view):
        # Only POST requests carry a password
        if request.method != "POST":
            return True
        return super().allow_request(request, view)


class CardVerifyRateThrottle(UserRateThrottle):
    """Throttle CVV/PIN guesses per (actor, borrower, field) (``card_verify`` rate)."""

    scope = "card_verify"

    def get_cache_key(self, request, view):
        data = request.data if isinstance(request.data, dict) else {}
        ident = f"{request.user.pk}:{data.get('userId')}:{data.get('field')}"
        return self.cache_format % {"scope": self.scope, "ident": ident}


def with_default_throttles(*throttles):
    """The configured default throttles followed by ``throttles``."""
    return [*api_settings.DEFAULT_THROTTLE_CLASSES, *throttles]
