"""
Access policy for borrower card details.

Rules are evaluated in order and the first match wins:

1. admins may access any borrower
2. a borrower may access their own card
3. a lender may access borrowers they created
4. everyone else is denied

Lender ownership is not a column: it is the ``borrower_created`` fact in
the activity log.
"""

from django.utils.translation import gettext_lazy as _
from rest_framework import permissions

from lending.activity import lender_owns_borrower
from lending.models import UserProfile


def get_role(user) -> str:
    profile = getattr(user, "profile", None)
    if profile is not None:
        return profile.role
    if getattr(user, "is_superuser", False):
        return UserProfile.Role.ADMIN
    return ""


def _same_user(actor, borrower_id) -> bool:
    return str(actor.pk) == str(borrower_id)


def can_reveal(actor, borrower_id) -> bool:
    """Whether ``actor`` may read card details of ``borrower_id``."""
    if actor is None or not actor.is_authenticated:
        return False

    role = get_role(actor)
    if role == UserProfile.Role.ADMIN:
        return True
    if _same_user(actor, borrower_id):
        return True
    if role == UserProfile.Role.LENDER:
        return lender_owns_borrower(actor.pk, borrower_id)
    return False


def can_update_card_details(actor, borrower_id) -> bool:
    """Like can_reveal(), except borrowers may not edit their own card."""
    if actor is None or not actor.is_authenticated:
        return False

    role = get_role(actor)
    if role == UserProfile.Role.ADMIN:
        return True
    if role == UserProfile.Role.LENDER:
        return lender_owns_borrower(actor.pk, borrower_id)
    return False


class IsAdminRole(permissions.BasePermission):
    """Permission check for admin-only operations."""

    message = _("Admin access required.")

    def has_permission(self, request, view):
        if not request.user or not request.user.is_authenticated:
            return False
        return get_role(request.user) == UserProfile.Role.ADMIN
