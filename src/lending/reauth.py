"""
Re-authentication gate.

Revealing card secrets needs fresh proof that the person at the keyboard
knows the account password. The proof is either the password itself,
checked by require_reauth(), or a short-lived single-use reveal ticket
handed out after a successful password check.
"""

import datetime

import structlog
from django.conf import settings
from django.contrib.auth import get_user_model
from django.utils import timezone

from lending.auth import is_account_active
from lending.models import RevealTicket, hash_ticket

User = get_user_model()

logger = structlog.get_logger(__name__)


def require_reauth(acting_user_id, password: str) -> bool:
    """
    Check ``password`` against the stored hash of ``acting_user_id``.

    Unknown users, inactive accounts and wrong passwords all return False;
    the caller cannot tell them apart.
    """
    user = User.objects.select_related("profile").filter(pk=acting_user_id).first()
    if user is None:
        # Run the hasher anyway so timing does not reveal unknown users
        User().set_password(password or "")
        logger.warning("reauth_failed", user_id=acting_user_id, reason="unknown_user")
        return False

    if not password or not user.check_password(password):
        logger.warning("reauth_failed", user_id=user.pk, reason="wrong_password")
        return False

    if not is_account_active(user):
        logger.warning("reauth_failed", user_id=user.pk, reason="inactive_account")
        return False

    logger.info("reauth_succeeded", user_id=user.pk)
    return True


def issue_reveal_ticket(user) -> tuple[str, datetime.datetime]:
    """Issue a reveal ticket for ``user``. Expired tickets of the user are purged."""
    RevealTicket.objects.filter(user=user, expires_at__lte=timezone.now()).delete()

    ttl = getattr(settings, "REVEAL_TICKET_TTL_SECONDS", 60)
    ticket, row = RevealTicket.create_ticket(user, ttl_seconds=ttl)
    logger.info("reveal_ticket_issued", user_id=user.pk, expires_at=row.expires_at.isoformat())
    return ticket, row.expires_at


def consume_reveal_ticket(user, ticket: str) -> bool:
    """
    Mark a reveal ticket as used.

    Succeeds at most once per ticket: the used flag is flipped by a single
    conditional UPDATE, so two concurrent requests cannot both win.
    """
    if not ticket:
        return False

    consumed = RevealTicket.objects.filter(
        user=user,
        ticket_hash=hash_ticket(ticket),
        used=False,
        expires_at__gt=timezone.now(),
    ).update(used=True)

    if consumed != 1:
        logger.warning("reveal_ticket_rejected", user_id=user.pk)
        return False
    return True
