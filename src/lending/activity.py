"""
Activity log helpers.

This module provides:
- log_activity: append an ActivityLog entry and mirror it to structlog
- record_borrower_created / lender_owns_borrower: the lender-to-borrower
  ownership fact used by the card access policy
- Security events for card secret access, migration and import
"""

from typing import Optional

import structlog

from config.observability import get_request_context
from lending.models import ActivityLog

logger = structlog.get_logger(__name__)

BORROWER_CREATED = "borrower_created"


class CardEvent:
    """``metadata.action_type`` values for card vault security events."""

    REVEALED = "card_details_revealed"
    REVEAL_DENIED = "card_details_reveal_denied"
    REAUTH_FAILED = "card_details_reauth_failed"
    VERIFIED = "card_details_verified"
    UPDATED = "card_details_updated"
    MIGRATED = "card_details_migrated"
    IMPORTED = "card_details_imported"
    PASSWORD_REVERIFIED = "password_reverified"


def log_activity(
    user,
    action: str,
    action_type: str,
    related_user=None,
    log_type: str = ActivityLog.Type.SYSTEM,
    description: str = "",
    metadata: Optional[dict] = None,
) -> ActivityLog:
    """
    Create an activity log entry synchronously.

    Args:
        user: The acting user
        action: Short verb shown in activity feeds (created, revealed, ...)
        action_type: Machine-readable event name stored in metadata
        related_user: The user the action was performed on, if any
        log_type: ActivityLog.Type category
        description: Human-readable sentence
        metadata: Extra structured context; must never contain secrets

    Returns:
        The created ActivityLog instance
    """
    context = get_request_context()
    request_id = context.get("request_id", "")

    entry = ActivityLog.objects.create(
        user=user,
        related_user=related_user,
        type=log_type,
        action=action,
        description=description,
        metadata={**(metadata or {}), "action_type": action_type},
        request_id=request_id,
    )

    logger.info(
        "activity_log_created",
        activity_id=str(entry.id),
        action=action,
        action_type=action_type,
        user_id=user.pk,
        related_user_id=related_user.pk if related_user is not None else None,
    )

    return entry


def record_borrower_created(lender, borrower) -> ActivityLog:
    """Store the fact that ``lender`` created (and therefore manages) ``borrower``."""
    return log_activity(
        user=lender,
        related_user=borrower,
        action="created",
        action_type=BORROWER_CREATED,
        description="Borrower created",
        metadata={"borrowerName": borrower.get_full_name() or borrower.username},
    )


def lender_owns_borrower(lender_id, borrower_id) -> bool:
    return ActivityLog.objects.filter(
        user_id=lender_id,
        related_user_id=borrower_id,
        type=ActivityLog.Type.SYSTEM,
        metadata__action_type=BORROWER_CREATED,
    ).exists()

