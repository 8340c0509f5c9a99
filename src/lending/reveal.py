"""
Card reveal flow.

    REQUESTED -> POLICY_CHECKED -> REAUTH_PENDING -> REAUTH_PASSED
              -> SECRETS_FETCHED -> DECRYPTED -> RETURNED

with the short-circuit states DENIED (policy), REAUTH_FAILED (bad password
or ticket) and NOT_FOUND (no visible borrower profile, or no card record).
Every terminal state is recorded in the activity log.

Deactivated borrowers are only visible to themselves.

A caller that supplies no re-authentication proof at all gets the card
metadata with placeholder secrets; only a supplied and valid proof turns a
request into a reveal.
"""

import enum
from dataclasses import dataclass, field
from typing import Optional

import structlog
from django.db.models import Q

from lending.activity import CardEvent, log_activity
from lending.card_store import CardDetailStore, SecretRecord
from lending.encryption import CardSecretCodec
from lending.models import ActivityLog, BorrowerProfile, UserProfile
from lending.permissions import can_reveal
from lending.reauth import consume_reveal_ticket, require_reauth

logger = structlog.get_logger(__name__)

PLACEHOLDER = ""

# SecretRecord attribute -> response key
SECRET_RESPONSE_KEYS = (("encrypted_cvv", "cvv"), ("encrypted_atm_pin", "atmPin"))


class RevealState(str, enum.Enum):
    REQUESTED = "requested"
    POLICY_CHECKED = "policy_checked"
    REAUTH_PENDING = "reauth_pending"
    REAUTH_PASSED = "reauth_passed"
    SECRETS_FETCHED = "secrets_fetched"
    DECRYPTED = "decrypted"
    RETURNED = "returned"
    DENIED = "denied"
    REAUTH_FAILED = "reauth_failed"
    NOT_FOUND = "not_found"


@dataclass(frozen=True)
class RevealOutcome:
    state: RevealState
    data: dict = field(default_factory=dict)
    revealed: bool = False


def placeholder_card(profile: Optional[BorrowerProfile] = None) -> dict:
    return {
        "cardNumber": profile.card_number if profile else PLACEHOLDER,
        "cardName": profile.card_name if profile else PLACEHOLDER,
        "validTil": profile.valid_til if profile else PLACEHOLDER,
        "cvv": PLACEHOLDER,
        "atmPin": PLACEHOLDER,
    }


def get_borrower_profile(borrower_id, actor) -> Optional[BorrowerProfile]:
    """The borrower's profile as seen by ``actor``; soft-deleted borrowers only see themselves."""
    visible = Q(active=True, deleted_at__isnull=True) | Q(user_id=actor.pk)
    return (
        BorrowerProfile.objects.select_related("user")
        .filter(visible, user_id=borrower_id, user__profile__role=UserProfile.Role.BORROWER)
        .first()
    )


class RevealFlow:
    """Runs one reveal request through policy, re-authentication and decryption."""

    def __init__(self, codec: Optional[CardSecretCodec] = None, store: Optional[CardDetailStore] = None):
        self.store = store or CardDetailStore(codec)

    def run(
        self,
        actor,
        borrower_id,
        password: Optional[str] = None,
        ticket: Optional[str] = None,
    ) -> RevealOutcome:
        log = logger.bind(actor_id=actor.pk, borrower_id=borrower_id)
        log.info("card_reveal_requested", state=RevealState.REQUESTED.value)

        if not can_reveal(actor, borrower_id):
            log.warning("card_reveal_denied")
            log_activity(
                user=actor,
                action="reveal_denied",
                action_type=CardEvent.REVEAL_DENIED,
                log_type=ActivityLog.Type.AUTH,
                description="Card details access denied",
                metadata={"borrowerId": str(borrower_id)},
            )
            return RevealOutcome(RevealState.DENIED)

        if password is None and ticket is None:
            return self._metadata_only(actor, borrower_id)

        if not self._reauthenticate(actor, password, ticket):
            log.warning("card_reveal_reauth_failed")
            log_activity(
                user=actor,
                action="reauth_failed",
                action_type=CardEvent.REAUTH_FAILED,
                log_type=ActivityLog.Type.AUTH,
                description="Password re-entry failed before card reveal",
                metadata={
                    "borrowerId": str(borrower_id),
                    "method": "password" if password is not None else "ticket",
                },
            )
            return RevealOutcome(RevealState.REAUTH_FAILED)

        profile = get_borrower_profile(borrower_id, actor)
        record = self.store.get(profile.user_id, include_secrets=True) if profile else None
        if record is None or not record.has_secrets:
            log.info("card_reveal_not_found", borrower_found=profile is not None)
            log_activity(
                user=actor,
                related_user=profile.user if profile else None,
                action="revealed",
                action_type=CardEvent.REVEALED,
                description="Card details requested but none on file",
                metadata={"borrowerId": str(borrower_id), "found": False},
            )
            return RevealOutcome(RevealState.NOT_FOUND, placeholder_card(profile))

        data = placeholder_card(profile)
        data.update(self._decrypt(record, log))

        log_activity(
            user=actor,
            related_user=profile.user,
            action="revealed",
            action_type=CardEvent.REVEALED,
            description="Card details revealed",
            metadata={
                "borrowerId": str(profile.user_id),
                "fields": sorted(key for _, key in SECRET_RESPONSE_KEYS if data[key]),
            },
        )
        log.info("card_reveal_returned", state=RevealState.RETURNED.value)
        return RevealOutcome(RevealState.RETURNED, data, revealed=True)

    def _reauthenticate(self, actor, password: Optional[str], ticket: Optional[str]) -> bool:
        if password is not None:
            return require_reauth(actor.pk, password)
        return consume_reveal_ticket(actor, ticket)

    def _metadata_only(self, actor, borrower_id) -> RevealOutcome:
        profile = get_borrower_profile(borrower_id, actor)
        if profile is None or self.store.get(profile.user_id) is None:
            return RevealOutcome(RevealState.NOT_FOUND, placeholder_card(profile))
        return RevealOutcome(RevealState.RETURNED, placeholder_card(profile), revealed=False)

    def _decrypt(self, record: SecretRecord, log) -> dict:
        secrets = {}
        for attr, key in SECRET_RESPONSE_KEYS:
            envelope = getattr(record, attr)
            if not envelope:
                secrets[key] = PLACEHOLDER
                continue
            plaintext = self.store.codec.decrypt(envelope)
            if plaintext is None:
                log.error("card_secret_decrypt_failed", field=key)
                plaintext = PLACEHOLDER
            secrets[key] = plaintext
        return secrets
