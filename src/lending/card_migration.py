"""
Batch jobs that move card secrets into the encrypted card detail store.

All jobs are idempotent and safe to re-run: whether a record still needs
work is derived from the current data on every run, never from a saved
cursor. A failing record is logged and counted; it never stops the batch.

Legacy bcrypt hashes cannot be turned back into plaintext. They are left
where they are, reported as unrecoverable, and counted as skipped.
"""

import json
from dataclasses import dataclass
from typing import Iterable, Optional

import structlog
from django.db import transaction
from django.db.models import Q

from lending.activity import CardEvent, log_activity
from lending.card_store import CardDetailStore
from lending.encryption import (
    CardSecretCodec,
    Encrypted,
    LegacyHash,
    Plaintext,
    get_codec,
)
from lending.exceptions import BatchRecordError, ValidationError
from lending.models import BorrowerProfile, CardDetail, UserProfile

logger = structlog.get_logger(__name__)

# Legacy profile column -> keyword accepted by CardDetailStore.upsert()
SECRET_COLUMNS = ("cvv", "atm_pin")


@dataclass
class MigrationSummary:
    migrated: int = 0
    skipped: int = 0
    errored: int = 0


@dataclass
class ImportSummary:
    imported: int = 0
    skipped: int = 0
    errored: int = 0


@dataclass
class RotationSummary:
    rotated: int = 0
    unchanged: int = 0
    errored: int = 0


def _has_value(column: str) -> Q:
    return Q(**{f"{column}__isnull": False}) & ~Q(**{column: ""})


def borrowers_with_legacy_secrets():
    """Borrower profiles that still hold something in a legacy secret column."""
    return (
        BorrowerProfile.objects.select_related("user")
        .filter(user__profile__role=UserProfile.Role.BORROWER)
        .filter(_has_value("cvv") | _has_value("atm_pin"))
        .order_by("pk")
    )


def migrate_in_place_secrets(
    codec: Optional[CardSecretCodec] = None,
    actor=None,
    batch_size: int = 100,
) -> MigrationSummary:
    """
    Encrypt plaintext CVV/PIN found on borrower profiles into their CardDetail.

    A profile counts as migrated when at least one column moved. Columns
    holding a legacy hash are left in place and the profile counts as
    skipped unless another column moved.
    """
    codec = codec or get_codec()
    store = CardDetailStore(codec)
    summary = MigrationSummary()

    logger.info("card_migration_started")

    for profile in borrowers_with_legacy_secrets().iterator(chunk_size=batch_size):
        try:
            moved = _migrate_profile(profile, codec, store)
        except Exception as exc:  # pylint: disable=broad-except
            summary.errored += 1
            logger.error(
                "card_migration_record_failed",
                borrower_id=profile.user_id,
                error_type=type(exc).__name__,
                reason=getattr(exc, "reason", ""),
            )
            continue

        if moved:
            summary.migrated += 1
            logger.info("card_migration_record_migrated", borrower_id=profile.user_id, fields=moved)
        else:
            summary.skipped += 1

    logger.info(
        "card_migration_completed",
        migrated_count=summary.migrated,
        skipped_count=summary.skipped,
        error_count=summary.errored,
    )
    if actor is not None:
        log_activity(
            user=actor,
            action="migrated",
            action_type=CardEvent.MIGRATED,
            description="Card details migrated to encrypted storage",
            metadata={
                "migratedCount": summary.migrated,
                "skippedCount": summary.skipped,
                "errorCount": summary.errored,
            },
        )
    return summary


def _migrate_profile(profile: BorrowerProfile, codec: CardSecretCodec, store: CardDetailStore) -> list:
    to_encrypt = {}
    for column in SECRET_COLUMNS:
        state = codec.classify(getattr(profile, column))
        if isinstance(state, LegacyHash):
            logger.warning(
                "card_secret_unrecoverable_legacy_hash",
                borrower_id=profile.user_id,
                column=column,
            )
        elif isinstance(state, Plaintext):
            to_encrypt[column] = state.value
        elif isinstance(state, Encrypted):
            # An envelope written to the legacy column by an older release
            plaintext = codec.decrypt(state.envelope)
            if plaintext is None:
                raise BatchRecordError("legacy envelope does not decrypt", str(profile.user_id))
            to_encrypt[column] = plaintext

    if not to_encrypt:
        return []

    with transaction.atomic():
        store.upsert(profile.user_id, **to_encrypt)
        for column in to_encrypt:
            setattr(profile, column, None)
        profile.save(update_fields=[*to_encrypt, "updated_at"])

    return sorted(to_encrypt)


def parse_import_payload(raw: bytes) -> list:
    """
    Decode an uploaded card-details file.

    Raises:
        ValidationError: If the payload is not a JSON array
    """
    try:
        data = json.loads(raw.decode("utf-8-sig"))
    except (UnicodeDecodeError, json.JSONDecodeError):
        raise ValidationError("Invalid JSON file")
    if not isinstance(data, list):
        raise ValidationError("File should contain an array of card details")
    return data


def _secret_text(value) -> str:
    if value is None:
        return ""
    return str(value).strip()


def import_from_batch(
    records: Iterable,
    codec: Optional[CardSecretCodec] = None,
    actor=None,
) -> ImportSummary:
    """
    Encrypt and store card secrets from ``[{userId, cvv?, atmPin?}, ...]``.

    Records without a known borrower or without any secret are skipped.
    For every imported field the matching legacy column on the profile is
    cleared, since the imported value supersedes it.
    """
    codec = codec or get_codec()
    store = CardDetailStore(codec)
    summary = ImportSummary()

    for index, record in enumerate(records):
        try:
            outcome = _import_record(record, store)
        except Exception as exc:  # pylint: disable=broad-except
            summary.errored += 1
            logger.error(
                "card_import_record_failed",
                index=index,
                error_type=type(exc).__name__,
                reason=getattr(exc, "reason", ""),
            )
            continue

        if outcome is None:
            summary.imported += 1
        else:
            summary.skipped += 1
            logger.info("card_import_record_skipped", index=index, reason=outcome)

    logger.info(
        "card_import_completed",
        imported_count=summary.imported,
        skipped_count=summary.skipped,
        error_count=summary.errored,
    )
    if actor is not None:
        log_activity(
            user=actor,
            action="imported",
            action_type=CardEvent.IMPORTED,
            description="Card details imported",
            metadata={
                "importedCount": summary.imported,
                "skippedCount": summary.skipped,
                "errorCount": summary.errored,
            },
        )
    return summary


def _import_record(record, store: CardDetailStore) -> Optional[str]:
    """Import one record. Returns a skip reason, or None when imported."""
    if not isinstance(record, dict):
        return "not_an_object"

    user_id = record.get("userId")
    if user_id in (None, ""):
        return "missing_user_id"
    if isinstance(user_id, bool):
        return "invalid_user_id"
    try:
        user_id = int(user_id)
    except (TypeError, ValueError):
        return "invalid_user_id"

    profile = (
        BorrowerProfile.objects.filter(user_id=user_id, user__profile__role=UserProfile.Role.BORROWER)
        .select_related("user")
        .first()
    )
    if profile is None:
        return "borrower_not_found"

    secrets = {"cvv": _secret_text(record.get("cvv")), "atm_pin": _secret_text(record.get("atmPin"))}
    secrets = {column: value for column, value in secrets.items() if value}
    if not secrets:
        return "no_card_details"

    with transaction.atomic():
        store.upsert(user_id, **secrets)
        stale = [column for column in secrets if getattr(profile, column)]
        if stale:
            for column in stale:
                setattr(profile, column, None)
            profile.save(update_fields=[*stale, "updated_at"])

    return None


def rotate_card_encryption(
    old_codec: CardSecretCodec,
    new_codec: CardSecretCodec,
    batch_size: int = 100,
) -> RotationSummary:
    """
    Re-encrypt every stored envelope from ``old_codec``'s key to ``new_codec``'s.

    A record is only written when all of its envelopes decrypted under the
    old key; otherwise it is counted as an error and left untouched.
    """
    summary = RotationSummary()
    queryset = CardDetail.objects.with_secrets().order_by("pk")

    for card_detail in queryset.iterator(chunk_size=batch_size):
        try:
            changed = []
            for field in CardDetail.SECRET_FIELDS:
                envelope = getattr(card_detail, field)
                if not envelope:
                    continue
                plaintext = old_codec.decrypt(envelope)
                if plaintext is None:
                    raise BatchRecordError(f"{field} does not decrypt with the old key")
                new_envelope = new_codec.encrypt(plaintext)
                if new_envelope is None:
                    raise BatchRecordError(f"{field} could not be re-encrypted")
                setattr(card_detail, field, new_envelope)
                changed.append(field)

            if not changed:
                summary.unchanged += 1
                continue
            card_detail.save(update_fields=[*changed, "updated_at"])
            summary.rotated += 1
        except BatchRecordError as exc:
            summary.errored += 1
            logger.error(
                "card_key_rotation_record_failed",
                borrower_id=card_detail.borrower_id,
                reason=exc.reason,
            )

    logger.info(
        "card_key_rotation_completed",
        rotated_count=summary.rotated,
        unchanged_count=summary.unchanged,
        error_count=summary.errored,
    )
    return summary
