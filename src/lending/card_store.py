"""
Card detail store: the only code that reads or writes CardDetail rows.

Reads return a frozen SecretRecord snapshot. The encrypted columns are only
populated when the caller asks for the elevated projection.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Optional

import structlog
from django.db import transaction

from lending.encryption import CardSecretCodec, get_codec
from lending.exceptions import CodecError
from lending.models import CardDetail

logger = structlog.get_logger(__name__)

_PUBLIC_FIELDS = ("borrower_id", "created_at", "updated_at")


@dataclass(frozen=True)
class SecretRecord:
    borrower_id: int
    created_at: datetime
    updated_at: datetime
    encrypted_cvv: Optional[str] = None
    encrypted_atm_pin: Optional[str] = None
    secrets_loaded: bool = False

    @property
    def has_secrets(self) -> bool:
        return bool(self.encrypted_cvv) or bool(self.encrypted_atm_pin)


class CardDetailStore:
    def __init__(self, codec: Optional[CardSecretCodec] = None):
        self._codec = codec

    @property
    def codec(self) -> CardSecretCodec:
        return self._codec or get_codec()

    def get(self, borrower_id, include_secrets: bool = False) -> Optional[SecretRecord]:
        """
        Read the record for one borrower.

        Args:
            borrower_id: Primary key of the borrower user
            include_secrets: Opt into the elevated projection with envelopes

        Returns:
            A SecretRecord, or None when the borrower has no card on file
        """
        fields = _PUBLIC_FIELDS + (CardDetail.SECRET_FIELDS if include_secrets else ())
        row = CardDetail.objects.for_borrower(borrower_id).values(*fields).first()
        if row is None:
            return None
        return SecretRecord(secrets_loaded=include_secrets, **row)

    def upsert(
        self, borrower_id, cvv: Optional[str] = None, atm_pin: Optional[str] = None
    ) -> Optional[SecretRecord]:
        """
        Encrypt and store the provided secrets; omitted fields stay untouched.

        Raises:
            CodecError: If a provided value could not be encrypted. Nothing
                is written in that case.
        """
        updates = {}
        if cvv:
            updates["encrypted_cvv"] = self._encrypt_or_raise(cvv, "cvv", borrower_id)
        if atm_pin:
            updates["encrypted_atm_pin"] = self._encrypt_or_raise(atm_pin, "atm_pin", borrower_id)
        if not updates:
            return self.get(borrower_id, include_secrets=True)

        with transaction.atomic():
            card_detail = (
                CardDetail.objects.with_secrets()
                .select_for_update()
                .for_borrower(borrower_id)
                .first()
            )
            created = card_detail is None
            if created:
                card_detail = CardDetail(borrower_id=borrower_id)
            for field, envelope in updates.items():
                setattr(card_detail, field, envelope)
            card_detail.save()

        logger.info(
            "card_detail_upserted",
            borrower_id=borrower_id,
            created=created,
            fields=sorted(updates),
        )
        return self.get(borrower_id, include_secrets=True)

    def _encrypt_or_raise(self, value: str, field: str, borrower_id) -> str:
        envelope = self.codec.encrypt(value)
        if envelope is None:
            logger.error("card_detail_encrypt_failed", borrower_id=borrower_id, field=field)
            raise CodecError("Unable to encrypt card details")
        return envelope
