import datetime
import hashlib
import secrets
import uuid

from django.conf import settings
from django.db import models
from django.utils import timezone


class TimeStampedModel(models.Model):
    created_at = models.DateTimeField(default=timezone.now, editable=False)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        abstract = True


class UserProfile(TimeStampedModel):
    """Role and account status for every user of the lending platform."""

    class Role(models.TextChoices):
        ADMIN = "admin", "Admin"
        LENDER = "lender", "Lender"
        BORROWER = "borrower", "Borrower"
        REFERRER = "referrer", "Referrer"

    class Status(models.TextChoices):
        ACTIVE = "Active", "Active"
        INACTIVE = "Inactive", "Inactive"

    user = models.OneToOneField(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="profile",
    )
    role = models.CharField(max_length=16, choices=Role.choices, default=Role.LENDER)
    status = models.CharField(max_length=16, choices=Status.choices, default=Status.ACTIVE)
    phone = models.CharField(max_length=32, blank=True)
    address = models.CharField(max_length=255, blank=True)

    class Meta:
        indexes = [models.Index(fields=["role"], name="lending_use_role_5a1f0e_idx")]

    def __str__(self) -> str:  # pragma: no cover
        return f"UserProfile<{self.user_id}:{self.role}>"

    @property
    def is_active_account(self) -> bool:
        return self.status == self.Status.ACTIVE


class BorrowerProfile(TimeStampedModel):
    """
    Borrower-only details.

    Card number, cardholder name and expiry are kept in the clear. ``cvv`` and
    ``atm_pin`` are legacy columns: older records hold plaintext or a bcrypt
    hash here. They are emptied by the card-detail migration and never
    written by current code paths.
    """

    user = models.OneToOneField(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="borrower_profile",
    )
    card_number = models.CharField(max_length=32, blank=True)
    card_name = models.CharField(max_length=128, blank=True)
    valid_til = models.CharField(max_length=8, blank=True)

    # Legacy secret columns, emptied by migrate_in_place_secrets()
    cvv = models.CharField(max_length=128, null=True, blank=True)
    atm_pin = models.CharField(max_length=128, null=True, blank=True)

    active = models.BooleanField(default=True)
    deleted_at = models.DateTimeField(null=True, blank=True)

    def __str__(self) -> str:  # pragma: no cover
        return f"BorrowerProfile<{self.user_id}>"


class CardDetailQuerySet(models.QuerySet):
    def with_secrets(self):
        """Elevated projection that loads the encrypted columns."""
        return self.defer(None)

    def for_borrower(self, borrower_id):
        return self.filter(borrower_id=borrower_id)


class CardDetailManager(models.Manager.from_queryset(CardDetailQuerySet)):
    """Secret columns are deferred unless a caller opts into with_secrets()."""

    def get_queryset(self):
        return super().get_queryset().defer(*CardDetail.SECRET_FIELDS)


class CardDetail(TimeStampedModel):
    """
    Encrypted CVV and ATM PIN for one borrower.

    Each secret column is NULL or an ``iv_hex:ciphertext_hex`` envelope
    produced by lending.encryption. Rows are removed only through the
    cascade when the borrower user is permanently deleted.
    """

    SECRET_FIELDS = ("encrypted_cvv", "encrypted_atm_pin")

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    borrower = models.OneToOneField(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="card_detail",
    )
    encrypted_cvv = models.TextField(null=True, blank=True)
    encrypted_atm_pin = models.TextField(null=True, blank=True)

    objects = CardDetailManager()

    class Meta:
        constraints = [
            models.UniqueConstraint(fields=["borrower"], name="unique_card_detail_per_borrower"),
        ]

    def __str__(self) -> str:  # pragma: no cover
        return f"CardDetail<{self.borrower_id}>"


class ActivityLog(models.Model):
    """
    Append-only activity trail.

    Besides user-facing history it stores the lender-to-borrower ownership
    fact (``metadata.action_type == "borrower_created"``) consulted by the
    card access policy, and the security events of the card vault.
    """

    class Type(models.TextChoices):
        AUTH = "auth", "Auth"
        LOAN = "loan", "Loan"
        PAYMENT = "payment", "Payment"
        SYSTEM = "system", "System"

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    timestamp = models.DateTimeField(default=timezone.now, db_index=True)
    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="activity_logs",
    )
    related_user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="related_activity_logs",
    )
    type = models.CharField(max_length=16, choices=Type.choices, default=Type.SYSTEM)
    action = models.CharField(max_length=64)
    description = models.CharField(max_length=255, blank=True)
    metadata = models.JSONField(default=dict, blank=True)
    request_id = models.CharField(max_length=64, blank=True)

    class Meta:
        ordering = ["-timestamp"]
        indexes = [
            models.Index(fields=["user", "timestamp"], name="lending_act_user_id_3c9d2b_idx"),
            models.Index(fields=["related_user", "timestamp"], name="lending_act_related_8e41a7_idx"),
            models.Index(fields=["type", "timestamp"], name="lending_act_type_b27c5d_idx"),
        ]

    def __str__(self) -> str:  # pragma: no cover
        return f"ActivityLog<{self.type}:{self.action}>"

    def save(self, *args, **kwargs):
        if not self._state.adding:
            raise ValueError("Activity log entries are immutable")
        super().save(*args, **kwargs)


def hash_ticket(ticket: str) -> str:
    return hashlib.sha256(ticket.encode("utf-8")).hexdigest()


class RevealTicket(models.Model):
    """
    Single-use proof that a user re-entered their password.

    Issued by the verify-password endpoint and consumed by the card reveal
    endpoint. Only the SHA-256 of the ticket string is stored.
    """

    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="reveal_tickets",
    )
    ticket_hash = models.CharField(max_length=64, unique=True)
    created_at = models.DateTimeField(auto_now_add=True)
    expires_at = models.DateTimeField()
    used = models.BooleanField(default=False)

    class Meta:
        indexes = [models.Index(fields=["user", "expires_at"], name="lending_rev_user_id_9f02c4_idx")]

    def __str__(self):  # pragma: no cover
        return f"RevealTicket for {self.user_id} (expires {self.expires_at})"

    @classmethod
    def create_ticket(cls, user, ttl_seconds: int = 60) -> tuple[str, "RevealTicket"]:
        """
        Create a new reveal ticket.

        Returns:
            The raw ticket string (shown to the client once) and the stored row
        """
        ticket = secrets.token_urlsafe(32)
        expires_at = timezone.now() + datetime.timedelta(seconds=ttl_seconds)
        row = cls.objects.create(user=user, ticket_hash=hash_ticket(ticket), expires_at=expires_at)
        return ticket, row
