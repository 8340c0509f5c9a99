"""
Secret codec for borrower card details.

CVV and ATM PIN must be shown again to an authorized viewer, so they are
encrypted (AES-256-CBC, random IV per value) rather than hashed. The bcrypt
helpers exist only for legacy records that were hashed before the card
vault existed: those can be verified against a supplied value but never
turned back into plaintext.

Envelope format: ``<iv hex>:<ciphertext hex>``.

Every entry point fails closed: encrypt/decrypt return None and verify
returns False instead of raising, and the reason goes to the server log.
"""

import hmac
import os
import re
import warnings
from dataclasses import dataclass
from typing import Optional, Union

import bcrypt
import structlog
from cryptography.hazmat.primitives import padding
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes
from django.conf import settings
from django.core.exceptions import ImproperlyConfigured

logger = structlog.get_logger(__name__)

KEY_LENGTH = 32  # AES-256
IV_LENGTH = 16  # AES block size
ENVELOPE_DELIMITER = ":"
MIN_HASH_ROUNDS = 10

# bcrypt hashes start with one of these 4-character tags
LEGACY_HASH_PREFIXES = ("$2a$", "$2b$", "$2x$", "$2y$")

_ENVELOPE_RE = re.compile(r"^[0-9a-fA-F]{%d}:(?:[0-9a-fA-F]{32})+$" % (IV_LENGTH * 2))

# Only ever used with DEBUG=True; see get_codec()
_DEVELOPMENT_FALLBACK_KEY = "insecure-development-card-key"


# ---------------------------------------------------------------------------
# Field state
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Absent:
    """No value stored."""


@dataclass(frozen=True)
class Plaintext:
    value: str


@dataclass(frozen=True)
class Encrypted:
    envelope: str


@dataclass(frozen=True)
class LegacyHash:
    hashed: str


SecretFieldState = Union[Absent, Plaintext, Encrypted, LegacyHash]


def is_legacy_hash(value: Optional[str]) -> bool:
    return bool(value) and str(value).startswith(LEGACY_HASH_PREFIXES)


def is_envelope(value: Optional[str]) -> bool:
    return bool(value) and _ENVELOPE_RE.match(str(value)) is not None


# ---------------------------------------------------------------------------
# Codec
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class CodecConfig:
    """Key material and hashing cost for a CardSecretCodec."""

    key: bytes
    hash_rounds: int = 12

    def __post_init__(self):
        if len(self.key) != KEY_LENGTH:
            raise ValueError(f"Card encryption key must be exactly {KEY_LENGTH} bytes")
        if self.hash_rounds < MIN_HASH_ROUNDS:
            raise ValueError(f"Hash rounds must be at least {MIN_HASH_ROUNDS}")

    @classmethod
    def from_secret(cls, secret: str, hash_rounds: int = 12) -> "CodecConfig":
        """
        Derive the 256-bit key from an operator-supplied secret of any length.

        The secret is right-padded with ASCII "0" and truncated to 32 bytes.
        """
        raw = secret.encode("utf-8")[:KEY_LENGTH]
        return cls(key=raw.ljust(KEY_LENGTH, b"0"), hash_rounds=hash_rounds)


class CardSecretCodec:
    """Encrypt, decrypt, hash and classify card secrets."""

    def __init__(self, config: CodecConfig):
        self._config = config

    def encrypt(self, plaintext: Optional[str]) -> Optional[str]:
        """
        Encrypt a value into an ``iv_hex:ciphertext_hex`` envelope.

        Returns:
            The envelope, or None for empty input or on any internal failure
        """
        if plaintext is None or plaintext == "":
            return None

        try:
            iv = os.urandom(IV_LENGTH)
            padder = padding.PKCS7(algorithms.AES.block_size).padder()
            padded = padder.update(str(plaintext).encode("utf-8")) + padder.finalize()
            encryptor = Cipher(algorithms.AES(self._config.key), modes.CBC(iv)).encryptor()
            ciphertext = encryptor.update(padded) + encryptor.finalize()
        except Exception as exc:  # pylint: disable=broad-except
            logger.error("card_secret_encrypt_failed", error_type=type(exc).__name__)
            return None

        return iv.hex() + ENVELOPE_DELIMITER + ciphertext.hex()

    def decrypt(self, envelope: Optional[str]) -> Optional[str]:
        """
        Decrypt an envelope produced by encrypt().

        Returns:
            The plaintext, or None if the envelope is empty, malformed, was
            produced under another key, or is otherwise corrupted
        """
        if not envelope:
            return None

        parts = str(envelope).split(ENVELOPE_DELIMITER)
        if len(parts) != 2:
            logger.warning("card_secret_envelope_malformed", reason="delimiter", parts=len(parts))
            return None

        try:
            iv = bytes.fromhex(parts[0])
            ciphertext = bytes.fromhex(parts[1])
        except ValueError:
            logger.warning("card_secret_envelope_malformed", reason="hex")
            return None

        block_bytes = algorithms.AES.block_size // 8
        if len(iv) != IV_LENGTH:
            logger.warning("card_secret_envelope_malformed", reason="iv_length", iv_length=len(iv))
            return None
        if not ciphertext or len(ciphertext) % block_bytes:
            logger.warning("card_secret_envelope_malformed", reason="ciphertext_length")
            return None

        try:
            decryptor = Cipher(algorithms.AES(self._config.key), modes.CBC(iv)).decryptor()
            padded = decryptor.update(ciphertext) + decryptor.finalize()
            unpadder = padding.PKCS7(algorithms.AES.block_size).unpadder()
            data = unpadder.update(padded) + unpadder.finalize()
            return data.decode("utf-8")
        except ValueError:
            # Bad padding or non-UTF-8 output: wrong key or corrupted data
            logger.warning("card_secret_decrypt_failed", reason="key_or_corruption")
            return None

    def hash(self, secret: str) -> str:
        """One-way bcrypt hash. Only for values that are verified, never shown."""
        salt = bcrypt.gensalt(rounds=self._config.hash_rounds)
        return bcrypt.hashpw(str(secret).encode("utf-8"), salt).decode("ascii")

    def verify(self, candidate: Optional[str], hashed: Optional[str]) -> bool:
        """Check a candidate against a bcrypt hash. Malformed hashes never match."""
        if not candidate or not hashed:
            return False
        try:
            return bcrypt.checkpw(str(candidate).encode("utf-8"), str(hashed).encode("utf-8"))
        except ValueError:
            logger.warning("card_secret_hash_malformed")
            return False

    def needs_encoding(self, value: Optional[str]) -> bool:
        """
        True if a raw field value still has to be encoded.

        Values carrying the bcrypt prefix are already encoded and must not be
        hashed a second time when a profile is re-saved.
        """
        if not value:
            return False
        return not is_legacy_hash(value)

    def classify(self, value: Optional[str]) -> SecretFieldState:
        """Determine once what a stored secret column holds."""
        if value is None or value == "":
            return Absent()
        value = str(value)
        if is_legacy_hash(value):
            return LegacyHash(value)
        if is_envelope(value):
            return Encrypted(value)
        return Plaintext(value)

    def matches(self, candidate: Optional[str], state: SecretFieldState) -> bool:
        """
        Compare a supplied value with a stored secret without exposing it.

        Returns False for absent values and for envelopes that do not decrypt.
        """
        if not candidate:
            return False
        candidate = str(candidate)
        if isinstance(state, LegacyHash):
            return self.verify(candidate, state.hashed)
        if isinstance(state, Encrypted):
            stored = self.decrypt(state.envelope)
        elif isinstance(state, Plaintext):
            stored = state.value
        else:
            return False
        if stored is None:
            return False
        return hmac.compare_digest(candidate.encode("utf-8"), stored.encode("utf-8"))


# ---------------------------------------------------------------------------
# Process-wide codec built from settings
# ---------------------------------------------------------------------------

_codec: Optional[CardSecretCodec] = None


def codec_config_from_settings() -> CodecConfig:
    secret = getattr(settings, "CARD_ENCRYPTION_KEY", "")
    rounds = getattr(settings, "CARD_SECRET_HASH_ROUNDS", 12)

    if not secret:
        if not settings.DEBUG:
            raise ImproperlyConfigured(
                "ENCRYPTION_KEY not configured. Card secrets cannot be encrypted or revealed."
            )
        warnings.warn(
            "ENCRYPTION_KEY not configured! Using an insecure development key for card secrets.",
            UserWarning,
        )
        logger.warning("card_codec_insecure_fallback_key")
        secret = _DEVELOPMENT_FALLBACK_KEY

    return CodecConfig.from_secret(secret, hash_rounds=rounds)


def get_codec() -> CardSecretCodec:
    """Return the codec for the configured key, building it on first use."""
    global _codec
    if _codec is None:
        _codec = CardSecretCodec(codec_config_from_settings())
    return _codec


def reset_codec() -> None:
    """Drop the cached codec. Useful for tests with overridden settings."""
    global _codec
    _codec = None
