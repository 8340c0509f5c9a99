"""
Tests for the card secret codec.

Tests cover:
- Envelope format and random IVs
- Decrypt failures (malformed, wrong key, tampered) returning None
- Legacy bcrypt verification
- Field state classification and matching
- Key configuration from settings
"""

import pytest
from django.core.exceptions import ImproperlyConfigured
from django.test import override_settings

from lending.encryption import (
    Absent,
    CardSecretCodec,
    CodecConfig,
    Encrypted,
    LegacyHash,
    Plaintext,
    codec_config_from_settings,
    get_codec,
    is_envelope,
    is_legacy_hash,
    reset_codec,
)


@pytest.fixture
def other_codec():
    return CardSecretCodec(CodecConfig.from_secret("a-completely-different-key", hash_rounds=10))


class TestCodecConfig:
    def test_short_secret_is_padded_with_zeros(self):
        config = CodecConfig.from_secret("abc")
        assert config.key == b"abc" + b"0" * 29

    def test_long_secret_is_truncated(self):
        config = CodecConfig.from_secret("k" * 40)
        assert config.key == b"k" * 32

    def test_rejects_wrong_key_length(self):
        with pytest.raises(ValueError):
            CodecConfig(key=b"too-short")

    def test_rejects_weak_hash_rounds(self):
        with pytest.raises(ValueError):
            CodecConfig.from_secret("abc", hash_rounds=4)


class TestEncryptDecrypt:
    def test_envelope_shape(self, codec):
        envelope = codec.encrypt("123")
        iv_hex, ct_hex = envelope.split(":")
        assert len(iv_hex) == 32
        assert len(ct_hex) % 32 == 0
        assert is_envelope(envelope)

    def test_round_trip(self, codec):
        assert codec.decrypt(codec.encrypt("4321")) == "4321"

    def test_fresh_iv_per_call(self, codec):
        first = codec.encrypt("123")
        second = codec.encrypt("123")
        assert first != second
        assert first.split(":")[0] != second.split(":")[0]

    @pytest.mark.parametrize("value", [None, ""])
    def test_encrypt_empty_returns_none(self, codec, value):
        assert codec.encrypt(value) is None

    @pytest.mark.parametrize(
        "envelope",
        [
            None,
            "",
            "no-delimiter",
            "a:b:c",
            "zz:zz",
            "00" * 8 + ":" + "00" * 16,  # 8-byte IV
            "00" * 16 + ":" + "00" * 15,  # ciphertext not a whole block
            "00" * 16 + ":",
        ],
    )
    def test_malformed_envelopes_return_none(self, codec, envelope):
        assert codec.decrypt(envelope) is None

    def test_wrong_key_returns_none_or_garbage_never_raises(self, codec, other_codec):
        envelope = codec.encrypt("1234")
        assert other_codec.decrypt(envelope) != "1234"

    def test_tampered_ciphertext_does_not_decrypt_to_original(self, codec):
        envelope = codec.encrypt("1234")
        iv_hex, ct_hex = envelope.split(":")
        flipped = ("0" if ct_hex[-1] != "0" else "1")
        tampered = f"{iv_hex}:{ct_hex[:-1]}{flipped}"
        assert codec.decrypt(tampered) != "1234"


class TestLegacyHashes:
    def test_hash_has_bcrypt_prefix(self, codec):
        hashed = codec.hash("123")
        assert is_legacy_hash(hashed)
        assert hashed.startswith("$2b$10$")

    def test_verify(self, codec):
        hashed = codec.hash("123")
        assert codec.verify("123", hashed) is True
        assert codec.verify("124", hashed) is False

    def test_verify_malformed_hash(self, codec):
        assert codec.verify("123", "$2b$not-a-real-hash") is False

    @pytest.mark.parametrize("candidate,hashed", [("", "$2b$10$x"), ("123", ""), (None, None)])
    def test_verify_missing_input(self, codec, candidate, hashed):
        assert codec.verify(candidate, hashed) is False

    def test_needs_encoding(self, codec):
        assert codec.needs_encoding("123") is True
        assert codec.needs_encoding(codec.hash("123")) is False
        assert codec.needs_encoding("") is False
        assert codec.needs_encoding(None) is False


class TestClassifyAndMatch:
    def test_classify(self, codec):
        envelope = codec.encrypt("123")
        hashed = codec.hash("123")
        assert codec.classify(None) == Absent()
        assert codec.classify("") == Absent()
        assert codec.classify("123") == Plaintext("123")
        assert codec.classify(envelope) == Encrypted(envelope)
        assert codec.classify(hashed) == LegacyHash(hashed)

    def test_matches_every_state(self, codec):
        assert codec.matches("123", Plaintext("123")) is True
        assert codec.matches("123", Encrypted(codec.encrypt("123"))) is True
        assert codec.matches("123", LegacyHash(codec.hash("123"))) is True
        assert codec.matches("999", Encrypted(codec.encrypt("123"))) is False
        assert codec.matches("123", Absent()) is False

    def test_matches_fails_closed_on_foreign_envelope(self, codec, other_codec):
        assert codec.matches("123", Encrypted(other_codec.encrypt("123"))) is False

    def test_empty_candidate_never_matches(self, codec):
        assert codec.matches("", Plaintext("")) is False


class TestCodecFromSettings:
    def test_uses_configured_key(self, settings):
        assert get_codec().decrypt(
            CardSecretCodec(CodecConfig.from_secret(settings.CARD_ENCRYPTION_KEY, 10)).encrypt("77")
        ) == "77"

    def test_codec_is_cached(self):
        assert get_codec() is get_codec()

    @override_settings(CARD_ENCRYPTION_KEY="", DEBUG=False)
    def test_missing_key_outside_debug_is_fatal(self):
        reset_codec()
        with pytest.raises(ImproperlyConfigured):
            codec_config_from_settings()

    @override_settings(CARD_ENCRYPTION_KEY="", DEBUG=True)
    def test_missing_key_in_debug_warns_and_falls_back(self):
        with pytest.warns(UserWarning, match="ENCRYPTION_KEY not configured"):
            config = codec_config_from_settings()
        assert len(config.key) == 32
