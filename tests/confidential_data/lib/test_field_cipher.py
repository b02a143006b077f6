"""
Unit tests for the field cipher.

These tests verify:
- AES-256-GCM round trips of strings and structured values
- Fresh nonces for every encryption
- Empty value passthrough
- Graceful failure (None) vs strict failure (exceptions)
- Envelope shape detection
"""

import base64

import pytest
from structlog.testing import capture_logs

from confidential_data.lib.encryption import FieldCipher
from confidential_data.lib.exceptions import CipherError, KeyUnavailableError
from confidential_data.lib.key_provider import ConfigKeySource, KeyProvider


def _flip_last_byte(envelope: str) -> str:
    data = bytearray(base64.b64decode(envelope))
    data[-1] ^= 0x01
    return base64.b64encode(bytes(data)).decode("ascii")


# =============================================================================
# Round trips
# =============================================================================

class TestRoundTrip:
    """Test encrypt -> decrypt returns the original value."""

    @pytest.mark.parametrize(
        "value",
        ["alice@example.com", "Grüße aus München 🔐", "line one\nline two", {"uri": "https://bank.example"}],
    )
    def test_round_trip(self, cipher, value):
        """Test values survive encryption unchanged."""
        envelope = cipher.encrypt(value)

        assert isinstance(envelope, str)
        assert envelope != value
        assert cipher.decrypt(envelope) == value

    def test_same_plaintext_different_envelopes(self, cipher):
        """Test encrypting the same value twice yields different envelopes."""
        assert cipher.encrypt("Alice") != cipher.encrypt("Alice")

    def test_nonces_are_unique(self, cipher):
        """Test 1000 encryptions use 1000 distinct nonces."""
        nonces = {
            base64.b64decode(cipher.encrypt("Alice"))[: FieldCipher.NONCE_SIZE]
            for _ in range(1000)
        }

        assert len(nonces) == 1000

    def test_envelope_layout(self, cipher):
        """Test envelope = nonce || ciphertext || tag."""
        data = base64.b64decode(cipher.encrypt("Alice"))

        # JSON encoding adds two quote characters
        assert len(data) == FieldCipher.NONCE_SIZE + len('"Alice"') + FieldCipher.TAG_SIZE

    def test_other_key_cannot_decrypt(self, cipher):
        """Test an envelope fails authentication under another key."""
        other = FieldCipher(KeyProvider([ConfigKeySource("another-key-material-entirely-32+")]))

        assert other.decrypt(cipher.encrypt("Alice")) is None


# =============================================================================
# Empty values
# =============================================================================

class TestEmptyValues:
    """Test None and "" pass through unchanged."""

    @pytest.mark.parametrize("value", [None, ""])
    def test_encrypt_passthrough(self, cipher, value):
        """Test empty values are not encrypted."""
        assert cipher.encrypt(value) == value

    @pytest.mark.parametrize("value", [None, ""])
    def test_decrypt_passthrough(self, cipher, value):
        """Test empty values are not decrypted."""
        assert cipher.decrypt(value) == value

    def test_passthrough_without_key(self, keyless_cipher):
        """Test empty values never need a key."""
        assert keyless_cipher.encrypt("") == ""
        assert keyless_cipher.decrypt(None) is None


# =============================================================================
# Failures
# =============================================================================

class TestFailures:
    """Test graceful and strict failure modes."""

    def test_tampered_envelope_returns_none(self, cipher):
        """Test a modified envelope fails authentication."""
        tampered = _flip_last_byte(cipher.encrypt("Alice"))

        with capture_logs() as logs:
            assert cipher.decrypt(tampered) is None

        assert logs[0]["event"] == "field_decryption_failed"
        assert logs[0]["log_level"] == "error"

    def test_tampered_envelope_strict(self, cipher):
        """Test decrypt_or_raise raises CipherError on tampering."""
        with pytest.raises(CipherError, match="Authentication failed"):
            cipher.decrypt_or_raise(_flip_last_byte(cipher.encrypt("Alice")))

    def test_malformed_base64(self, cipher):
        """Test non-base64 input is rejected."""
        assert cipher.decrypt("not base64 at all!") is None
        with pytest.raises(CipherError, match="base64"):
            cipher.decrypt_or_raise("not base64 at all!")

    def test_envelope_too_short(self, cipher):
        """Test input shorter than nonce + tag is rejected."""
        short = base64.b64encode(b"0123456789").decode("ascii")

        with pytest.raises(CipherError, match="too short"):
            cipher.decrypt_or_raise(short)

    def test_non_string_envelope(self, cipher):
        """Test only strings can be envelopes."""
        with pytest.raises(CipherError):
            cipher.decrypt_or_raise(12345)

    def test_unserializable_value(self, cipher):
        """Test values JSON cannot encode are rejected."""
        with pytest.raises(CipherError, match="not serializable"):
            cipher.encrypt_or_raise(object())

    def test_encrypt_without_key(self, keyless_cipher):
        """Test encryption without a key returns None and logs."""
        with capture_logs() as logs:
            assert keyless_cipher.encrypt("Alice") is None

        assert {"event": "field_encryption_skipped", "reason": "no_key", "log_level": "error"} in logs

    def test_decrypt_without_key(self, cipher, keyless_cipher):
        """Test decryption without a key returns None."""
        assert keyless_cipher.decrypt(cipher.encrypt("Alice")) is None

    def test_strict_without_key(self, keyless_cipher):
        """Test the strict variants raise KeyUnavailableError."""
        with pytest.raises(KeyUnavailableError):
            keyless_cipher.encrypt_or_raise("Alice")
        with pytest.raises(KeyUnavailableError):
            keyless_cipher.decrypt_or_raise("QUJD")


# =============================================================================
# Status and envelope shape
# =============================================================================

class TestStatus:
    """Test readiness reporting."""

    def test_ready(self, cipher):
        """Test a cipher with a key is ready."""
        assert cipher.is_ready() is True
        assert cipher.key_source() == "config"

    def test_not_ready(self, keyless_cipher):
        """Test a cipher without a key is not ready."""
        assert keyless_cipher.is_ready() is False
        assert keyless_cipher.key_source() is None


class TestLooksLikeEnvelope:
    """Test envelope shape detection."""

    def test_real_envelope(self, cipher):
        """Test an actual envelope is recognized."""
        assert FieldCipher.looks_like_envelope(cipher.encrypt("Alice")) is True

    @pytest.mark.parametrize(
        "value",
        [None, "", "Alice", "alice@example.com", "QUJD", 42, "https://bank.example"],
    )
    def test_not_an_envelope(self, value):
        """Test plaintext and short base64 are not envelopes."""
        assert FieldCipher.looks_like_envelope(value) is False
