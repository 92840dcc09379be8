"""
Tests for the envelope encryption engine.

Tests cover:
- Round trip for every recipient of a multi-recipient envelope
- Wrong identity and tampering failures
- Distinct error kinds for encoding, authentication and text failures
- Key encodings
"""
import base64

import pytest
from cryptography.hazmat.primitives.asymmetric.x25519 import X25519PrivateKey

from envkey.crypto import (
    IDENTITY_PREFIX,
    RECIPIENT_PREFIX,
    decrypt_value,
    encrypt_value,
    identity_to_str,
    parse_identity,
    parse_recipient,
    recipient_to_str,
)
from envkey.exceptions import (
    CiphertextEncodingError,
    DecryptionError,
    IdentityError,
    InvalidPlaintextError,
    InvalidRecipientError,
    NoRecipientsError,
)


@pytest.fixture
def alice():
    return X25519PrivateKey.generate()


@pytest.fixture
def bob():
    return X25519PrivateKey.generate()


@pytest.fixture
def mallory():
    return X25519PrivateKey.generate()


class TestRoundTrip:
    """Tests for encrypt/decrypt round trips."""

    def test_single_recipient(self, alice):
        """Test that the only recipient can decrypt."""
        ct = encrypt_value("super-secret", [alice.public_key()])
        assert decrypt_value(ct, alice) == "super-secret"

    def test_every_recipient_can_decrypt(self, alice, bob):
        """Test that each of several recipients opens the same envelope."""
        ct = encrypt_value("shared", [alice.public_key(), bob.public_key()])
        assert decrypt_value(ct, alice) == "shared"
        assert decrypt_value(ct, bob) == "shared"

    @pytest.mark.parametrize("plaintext", ["", "x", "ünïcødé ✓", "a" * 10_000])
    def test_various_plaintexts(self, alice, plaintext):
        """Test empty, unicode and large values."""
        ct = encrypt_value(plaintext, [alice.public_key()])
        assert decrypt_value(ct, alice) == plaintext

    def test_encryption_is_randomized(self, alice):
        """Test that identical inputs give different ciphertexts."""
        first = encrypt_value("same", [alice.public_key()])
        second = encrypt_value("same", [alice.public_key()])
        assert first != second

    def test_output_is_printable_base64(self, alice):
        """Test that the envelope embeds safely in a text document."""
        ct = encrypt_value("value", [alice.public_key()])
        assert ct.isascii()
        base64.b64decode(ct, validate=True)

    def test_plaintext_not_in_output(self, alice):
        """Test that the plaintext does not leak into the envelope."""
        ct = encrypt_value("secret", [alice.public_key()])
        assert "secret" not in ct
        assert b"secret" not in base64.b64decode(ct)


class TestFailures:
    """Tests for the distinct failure kinds."""

    def test_no_recipients(self):
        """Test that encrypting to nobody fails."""
        with pytest.raises(NoRecipientsError):
            encrypt_value("value", [])

    def test_wrong_identity(self, alice, mallory):
        """Test that a non-recipient cannot decrypt."""
        ct = encrypt_value("value", [alice.public_key()])
        with pytest.raises(DecryptionError, match="failed to decrypt value"):
            decrypt_value(ct, mallory)

    def test_invalid_base64(self, alice):
        """Test that bad encoding is not reported as a decryption failure."""
        with pytest.raises(CiphertextEncodingError, match="not valid base64"):
            decrypt_value("not-base64***", alice)

    def test_tampered_payload_same_message_as_wrong_key(self, alice, mallory):
        """Test that tampering and wrong key are indistinguishable."""
        ct = encrypt_value("value", [alice.public_key()])
        raw = bytearray(base64.b64decode(ct))
        raw[-1] ^= 0x01
        tampered = base64.b64encode(bytes(raw)).decode("ascii")

        with pytest.raises(DecryptionError) as tampered_err:
            decrypt_value(tampered, alice)
        with pytest.raises(DecryptionError) as wrong_key_err:
            decrypt_value(ct, mallory)
        assert str(tampered_err.value) == str(wrong_key_err.value)

    def test_tampered_header(self, alice, bob):
        """Test that the recipient header is authenticated."""
        ct = encrypt_value("value", [alice.public_key(), bob.public_key()])
        raw = bytearray(base64.b64decode(ct))
        # flip a byte inside bob's stanza; alice's stanza still opens
        raw[5 + 92 + 40] ^= 0x01
        tampered = base64.b64encode(bytes(raw)).decode("ascii")
        with pytest.raises(DecryptionError):
            decrypt_value(tampered, alice)

    def test_truncated_envelope(self, alice):
        """Test that valid base64 of garbage is a decryption failure."""
        garbage = base64.b64encode(b"EK\x01").decode("ascii")
        with pytest.raises(DecryptionError):
            decrypt_value(garbage, alice)

    def test_non_utf8_plaintext(self, alice):
        """Test that binary payloads are reported as not valid text."""
        ct = encrypt_value(b"\xff\xfe\x00", [alice.public_key()])
        with pytest.raises(InvalidPlaintextError, match="not valid UTF-8"):
            decrypt_value(ct, alice)


class TestKeyEncoding:
    """Tests for recipient and identity string encodings."""

    def test_recipient_round_trip(self, alice):
        encoded = recipient_to_str(alice.public_key())
        assert encoded.startswith(RECIPIENT_PREFIX)
        assert recipient_to_str(parse_recipient(encoded)) == encoded

    def test_identity_round_trip(self, alice):
        encoded = identity_to_str(alice)
        assert encoded.startswith(IDENTITY_PREFIX)
        parsed = parse_identity(encoded)
        assert recipient_to_str(parsed.public_key()) == recipient_to_str(alice.public_key())

    @pytest.mark.parametrize("bad", ["", "age1abc", "envkey1!!!", "envkey1abcd"])
    def test_invalid_recipient(self, bad):
        with pytest.raises(InvalidRecipientError):
            parse_recipient(bad)

    @pytest.mark.parametrize("bad", ["", "AGE-SECRET-KEY-1XYZ", IDENTITY_PREFIX + "AAAA"])
    def test_invalid_identity(self, bad):
        with pytest.raises(IdentityError):
            parse_identity(bad)
