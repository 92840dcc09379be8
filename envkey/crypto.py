"""
Envkey Crypto Core — Key encodings and multi-recipient envelope encryption.

Envelope layout (before base64):
    [magic "EK" 2B][version 1B][recipient count 2B uint16 BE]
    count x [ephemeral X25519 public 32B][wrap nonce 12B][wrapped data key 48B]
    [payload nonce 12B][ChaCha20-Poly1305 payload + tag 16B]

The payload is encrypted once under a random 32-byte data key. For every
recipient a fresh ephemeral X25519 key is agreed with the recipient's public
key, HKDF turns the shared secret into a wrap key, and the data key is sealed
under it. The header (everything before the payload nonce) is bound to the
payload as associated data.

Security Note:
    Never log plaintext, ciphertext or key material.
    Nonces are random 96-bit; each wrap key is single-use.
"""
import os
import struct
import base64
import binascii
import logging
from collections.abc import Sequence

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.kdf.hkdf import HKDF
from cryptography.hazmat.primitives.ciphers.aead import ChaCha20Poly1305
from cryptography.hazmat.primitives.asymmetric.x25519 import (
    X25519PrivateKey,
    X25519PublicKey,
)

from .exceptions import (
    NoRecipientsError,
    InvalidRecipientError,
    IdentityError,
    CiphertextEncodingError,
    DecryptionError,
    InvalidPlaintextError,
)

logger = logging.getLogger("envkey.crypto")

MAGIC = b"EK"
ENVELOPE_VERSION = 1
NONCE_SIZE = 12  # 96-bit nonce
KEY_LENGTH = 32  # data key and X25519 key size
TAG_SIZE = 16
WRAPPED_KEY_SIZE = KEY_LENGTH + TAG_SIZE
STANZA_SIZE = KEY_LENGTH + NONCE_SIZE + WRAPPED_KEY_SIZE
_PREAMBLE = struct.Struct("!2sBH")

WRAP_INFO = b"envkey-x25519-v1"

RECIPIENT_PREFIX = "envkey1"
IDENTITY_PREFIX = "ENVKEY-SECRET-KEY-1"

# Same message for a wrong identity and for tampered ciphertext.
_DECRYPT_FAILED = "failed to decrypt value: no matching identity or ciphertext was tampered with"


# ---------------------------------------------------------------------------
# Key encodings
# ---------------------------------------------------------------------------

def _b32encode(raw: bytes) -> str:
    return base64.b32encode(raw).decode("ascii").rstrip("=")


def _b32decode(text: str) -> bytes:
    padding = "=" * (-len(text) % 8)
    return base64.b32decode(text.upper() + padding)


def _raw_public(key: X25519PublicKey) -> bytes:
    return key.public_bytes(
        encoding=serialization.Encoding.Raw,
        format=serialization.PublicFormat.Raw,
    )


def _raw_private(key: X25519PrivateKey) -> bytes:
    return key.private_bytes(
        encoding=serialization.Encoding.Raw,
        format=serialization.PrivateFormat.Raw,
        encryption_algorithm=serialization.NoEncryption(),
    )


def recipient_to_str(key: X25519PublicKey) -> str:
    """Encode a public key as ``envkey1<base32>``."""
    return RECIPIENT_PREFIX + _b32encode(_raw_public(key)).lower()


def parse_recipient(text: str) -> X25519PublicKey:
    """Decode an ``envkey1...`` recipient string.

    Raises:
        InvalidRecipientError: If the string is not a valid recipient.
    """
    text = text.strip()
    if not text.startswith(RECIPIENT_PREFIX):
        raise InvalidRecipientError(
            f"invalid team public key {text}: expected prefix {RECIPIENT_PREFIX}"
        )
    try:
        raw = _b32decode(text[len(RECIPIENT_PREFIX):])
    except (binascii.Error, ValueError) as err:
        raise InvalidRecipientError(f"invalid team public key {text}: {err}") from err
    if len(raw) != KEY_LENGTH:
        raise InvalidRecipientError(
            f"invalid team public key {text}: expected {KEY_LENGTH} bytes, got {len(raw)}"
        )
    return X25519PublicKey.from_public_bytes(raw)


def identity_to_str(key: X25519PrivateKey) -> str:
    """Encode a private key as ``ENVKEY-SECRET-KEY-1<BASE32>``."""
    return IDENTITY_PREFIX + _b32encode(_raw_private(key))


def parse_identity(text: str) -> X25519PrivateKey:
    """Decode an ``ENVKEY-SECRET-KEY-1...`` identity string.

    Raises:
        IdentityError: If the string is not a valid identity. The message
            never echoes the key.
    """
    text = text.strip()
    if not text.startswith(IDENTITY_PREFIX):
        raise IdentityError(f"expected an identity starting with {IDENTITY_PREFIX}")
    try:
        raw = _b32decode(text[len(IDENTITY_PREFIX):])
    except (binascii.Error, ValueError) as err:
        raise IdentityError("identity is not valid base32") from err
    if len(raw) != KEY_LENGTH:
        raise IdentityError(
            f"identity must decode to {KEY_LENGTH} bytes, got {len(raw)}"
        )
    return X25519PrivateKey.from_private_bytes(raw)


# ---------------------------------------------------------------------------
# Key wrapping
# ---------------------------------------------------------------------------

def derive_wrap_key(shared: bytes, ephemeral_pub: bytes, recipient_pub: bytes) -> bytes:
    """Derive a 32-byte wrap key from an X25519 shared secret using HKDF-SHA256.

    Both public keys go into the salt so a wrap key is bound to exactly one
    (ephemeral, recipient) pair.
    """
    hkdf = HKDF(
        algorithm=hashes.SHA256(),
        length=KEY_LENGTH,
        salt=ephemeral_pub + recipient_pub,
        info=WRAP_INFO,
    )
    return hkdf.derive(shared)


def _wrap_for(data_key: bytes, recipient: X25519PublicKey) -> bytes:
    ephemeral = X25519PrivateKey.generate()
    ephemeral_pub = _raw_public(ephemeral.public_key())
    shared = ephemeral.exchange(recipient)
    wrap_key = derive_wrap_key(shared, ephemeral_pub, _raw_public(recipient))
    nonce = os.urandom(NONCE_SIZE)
    wrapped = ChaCha20Poly1305(wrap_key).encrypt(nonce, data_key, None)
    return ephemeral_pub + nonce + wrapped


def _unwrap_with(stanza: bytes, identity: X25519PrivateKey) -> bytes | None:
    """Try to open one recipient stanza; None if it is not ours."""
    ephemeral_pub = stanza[:KEY_LENGTH]
    nonce = stanza[KEY_LENGTH:KEY_LENGTH + NONCE_SIZE]
    wrapped = stanza[KEY_LENGTH + NONCE_SIZE:]
    try:
        shared = identity.exchange(X25519PublicKey.from_public_bytes(ephemeral_pub))
    except ValueError:
        # low-order point, all-zero shared secret
        return None
    own_pub = _raw_public(identity.public_key())
    wrap_key = derive_wrap_key(shared, ephemeral_pub, own_pub)
    try:
        return ChaCha20Poly1305(wrap_key).decrypt(nonce, wrapped, None)
    except InvalidTag:
        return None


# ---------------------------------------------------------------------------
# Envelope encryption
# ---------------------------------------------------------------------------

def encrypt_value(
    plaintext: str | bytes,
    recipients: Sequence[X25519PublicKey],
) -> str:
    """Encrypt plaintext once for every recipient.

    Args:
        plaintext: Text (UTF-8 encoded) or raw bytes to encrypt.
        recipients: Public keys allowed to decrypt the result.

    Returns:
        Base64-encoded envelope. Output differs between calls for the same
        input.

    Raises:
        NoRecipientsError: If ``recipients`` is empty.
    """
    if not recipients:
        raise NoRecipientsError("cannot encrypt without at least one recipient")
    if isinstance(plaintext, str):
        plaintext = plaintext.encode("utf-8")

    data_key = ChaCha20Poly1305.generate_key()
    header = _PREAMBLE.pack(MAGIC, ENVELOPE_VERSION, len(recipients))
    header += b"".join(_wrap_for(data_key, r) for r in recipients)
    nonce = os.urandom(NONCE_SIZE)
    ct = ChaCha20Poly1305(data_key).encrypt(nonce, plaintext, header)
    logger.debug("Encrypted value for %d recipient(s)", len(recipients))
    return base64.b64encode(header + nonce + ct).decode("ascii")


def decrypt_value(ciphertext_b64: str, identity: X25519PrivateKey) -> str:
    """Open a base64 envelope with one identity and return the text.

    Raises:
        CiphertextEncodingError: If the input is not valid base64.
        DecryptionError: If the envelope is malformed, holds no stanza for
            this identity, or fails authentication.
        InvalidPlaintextError: If the decrypted bytes are not UTF-8.
    """
    try:
        envelope = base64.b64decode(ciphertext_b64, validate=True)
    except (binascii.Error, ValueError) as err:
        raise CiphertextEncodingError(f"ciphertext is not valid base64: {err}") from err

    plaintext = _open_envelope(envelope, identity)
    try:
        return plaintext.decode("utf-8")
    except UnicodeDecodeError as err:
        raise InvalidPlaintextError(
            f"decrypted value is not valid UTF-8: {err.reason} at byte {err.start}"
        ) from err


def _open_envelope(envelope: bytes, identity: X25519PrivateKey) -> bytes:
    if len(envelope) < _PREAMBLE.size:
        raise DecryptionError(_DECRYPT_FAILED)
    magic, version, count = _PREAMBLE.unpack_from(envelope)
    header_len = _PREAMBLE.size + count * STANZA_SIZE
    _min = header_len + NONCE_SIZE + TAG_SIZE
    if magic != MAGIC or version != ENVELOPE_VERSION or count == 0 or len(envelope) < _min:
        raise DecryptionError(_DECRYPT_FAILED)

    header = envelope[:header_len]
    data_key = None
    for i in range(count):
        offset = _PREAMBLE.size + i * STANZA_SIZE
        data_key = _unwrap_with(envelope[offset:offset + STANZA_SIZE], identity)
        if data_key is not None:
            break
    if data_key is None or len(data_key) != KEY_LENGTH:
        raise DecryptionError(_DECRYPT_FAILED)

    nonce = envelope[header_len:header_len + NONCE_SIZE]
    ct = envelope[header_len + NONCE_SIZE:]
    try:
        return ChaCha20Poly1305(data_key).decrypt(nonce, ct, header)
    except InvalidTag as err:
        raise DecryptionError(_DECRYPT_FAILED) from err
