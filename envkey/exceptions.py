"""
Envkey errors.

Every failure the vault engine can report has its own class so callers can
tell them apart without parsing messages. Messages are single sentences that
say what went wrong and, where possible, what to do about it.

Security Note:
    Messages never contain plaintext, ciphertext or key material.
"""


class EnvkeyError(Exception):
    """Base exception for envkey."""


class ConfigError(EnvkeyError):
    """Configuration could not be resolved (e.g. no config directory)."""


class IdentityError(EnvkeyError):
    """Identity file is missing, unreadable, empty or invalid."""


class ForceBlockedError(EnvkeyError):
    """Forced identity regeneration refused while a document exists."""


class DocumentError(EnvkeyError):
    """Base class for .envkey document failures."""


class DocumentNotFoundError(DocumentError):
    """No .envkey document in the project directory."""


class DocumentSyntaxError(DocumentError):
    """The .envkey document is not valid YAML or does not match the schema."""


class UnsupportedVersionError(DocumentError):
    """The .envkey document declares a format version we do not support."""

    def __init__(self, found, supported: int):
        self.found = found
        self.supported = supported
        super().__init__(
            f"unsupported .envkey version: {found} (supported: {supported})"
        )


class NoRecipientsError(EnvkeyError):
    """Encryption requested with an empty recipient set."""


class InvalidRecipientError(EnvkeyError):
    """A team public key could not be parsed."""


class CiphertextEncodingError(EnvkeyError):
    """Stored ciphertext is not valid base64."""


class DecryptionError(EnvkeyError):
    """The envelope could not be opened with the given identity.

    Raised with the same message for a wrong identity and for tampered
    ciphertext.
    """


class InvalidPlaintextError(EnvkeyError):
    """Decrypted payload is not valid UTF-8 text."""


class InvalidSecretKeyError(EnvkeyError):
    """Secret key name does not match ``[A-Z_][A-Z0-9_]*``."""


class UnsupportedEnvironmentError(EnvkeyError):
    """An environment other than ``default`` was requested."""


class SecretNotFoundError(EnvkeyError):
    """Requested secret key is not stored in the environment."""


class SelfCheckError(EnvkeyError):
    """A freshly written entry failed to decrypt with the writer's identity.

    This points at a recipient-derivation bug or a corrupted team roster,
    never at an ordinary wrong-key ``get``.
    """
