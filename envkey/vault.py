"""
Vault — the read/mutate/write cycle over a project's ``.envkey`` document.

Provides the public API of the vault engine:
- ``init(force)`` — ensure an identity and a document listing it as admin
- ``set(key, value)`` — encrypt for the whole team, persist, self-check
- ``get(key)`` — decrypt with the local identity
- ``list_entries()`` — key metadata without values

Each call reads the document, works on an in-memory copy and, if it changed
anything, replaces the file atomically.

Security Note:
    Never log plaintext or ciphertext values. Only log key names, member
    names and paths.
"""
import logging
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from pathlib import Path

from cryptography.hazmat.primitives.asymmetric.x25519 import X25519PublicKey

from .config import EnvkeyConfig
from .crypto import decrypt_value, encrypt_value, parse_recipient
from .exceptions import (
    EnvkeyError,
    ForceBlockedError,
    NoRecipientsError,
    SecretNotFoundError,
    SelfCheckError,
)
from .identity import (
    Identity,
    load_identity,
    load_or_generate_identity,
    resolve_identity_path,
)
from .model import EnvkeyFile, Role, utc_now
from .policy import DEFAULT_ENVIRONMENT, require_supported_environment, validate_secret_key
from .storage import ENVKEY_FILENAME, envkey_path, read_envkey, write_envkey_atomic

logger = logging.getLogger("envkey.vault")


class DocumentStatus(str, Enum):
    CREATED = "created"
    MEMBER_ADDED = "member_added"
    ALREADY_EXISTS = "already_exists"


@dataclass(frozen=True)
class InitResult:
    identity: Identity
    identity_generated: bool
    document_status: DocumentStatus
    username: str


@dataclass(frozen=True)
class SetResult:
    key: str
    environment: str
    recipients: int


@dataclass(frozen=True)
class EntryInfo:
    environment: str
    key: str
    set_by: str
    modified: datetime


def parse_team_recipients(document: EnvkeyFile) -> list[X25519PublicKey]:
    """Recipient keys for every team member.

    Raises:
        InvalidRecipientError: If a member's public key is malformed.
    """
    return [parse_recipient(pubkey) for pubkey in document.recipient_strings()]


class Vault:
    """Secret vault stored in ``<root>/.envkey``.

    The config is resolved once by the caller and never re-read here.
    """

    def __init__(self, root: Path, config: EnvkeyConfig):
        self._root = Path(root)
        self._config = config
        self._path = envkey_path(self._root)

    @property
    def path(self) -> Path:
        return self._path

    @property
    def identity_path(self) -> Path:
        return resolve_identity_path(self._config)

    def exists(self) -> bool:
        return self._path.exists()

    def load_identity(self) -> Identity:
        return load_identity(self.identity_path)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def init(self, force: bool = False) -> InitResult:
        """Ensure a local identity and a document that lists it.

        Re-running is safe: an existing identity is reused and an existing
        member is left untouched.

        Args:
            force: Regenerate the identity. Refused while a document exists.

        Raises:
            ForceBlockedError: If ``force`` is set and the document exists.
        """
        if force and self.exists():
            raise ForceBlockedError(
                f"--force is blocked when {ENVKEY_FILENAME} already exists; "
                f"remove {ENVKEY_FILENAME} first"
            )

        identity, generated = load_or_generate_identity(self.identity_path, force)
        username = self._config.username

        if self.exists():
            document = read_envkey(self._path)
            if document.has_recipient(identity.recipient):
                status = DocumentStatus.ALREADY_EXISTS
            elif username in document.team:
                # name taken by another key; adding would replace it
                status = DocumentStatus.ALREADY_EXISTS
                logger.warning(
                    "Team member %s exists with a different key; not replacing", username,
                )
            else:
                document.add_member(username, identity.recipient, role=Role.ADMIN)
                write_envkey_atomic(self._path, document)
                status = DocumentStatus.MEMBER_ADDED
        else:
            document = EnvkeyFile.new(username, identity.recipient, utc_now().date())
            write_envkey_atomic(self._path, document)
            status = DocumentStatus.CREATED

        logger.info(
            "Vault init: path=%s user=%s identity_generated=%s status=%s",
            self._path, username, generated, status.value,
        )
        return InitResult(
            identity=identity,
            identity_generated=generated,
            document_status=status,
            username=username,
        )

    def set(self, key: str, value: str, env: str = DEFAULT_ENVIRONMENT) -> SetResult:
        """Encrypt ``value`` for every team member and store it under ``key``.

        After the write the entry is read back from disk and decrypted with
        the local identity.

        Raises:
            InvalidSecretKeyError: If ``key`` is not a valid name.
            UnsupportedEnvironmentError: If ``env`` is not ``default``.
            NoRecipientsError: If the team roster is empty.
            SelfCheckError: If the written entry does not decrypt back to
                ``value``.
        """
        require_supported_environment(env)
        validate_secret_key(key)

        document = read_envkey(self._path)
        identity = self.load_identity()

        recipients = parse_team_recipients(document)
        if not recipients:
            raise NoRecipientsError(
                f"no team recipients found in {ENVKEY_FILENAME}; cannot encrypt"
            )

        ciphertext = encrypt_value(value, recipients)
        document.set_secret(key, ciphertext, set_by=self._config.username, env=env)
        write_envkey_atomic(self._path, document)
        self._verify_written(key, value, env, identity)

        logger.info(
            "Vault set: key=%s env=%s recipients=%d", key, env, len(recipients),
        )
        return SetResult(key=key, environment=env, recipients=len(recipients))

    def get(self, key: str, env: str = DEFAULT_ENVIRONMENT) -> str:
        """Decrypt and return the secret stored under ``key``.

        Raises:
            UnsupportedEnvironmentError: If ``env`` is not ``default``.
            SecretNotFoundError: If ``key`` is not stored.
            CiphertextEncodingError, DecryptionError, InvalidPlaintextError:
                If the entry cannot be decrypted.
        """
        require_supported_environment(env)

        document = read_envkey(self._path)
        identity = self.load_identity()

        entry = document.get_secret(key, env)
        if entry is None:
            raise SecretNotFoundError(f"secret key not found: {key}")
        plaintext = decrypt_value(entry.value, identity.private_key)
        logger.debug("Vault get: key=%s env=%s", key, env)
        return plaintext

    def list_entries(self, env: str = DEFAULT_ENVIRONMENT) -> list[EntryInfo]:
        """Key metadata for an environment, sorted by key. Never values."""
        require_supported_environment(env)

        document = read_envkey(self._path)
        entries = document.env(env) or {}
        return [
            EntryInfo(
                environment=env,
                key=key,
                set_by=entries[key].set_by,
                modified=entries[key].modified,
            )
            for key in sorted(entries)
        ]

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _verify_written(self, key: str, value: str, env: str, identity: Identity) -> None:
        """Decrypt the entry as persisted and compare with what was set."""
        entry = read_envkey(self._path).get_secret(key, env)
        if entry is None:
            raise SelfCheckError(f"internal error: secret {key} missing after write")
        try:
            roundtrip = decrypt_value(entry.value, identity.private_key)
        except EnvkeyError as err:
            raise SelfCheckError(
                f"internal error: {key} was written but cannot be decrypted "
                f"with the local identity ({err}); check that your public key "
                f"is in the {ENVKEY_FILENAME} team"
            ) from err
        if roundtrip != value:
            raise SelfCheckError(
                f"internal error: {key} was written but decrypts to a different value"
            )
