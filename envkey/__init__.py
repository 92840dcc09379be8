"""Envkey — Secrets without servers.

A single ``.envkey`` file per project stores secrets encrypted for every
team member's X25519 public key. There is no server and no database.

Security Note (Threat Model):
    Plaintext exists only in process memory while a command runs; it is
    never written to disk or logged. Removing a member from the team does
    not re-encrypt values they could already read.
"""

from .version import __version__
from .config import EnvkeyConfig
from .identity import (
    Identity,
    resolve_identity_path,
    generate_identity,
    load_identity,
    load_or_generate_identity,
)
from .crypto import encrypt_value, decrypt_value
from .model import EnvkeyFile, TeamMember, SecretEntry, Role, FORMAT_VERSION
from .storage import read_envkey, write_envkey_atomic
from .vault import Vault

__all__ = [
    "__version__",
    "EnvkeyConfig",
    "Identity",
    "resolve_identity_path",
    "generate_identity",
    "load_identity",
    "load_or_generate_identity",
    "encrypt_value",
    "decrypt_value",
    "EnvkeyFile",
    "TeamMember",
    "SecretEntry",
    "Role",
    "FORMAT_VERSION",
    "read_envkey",
    "write_envkey_atomic",
    "Vault",
]
