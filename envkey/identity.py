"""
Identity Manager — the local user's X25519 keypair.

An identity file holds one line: the encoded private key followed by a
newline. It is created with owner-only permissions and never regenerated
unless the caller asks for it explicitly.

Security Note:
    Never log key material. Only log paths.
"""
import os
import logging
from dataclasses import dataclass
from pathlib import Path

from cryptography.hazmat.primitives.asymmetric.x25519 import (
    X25519PrivateKey,
    X25519PublicKey,
)

from .config import EnvkeyConfig
from .crypto import identity_to_str, parse_identity, recipient_to_str
from .exceptions import ConfigError, IdentityError

logger = logging.getLogger("envkey.identity")

IDENTITY_SUBPATH = Path("envkey") / "identity.key"
IDENTITY_FILE_MODE = 0o600


@dataclass(frozen=True)
class Identity:
    """A loaded private key, its public key and where it came from."""

    private_key: X25519PrivateKey
    path: Path

    @property
    def public_key(self) -> X25519PublicKey:
        return self.private_key.public_key()

    @property
    def recipient(self) -> str:
        """Encoded public key, as stored in the team roster."""
        return recipient_to_str(self.public_key)

    def __repr__(self) -> str:
        return f"<Identity {self.recipient} at {self.path}>"


def resolve_identity_path(config: EnvkeyConfig) -> Path:
    """Return the identity file location for this invocation.

    Raises:
        ConfigError: If there is no override and no config directory.
    """
    if config.identity_path is not None:
        return config.identity_path
    if config.config_dir is None:
        raise ConfigError(
            "could not determine config directory; set ENVKEY_IDENTITY to the identity file path"
        )
    return config.config_dir / IDENTITY_SUBPATH


def identity_exists(path: Path) -> bool:
    return Path(path).is_file()


def generate_identity(path: Path) -> Identity:
    """Generate a fresh identity and write it to ``path``.

    Parent directories are created as needed and any existing file is
    overwritten. On POSIX the file ends up readable by its owner only.

    Returns:
        The identity as loaded back from disk.
    """
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    secret = identity_to_str(X25519PrivateKey.generate())

    flags = os.O_WRONLY | os.O_CREAT | os.O_TRUNC
    fd = os.open(path, flags, IDENTITY_FILE_MODE)
    with os.fdopen(fd, "w", encoding="ascii") as fh:
        fh.write(secret)
        fh.write("\n")
        fh.flush()
        os.fsync(fh.fileno())
    if os.name == "posix":
        # O_CREAT's mode does not apply to a file that already existed
        os.chmod(path, IDENTITY_FILE_MODE)

    logger.info("Generated identity at %s", path)
    return load_identity(path)


def load_identity(path: Path) -> Identity:
    """Read and parse the identity stored at ``path``.

    Raises:
        IdentityError: If the file is missing, unreadable, empty or invalid.
    """
    path = Path(path)
    try:
        raw = path.read_text(encoding="utf-8")
    except FileNotFoundError as err:
        raise IdentityError(
            f"identity not found at {path}; run `envkey init` first"
        ) from err
    except (OSError, UnicodeDecodeError) as err:
        raise IdentityError(f"failed to read identity at {path}: {err}") from err

    key = raw.strip()
    if not key:
        raise IdentityError(f"identity file {path} is empty")
    try:
        private_key = parse_identity(key)
    except IdentityError as err:
        raise IdentityError(f"invalid identity in {path}: {err}") from err

    logger.debug("Loaded identity from %s", path)
    return Identity(private_key=private_key, path=path)


def load_or_generate_identity(path: Path, force: bool = False) -> tuple[Identity, bool]:
    """Load the identity at ``path``, generating one if absent or forced.

    Returns:
        Tuple of (identity, was_generated).
    """
    if force or not identity_exists(path):
        return generate_identity(path), True
    return load_identity(path), False
