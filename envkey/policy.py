"""
Validation policies applied on top of the document schema.

The schema holds any number of environments; which of them may be used is
decided here.
"""
import re

from .exceptions import InvalidSecretKeyError, UnsupportedEnvironmentError

DEFAULT_ENVIRONMENT = "default"
SUPPORTED_ENVIRONMENTS = frozenset({DEFAULT_ENVIRONMENT})

_SECRET_KEY_PATTERN = re.compile(r"[A-Z_][A-Z0-9_]*")


def validate_secret_key(key: str) -> None:
    """Check a secret key name.

    Raises:
        InvalidSecretKeyError: Unless key matches ``[A-Z_][A-Z0-9_]*``.
    """
    if not key:
        raise InvalidSecretKeyError("secret key cannot be empty")
    first = key[0]
    if not (first == "_" or "A" <= first <= "Z"):
        raise InvalidSecretKeyError(
            f"invalid secret key `{key}`: must start with A-Z or _"
        )
    if not _SECRET_KEY_PATTERN.fullmatch(key):
        raise InvalidSecretKeyError(
            f"invalid secret key `{key}`: use only A-Z, 0-9, _"
        )


def require_supported_environment(name: str) -> None:
    """Raises UnsupportedEnvironmentError for anything but ``default``."""
    if name not in SUPPORTED_ENVIRONMENTS:
        raise UnsupportedEnvironmentError(
            f"only the `{DEFAULT_ENVIRONMENT}` environment is supported; got `{name}`"
        )
