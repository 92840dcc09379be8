"""
Envkey Configuration — settings read from the process environment.

Reads, once at startup:
    ENVKEY_IDENTITY = <path to the identity file>   (optional override)
    ENVKEY_USER     = <acting team member name>     (optional override)

The resulting ``EnvkeyConfig`` is passed into the vault engine; nothing below
this module reads ``os.environ`` directly.
"""
import os
import sys
import getpass
import logging
from pathlib import Path
from typing import Optional

from pydantic import BaseModel, Field, ValidationError, field_validator

from .exceptions import ConfigError

logger = logging.getLogger("envkey.config")

IDENTITY_ENV = "ENVKEY_IDENTITY"
USER_ENV = "ENVKEY_USER"
FALLBACK_USERNAME = "admin"


def detect_config_dir(environ: Optional[dict] = None) -> Optional[Path]:
    """Return the platform's per-user configuration directory.

    Args:
        environ: Environment mapping to consult (defaults to ``os.environ``).

    Returns:
        The configuration directory, or None if it cannot be determined.
        Without ``HOME`` the passwd entry supplies the home directory.
    """
    env = os.environ if environ is None else environ
    if sys.platform.startswith("win"):
        appdata = env.get("APPDATA")
        return Path(appdata) if appdata else None
    home = env.get("HOME") or _passwd_home()
    if sys.platform == "darwin":
        return Path(home) / "Library" / "Application Support" if home else None
    xdg = env.get("XDG_CONFIG_HOME")
    if xdg and Path(xdg).is_absolute():
        return Path(xdg)
    return Path(home) / ".config" if home else None


def _passwd_home() -> Optional[str]:
    """Home directory from the passwd entry of the current user."""
    try:
        import pwd
        return pwd.getpwuid(os.getuid()).pw_dir or None
    except (ImportError, KeyError):
        return None


def detect_username(environ: Optional[dict] = None) -> str:
    """Resolve the acting username.

    ``ENVKEY_USER`` wins; otherwise the platform user lookup; otherwise
    the literal ``admin``.
    """
    env = os.environ if environ is None else environ
    override = env.get(USER_ENV)
    if override:
        return override
    try:
        name = getpass.getuser()
    except (KeyError, OSError, ImportError):
        # no login name and no passwd entry (e.g. bare containers)
        name = ""
    return name or FALLBACK_USERNAME


class EnvkeyConfig(BaseModel):
    """Validated envkey configuration."""

    identity_path: Optional[Path] = Field(default=None)
    config_dir: Optional[Path] = Field(default=None)
    username: str = Field(default=FALLBACK_USERNAME, min_length=1)

    model_config = {"frozen": True}

    @field_validator("username")
    @classmethod
    def validate_username(cls, v: str) -> str:
        """Usernames become YAML mapping keys; keep them on one line."""
        v = v.strip()
        if not v or any(c in v for c in "\r\n"):
            raise ValueError(f"Invalid username: {v!r}")
        return v

    @classmethod
    def from_env(cls, environ: Optional[dict] = None) -> "EnvkeyConfig":
        """Create EnvkeyConfig by loading values from the environment.

        Returns:
            Populated EnvkeyConfig instance.

        Raises:
            ConfigError: If the resolved username is blank or multi-line.
        """
        env = os.environ if environ is None else environ
        override = env.get(IDENTITY_ENV)
        username = detect_username(env)
        try:
            config = cls(
                identity_path=Path(override) if override else None,
                config_dir=detect_config_dir(env),
                username=username,
            )
        except ValidationError as err:
            raise ConfigError(
                f"invalid {USER_ENV}: {username!r} must be a non-empty single line"
            ) from err
        logger.debug(
            "Resolved config: identity override=%s, config_dir=%s, user=%s",
            bool(config.identity_path), config.config_dir, config.username,
        )
        return config
