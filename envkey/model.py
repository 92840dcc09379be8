"""
Secret Document Model — in-memory form of the ``.envkey`` file.

The document holds a format version, the team roster (who can decrypt) and
the encrypted secrets of every environment. Values are always envelope
ciphertext; plaintext never enters this model.
"""
import logging
from enum import Enum
from typing import Any, Optional
from datetime import date, datetime, timezone

from pydantic import BaseModel, Field, field_serializer, field_validator

from .exceptions import UnsupportedVersionError
from .policy import DEFAULT_ENVIRONMENT

logger = logging.getLogger("envkey.model")

FORMAT_VERSION = 1

TIMESTAMP_FORMAT = "%Y-%m-%dT%H:%M:%SZ"


def utc_now() -> datetime:
    """Current UTC time at second precision."""
    return datetime.now(timezone.utc).replace(microsecond=0)


def check_version(version: Any) -> None:
    """Version guard.

    Raises:
        UnsupportedVersionError: Unless ``version`` is exactly FORMAT_VERSION.
    """
    # bool is an int subclass; `version: true` is not version 1
    if isinstance(version, bool) or version != FORMAT_VERSION:
        raise UnsupportedVersionError(version, FORMAT_VERSION)


class Role(str, Enum):
    ADMIN = "admin"
    MEMBER = "member"
    CI = "ci"
    READONLY = "readonly"


class TeamMember(BaseModel):
    """One roster entry: a recipient public key and its role."""

    pubkey: str = Field(min_length=1)
    role: Role
    added: date
    environments: Optional[list[str]] = None


class SecretEntry(BaseModel):
    """An encrypted secret and who last set it, when."""

    value: str
    set_by: str
    modified: datetime

    @field_validator("modified")
    @classmethod
    def normalize_modified(cls, v: datetime) -> datetime:
        """Store timestamps as aware UTC at second precision."""
        if v.tzinfo is None:
            v = v.replace(tzinfo=timezone.utc)
        return v.astimezone(timezone.utc).replace(microsecond=0)

    @field_serializer("modified")
    def serialize_modified(self, v: datetime) -> str:
        return v.strftime(TIMESTAMP_FORMAT)


class EnvkeyFile(BaseModel):
    """The whole vault document.

    ``environments`` may hold any number of environments; which ones are
    usable is decided by ``envkey.policy``.
    """

    version: int
    team: dict[str, TeamMember] = Field(default_factory=dict)
    environments: dict[str, dict[str, SecretEntry]] = Field(default_factory=dict)

    @field_validator("team", "environments", mode="before")
    @classmethod
    def empty_section(cls, v: Any) -> Any:
        """An empty YAML section (``team:``) loads as None."""
        return {} if v is None else v

    @classmethod
    def new(
        cls,
        owner_name: str,
        owner_pubkey: str,
        added: Optional[date] = None,
    ) -> "EnvkeyFile":
        """Create a document with ``owner_name`` as its only (admin) member."""
        doc = cls(version=FORMAT_VERSION)
        doc.add_member(owner_name, owner_pubkey, role=Role.ADMIN, added=added)
        doc.environments[DEFAULT_ENVIRONMENT] = {}
        return doc

    @classmethod
    def from_raw(cls, raw: dict) -> "EnvkeyFile":
        """Build from parsed YAML, guarding the version before anything else.

        Raises:
            UnsupportedVersionError: If ``raw["version"]`` is not supported.
            pydantic.ValidationError: If the rest does not match the schema.
        """
        check_version(raw.get("version"))
        return cls.model_validate(raw)

    def ensure_supported_version(self) -> None:
        check_version(self.version)

    # ------------------------------------------------------------------
    # Team roster
    # ------------------------------------------------------------------

    def has_recipient(self, pubkey: str) -> bool:
        """True if any member is registered with ``pubkey``."""
        return any(m.pubkey == pubkey for m in self.team.values())

    def add_member(
        self,
        name: str,
        pubkey: str,
        role: Role = Role.MEMBER,
        added: Optional[date] = None,
    ) -> TeamMember:
        member = TeamMember(
            pubkey=pubkey,
            role=role,
            added=added or utc_now().date(),
        )
        self.team[name] = member
        logger.debug("Added team member %s as %s", name, role.value)
        return member

    def recipient_strings(self) -> list[str]:
        """Public keys of every member, ordered by member name."""
        return [self.team[name].pubkey for name in sorted(self.team)]

    # ------------------------------------------------------------------
    # Secrets
    # ------------------------------------------------------------------

    def env(self, name: str = DEFAULT_ENVIRONMENT) -> Optional[dict[str, SecretEntry]]:
        return self.environments.get(name)

    def env_mut(self, name: str = DEFAULT_ENVIRONMENT) -> dict[str, SecretEntry]:
        return self.environments.setdefault(name, {})

    def default_env(self) -> Optional[dict[str, SecretEntry]]:
        return self.env(DEFAULT_ENVIRONMENT)

    def default_env_mut(self) -> dict[str, SecretEntry]:
        return self.env_mut(DEFAULT_ENVIRONMENT)

    def get_secret(self, key: str, env: str = DEFAULT_ENVIRONMENT) -> Optional[SecretEntry]:
        entries = self.env(env)
        if entries is None:
            return None
        return entries.get(key)

    def set_secret(
        self,
        key: str,
        value: str,
        set_by: str,
        env: str = DEFAULT_ENVIRONMENT,
        modified: Optional[datetime] = None,
    ) -> SecretEntry:
        """Insert or replace an entry. ``value`` must already be ciphertext."""
        entry = SecretEntry(value=value, set_by=set_by, modified=modified or utc_now())
        self.env_mut(env)[key] = entry
        return entry

    # ------------------------------------------------------------------
    # Serialization
    # ------------------------------------------------------------------

    def to_document(self) -> dict[str, Any]:
        """Plain-data form with a stable order: version, team, environments.

        Member names, environment names and secret keys are sorted.
        """
        return {
            "version": self.version,
            "team": {
                name: self.team[name].model_dump(mode="json", exclude_none=True)
                for name in sorted(self.team)
            },
            "environments": {
                env: {
                    key: entries[key].model_dump(mode="json")
                    for key in sorted(entries)
                }
                for env, entries in sorted(self.environments.items())
            },
        }
