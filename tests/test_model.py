"""
Tests for the secret document model and validation policies.
"""
from datetime import date, datetime, timedelta, timezone

import pytest

from envkey.exceptions import (
    InvalidSecretKeyError,
    UnsupportedEnvironmentError,
    UnsupportedVersionError,
)
from envkey.model import FORMAT_VERSION, EnvkeyFile, Role, SecretEntry, check_version
from envkey.policy import require_supported_environment, validate_secret_key


@pytest.fixture
def document():
    return EnvkeyFile.new("alice", "envkey1example", date(2026, 2, 26))


class TestNewDocument:

    def test_single_admin_member(self, document):
        assert document.version == FORMAT_VERSION
        assert list(document.team) == ["alice"]
        member = document.team["alice"]
        assert member.role is Role.ADMIN
        assert member.pubkey == "envkey1example"
        assert member.added == date(2026, 2, 26)
        assert member.environments is None

    def test_default_environment_exists_and_is_empty(self, document):
        assert document.default_env() == {}
        assert list(document.environments) == ["default"]


class TestVersionGuard:

    def test_rejects_unknown_version(self):
        file = EnvkeyFile(version=99)
        with pytest.raises(UnsupportedVersionError, match="unsupported .envkey version: 99"):
            file.ensure_supported_version()

    def test_message_names_found_and_supported(self):
        with pytest.raises(UnsupportedVersionError) as err:
            check_version(2)
        assert err.value.found == 2
        assert err.value.supported == FORMAT_VERSION
        assert "(supported: 1)" in str(err.value)

    @pytest.mark.parametrize("version", ["1", True, 1.5, None])
    def test_rejects_non_integer_versions(self, version):
        with pytest.raises(UnsupportedVersionError):
            check_version(version)

    def test_from_raw_guards_before_schema(self):
        """An unsupported version wins over malformed team data."""
        raw = {"version": 2, "team": "garbage", "environments": 42}
        with pytest.raises(UnsupportedVersionError):
            EnvkeyFile.from_raw(raw)


class TestTeam:

    def test_has_recipient(self, document):
        assert document.has_recipient("envkey1example")
        assert not document.has_recipient("envkey1other")

    def test_add_member_defaults_to_today(self, document):
        member = document.add_member("bob", "envkey1bob", role=Role.CI)
        assert member.role is Role.CI
        assert member.added == datetime.now(timezone.utc).date()

    def test_recipients_ordered_by_name(self, document):
        document.add_member("zed", "envkey1zed")
        document.add_member("bob", "envkey1bob")
        assert document.recipient_strings() == ["envkey1example", "envkey1bob", "envkey1zed"]


class TestSecrets:

    def test_set_and_get(self, document):
        document.set_secret("API_KEY", "ciphertext", set_by="alice")
        entry = document.get_secret("API_KEY")
        assert entry.value == "ciphertext"
        assert entry.set_by == "alice"

    def test_get_missing(self, document):
        assert document.get_secret("MISSING") is None
        assert document.get_secret("API_KEY", env="production") is None

    def test_modified_is_utc_second_precision(self):
        local = timezone(timedelta(hours=2))
        entry = SecretEntry(
            value="x",
            set_by="alice",
            modified=datetime(2026, 2, 26, 12, 0, 0, 123456, tzinfo=local),
        )
        assert entry.modified == datetime(2026, 2, 26, 10, 0, 0, tzinfo=timezone.utc)
        assert entry.model_dump(mode="json")["modified"] == "2026-02-26T10:00:00Z"

    def test_parses_iso_string(self):
        entry = SecretEntry(value="x", set_by="a", modified="2026-02-26T00:00:00Z")
        assert entry.modified.tzinfo is not None


class TestToDocument:

    def test_top_level_order(self, document):
        assert list(document.to_document()) == ["version", "team", "environments"]

    def test_keys_sorted(self, document):
        document.add_member("bob", "envkey1bob")
        document.set_secret("ZETA", "c1", set_by="alice")
        document.set_secret("ALPHA", "c2", set_by="alice")
        data = document.to_document()
        assert list(data["team"]) == ["alice", "bob"]
        assert list(data["environments"]["default"]) == ["ALPHA", "ZETA"]

    def test_optional_member_environments_omitted(self, document):
        member = document.to_document()["team"]["alice"]
        assert member == {"pubkey": "envkey1example", "role": "admin", "added": "2026-02-26"}

    def test_member_environments_kept(self, document):
        document.team["alice"].environments = ["default"]
        assert document.to_document()["team"]["alice"]["environments"] == ["default"]


class TestPolicy:

    @pytest.mark.parametrize("key", ["DATABASE_URL", "_TOKEN_1", "A", "_"])
    def test_valid_keys(self, key):
        validate_secret_key(key)

    @pytest.mark.parametrize("key", ["database_url", "1DATABASE", "API-KEY", "", "ÄPI", "API KEY"])
    def test_invalid_keys(self, key):
        with pytest.raises(InvalidSecretKeyError):
            validate_secret_key(key)

    def test_default_environment_allowed(self):
        require_supported_environment("default")

    def test_other_environment_rejected(self):
        with pytest.raises(UnsupportedEnvironmentError, match="got `production`"):
            require_supported_environment("production")
