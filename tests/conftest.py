import pytest

from envkey.config import EnvkeyConfig
from envkey.vault import Vault


@pytest.fixture
def identity_path(tmp_path):
    """Identity file location inside the test's temp dir."""
    return tmp_path / "keys" / "identity.key"


@pytest.fixture
def project_dir(tmp_path):
    """Empty project directory for the .envkey document."""
    path = tmp_path / "project"
    path.mkdir()
    return path


@pytest.fixture
def config(identity_path, tmp_path):
    """Config as the CLI would resolve it for user alice."""
    return EnvkeyConfig(
        identity_path=identity_path,
        config_dir=tmp_path / "config",
        username="alice",
    )


@pytest.fixture
def vault(project_dir, config):
    """Vault over an empty project directory."""
    return Vault(project_dir, config)


@pytest.fixture
def initialized_vault(vault):
    """Vault after a first ``init``."""
    vault.init()
    return vault
