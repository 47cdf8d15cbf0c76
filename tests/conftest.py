"""Shared fixtures: a fake home directory and one PGP key per session."""

from pathlib import Path

import pytest

from dotconf.crypto import CryptoAdapter, KeyConfig, KeyParams, generate_key
from dotconf.engine import SyncEngine
from dotconf.registry import RegistryStore


@pytest.fixture(scope="session")
def pgp_key():
    """RSA key pair shared by every test that encrypts."""
    return generate_key(KeyParams(name="Test User", email="test@test.com"))


@pytest.fixture(scope="session")
def other_pgp_key():
    """A second key that cannot decrypt messages for ``pgp_key``."""
    return generate_key(KeyParams(name="Someone Else"))


@pytest.fixture
def key_file(tmp_path, pgp_key) -> Path:
    path = tmp_path / "keys" / "secret.asc"
    path.parent.mkdir()
    path.write_text(str(pgp_key))
    return path


@pytest.fixture
def home(tmp_path) -> Path:
    home = tmp_path / "home"
    home.mkdir()
    return home


@pytest.fixture
def dotfiles(home) -> Path:
    return home / ".dotfiles"


@pytest.fixture
def store(home, dotfiles) -> RegistryStore:
    return RegistryStore(dotfiles / "cfg", dotfiles, home)


@pytest.fixture
def engine(store, home, key_file) -> SyncEngine:
    crypto = CryptoAdapter(KeyConfig(secret_key=key_file))
    return SyncEngine(store, crypto, env={"HOME": str(home)}, cwd=home)
