"""Shared helper functions for CLI commands."""

import logging
import os
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, List, Optional

import typer

from ..config import Config
from ..crypto import CryptoAdapter
from ..engine import SyncEngine
from ..errors import DotconfError
from ..registry import EntryKind, RegistryStore
from ..system import Environment
from .output import error

logger = logging.getLogger(__name__)

PASSPHRASE_ENV = "DOTCONF_PASSPHRASE"

# Supported config filenames under $HOME (in order of preference)
CONFIG_FILENAMES: List[str] = [
    ".dotconf.yaml",
    ".dotconf.yml",
    ".dotconf",
    ".config/dotconf/config.yaml",
    ".config/dotconf.yaml",
    ".dotfiles.conf",
    ".config/dotfiles.conf",
]

FILE_TYPES = {kind.value: kind for kind in EntryKind}


def get_env() -> Environment:
    """Snapshot the environment at call time (tests change HOME)."""
    return Environment()


def get_config_path(home: Optional[Path] = None) -> Path:
    """Find the config file path.

    Returns the first existing config file, or the default
    (~/.dotconf.yaml) if none exist yet.
    """
    home_dir = home or get_env().home
    for filename in CONFIG_FILENAMES:
        path = home_dir / filename
        if path.is_file():
            return path
    return home_dir / CONFIG_FILENAMES[0]


def get_config(env: Optional[Environment] = None) -> Config:
    env = env or get_env()
    return Config(get_config_path(env.home), env=env)


def get_passphrase() -> Optional[str]:
    return os.environ.get(PASSPHRASE_ENV) or None


def get_engine(
    config: Config, secret_key: Optional[Path] = None
) -> SyncEngine:
    """Wire the registry store and crypto adapter from config."""
    env = config.env or get_env()
    store = RegistryStore(
        config.registry_dir, config.source_control_root, env.home
    )
    crypto = CryptoAdapter(
        config.key_config(secret_key, passphrase=get_passphrase())
    )
    return SyncEngine(store, crypto, env=env.variables, cwd=Path.cwd())


def parse_file_type(value: str) -> EntryKind:
    try:
        return FILE_TYPES[value.lower()]
    except KeyError:
        raise typer.BadParameter(
            f"expected one of: {', '.join(FILE_TYPES)}"
        ) from None


@contextmanager
def fatal_errors() -> Iterator[None]:
    """Print dotconf errors and exit 1 instead of showing a traceback."""
    try:
        yield
    except DotconfError as e:
        logger.debug("Command failed", exc_info=True)
        error(str(e))
        raise typer.Exit(1)
