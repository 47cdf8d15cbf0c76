"""dotconf - Keep config files and secrets in source control."""

from .cli import main
from .config import Config
from .engine import SyncDirection, SyncEngine
from .registry import EntryKind, RegistryStore
from .system import Environment
from .utils import get_version

__all__ = [
    "Config",
    "EntryKind",
    "Environment",
    "RegistryStore",
    "SyncDirection",
    "SyncEngine",
    "get_version",
    "main",
]
