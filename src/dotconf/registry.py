"""Tracked-file registers and their on-disk store.

Each register is a plain text file with one absolute filesystem path per
line; the source-control path and kind are derived when loading. Files
live under the registry folder (``<source control>/cfg`` by default):

    cfg/symlinks   -> config entries (symlinked)
    cfg/secrets    -> secret entries (encrypted)
"""

import errno
import fcntl
import logging
import os
from contextlib import contextmanager
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Dict, Iterable, Iterator, List, Optional

from .errors import (
    AlreadyTracked,
    DotconfError,
    IoFailure,
    NotTracked,
    RegistryCorrupt,
    RegistryLocked,
)
from .paths import pair
from .utils import atomic_write

logger = logging.getLogger(__name__)


class EntryKind(Enum):
    CONFIG = "config"
    SECRET = "secret"

    @property
    def register_name(self) -> str:
        """File name of this kind's register."""
        return "symlinks" if self is EntryKind.CONFIG else "secrets"


@dataclass(frozen=True)
class TrackedEntry:
    """A tracked file.

    ``source_control_path`` is relative to the source-control root.
    """

    filesystem_path: Path
    source_control_path: Path
    kind: EntryKind

    @classmethod
    def create(
        cls,
        filesystem_path: Path,
        kind: EntryKind,
        source_control_root: Path,
        home: Path,
        reserved: Iterable[Path] = (),
    ) -> "TrackedEntry":
        fs_path, sc_path = pair(
            filesystem_path, source_control_root, home, reserved
        )
        return cls(fs_path, sc_path.relative_to(source_control_root), kind)

    def source_path(self, source_control_root: Path) -> Path:
        """Absolute source-control path under ``source_control_root``."""
        return source_control_root / self.source_control_path


class Register:
    """Ordered set of entries of one kind, keyed by filesystem path.

    Mutators return a new Register and leave the receiver untouched.
    """

    def __init__(self, kind: EntryKind, entries: Iterable[TrackedEntry] = ()):
        self.kind = kind
        self._entries: Dict[Path, TrackedEntry] = {}
        for entry in entries:
            if entry.kind is not kind:
                raise ValueError(
                    f"{entry.kind.value} entry in {kind.value} register"
                )
            if entry.filesystem_path in self._entries:
                raise AlreadyTracked(entry.filesystem_path)
            self._entries[entry.filesystem_path] = entry

    def __contains__(self, path: object) -> bool:
        return path in self._entries

    def __iter__(self) -> Iterator[TrackedEntry]:
        return iter(self._entries.values())

    def __len__(self) -> int:
        return len(self._entries)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Register):
            return NotImplemented
        return self.kind is other.kind and list(self) == list(other)

    def __repr__(self) -> str:
        return f"Register({self.kind.value}, {len(self)} entries)"

    def get(self, path: Path) -> Optional[TrackedEntry]:
        return self._entries.get(path)

    def paths(self) -> List[Path]:
        return list(self._entries)

    def add(self, entry: TrackedEntry) -> "Register":
        if entry.filesystem_path in self._entries:
            raise AlreadyTracked(entry.filesystem_path)
        return Register(self.kind, [*self, entry])

    def remove(self, path: Path) -> "Register":
        if path not in self._entries:
            raise NotTracked(path)
        return Register(
            self.kind, [e for e in self if e.filesystem_path != path]
        )


@dataclass(frozen=True)
class Registry:
    """Both registers, enforcing that a path is tracked at most once."""

    config: Register
    secret: Register

    @classmethod
    def empty(cls) -> "Registry":
        return cls(Register(EntryKind.CONFIG), Register(EntryKind.SECRET))

    def register(self, kind: EntryKind) -> Register:
        return self.config if kind is EntryKind.CONFIG else self.secret

    def find(self, path: Path) -> Optional[TrackedEntry]:
        return self.config.get(path) or self.secret.get(path)

    def entries(self) -> List[TrackedEntry]:
        return [*self.config, *self.secret]

    def _replace(self, register: Register) -> "Registry":
        if register.kind is EntryKind.CONFIG:
            return Registry(register, self.secret)
        return Registry(self.config, register)

    def add(self, entry: TrackedEntry) -> "Registry":
        """Return a registry with ``entry`` added.

        Raises:
            AlreadyTracked: If the path is in either register, or lies
                inside or contains a tracked path.
        """
        path = entry.filesystem_path
        existing = self.find(path)
        if existing is not None:
            raise AlreadyTracked(path, f"as {existing.kind.value}")
        for other in self.entries():
            if path.is_relative_to(other.filesystem_path):
                raise AlreadyTracked(
                    path, f"inside tracked '{other.filesystem_path}'"
                )
            if other.filesystem_path.is_relative_to(path):
                raise AlreadyTracked(
                    path, f"contains tracked '{other.filesystem_path}'"
                )
        return self._replace(self.register(entry.kind).add(entry))

    def remove(self, kind: EntryKind, path: Path) -> "Registry":
        """Return a registry without ``path`` in the ``kind`` register.

        Raises:
            NotTracked: If the path is not in that register.
        """
        return self._replace(self.register(kind).remove(path))


class RegistryStore:
    """Loads and atomically saves the registers."""

    def __init__(
        self,
        registry_dir: Path,
        source_control_root: Path,
        home: Path,
    ):
        self.registry_dir = Path(registry_dir)
        self.source_control_root = Path(source_control_root)
        self.home = Path(home)

    def register_path(self, kind: EntryKind) -> Path:
        return self.registry_dir / kind.register_name

    def entry(self, filesystem_path: Path, kind: EntryKind) -> TrackedEntry:
        """Build an entry whose source-control path avoids the registry."""
        return TrackedEntry.create(
            filesystem_path,
            kind,
            self.source_control_root,
            self.home,
            reserved=[self.registry_dir],
        )

    def load(self, kind: EntryKind) -> Register:
        """Load one register. A missing file is an empty register.

        Raises:
            RegistryCorrupt: If the file is not UTF-8, holds a relative or
                duplicate path, or a path that cannot be paired.
        """
        path = self.register_path(kind)
        try:
            raw = path.read_bytes()
        except FileNotFoundError:
            return Register(kind)
        except OSError as e:
            raise IoFailure.from_os_error(path, e)

        try:
            text = raw.decode("utf-8")
        except UnicodeDecodeError:
            raise RegistryCorrupt(path, "not UTF-8 encoded") from None

        entries: List[TrackedEntry] = []
        seen = set()
        for lineno, line in enumerate(text.splitlines(), start=1):
            if not line.strip():
                continue
            fs_path = Path(line)
            if not fs_path.is_absolute():
                raise RegistryCorrupt(path, f"line {lineno}: relative path")
            try:
                entry = self.entry(fs_path, kind)
            except DotconfError as e:
                raise RegistryCorrupt(path, f"line {lineno}: {e}") from e
            if entry.filesystem_path in seen:
                raise RegistryCorrupt(path, f"line {lineno}: duplicate path")
            seen.add(entry.filesystem_path)
            entries.append(entry)

        logger.debug(f"Loaded {len(entries)} {kind.value} entries from {path}")
        return Register(kind, entries)

    def load_all(self) -> Registry:
        """Load both registers and check they do not overlap."""
        config = self.load(EntryKind.CONFIG)
        secret = self.load(EntryKind.SECRET)
        for path in config.paths():
            if path in secret:
                raise RegistryCorrupt(
                    self.register_path(EntryKind.SECRET),
                    f"'{path}' is also tracked as config",
                )
        return Registry(config, secret)

    def save(self, kind: EntryKind, register: Register) -> None:
        """Write a register via a temp file and rename."""
        path = self.register_path(kind)
        data = "".join(f"{p}\n" for p in register.paths()).encode("utf-8")
        atomic_write(path, data)
        logger.debug(f"Saved {len(register)} {kind.value} entries to {path}")

    def save_all(self, registry: Registry) -> None:
        self.save(EntryKind.CONFIG, registry.config)
        self.save(EntryKind.SECRET, registry.secret)

    @contextmanager
    def lock(self) -> Iterator[None]:
        """Hold an exclusive lock on the registry for one command.

        The lock is taken on the registry directory itself, so nothing is
        left behind in source control.

        Raises:
            RegistryLocked: If another process holds the lock.
        """
        try:
            self.registry_dir.mkdir(parents=True, exist_ok=True)
            fd = os.open(self.registry_dir, os.O_RDONLY)
        except OSError as e:
            raise IoFailure.from_os_error(self.registry_dir, e)

        try:
            try:
                fcntl.flock(fd, fcntl.LOCK_EX | fcntl.LOCK_NB)
            except OSError as e:
                if e.errno in (errno.EWOULDBLOCK, errno.EAGAIN, errno.EACCES):
                    raise RegistryLocked(self.registry_dir) from None
                raise IoFailure.from_os_error(self.registry_dir, e)
            try:
                yield
            finally:
                fcntl.flock(fd, fcntl.LOCK_UN)
        finally:
            os.close(fd)

