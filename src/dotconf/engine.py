"""Reconciliation between the filesystem and the source-control directory.

Config entries are stored in source control and symlinked back into place.
Secret entries are stored encrypted; pushing replaces the plaintext with a
link to the ciphertext and pulling writes the decrypted plaintext back.

Each command runs under the registry lock. A sync pass isolates per-entry
errors in the report; track/detach errors abort before anything is saved.
"""

import filecmp
import logging
import os
import shutil
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Dict, List, Mapping, Optional, Type

from . import symlinks
from .backup import backup_path, move_aside
from .crypto import CryptoAdapter
from .errors import (
    AlreadyTracked,
    DecryptionFailed,
    DotconfError,
    EncryptionFailed,
    IoFailure,
    SourceMissing,
    SymlinkConflict,
)
from .paths import expand
from .registry import EntryKind, Registry, RegistryStore, TrackedEntry
from .report import Action, Outcome, SyncReport
from .symlinks import LinkState, LinkStatus
from .utils import atomic_write

logger = logging.getLogger(__name__)


class SyncDirection(Enum):
    """Which side is authoritative for a pass."""

    FROM_FILESYSTEM = "from-filesystem"
    FROM_DOTFILES = "from-dotfiles"


class TrackOp(Enum):
    ADD = "add"
    REMOVE = "remove"


@dataclass(frozen=True)
class EntryStatus:
    entry: TrackedEntry
    source_path: Path
    filesystem: LinkStatus
    source_exists: bool


def _read_bytes(path: Path) -> bytes:
    try:
        return path.read_bytes()
    except OSError as e:
        raise IoFailure.from_os_error(path, e)


def _copy_file(source: Path, destination: Path) -> None:
    """Copy bytes and mode, replacing ``destination`` in one rename."""
    temp_path = destination.with_name(
        f".{destination.name}.tmp-{os.getpid()}"
    )
    try:
        destination.parent.mkdir(parents=True, exist_ok=True)
        shutil.copy2(source, temp_path)
        os.replace(temp_path, destination)
    except OSError as e:
        if temp_path.exists():
            temp_path.unlink()
        raise IoFailure.from_os_error(destination, e)


def _same_file_content(a: Path, b: Path) -> bool:
    if not (a.is_file() and b.is_file()):
        return False
    try:
        return filecmp.cmp(a, b, shallow=False)
    except OSError as e:
        raise IoFailure.from_os_error(a, e)


def _reaches_source(source: Path, target: Path) -> bool:
    """True if ``target`` is ``source`` itself, seen through a linked parent."""
    if os.path.islink(target) or not os.path.lexists(target):
        return False
    return os.path.realpath(target) == os.path.realpath(source)


class Reconciler(ABC):
    """Converges one kind of entry in either direction."""

    def __init__(
        self,
        source_control_root: Path,
        crypto: CryptoAdapter,
        backup_conflicts: bool = False,
        dry_run: bool = False,
    ):
        self.source_control_root = source_control_root
        self.crypto = crypto
        self.backup_conflicts = backup_conflicts
        self.dry_run = dry_run

    @property
    @abstractmethod
    def kind(self) -> EntryKind:
        """The entry kind this reconciler handles."""

    def reconcile(
        self, entry: TrackedEntry, direction: SyncDirection, outcome: Outcome
    ) -> Outcome:
        source = entry.source_path(self.source_control_root)
        target = entry.filesystem_path
        if _reaches_source(source, target):
            raise SymlinkConflict(
                target, f"already resolves to source-control copy '{source}'"
            )
        if direction is SyncDirection.FROM_FILESYSTEM:
            return self.push(source, target, outcome)
        return self.pull(source, target, outcome)

    @abstractmethod
    def push(self, source: Path, target: Path, outcome: Outcome) -> Outcome:
        """Make source control match the filesystem."""

    @abstractmethod
    def pull(self, source: Path, target: Path, outcome: Outcome) -> Outcome:
        """Make the filesystem match source control."""

    def _clear(
        self,
        path: Path,
        detail: str,
        outcome: Outcome,
        reported: Optional[Path] = None,
    ):
        """Move a conflicting path aside, or raise SymlinkConflict."""
        if not self.backup_conflicts:
            raise SymlinkConflict(reported or path, detail)
        if self.dry_run:
            outcome.backup = backup_path(path)
        else:
            outcome.backup = move_aside(path)

    def _link(self, source: Path, target: Path, outcome: Outcome) -> Outcome:
        if not os.path.lexists(source):
            raise SourceMissing(source)
        if not self.dry_run:
            symlinks.link(source, target)
            logger.info(f"Linked {target} -> {source}")
        return outcome.converge(Action.LINKED)

    def _push_linked_or_missing(
        self,
        source: Path,
        target: Path,
        current: LinkStatus,
        outcome: Outcome,
    ) -> Outcome:
        """Shared push handling for everything except a regular file."""
        if current.state is LinkState.CORRECT_LINK:
            if not os.path.lexists(source):
                raise SourceMissing(source, "link points at a missing file")
            return outcome.converge()
        if current.state is LinkState.WRONG_LINK:
            self._clear(target, str(current), outcome)
        # Nothing on the filesystem side: link to an existing copy if any
        if not os.path.lexists(source):
            raise SourceMissing(target)
        return self._link(source, target, outcome)


class ConfigReconciler(Reconciler):
    """Plain files: source control holds the file, the filesystem a link."""

    kind = EntryKind.CONFIG

    def push(self, source: Path, target: Path, outcome: Outcome) -> Outcome:
        current = symlinks.status(target, source)
        if current.state is not LinkState.REGULAR_FILE:
            return self._push_linked_or_missing(
                source, target, current, outcome
            )

        if os.path.lexists(source):
            if _same_file_content(source, target):
                if not self.dry_run:
                    symlinks.replace_with_link(source, target)
                    logger.info(f"Relinked {target} -> {source}")
                return outcome.converge(Action.LINKED)
            # Both sides hold independent content
            self._clear(
                source,
                f"differs from source-control copy '{source}'",
                outcome,
                reported=target,
            )

        if self.dry_run:
            return outcome.converge(Action.MOVED)

        if target.is_dir():
            try:
                source.parent.mkdir(parents=True, exist_ok=True)
                shutil.move(str(target), str(source))
            except OSError as e:
                raise IoFailure.from_os_error(target, e)
            symlinks.link(source, target)
        else:
            _copy_file(target, source)
            symlinks.replace_with_link(source, target)

        logger.info(f"Moved {target} to {source} and linked it back")
        return outcome.converge(Action.MOVED)

    def pull(self, source: Path, target: Path, outcome: Outcome) -> Outcome:
        if not os.path.lexists(source):
            raise SourceMissing(source)

        current = symlinks.status(target, source)
        if current.state is LinkState.CORRECT_LINK:
            return outcome.converge()
        if current.state is not LinkState.MISSING:
            self._clear(target, str(current), outcome)
        return self._link(source, target, outcome)


class SecretReconciler(Reconciler):
    """Secrets: source control holds ciphertext only."""

    kind = EntryKind.SECRET

    def decrypt_source(self, source: Path) -> bytes:
        try:
            return self.crypto.decrypt(_read_bytes(source))
        except DecryptionFailed as e:
            raise DecryptionFailed(source, e.detail) from e

    def _encrypt(self, target: Path) -> bytes:
        try:
            return self.crypto.encrypt(_read_bytes(target))
        except EncryptionFailed as e:
            raise EncryptionFailed(target, e.detail) from e

    def push(self, source: Path, target: Path, outcome: Outcome) -> Outcome:
        current = symlinks.status(target, source)
        if current.state is not LinkState.REGULAR_FILE:
            return self._push_linked_or_missing(
                source, target, current, outcome
            )
        if target.is_dir():
            raise IoFailure(target, "directories cannot be secrets")

        ciphertext = self._encrypt(target)
        if self.dry_run:
            return outcome.converge(Action.ENCRYPTED)

        atomic_write(source, ciphertext)
        # One rename drops the plaintext and puts the link in its place
        symlinks.replace_with_link(source, target)
        logger.info(f"Encrypted {target} into {source}")
        return outcome.converge(Action.ENCRYPTED)

    def pull(self, source: Path, target: Path, outcome: Outcome) -> Outcome:
        if not source.is_file():
            raise SourceMissing(source)

        plaintext = self.decrypt_source(source)
        current = symlinks.status(target, source)

        if current.state is LinkState.REGULAR_FILE and not target.is_dir():
            if _read_bytes(target) == plaintext:
                return outcome.converge()
            self._clear(target, str(current), outcome)
        elif current.state in (LinkState.REGULAR_FILE, LinkState.WRONG_LINK):
            self._clear(target, str(current), outcome)

        if not self.dry_run:
            atomic_write(target, plaintext, mode=0o600)
            logger.info(f"Decrypted {source} to {target}")
        return outcome.converge(Action.DECRYPTED)


RECONCILERS: Dict[EntryKind, Type[Reconciler]] = {
    EntryKind.CONFIG: ConfigReconciler,
    EntryKind.SECRET: SecretReconciler,
}


class SyncEngine:
    """Runs track, sync, status and detach commands against a registry."""

    def __init__(
        self,
        store: RegistryStore,
        crypto: CryptoAdapter,
        env: Optional[Mapping[str, str]] = None,
        cwd: Optional[Path] = None,
    ):
        self.store = store
        self.crypto = crypto
        self.env = os.environ if env is None else env
        self.cwd = cwd

    @property
    def source_control_root(self) -> Path:
        return self.store.source_control_root

    @property
    def home(self) -> Path:
        return self.store.home

    def resolve(self, raw_path: str) -> Path:
        return expand(raw_path, self.env, self.home, self.cwd)

    def reconciler(
        self,
        kind: EntryKind,
        backup_conflicts: bool = False,
        dry_run: bool = False,
    ) -> Reconciler:
        return RECONCILERS[kind](
            self.source_control_root,
            self.crypto,
            backup_conflicts=backup_conflicts,
            dry_run=dry_run,
        )

    def track(
        self, kind: EntryKind, raw_path: str, op: TrackOp
    ) -> TrackedEntry:
        """Add or remove a registry entry. Never touches tracked files.

        Raises:
            AlreadyTracked: Adding a path present in either register.
            NotTracked: Removing a path absent from the ``kind`` register.
        """
        path = self.resolve(raw_path)
        with self.store.lock():
            registry = self.store.load_all()
            if op is TrackOp.ADD:
                entry = self.store.entry(path, kind)
                registry = registry.add(entry)
                if not os.path.lexists(entry.filesystem_path):
                    logger.warning(
                        f"{entry.filesystem_path} does not exist yet"
                    )
            else:
                entry = registry.register(kind).get(path)
                registry = registry.remove(kind, path)
            self.store.save(kind, registry.register(kind))

        logger.info(f"{op.value}: {entry.filesystem_path} ({kind.value})")
        return entry

    def add(self, kind: EntryKind, raw_path: str) -> TrackedEntry:
        return self.track(kind, raw_path, TrackOp.ADD)

    def remove(self, kind: EntryKind, raw_path: str) -> TrackedEntry:
        return self.track(kind, raw_path, TrackOp.REMOVE)

    def sync(
        self,
        direction: SyncDirection,
        backup_conflicts: bool = False,
        dry_run: bool = False,
    ) -> SyncReport:
        """Reconcile every tracked entry in ``direction``.

        Per-entry errors are recorded on the report and the pass moves on.
        """
        report = SyncReport(direction, dry_run=dry_run)
        with self.store.lock():
            registry = self.store.load_all()
            reconcilers = {
                kind: self.reconciler(kind, backup_conflicts, dry_run)
                for kind in EntryKind
            }
            for entry in registry.entries():
                outcome = Outcome(entry)
                try:
                    reconcilers[entry.kind].reconcile(
                        entry, direction, outcome
                    )
                except DotconfError as e:
                    outcome.fail(e)
                except OSError as e:
                    outcome.fail(
                        IoFailure.from_os_error(entry.filesystem_path, e)
                    )
                if outcome.error is not None:
                    logger.info(
                        f"{outcome.state.value}: {outcome.error}"
                    )
                report.outcomes.append(outcome)

            if report.ok and not dry_run:
                self.store.save_all(registry)

        logger.info(f"Sync {direction.value}: {report.summary()}")
        return report

    def status(self) -> List[EntryStatus]:
        """Report the current state of every tracked entry."""
        with self.store.lock():
            registry = self.store.load_all()
        return [self._entry_status(entry) for entry in registry.entries()]

    def _entry_status(self, entry: TrackedEntry) -> EntryStatus:
        source = entry.source_path(self.source_control_root)
        return EntryStatus(
            entry=entry,
            source_path=source,
            filesystem=symlinks.status(entry.filesystem_path, source),
            source_exists=os.path.lexists(source),
        )

    def load_registry(self) -> Registry:
        with self.store.lock():
            return self.store.load_all()

    def detach(self, kind: EntryKind, raw_path: str) -> Outcome:
        """Replace the link of an untracked file with a real copy.

        Config files get a copy of the source-control file, secrets get
        the decrypted plaintext. The source-control copy is left alone.

        Raises:
            AlreadyTracked: If the path is still tracked.
            SymlinkConflict: If the path is not a link into source control.
        """
        path = self.resolve(raw_path)
        with self.store.lock():
            registry = self.store.load_all()
            if registry.find(path) is not None:
                raise AlreadyTracked(path, "remove it from tracking first")

            entry = self.store.entry(path, kind)
            source = entry.source_path(self.source_control_root)
            if not os.path.lexists(source):
                raise SourceMissing(source)

            current = symlinks.status(path, source)
            if current.state not in (
                LinkState.CORRECT_LINK,
                LinkState.MISSING,
            ):
                raise SymlinkConflict(path, str(current))

            if kind is EntryKind.SECRET:
                reconciler = self.reconciler(kind)
                plaintext = reconciler.decrypt_source(source)
                atomic_write(path, plaintext, mode=0o600)
            elif source.is_dir():
                if current.state is LinkState.CORRECT_LINK:
                    symlinks.unlink(source, path)
                try:
                    shutil.copytree(source, path, symlinks=True)
                except OSError as e:
                    raise IoFailure.from_os_error(path, e)
            else:
                _copy_file(source, path)

        logger.info(f"Detached {path} from {source}")
        return Outcome(entry).converge(Action.DETACHED)
