"""Tests for registers and the registry store."""

import fcntl
import os
from pathlib import Path

import pytest

from dotconf.errors import (
    AlreadyTracked,
    IoFailure,
    NotTracked,
    RegistryCorrupt,
    RegistryLocked,
    ReservedPath,
)
from dotconf.registry import (
    EntryKind,
    Register,
    Registry,
    RegistryStore,
    TrackedEntry,
)


def _entry(home: Path, name: str, kind=EntryKind.CONFIG) -> TrackedEntry:
    return TrackedEntry.create(home / name, kind, home / ".dotfiles", home)


class TestTrackedEntry:
    """Tests for TrackedEntry creation."""

    def test_create_pairs_paths(self, home):
        entry = _entry(home, ".config/git/config")

        assert entry.filesystem_path == home / ".config/git/config"
        assert entry.source_control_path == Path(".config/git/config")
        assert entry.kind is EntryKind.CONFIG

    def test_source_path_is_absolute(self, home, dotfiles):
        entry = _entry(home, ".vimrc")
        assert entry.source_path(dotfiles) == dotfiles / ".vimrc"

    def test_register_names(self):
        assert EntryKind.CONFIG.register_name == "symlinks"
        assert EntryKind.SECRET.register_name == "secrets"


class TestRegister:
    """Tests for the immutable Register."""

    def test_add_returns_new_register(self, home):
        empty = Register(EntryKind.CONFIG)
        entry = _entry(home, ".vimrc")

        updated = empty.add(entry)

        assert len(empty) == 0
        assert entry.filesystem_path in updated
        assert updated.get(entry.filesystem_path) == entry

    def test_add_duplicate_raises(self, home):
        entry = _entry(home, ".vimrc")
        register = Register(EntryKind.CONFIG, [entry])

        with pytest.raises(AlreadyTracked):
            register.add(entry)

    def test_remove_missing_raises(self, home):
        with pytest.raises(NotTracked):
            Register(EntryKind.CONFIG).remove(home / ".vimrc")

    def test_remove_keeps_order(self, home):
        entries = [_entry(home, n) for n in (".a", ".b", ".c")]
        register = Register(EntryKind.CONFIG, entries)

        updated = register.remove(home / ".b")

        assert updated.paths() == [home / ".a", home / ".c"]

    def test_rejects_other_kind(self, home):
        with pytest.raises(ValueError):
            Register(EntryKind.SECRET, [_entry(home, ".vimrc")])


class TestRegistry:
    """Tests for cross-register uniqueness."""

    def test_add_routes_by_kind(self, home):
        secret = _entry(home, ".netrc", EntryKind.SECRET)
        registry = Registry.empty().add(secret)

        assert secret.filesystem_path in registry.secret
        assert len(registry.config) == 0

    def test_same_path_in_both_registers_rejected(self, home):
        registry = Registry.empty().add(_entry(home, ".netrc"))

        with pytest.raises(AlreadyTracked) as exc_info:
            registry.add(_entry(home, ".netrc", EntryKind.SECRET))

        assert "as config" in str(exc_info.value)

    def test_path_inside_tracked_directory_rejected(self, home):
        registry = Registry.empty().add(_entry(home, ".config/nvim"))

        with pytest.raises(AlreadyTracked, match="inside tracked"):
            registry.add(
                _entry(home, ".config/nvim/init.vim", EntryKind.SECRET)
            )

    def test_directory_containing_tracked_path_rejected(self, home):
        registry = Registry.empty().add(_entry(home, ".config/nvim/init.vim"))

        with pytest.raises(AlreadyTracked, match="contains tracked"):
            registry.add(_entry(home, ".config/nvim"))

    def test_sibling_with_shared_prefix_allowed(self, home):
        registry = Registry.empty().add(_entry(home, ".config/nvim"))

        registry = registry.add(_entry(home, ".config/nvim-old"))

        assert len(registry.config) == 2

    def test_remove_from_wrong_register_raises(self, home):
        registry = Registry.empty().add(_entry(home, ".netrc"))

        with pytest.raises(NotTracked):
            registry.remove(EntryKind.SECRET, home / ".netrc")

    def test_entries_lists_config_first(self, home):
        registry = (
            Registry.empty()
            .add(_entry(home, ".netrc", EntryKind.SECRET))
            .add(_entry(home, ".vimrc"))
        )

        kinds = [e.kind for e in registry.entries()]
        assert kinds == [EntryKind.CONFIG, EntryKind.SECRET]


class TestRegistryStoreLoad:
    """Tests for reading register files."""

    def test_missing_file_is_empty(self, store):
        assert len(store.load(EntryKind.CONFIG)) == 0

    def test_loads_one_path_per_line(self, store, home, dotfiles):
        path = store.register_path(EntryKind.CONFIG)
        path.parent.mkdir(parents=True)
        path.write_text(f"{home}/.vimrc\n\n{home}/.config/git/config\n")

        register = store.load(EntryKind.CONFIG)

        assert register.paths() == [
            home / ".vimrc",
            home / ".config/git/config",
        ]
        entry = register.get(home / ".vimrc")
        assert entry.source_path(dotfiles) == dotfiles / ".vimrc"

    def test_relative_line_is_corrupt(self, store):
        path = store.register_path(EntryKind.CONFIG)
        path.parent.mkdir(parents=True)
        path.write_text(".vimrc\n")

        with pytest.raises(RegistryCorrupt, match="line 1"):
            store.load(EntryKind.CONFIG)

    def test_duplicate_line_is_corrupt(self, store, home):
        path = store.register_path(EntryKind.SECRET)
        path.parent.mkdir(parents=True)
        path.write_text(f"{home}/.netrc\n{home}/.netrc\n")

        with pytest.raises(RegistryCorrupt, match="duplicate"):
            store.load(EntryKind.SECRET)

    def test_path_outside_home_is_corrupt(self, store):
        path = store.register_path(EntryKind.CONFIG)
        path.parent.mkdir(parents=True)
        path.write_text("/etc/hosts\n")

        with pytest.raises(RegistryCorrupt):
            store.load(EntryKind.CONFIG)

    def test_non_utf8_is_corrupt(self, store):
        path = store.register_path(EntryKind.CONFIG)
        path.parent.mkdir(parents=True)
        path.write_bytes(b"/home/\xff\xfe\n")

        with pytest.raises(RegistryCorrupt, match="UTF-8"):
            store.load(EntryKind.CONFIG)

    def test_overlapping_registers_are_corrupt(self, store, home):
        store.registry_dir.mkdir(parents=True)
        for kind in EntryKind:
            store.register_path(kind).write_text(f"{home}/.netrc\n")

        with pytest.raises(RegistryCorrupt, match="also tracked"):
            store.load_all()

    def test_unreadable_file_is_io_failure(self, store):
        # A directory where the register file should be
        store.register_path(EntryKind.CONFIG).mkdir(parents=True)

        with pytest.raises(IoFailure):
            store.load(EntryKind.CONFIG)

    def test_entry_rejects_registry_collision(self, tmp_path):
        home = tmp_path / "home"
        root = tmp_path / "dots"
        store = RegistryStore(root / "cfg", root, home)

        with pytest.raises(ReservedPath):
            store.entry(home / "cfg" / "symlinks", EntryKind.CONFIG)


class TestRegistryStoreSave:
    """Tests for writing register files."""

    def test_save_then_load(self, store, home):
        registry = (
            Registry.empty()
            .add(_entry(home, ".vimrc"))
            .add(_entry(home, ".netrc", EntryKind.SECRET))
        )

        store.save_all(registry)

        assert store.load_all() == registry
        assert store.register_path(EntryKind.CONFIG).read_text() == (
            f"{home / '.vimrc'}\n"
        )

    def test_save_leaves_no_temp_files(self, store, home):
        store.save(EntryKind.CONFIG, Register(EntryKind.CONFIG))

        names = [p.name for p in store.registry_dir.iterdir()]
        assert names == ["symlinks"]

    def test_save_replaces_previous_content(self, store, home):
        register = Register(EntryKind.CONFIG, [_entry(home, ".vimrc")])
        store.save(EntryKind.CONFIG, register)
        store.save(EntryKind.CONFIG, register.remove(home / ".vimrc"))

        assert store.register_path(EntryKind.CONFIG).read_text() == ""


class TestRegistryStoreLock:
    """Tests for the exclusive registry lock."""

    def test_lock_leaves_no_files_in_source_control(self, store):
        with store.lock():
            assert store.registry_dir.is_dir()

        assert list(store.registry_dir.iterdir()) == []

    def test_lock_is_reentrant_after_release(self, store):
        with store.lock():
            pass
        with store.lock():
            pass

    def test_held_lock_raises(self, store):
        store.registry_dir.mkdir(parents=True)
        fd = os.open(store.registry_dir, os.O_RDONLY)
        try:
            fcntl.flock(fd, fcntl.LOCK_EX | fcntl.LOCK_NB)
            with pytest.raises(RegistryLocked):
                with store.lock():
                    pass
        finally:
            fcntl.flock(fd, fcntl.LOCK_UN)
            os.close(fd)

    def test_lock_released_on_error(self, store):
        with pytest.raises(RuntimeError):
            with store.lock():
                raise RuntimeError("boom")

        with store.lock():
            pass
