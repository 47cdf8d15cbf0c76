"""Tests for the symlink manager."""

import os

import pytest

from dotconf import symlinks
from dotconf.errors import IoFailure, SymlinkConflict
from dotconf.symlinks import LinkState


@pytest.fixture
def source(tmp_path):
    path = tmp_path / "dots" / ".vimrc"
    path.parent.mkdir()
    path.write_text("set nu\n")
    return path


class TestStatus:
    """Tests for classifying a filesystem path."""

    def test_missing(self, tmp_path, source):
        result = symlinks.status(tmp_path / ".vimrc", source)
        assert result.state is LinkState.MISSING
        assert str(result) == "missing"

    def test_correct_link(self, tmp_path, source):
        target = tmp_path / ".vimrc"
        target.symlink_to(source)

        result = symlinks.status(target, source)

        assert result.state is LinkState.CORRECT_LINK
        assert result.target == source

    def test_relative_correct_link(self, tmp_path, source):
        target = tmp_path / ".vimrc"
        target.symlink_to(os.path.join("dots", ".vimrc"))

        assert symlinks.status(target, source).state is LinkState.CORRECT_LINK

    def test_wrong_link(self, tmp_path, source):
        other = tmp_path / "other"
        other.write_text("x")
        target = tmp_path / ".vimrc"
        target.symlink_to(other)

        result = symlinks.status(target, source)

        assert result.state is LinkState.WRONG_LINK
        assert str(result) == f"foreign link -> {other}"

    def test_dangling_link_to_source_is_correct(self, tmp_path):
        source = tmp_path / "dots" / ".gone"
        target = tmp_path / ".gone"
        target.symlink_to(source)

        assert symlinks.status(target, source).state is LinkState.CORRECT_LINK

    def test_regular_file(self, tmp_path, source):
        target = tmp_path / ".vimrc"
        target.write_text("local")

        assert symlinks.status(target, source).state is LinkState.REGULAR_FILE

    def test_directory_is_regular(self, tmp_path, source):
        target = tmp_path / ".vim"
        target.mkdir()

        assert symlinks.status(target, source).state is LinkState.REGULAR_FILE


class TestLink:
    """Tests for creating links."""

    def test_creates_link(self, tmp_path, source):
        target = tmp_path / ".vimrc"

        assert symlinks.link(source, target) is True
        assert target.is_symlink()
        assert target.read_text() == "set nu\n"

    def test_creates_parent_directories(self, tmp_path, source):
        target = tmp_path / ".config" / "vim" / "vimrc"

        symlinks.link(source, target)

        assert target.is_symlink()

    def test_idempotent(self, tmp_path, source):
        target = tmp_path / ".vimrc"
        symlinks.link(source, target)

        assert symlinks.link(source, target) is False
        assert os.readlink(target) == str(source)

    def test_refuses_regular_file(self, tmp_path, source):
        target = tmp_path / ".vimrc"
        target.write_text("local")

        with pytest.raises(SymlinkConflict):
            symlinks.link(source, target)

        assert target.read_text() == "local"

    def test_refuses_foreign_link(self, tmp_path, source):
        other = tmp_path / "other"
        other.write_text("x")
        target = tmp_path / ".vimrc"
        target.symlink_to(other)

        with pytest.raises(SymlinkConflict):
            symlinks.link(source, target)

        assert os.readlink(target) == str(other)


class TestReplaceWithLink:
    """Tests for the atomic replace."""

    def test_replaces_regular_file(self, tmp_path, source):
        target = tmp_path / ".vimrc"
        target.write_text("local")

        symlinks.replace_with_link(source, target)

        assert target.is_symlink()
        assert not list(tmp_path.glob(".*dotconf-link*"))

    def test_directory_target_fails(self, tmp_path, source):
        target = tmp_path / ".vim"
        (target / "plugin").mkdir(parents=True)

        with pytest.raises(IoFailure):
            symlinks.replace_with_link(source, target)

        assert target.is_dir()
        assert not list(tmp_path.glob(".*dotconf-link*"))


class TestUnlink:
    """Tests for removing links."""

    def test_removes_correct_link(self, tmp_path, source):
        target = tmp_path / ".vimrc"
        target.symlink_to(source)

        symlinks.unlink(source, target)

        assert not os.path.lexists(target)
        assert source.exists()

    def test_refuses_regular_file(self, tmp_path, source):
        target = tmp_path / ".vimrc"
        target.write_text("local")

        with pytest.raises(SymlinkConflict):
            symlinks.unlink(source, target)

        assert target.exists()

    def test_refuses_missing(self, tmp_path, source):
        with pytest.raises(SymlinkConflict):
            symlinks.unlink(source, tmp_path / ".vimrc")
