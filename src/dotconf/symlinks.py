"""Create, inspect and remove the symlinks that point into source control.

``link`` and ``unlink`` never remove a regular file or a symlink pointing
somewhere else; those cases raise SymlinkConflict.
"""

import logging
import os
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Optional

from .errors import IoFailure, SymlinkConflict

logger = logging.getLogger(__name__)


class LinkState(Enum):
    MISSING = "missing"
    CORRECT_LINK = "linked"
    WRONG_LINK = "foreign link"
    REGULAR_FILE = "regular file"


@dataclass(frozen=True)
class LinkStatus:
    state: LinkState
    target: Optional[Path] = None

    def __str__(self) -> str:
        if self.target is not None:
            return f"{self.state.value} -> {self.target}"
        return self.state.value


def _same_path(a: Path, b: Path) -> bool:
    if os.path.normpath(a) == os.path.normpath(b):
        return True
    # Catch aliases such as a symlinked home directory
    return os.path.realpath(a) == os.path.realpath(b)


def status(path: Path, source: Path) -> LinkStatus:
    """Classify ``path`` relative to the expected link source ``source``."""
    path = Path(path)
    if path.is_symlink():
        target = Path(os.readlink(path))
        if not target.is_absolute():
            target = path.parent / target
        target = Path(os.path.normpath(target))
        if _same_path(target, source):
            return LinkStatus(LinkState.CORRECT_LINK, target)
        return LinkStatus(LinkState.WRONG_LINK, target)
    if path.exists():
        return LinkStatus(LinkState.REGULAR_FILE)
    return LinkStatus(LinkState.MISSING)


def replace_with_link(source: Path, target: Path) -> None:
    """Atomically make ``target`` a symlink to ``source``.

    Whatever is at ``target`` (if anything) is replaced in one rename, so
    callers must already have preserved its content. Directories cannot
    be replaced this way.
    """
    target = Path(target)
    temp_link = target.with_name(f".{target.name}.dotconf-link-{os.getpid()}")
    try:
        target.parent.mkdir(parents=True, exist_ok=True)
        if temp_link.is_symlink():
            temp_link.unlink()
        os.symlink(source, temp_link)
        os.replace(temp_link, target)
    except OSError as e:
        if temp_link.is_symlink():
            temp_link.unlink()
        raise IoFailure.from_os_error(target, e)


def link(source: Path, target: Path) -> bool:
    """Create a symlink at ``target`` pointing at ``source``.

    Returns:
        True if a link was created, False if it was already correct.

    Raises:
        SymlinkConflict: If ``target`` is a regular file or another link.
    """
    current = status(target, source)
    if current.state is LinkState.CORRECT_LINK:
        return False
    if current.state is not LinkState.MISSING:
        raise SymlinkConflict(target, str(current))

    replace_with_link(source, target)
    logger.debug(f"Linked {target} -> {source}")
    return True


def unlink(source: Path, target: Path) -> None:
    """Remove the symlink at ``target`` if it points at ``source``.

    Raises:
        SymlinkConflict: For anything other than the expected link.
    """
    current = status(target, source)
    if current.state is not LinkState.CORRECT_LINK:
        raise SymlinkConflict(target, str(current))
    try:
        Path(target).unlink()
    except OSError as e:
        raise IoFailure.from_os_error(target, e)
    logger.debug(f"Unlinked {target}")
