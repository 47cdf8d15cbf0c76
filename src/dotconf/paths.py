"""Path expansion and filesystem/source-control path pairing."""

import os
import re
from pathlib import Path
from typing import Iterable, Mapping, Optional, Tuple

from .errors import (
    IoFailure,
    PathOutsideHome,
    ReservedPath,
    UnresolvedVariable,
)

# $VAR, ${VAR} and ${VAR:-default}
_VARIABLE_RE = re.compile(
    r"\$(?:\{(?P<braced>[A-Za-z_][A-Za-z0-9_]*)(?::-(?P<default>[^}]*))?\}"
    r"|(?P<bare>[A-Za-z_][A-Za-z0-9_]*))"
)


def expand_variables(raw: str, env: Mapping[str, str]) -> str:
    """Substitute environment variables in ``raw`` using ``env``.

    Raises:
        UnresolvedVariable: If a referenced variable is unset and has no
            default.
    """

    def _substitute(match: "re.Match[str]") -> str:
        name = match.group("braced") or match.group("bare")
        default = match.group("default")
        value = env.get(name)
        if default is not None and not value:
            return default
        if value is None:
            raise UnresolvedVariable(name, raw)
        return value

    return _VARIABLE_RE.sub(_substitute, raw)


def expand_user(raw: str, home: Path) -> str:
    """Expand a leading ``~`` to ``home``. ``~user`` is left untouched."""
    if raw == "~":
        return str(home)
    if raw.startswith("~/"):
        return str(home / raw[2:])
    return raw


def expand(
    raw_path: str,
    env: Mapping[str, str],
    home: Path,
    cwd: Optional[Path] = None,
) -> Path:
    """Expand a user-supplied path into a normalized absolute path.

    Variables are substituted first, then a leading ``~``. Relative
    results are anchored at ``cwd``. Symlinks are not resolved, so a
    tracked file that is already a symlink into the source-control
    directory keeps its own filesystem path.

    Args:
        raw_path: Path as typed by the user or read from config.
        env: Environment mapping used for ``$VAR`` lookups.
        home: Home directory used for ``~``.
        cwd: Base for relative paths (defaults to the process cwd).

    Returns:
        Absolute, normalized path.
    """
    raw = str(raw_path).strip()
    if not raw:
        raise IoFailure(None, "empty path")

    expanded = expand_user(expand_variables(raw, env), home)
    path = Path(expanded)
    if not path.is_absolute():
        path = (cwd or Path.cwd()) / path
    return Path(os.path.normpath(path))


def _is_within(path: Path, parent: Path) -> bool:
    return path == parent or parent in path.parents


def pair(
    absolute_path: Path,
    source_control_root: Path,
    home: Path,
    reserved: Iterable[Path] = (),
) -> Tuple[Path, Path]:
    """Compute the (filesystem path, source-control path) pair for a file.

    The source-control path is the filesystem path with the home prefix
    stripped and re-rooted under ``source_control_root``.

    Raises:
        PathOutsideHome: If the path is not strictly below ``home``.
        ReservedPath: If the path lives inside the source-control root, or
            its source-control counterpart would land on a reserved path
            (the registry files).
    """
    filesystem_path = Path(os.path.normpath(absolute_path))
    root = Path(os.path.normpath(source_control_root))
    home = Path(os.path.normpath(home))

    if _is_within(filesystem_path, root):
        raise ReservedPath(filesystem_path)

    try:
        relative = filesystem_path.relative_to(home)
    except ValueError:
        raise PathOutsideHome(filesystem_path) from None
    if relative == Path("."):
        raise PathOutsideHome(filesystem_path, "the home directory itself")

    source_control_path = root / relative
    for reserved_path in reserved:
        if _is_within(source_control_path, Path(reserved_path)):
            raise ReservedPath(
                filesystem_path, f"collides with {reserved_path}"
            )

    return filesystem_path, source_control_path
