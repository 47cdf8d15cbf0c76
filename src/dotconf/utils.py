"""Shared utilities: logging setup, version lookup, atomic file writes."""

import importlib.metadata
import logging
import os
import sys
from pathlib import Path
from typing import Optional

from .errors import IoFailure


def setup_logging(verbose: bool = False) -> None:
    """Configure root logging on stdout.

    Only warnings are shown unless ``verbose``, which enables DEBUG.
    """
    level = logging.DEBUG if verbose else logging.WARNING
    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        handlers=[logging.StreamHandler(sys.stdout)],
    )
    logging.getLogger().setLevel(level)


def get_version() -> str:
    """Installed package version, or '(development)' from a checkout."""
    try:
        return importlib.metadata.version("dotconf")
    except importlib.metadata.PackageNotFoundError:
        return "(development)"


def atomic_write(path: Path, data: bytes, mode: Optional[int] = None) -> None:
    """Write ``data`` to ``path`` so readers never see a partial file.

    The data goes to a temp file in the same directory which is then
    renamed over ``path``. If ``path`` is a symlink, the link itself is
    replaced, not its target.

    Raises:
        IoFailure: If the write or rename fails; the temp file is removed.
    """
    path = Path(path)
    temp_path = path.with_name(f".{path.name}.tmp-{os.getpid()}")
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(temp_path, "wb") as f:
            f.write(data)
            f.flush()
            os.fsync(f.fileno())
        if mode is not None:
            temp_path.chmod(mode)
        os.replace(temp_path, path)
    except OSError as e:
        if temp_path.exists():
            temp_path.unlink()
        raise IoFailure.from_os_error(path, e)
