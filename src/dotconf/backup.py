"""Move conflicting files aside instead of refusing to sync them."""

import logging
import os
import random
from pathlib import Path

from .errors import IoFailure

logger = logging.getLogger(__name__)


def backup_path(path: Path) -> Path:
    """Return an unused ``<name>.bkp-<n>`` sibling of ``path``."""
    path = Path(path)
    while True:
        candidate = path.with_name(
            f"{path.name}.bkp-{random.getrandbits(32)}"
        )
        if not os.path.lexists(candidate):
            return candidate


def move_aside(path: Path) -> Path:
    """Rename ``path`` (file, directory or symlink) to a backup name.

    Returns:
        The backup path.
    """
    destination = backup_path(path)
    try:
        os.rename(path, destination)
    except OSError as e:
        raise IoFailure.from_os_error(path, e)
    logger.info(f"Backed up {path} to {destination}")
    return destination
