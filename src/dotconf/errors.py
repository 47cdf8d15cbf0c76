"""Error taxonomy for dotconf.

Every error names the offending path (when there is one) and the reason,
so the CLI can print it verbatim.
"""

from pathlib import Path
from typing import Optional, Union

PathLike = Union[str, Path]


class DotconfError(Exception):
    """Base class for all dotconf errors."""

    reason = "dotconf error"

    def __init__(
        self,
        path: Optional[PathLike] = None,
        detail: Optional[str] = None,
    ):
        self.path = Path(path) if path is not None else None
        self.detail = detail
        super().__init__(str(self))

    def __str__(self) -> str:
        message = self.reason
        if self.path is not None:
            message = f"{message}: '{self.path}'"
        if self.detail:
            message = f"{message} ({self.detail})"
        return message


class AlreadyTracked(DotconfError):
    reason = "File is already tracked"


class NotTracked(DotconfError):
    reason = "File is not tracked"


class PathOutsideHome(DotconfError):
    reason = "File does not live under the home directory"


class ReservedPath(PathOutsideHome):
    """The path lives inside the source-control directory itself."""

    reason = "File lives inside the source-control directory"


class UnresolvedVariable(DotconfError):
    reason = "Variable is not defined"

    def __init__(self, variable: str, raw: Optional[str] = None):
        self.variable = variable
        self.raw = raw
        super().__init__(
            None, f"${variable} in '{raw}'" if raw is not None else None
        )

    def __str__(self) -> str:
        message = f"{self.reason}: '${self.variable}'"
        if self.raw is not None:
            message = f"{message} (while expanding '{self.raw}')"
        return message


class SymlinkConflict(DotconfError):
    reason = "Refusing to overwrite existing file"


class DecryptionFailed(DotconfError):
    reason = "Could not decrypt file with the given key"


class EncryptionFailed(DotconfError):
    reason = "Could not encrypt file for the given key"


class KeyUnavailable(DotconfError):
    reason = "PGP key is not available"


class RegistryCorrupt(DotconfError):
    reason = "Registry file cannot be parsed"


class RegistryLocked(DotconfError):
    reason = "Registry is locked by another dotconf process"


class IoFailure(DotconfError):
    reason = "I/O error"

    @classmethod
    def from_os_error(cls, path: PathLike, err: OSError) -> "IoFailure":
        return cls(path, err.strerror or str(err))


class SourceMissing(IoFailure):
    """The authoritative side of an entry does not exist."""

    reason = "File not found"


class ConfigError(DotconfError):
    reason = "Unable to read config file"
