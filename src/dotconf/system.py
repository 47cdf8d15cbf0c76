import os
from pathlib import Path
from typing import Mapping, Optional


class Environment:
    """Snapshot of the process environment used for path expansion."""

    def __init__(
        self,
        variables: Optional[Mapping[str, str]] = None,
        home: Optional[Path] = None,
    ):
        self.variables = dict(os.environ if variables is None else variables)
        self.home = Path(home) if home else self._detect_home()

    def _detect_home(self) -> Path:
        home = self.variables.get("HOME")
        if home:
            return Path(home)
        return Path.home()

    def __repr__(self) -> str:
        return f"Environment(home={self.home})"
