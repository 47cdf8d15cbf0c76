"""Per-entry sync outcomes and the aggregated pass report."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import TYPE_CHECKING, Dict, List, Optional

from .errors import DotconfError, SymlinkConflict
from .registry import TrackedEntry

if TYPE_CHECKING:
    from .engine import SyncDirection


class EntryState(Enum):
    UNRESOLVED = "unresolved"
    CONVERGED = "converged"
    CONFLICTED = "conflicted"
    FAILED = "failed"


class Action(Enum):
    """Physical change made (or planned, in a dry run) for an entry."""

    NONE = "unchanged"
    LINKED = "linked"
    MOVED = "moved and linked"
    ENCRYPTED = "encrypted and linked"
    DECRYPTED = "decrypted"
    DETACHED = "detached"


def classify(error: DotconfError) -> EntryState:
    """Conflicts need the user to pick a side; everything else failed."""
    if isinstance(error, SymlinkConflict):
        return EntryState.CONFLICTED
    return EntryState.FAILED


@dataclass
class Outcome:
    entry: TrackedEntry
    state: EntryState = EntryState.UNRESOLVED
    action: Action = Action.NONE
    error: Optional[DotconfError] = None
    backup: Optional[Path] = None

    def converge(self, action: Action = Action.NONE) -> Outcome:
        self.state = EntryState.CONVERGED
        self.action = action
        return self

    def fail(self, error: DotconfError) -> Outcome:
        self.state = classify(error)
        self.error = error
        return self

    @property
    def reason(self) -> str:
        if self.error is not None:
            return str(self.error)
        return self.action.value


@dataclass
class SyncReport:
    """Aggregated result of one sync pass, in register order."""

    direction: SyncDirection
    outcomes: List[Outcome] = field(default_factory=list)
    dry_run: bool = False

    def _with_state(self, state: EntryState) -> List[Outcome]:
        return [o for o in self.outcomes if o.state is state]

    @property
    def converged(self) -> List[Outcome]:
        return self._with_state(EntryState.CONVERGED)

    @property
    def conflicted(self) -> List[Outcome]:
        return self._with_state(EntryState.CONFLICTED)

    @property
    def failed(self) -> List[Outcome]:
        return self._with_state(EntryState.FAILED)

    @property
    def problems(self) -> List[Outcome]:
        """Every entry that did not converge."""
        return [
            o for o in self.outcomes if o.state is not EntryState.CONVERGED
        ]

    @property
    def changed(self) -> List[Outcome]:
        return [o for o in self.outcomes if o.action is not Action.NONE]

    @property
    def ok(self) -> bool:
        return not self.problems

    def counts(self) -> Dict[str, int]:
        return {
            state.value: len(self._with_state(state))
            for state in EntryState
            if state is not EntryState.UNRESOLVED
        }

    def summary(self) -> str:
        counts = self.counts()
        return (
            f"{counts['converged']} converged, "
            f"{counts['conflicted']} conflicted, "
            f"{counts['failed']} failed"
        )
