"""Models describing the state and outcome of a repository synchronization."""

from dataclasses import dataclass
from enum import Enum


class SyncState(Enum):
    """Enum for the states of the per-repository state machine."""

    START = "start"
    CHECK_LOCAL = "check_local"
    CLONE = "clone"
    FETCH = "fetch"
    RETRY = "retry"
    SUCCESS = "success"
    FAILED = "failed"


TERMINAL_STATES = frozenset({SyncState.SUCCESS, SyncState.FAILED})


class OutcomeKind(str, Enum):
    """Enum for the terminal result of synchronizing one repository."""

    CLONED = "cloned"
    FETCHED = "fetched"
    FAILED = "failed"


class CorruptedCopyPolicy(str, Enum):
    """Enum for what to do with a backup directory that is not a valid git repository."""

    FAIL = "fail"
    RECLONE = "reclone"


@dataclass(frozen=True)
class SyncOutcome:
    """The single result produced for one repository.

    Args:
        repository: Name of the repository
        kind: Whether the repository was cloned, fetched, or failed
        attempts: Number of clone or fetch attempts made
        error: The terminal error, for failed outcomes only
        dry_run: The outcome was planned, not executed
    """

    repository: str
    kind: OutcomeKind
    attempts: int
    error: Exception | None = None
    dry_run: bool = False

    @property
    def succeeded(self) -> bool:
        """Whether the repository was cloned or fetched."""
        return self.kind is not OutcomeKind.FAILED
