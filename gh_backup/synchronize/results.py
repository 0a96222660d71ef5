"""Contains the run aggregator and the summary it produces."""

import asyncio
import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import structlog

from gh_backup.synchronize.models import OutcomeKind, SyncOutcome
from gh_backup.utils.constants import EXIT_PARTIAL_FAILURE, EXIT_SUCCESS

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class FailedRepository:
    """A repository that ended in the failed state."""

    name: str
    error: str
    attempts: int


@dataclass
class RunSummary:
    """Contains the results of one backup run."""

    counts: dict[OutcomeKind, int]
    failures: list[FailedRepository] = field(default_factory=list)
    dry_run: bool = False
    exit_code: int = EXIT_SUCCESS

    @property
    def cloned(self) -> int:
        """Number of repositories cloned."""
        return self.counts.get(OutcomeKind.CLONED, 0)

    @property
    def fetched(self) -> int:
        """Number of repositories fetched."""
        return self.counts.get(OutcomeKind.FETCHED, 0)

    @property
    def failed(self) -> int:
        """Number of repositories that failed."""
        return self.counts.get(OutcomeKind.FAILED, 0)

    @property
    def total(self) -> int:
        """Number of repositories processed."""
        return sum(self.counts.values())

    def to_dict(self) -> dict[str, Any]:
        """Return the summary as JSON-serializable data."""
        return {
            "dry_run": self.dry_run,
            "exit_code": self.exit_code,
            "total": self.total,
            "cloned": self.cloned,
            "fetched": self.fetched,
            "failed": self.failed,
            "failures": [
                {"repository": failure.name, "error": failure.error, "attempts": failure.attempts} for failure in self.failures
            ],
        }

    def write(self, path: Path) -> None:
        """Write the summary to ``path`` as JSON."""
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(json.dumps(self.to_dict(), indent=2) + "\n", encoding="utf-8")
        logger.info("Wrote run report", path=str(path))


class RunAggregator:
    """Collects outcomes from concurrent workers and decides the run's exit status.

    ``record`` may be called from any number of tasks; every update happens under
    a single ``asyncio.Lock``. Counts do not depend on arrival order, while
    failures are kept in the order they were recorded.
    """

    def __init__(self, dry_run: bool = False) -> None:
        """Initialize an empty aggregator."""
        self.dry_run = dry_run
        self._lock = asyncio.Lock()
        self._counts: dict[OutcomeKind, int] = {kind: 0 for kind in OutcomeKind}
        self._failures: list[FailedRepository] = []
        self._seen: set[str] = set()
        self._summary: RunSummary | None = None

    async def record(self, outcome: SyncOutcome) -> None:
        """Add one repository outcome to the run."""
        async with self._lock:
            if self._summary is not None:
                raise RuntimeError("Cannot record outcomes after the run has been finalized")
            if outcome.repository in self._seen:
                raise ValueError(f"Outcome for repository {outcome.repository} was already recorded")
            self._seen.add(outcome.repository)
            self._counts[outcome.kind] += 1
            if outcome.kind is OutcomeKind.FAILED:
                error = str(outcome.error) if outcome.error is not None else "unknown error"
                self._failures.append(FailedRepository(name=outcome.repository, error=error, attempts=outcome.attempts))

    def decide_exit_code(self) -> int:
        """Return 0 when every repository succeeded and 1 when any failed."""
        return EXIT_PARTIAL_FAILURE if self._counts[OutcomeKind.FAILED] else EXIT_SUCCESS

    async def finalize(self) -> RunSummary:
        """Freeze the aggregator and return the run summary."""
        async with self._lock:
            if self._summary is None:
                self._summary = RunSummary(
                    counts=dict(self._counts),
                    failures=list(self._failures),
                    dry_run=self.dry_run,
                    exit_code=self.decide_exit_code(),
                )
                logger.info(
                    "Finalized backup run",
                    cloned=self._summary.cloned,
                    fetched=self._summary.fetched,
                    failed=self._summary.failed,
                    exit_code=self._summary.exit_code,
                )
            return self._summary
