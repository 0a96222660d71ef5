"""Per-repository state machine that decides between clone and fetch and retries failures."""

import asyncio
import shutil
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Protocol

import structlog

from gh_backup.git.exceptions import CorruptedCopyError, ErrorCategory, GitOperationError
from gh_backup.github.pagination import SleepFunction
from gh_backup.schemas.repository import RepositoryDescriptor
from gh_backup.synchronize.models import (
    TERMINAL_STATES,
    CorruptedCopyPolicy,
    OutcomeKind,
    SyncOutcome,
    SyncState,
)
from gh_backup.utils.constants import CORRUPT_SUFFIX, STAGING_PREFIX, STAGING_SUFFIX
from gh_backup.utils.retry import BackoffPolicy

logger = structlog.get_logger(__name__)


class GitOperations(Protocol):
    """The git operations the state machine depends on."""

    async def clone(self, clone_url: str, destination: Path, credential: str | None) -> None:
        """Clone ``clone_url`` into the not-yet-existing ``destination``."""
        ...

    async def fetch(self, repository_path: Path, credential: str | None) -> None:
        """Update the existing repository at ``repository_path``."""
        ...

    async def is_valid_repository(self, path: Path) -> bool:
        """Return whether ``path`` is a usable git repository."""
        ...


@dataclass
class _SyncRun:
    """Mutable bookkeeping for one pass of the state machine."""

    descriptor: RepositoryDescriptor
    state: SyncState = SyncState.START
    operation: SyncState | None = None
    attempts: int = 0
    last_error: Exception | None = None


class RepositorySynchronizer:
    """Brings one repository's backup directory up to date.

    Every call to ``sync`` walks ``START -> CHECK_LOCAL -> CLONE | FETCH`` and ends in
    ``SUCCESS`` or ``FAILED``, passing through ``RETRY`` after transient failures.
    Exactly one ``SyncOutcome`` is returned; no exception escapes except cancellation.

    Clones are written to a hidden staging directory and renamed into place only
    once complete, so an existing ``<backup_root>/<name>`` always holds a finished clone.
    """

    def __init__(
        self,
        backup_root: Path,
        git: GitOperations,
        credential: str | None,
        backoff: BackoffPolicy | None = None,
        corrupted_copy_policy: CorruptedCopyPolicy = CorruptedCopyPolicy.FAIL,
        dry_run: bool = False,
        sleep: SleepFunction = asyncio.sleep,
    ) -> None:
        """Initialize the synchronizer for a backup root."""
        self.backup_root = backup_root
        self.git = git
        self._credential = credential
        self.backoff = backoff or BackoffPolicy()
        self.corrupted_copy_policy = corrupted_copy_policy
        self.dry_run = dry_run
        self._sleep = sleep

    def local_path(self, name: str) -> Path:
        """Return the backup directory for a repository name."""
        if not name or name in (".", "..") or "/" in name or "\\" in name or "\x00" in name:
            raise ValueError(f"Repository name cannot be used as a directory name: {name!r}")
        return self.backup_root / name

    def staging_path(self, name: str) -> Path:
        """Return the directory a clone of ``name`` is written to before it is moved into place."""
        return self.backup_root / f"{STAGING_PREFIX}{name}{STAGING_SUFFIX}"

    async def sync(self, descriptor: RepositoryDescriptor) -> SyncOutcome:
        """Run the state machine for one repository and return its outcome."""
        run = _SyncRun(descriptor=descriptor)
        try:
            while run.state not in TERMINAL_STATES:
                run.state = await self._step(run)
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            logger.exception("Unexpected error while synchronizing repository", repository=descriptor.label)
            run.last_error = exc
            run.state = SyncState.FAILED
        return self._outcome(run)

    async def _step(self, run: _SyncRun) -> SyncState:
        """Execute the current state and return the next one."""
        if run.state is SyncState.START:
            return SyncState.CHECK_LOCAL
        if run.state is SyncState.CHECK_LOCAL:
            return await self._check_local(run)
        if run.state in (SyncState.CLONE, SyncState.FETCH):
            return await self._attempt(run)
        if run.state is SyncState.RETRY:
            return await self._retry(run)
        raise RuntimeError(f"No transition defined for state {run.state}")

    async def _check_local(self, run: _SyncRun) -> SyncState:
        path = self.local_path(run.descriptor.name)
        if not path.exists():
            logger.debug("No local copy found, cloning", repository=run.descriptor.label, path=str(path))
            run.operation = SyncState.CLONE
            return SyncState.CLONE

        # Validating the copy runs git, which a dry run never does.
        if self.dry_run or (path.is_dir() and await self.git.is_valid_repository(path)):
            logger.debug("Local copy found, fetching", repository=run.descriptor.label, path=str(path))
            run.operation = SyncState.FETCH
            return SyncState.FETCH

        if self.corrupted_copy_policy is CorruptedCopyPolicy.RECLONE:
            try:
                self._move_aside(run.descriptor, path)
            except GitOperationError as exc:
                logger.error("Could not move corrupted copy aside", repository=run.descriptor.label, error=str(exc))
                run.last_error = exc
                return SyncState.FAILED
            run.operation = SyncState.CLONE
            return SyncState.CLONE

        logger.error("Local copy is not a valid git repository", repository=run.descriptor.label, path=str(path))
        run.last_error = CorruptedCopyError(path)
        return SyncState.FAILED

    def _move_aside(self, descriptor: RepositoryDescriptor, path: Path) -> None:
        timestamp = datetime.now(timezone.utc).strftime("%Y%m%dT%H%M%SZ")
        destination = path.with_name(f"{path.name}{CORRUPT_SUFFIX}-{timestamp}")
        logger.warning(
            "Moving corrupted local copy aside before re-cloning",
            repository=descriptor.label,
            path=str(path),
            destination=str(destination),
        )
        try:
            path.rename(destination)
        except OSError as exc:
            raise GitOperationError(f"Could not move corrupted copy {path} aside: {exc}", ErrorCategory.DISK) from exc

    async def _attempt(self, run: _SyncRun) -> SyncState:
        """Run one clone or fetch attempt and classify the result."""
        descriptor = run.descriptor
        if self.dry_run:
            logger.info(f"Dry run: would {run.state.value} repository", repository=descriptor.label)
            return SyncState.SUCCESS

        run.attempts += 1
        try:
            if run.state is SyncState.CLONE:
                await self._clone(descriptor)
            else:
                await self.git.fetch(self.local_path(descriptor.name), self._credential)
        except GitOperationError as exc:
            run.last_error = exc
            if not exc.transient:
                logger.error(
                    f"Permanent {run.state.value} failure",
                    repository=descriptor.label,
                    attempt=run.attempts,
                    category=exc.category.value,
                    error=str(exc),
                )
                return SyncState.FAILED
            if not self.backoff.allows_retry_after(run.attempts):
                logger.error(
                    f"Max retries reached for {run.state.value}",
                    repository=descriptor.label,
                    attempt=run.attempts,
                    category=exc.category.value,
                    error=str(exc),
                )
                return SyncState.FAILED
            logger.warning(
                f"Transient {run.state.value} failure",
                repository=descriptor.label,
                attempt=run.attempts,
                max_attempts=self.backoff.max_attempts,
                category=exc.category.value,
                error=str(exc),
            )
            return SyncState.RETRY

        logger.info(f"Repository {run.state.value} succeeded", repository=descriptor.label, attempt=run.attempts)
        return SyncState.SUCCESS

    async def _retry(self, run: _SyncRun) -> SyncState:
        delay = self.backoff.delay_for(run.attempts)
        logger.info(f"Retrying in {delay:.1f} seconds", repository=run.descriptor.label, attempt=run.attempts, wait_time=delay)
        await self._sleep(delay)
        if run.operation is None:
            raise RuntimeError(f"No operation to retry for repository {run.descriptor.name}")
        return run.operation

    async def _clone(self, descriptor: RepositoryDescriptor) -> None:
        """Clone into the staging directory, then move the finished clone into place."""
        target = self.local_path(descriptor.name)
        staging = self.staging_path(descriptor.name)
        try:
            if staging.exists():
                logger.info("Removing leftover staging directory", repository=descriptor.label, path=str(staging))
                await asyncio.to_thread(shutil.rmtree, staging)
            self.backup_root.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise GitOperationError(f"Could not prepare staging directory {staging}: {exc}", ErrorCategory.DISK) from exc

        try:
            await self.git.clone(descriptor.clone_url, staging, self._credential)
            staging.rename(target)
        except asyncio.CancelledError:
            shutil.rmtree(staging, ignore_errors=True)
            raise
        except OSError as exc:
            await asyncio.to_thread(shutil.rmtree, staging, ignore_errors=True)
            raise GitOperationError(f"Could not move clone into place at {target}: {exc}", ErrorCategory.DISK) from exc
        except Exception:
            await asyncio.to_thread(shutil.rmtree, staging, ignore_errors=True)
            raise

    def _outcome(self, run: _SyncRun) -> SyncOutcome:
        name = run.descriptor.name
        if run.state is SyncState.SUCCESS:
            kind = OutcomeKind.CLONED if run.operation is SyncState.CLONE else OutcomeKind.FETCHED
            return SyncOutcome(repository=name, kind=kind, attempts=run.attempts, dry_run=self.dry_run)
        return SyncOutcome(repository=name, kind=OutcomeKind.FAILED, attempts=run.attempts, error=run.last_error, dry_run=self.dry_run)
