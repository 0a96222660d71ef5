"""Models for configuration between CLI arguments and environment variables."""

from dataclasses import dataclass
from pathlib import Path

from gh_backup.synchronize.models import CorruptedCopyPolicy
from gh_backup.utils.constants import (
    DEFAULT_CONCURRENCY,
    DEFAULT_GIT_TIMEOUT,
    DEFAULT_GITHUB_API_URL,
    DEFAULT_PAGE_SIZE,
    DEFAULT_SYNC_ATTEMPTS,
)


@dataclass(frozen=True)
class BackupConfig:
    """Resolved configuration for one backup run."""

    organisation: str
    token: str
    backup_root: Path
    github_api_url: str = DEFAULT_GITHUB_API_URL
    concurrency: int = DEFAULT_CONCURRENCY
    max_attempts: int = DEFAULT_SYNC_ATTEMPTS
    page_size: int = DEFAULT_PAGE_SIZE
    git_timeout: float = DEFAULT_GIT_TIMEOUT
    dry_run: bool = False
    skip_archived: bool = False
    corrupted_copy_policy: CorruptedCopyPolicy = CorruptedCopyPolicy.FAIL
    report_file: Path | None = None
    debug: bool = False

    def __repr__(self) -> str:
        """Represent the configuration without the token."""
        return (
            f"BackupConfig(organisation={self.organisation!r}, backup_root={self.backup_root!r}, "
            f"github_api_url={self.github_api_url!r}, concurrency={self.concurrency}, dry_run={self.dry_run})"
        )
