"""Reconcile backup configuration from the command line and the environment."""

from pathlib import Path
from typing import TypeVar

import structlog

from gh_backup.configuration.env import settings
from gh_backup.configuration.exceptions import InvalidConfigurationError, RequiredConfigurationElementError
from gh_backup.configuration.models import BackupConfig
from gh_backup.synchronize.models import CorruptedCopyPolicy
from gh_backup.utils.constants import (
    DEFAULT_CONCURRENCY,
    DEFAULT_GIT_TIMEOUT,
    DEFAULT_GITHUB_API_URL,
    DEFAULT_SYNC_ATTEMPTS,
)

logger = structlog.get_logger(__name__)

T = TypeVar("T")


def first_defined(*values: T | None) -> T | None:
    """Return the first value that is not None (or empty, for strings)."""
    for value in values:
        if value is None or value == "":
            continue
        return value
    return None


async def reconcile_backup_configuration(
    cli_organisation: str | None,
    cli_token: str | None = None,
    cli_github_api_url: str | None = None,
    cli_backup_root: Path | None = None,
    cli_concurrency: int | None = None,
    cli_max_attempts: int | None = None,
    cli_git_timeout: float | None = None,
    cli_dry_run: bool = False,
    cli_skip_archived: bool = False,
    cli_reclone_corrupted: bool = False,
    cli_report_file: Path | None = None,
    cli_debug: bool = False,
) -> BackupConfig:
    """Merge command line values over environment settings and defaults.

    The token is taken from the command line, then ``GH_TOKEN``, then ``GITHUB_TOKEN``.
    The backup root defaults to ``./<organisation>_backup``.

    Raises:
        RequiredConfigurationElementError: If the organisation or the token is missing.
        InvalidConfigurationError: If a numeric setting is out of range.
    """
    organisation = (cli_organisation or "").strip().strip("/")
    if not organisation:
        raise RequiredConfigurationElementError(name="organisation", cli_name="ORGANISATION")
    if "/" in organisation:
        raise InvalidConfigurationError(f"Organisation must be a single name, got {organisation!r}")

    token = first_defined(cli_token, settings.GH_TOKEN, settings.GITHUB_TOKEN)
    if token is None:
        raise RequiredConfigurationElementError(name="GitHub token", cli_name="--token", env_name="GH_TOKEN or GITHUB_TOKEN")

    github_api_url = first_defined(cli_github_api_url, settings.GITHUB_API_URL) or DEFAULT_GITHUB_API_URL
    backup_root = first_defined(cli_backup_root, settings.BACKUP_ROOT) or Path(f"{organisation}_backup")
    concurrency = first_defined(cli_concurrency, settings.BACKUP_CONCURRENCY)
    if concurrency is None:
        concurrency = DEFAULT_CONCURRENCY
    max_attempts = cli_max_attempts if cli_max_attempts is not None else DEFAULT_SYNC_ATTEMPTS
    git_timeout = cli_git_timeout if cli_git_timeout is not None else DEFAULT_GIT_TIMEOUT

    if concurrency < 1:
        raise InvalidConfigurationError(f"Concurrency must be at least 1, got {concurrency}")
    if max_attempts < 1:
        raise InvalidConfigurationError(f"Max attempts must be at least 1, got {max_attempts}")
    if git_timeout <= 0:
        raise InvalidConfigurationError(f"Git timeout must be positive, got {git_timeout}")

    config = BackupConfig(
        organisation=organisation,
        token=token,
        github_api_url=github_api_url.rstrip("/"),
        backup_root=backup_root,
        concurrency=concurrency,
        max_attempts=max_attempts,
        git_timeout=git_timeout,
        dry_run=cli_dry_run,
        skip_archived=cli_skip_archived,
        corrupted_copy_policy=CorruptedCopyPolicy.RECLONE if cli_reclone_corrupted else CorruptedCopyPolicy.FAIL,
        report_file=cli_report_file,
        debug=cli_debug or settings.DEBUG,
    )
    logger.debug("Reconciled backup configuration", config=repr(config))
    return config
