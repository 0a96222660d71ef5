"""Orchestrates the backup of every repository of an organisation."""

import time
from typing import AsyncIterator

import structlog

from gh_backup.configuration.models import BackupConfig
from gh_backup.git.runner import GitRunner
from gh_backup.github.abc import RepositoryListingBase
from gh_backup.github.adapter import GitHubKitAdapter
from gh_backup.github.pagination import RepositoryLister
from gh_backup.schemas.repository import OrganisationHandle, RepositoryDescriptor
from gh_backup.synchronize.results import RunAggregator, RunSummary
from gh_backup.synchronize.scheduler import ConcurrencyScheduler
from gh_backup.synchronize.state_machine import GitOperations, RepositorySynchronizer
from gh_backup.utils.retry import BackoffPolicy

logger: structlog.stdlib.BoundLogger = structlog.get_logger(__name__)


async def skip_archived_repositories(descriptors: AsyncIterator[RepositoryDescriptor]) -> AsyncIterator[RepositoryDescriptor]:
    """Yield only repositories that are neither archived nor disabled."""
    async for descriptor in descriptors:
        if descriptor.archived or descriptor.disabled:
            logger.info("Skipping archived or disabled repository", repository=descriptor.label)
            continue
        yield descriptor


async def run_backup_workflow(
    config: BackupConfig,
    listing: RepositoryListingBase | None = None,
    git: GitOperations | None = None,
) -> RunSummary:
    """Run the backup workflow: list the organisation's repositories and clone or fetch each one.

    Run-fatal errors (rejected credential, unknown organisation, listing retries
    exhausted) propagate to the caller. Per-repository failures are collected in
    the returned summary.
    """
    organisation = OrganisationHandle(name=config.organisation, token=config.token)

    if listing is None:
        listing = await GitHubKitAdapter.create(token=config.token, github_api_url=config.github_api_url)
    if git is None:
        runner = GitRunner(timeout=config.git_timeout)
        if not config.dry_run:
            runner.ensure_available()
        git = runner

    login = await listing.get_authenticated_login()
    logger.info("Authenticated to GitHub", login=login, org=organisation.name)

    if config.dry_run:
        logger.info("Dry run enabled, no repository will be cloned or fetched", backup_root=str(config.backup_root))
    else:
        config.backup_root.mkdir(parents=True, exist_ok=True)

    lister = RepositoryLister(organisation, listing, page_size=config.page_size)
    descriptors: AsyncIterator[RepositoryDescriptor] = aiter(lister)
    if config.skip_archived:
        descriptors = skip_archived_repositories(descriptors)

    synchronizer = RepositorySynchronizer(
        backup_root=config.backup_root,
        git=git,
        credential=organisation.token.get_secret_value(),
        backoff=BackoffPolicy(max_attempts=config.max_attempts),
        corrupted_copy_policy=config.corrupted_copy_policy,
        dry_run=config.dry_run,
    )
    aggregator = RunAggregator(dry_run=config.dry_run)
    scheduler = ConcurrencyScheduler(synchronizer.sync, aggregator, concurrency=config.concurrency)

    start_time = time.time()
    logger.info("Backing up repositories", org=organisation.name, concurrency=config.concurrency, start_time=start_time)
    await scheduler.run(descriptors)
    summary = await aggregator.finalize()
    end_time = time.time()
    logger.info(
        "Backed up repositories",
        org=organisation.name,
        start_time=start_time,
        end_time=end_time,
        duration=round(end_time - start_time, 2),
        pages=lister.pages_fetched,
        repositories=scheduler.dispatched,
        peak_active=scheduler.peak_active,
    )

    if config.report_file is not None:
        summary.write(config.report_file)
    return summary


async def list_organisation_repositories(config: BackupConfig, listing: RepositoryListingBase | None = None) -> list[RepositoryDescriptor]:
    """Return every repository of the organisation, in listing order."""
    organisation = OrganisationHandle(name=config.organisation, token=config.token)
    if listing is None:
        listing = await GitHubKitAdapter.create(token=config.token, github_api_url=config.github_api_url)
    await listing.get_authenticated_login()
    return [descriptor async for descriptor in RepositoryLister(organisation, listing, page_size=config.page_size)]
