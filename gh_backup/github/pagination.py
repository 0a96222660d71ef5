"""Lazily lists every repository of an organisation, one page at a time."""

import asyncio
from typing import AsyncIterator, Awaitable, Callable

import structlog

from gh_backup.github.abc import RepositoryListingBase
from gh_backup.github.exceptions import ListingRetriesExhaustedError, RateLimitedError, TransientApiError
from gh_backup.schemas.repository import OrganisationHandle, RepositoryDescriptor, RepositoryPage
from gh_backup.utils.constants import DEFAULT_PAGE_ATTEMPTS, DEFAULT_PAGE_SIZE, DEFAULT_RATE_LIMIT_WAIT
from gh_backup.utils.retry import BackoffPolicy

logger = structlog.get_logger(__name__)

SleepFunction = Callable[[float], Awaitable[None]]

DEFAULT_LISTING_BACKOFF = BackoffPolicy(max_attempts=DEFAULT_PAGE_ATTEMPTS, initial_delay=1.0, max_delay=30.0)


class RepositoryLister:
    """Single-use async iterator over an organisation's repositories.

    Pages are requested in order starting at 1. Iteration ends on a page shorter
    than ``page_size`` or when the response says there is no next page.

    Rate-limit responses suspend iteration for as long as GitHub asks and then
    retry the same page; they never use up the retry budget. Transient failures
    are retried with exponential backoff up to ``backoff.max_attempts`` per page.
    Anything else (bad credential, unknown organisation) propagates immediately.

    Example:
        lister = RepositoryLister(organisation, adapter)
        async for repository in lister:
            ...
    """

    def __init__(
        self,
        organisation: OrganisationHandle,
        source: RepositoryListingBase,
        page_size: int = DEFAULT_PAGE_SIZE,
        backoff: BackoffPolicy = DEFAULT_LISTING_BACKOFF,
        rate_limit_fallback_wait: float = DEFAULT_RATE_LIMIT_WAIT,
        sleep: SleepFunction = asyncio.sleep,
    ) -> None:
        """Initialize the lister. Nothing is requested until iteration starts."""
        if page_size < 1:
            raise ValueError("page_size must be at least 1")
        self.organisation = organisation
        self._source = source
        self._page_size = page_size
        self._backoff = backoff
        self._rate_limit_fallback_wait = rate_limit_fallback_wait
        self._sleep = sleep
        self._started = False
        self.pages_fetched = 0
        self.repositories_listed = 0

    def __aiter__(self) -> AsyncIterator[RepositoryDescriptor]:
        """Start the listing. A lister can only be iterated once."""
        if self._started:
            raise RuntimeError("RepositoryLister has already been iterated; create a new lister to list again.")
        self._started = True
        return self._iterate()

    async def _iterate(self) -> AsyncIterator[RepositoryDescriptor]:
        page_number = 1
        logger.info("Listing repositories for organisation", org=self.organisation.name, per_page=self._page_size)
        while True:
            page = await self._fetch_page(page_number)
            for descriptor in page.items:
                self.repositories_listed += 1
                yield descriptor

            if len(page.items) < self._page_size or page.has_next is False:
                break
            page_number += 1

        logger.info(
            "Listed all repositories for organisation",
            org=self.organisation.name,
            pages=self.pages_fetched,
            total_repos=self.repositories_listed,
        )

    async def _fetch_page(self, page_number: int) -> RepositoryPage:
        """Fetch a single page, waiting out rate limits and retrying transient failures."""
        attempt = 0
        while True:
            try:
                page = await self._source.fetch_repository_page(self.organisation.name, page_number, self._page_size)
            except RateLimitedError as exc:
                wait_time = exc.retry_after if exc.retry_after is not None else self._rate_limit_fallback_wait
                logger.warning(
                    f"GitHub rate limit exceeded, waiting {wait_time} seconds",
                    org=self.organisation.name,
                    page=page_number,
                    wait_time=wait_time,
                )
                await self._sleep(wait_time)
                continue
            except TransientApiError as exc:
                attempt += 1
                if not self._backoff.allows_retry_after(attempt):
                    logger.error(
                        "Max retries reached while listing repositories",
                        org=self.organisation.name,
                        page=page_number,
                        attempt=attempt,
                        error=str(exc),
                    )
                    raise ListingRetriesExhaustedError(page_number, attempt, exc) from exc
                delay = self._backoff.delay_for(attempt)
                logger.warning(
                    f"Listing request failed, retrying in {delay:.1f} seconds",
                    org=self.organisation.name,
                    page=page_number,
                    attempt=attempt,
                    max_attempts=self._backoff.max_attempts,
                    error=str(exc),
                )
                await self._sleep(delay)
                continue

            self.pages_fetched += 1
            return page
