"""GitHub listing adapter for the githubkit library."""

from typing import Any, Self

import structlog
from githubkit import Response
from githubkit.exception import (
    GitHubException,
    PrimaryRateLimitExceeded,
    RequestError,
    RequestFailed,
    RequestTimeout,
    SecondaryRateLimitExceeded,
)

from gh_backup.github.abc import RepositoryListingBase
from gh_backup.github.client import GitHubClient, get_github_client
from gh_backup.github.exceptions import (
    AuthenticationError,
    GitHubApiError,
    OrganisationNotFoundError,
    RateLimitedError,
    RunFatalError,
    TransientApiError,
)
from gh_backup.schemas.repository import RepositoryDescriptor, RepositoryPage
from gh_backup.utils.constants import DEFAULT_GITHUB_API_URL
from gh_backup.utils.retry import rate_limit_wait_from_headers

logger = structlog.get_logger(__name__)


def extract_has_next_page(link_header: str | None) -> bool | None:
    """Read the ``Link`` response header and report whether a next page exists.

    Returns None when the header is absent, so callers can fall back to page-size checks.
    """
    if not link_header:
        return None
    parts = [part.strip() for part in link_header.split(",")]
    return any('rel="next"' in part for part in parts)


def translate_github_exception(exc: GitHubException, organisation: str | None = None) -> GitHubApiError:
    """Map a githubkit exception onto the listing error taxonomy.

    Args:
        exc: The exception raised by githubkit
        organisation: Organisation the request was about, used to report a 404

    Returns:
        The domain exception to raise in its place
    """
    if isinstance(exc, (PrimaryRateLimitExceeded, SecondaryRateLimitExceeded)):
        retry_after = exc.retry_after.total_seconds() if getattr(exc, "retry_after", None) else None
        rate_limit_type = type(exc).__name__
        return RateLimitedError(f"GitHub rate limit exceeded ({rate_limit_type})", retry_after=retry_after)

    if isinstance(exc, RequestFailed):
        status_code = exc.response.status_code
        headers = exc.response.headers
        if status_code in (403, 429):
            wait_time = rate_limit_wait_from_headers(headers)
            is_rate_limit = (
                status_code == 429
                or wait_time is not None
                or headers.get("x-ratelimit-remaining") == "0"
                or "rate limit" in str(exc).lower()
            )
            if is_rate_limit:
                return RateLimitedError(f"GitHub rate limit hit (status {status_code})", retry_after=wait_time)
        if status_code in (401, 403):
            return AuthenticationError(f"GitHub rejected the credential (status {status_code})")
        if status_code == 404 and organisation is not None:
            return OrganisationNotFoundError(organisation)
        if status_code >= 500:
            return TransientApiError(f"GitHub server error (status {status_code})")
        return RunFatalError(f"GitHub API request failed with status {status_code}")

    if isinstance(exc, (RequestError, RequestTimeout)):
        return TransientApiError(f"GitHub API request did not complete: {type(exc).__name__}: {exc}")

    return RunFatalError(f"Unexpected GitHub client error: {type(exc).__name__}: {exc}")


class GitHubKitAdapter(RepositoryListingBase):
    """Lists organisation repositories through githubkit."""

    def __init__(self, client: GitHubClient) -> None:
        """Initialize the adapter with an already-initialized client."""
        self.client = client

    @classmethod
    async def create(cls, token: str, github_api_url: str = DEFAULT_GITHUB_API_URL) -> Self:
        """Create a new adapter for the given token and GitHub instance."""
        logger.info("Creating client for GitHub instance", github_api_url=github_api_url)
        client = await get_github_client(token=token, github_api_url=github_api_url)
        return cls(client)

    async def get_authenticated_login(self) -> str:
        """Return the login of the user the token belongs to."""
        try:
            response = await self.client.rest.users.async_get_authenticated()
        except GitHubException as exc:
            raise translate_github_exception(exc) from exc
        login: str = response.parsed_data.login
        return login

    async def fetch_repository_page(self, organisation: str, page: int, per_page: int) -> RepositoryPage:
        """Fetch one page of the organisation's repositories, of every type."""
        logger.debug("Fetching organisation repositories page", org=organisation, page=page, per_page=per_page)
        try:
            response: Response[Any] = await self.client.rest.repos.async_list_for_org(
                org=organisation,
                type="all",
                per_page=per_page,
                page=page,
            )
        except GitHubException as exc:
            raise translate_github_exception(exc, organisation=organisation) from exc

        items = [RepositoryDescriptor.model_validate(item) for item in response.json()]
        return RepositoryPage(items=items, has_next=extract_has_next_page(response.headers.get("link")))
