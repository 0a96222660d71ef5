"""Base ABC for GitHub repository listing sources."""

from abc import ABC, abstractmethod

from gh_backup.schemas.repository import RepositoryPage


class RepositoryListingBase(ABC):
    """Base ABC for anything that can list an organisation's repositories page by page."""

    @abstractmethod
    async def get_authenticated_login(self) -> str:
        """Return the login the credential belongs to.

        Raises:
            AuthenticationError: If the credential is rejected.
        """
        pass

    @abstractmethod
    async def fetch_repository_page(self, organisation: str, page: int, per_page: int) -> RepositoryPage:
        """Fetch one page (1-based) of an organisation's repositories.

        Raises:
            RateLimitedError: If GitHub asked the client to wait.
            TransientApiError: If the request failed in a way that may succeed on retry.
            RunFatalError: If the request can never succeed (bad credential, unknown organisation).
        """
        pass
