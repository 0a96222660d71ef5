"""Contains exceptions raised while talking to the GitHub API."""


class GitHubApiError(Exception):
    """Base class for GitHub API errors."""

    pass


class RunFatalError(GitHubApiError):
    """Raised for errors that abort the whole backup run."""

    pass


class AuthenticationError(RunFatalError):
    """Raised when GitHub rejects the credential (invalid, expired, or missing scopes)."""

    pass


class OrganisationNotFoundError(RunFatalError):
    """Raised when the organisation does not exist or is not visible to the credential."""

    def __init__(self, organisation: str) -> None:
        """Initializes the exception with the name of the organisation."""
        super().__init__(f"Organisation not found: {organisation}")
        self.organisation = organisation


class ListingRetriesExhaustedError(RunFatalError):
    """Raised when a listing page keeps failing transiently beyond the retry budget."""

    def __init__(self, page: int, attempts: int, last_error: Exception) -> None:
        """Initializes the exception with the failing page and the last error seen."""
        super().__init__(f"Listing page {page} failed after {attempts} attempts: {last_error}")
        self.page = page
        self.attempts = attempts
        self.last_error = last_error


class RateLimitedError(GitHubApiError):
    """Raised when GitHub asks the client to slow down.

    ``retry_after`` holds the wait in seconds when GitHub said how long to wait.
    """

    def __init__(self, message: str, retry_after: float | None = None) -> None:
        """Initializes the exception with the requested wait."""
        super().__init__(message)
        self.retry_after = retry_after


class TransientApiError(GitHubApiError):
    """Raised for network failures, timeouts and server-side errors that may succeed on retry."""

    pass
