"""Sets up the authenticated githubkit client."""

from typing import TypeAlias

from githubkit import GitHub
from githubkit.auth import TokenAuthStrategy

GitHubClient: TypeAlias = GitHub[TokenAuthStrategy]


async def get_github_client(token: str, github_api_url: str) -> GitHubClient:
    """Returns a GitHub client authenticated with a personal access token.

    Supports a custom base URL for GitHub Enterprise Server (GHES). githubkit's own
    retry handling is switched off so that rate limits and transient failures surface
    as exceptions and are handled by the listing retry loop.
    """
    if not token:
        raise RuntimeError("GitHub authentication requires a token.")
    # Disable HTTP caching to always get fresh data
    return GitHub(auth=TokenAuthStrategy(token), base_url=github_api_url, http_cache=False, auto_retry=False)
