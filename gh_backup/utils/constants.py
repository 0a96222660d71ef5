"""Shared constants used across the application."""

# GitHub API Constants
# --------------------

DEFAULT_GITHUB_API_URL = "https://api.github.com"
"""Default GitHub REST API base URL. Override for GitHub Enterprise Server."""

DEFAULT_PAGE_SIZE = 100
"""Repositories requested per listing page (the maximum GitHub allows)."""

DEFAULT_PAGE_ATTEMPTS = 5
"""Attempts made for a single listing page before the run is abandoned."""

DEFAULT_RATE_LIMIT_WAIT = 60.0
"""Seconds to wait on a rate-limit response that does not say how long to wait."""

# Synchronization Constants
# -------------------------

DEFAULT_CONCURRENCY = 10
"""Repositories synchronized at the same time."""

DEFAULT_SYNC_ATTEMPTS = 4
"""Attempts made for a single clone or fetch before the repository is marked failed."""

DEFAULT_INITIAL_DELAY = 2.0
"""Backoff delay in seconds after the first failed attempt."""

DEFAULT_MAX_DELAY = 120.0
"""Upper bound in seconds for a single backoff delay."""

DEFAULT_GIT_TIMEOUT = 3600.0
"""Seconds a single git invocation may run before it is killed."""

STAGING_PREFIX = "."
STAGING_SUFFIX = ".partial"
"""A clone is written to ``.<name>.partial`` and renamed to ``<name>`` on success."""

CORRUPT_SUFFIX = ".corrupt"
"""Damaged copies are moved aside to ``<name>.corrupt-<timestamp>`` before re-cloning."""

# Exit Codes
# ----------

EXIT_SUCCESS = 0
"""Every repository was cloned or fetched."""

EXIT_PARTIAL_FAILURE = 1
"""At least one repository failed."""

EXIT_RUN_FATAL = 2
"""The run was aborted (bad credential, unknown organisation, listing failure, bad configuration)."""
