"""Contains exceptions raised by git clone and fetch operations."""

from enum import Enum
from pathlib import Path


class ErrorCategory(str, Enum):
    """Enum for the kinds of git failures."""

    AUTHENTICATION = "authentication"
    NOT_FOUND = "not_found"
    NETWORK = "network"
    TIMEOUT = "timeout"
    DISK = "disk"
    CORRUPTED = "corrupted"
    EXECUTION = "execution"
    UNKNOWN = "unknown"


TRANSIENT_CATEGORIES = frozenset({ErrorCategory.NETWORK, ErrorCategory.TIMEOUT, ErrorCategory.UNKNOWN})
"""Categories worth retrying. Everything else fails the repository on the first occurrence."""


class GitOperationError(Exception):
    """Raised when a git operation fails."""

    def __init__(self, message: str, category: ErrorCategory, returncode: int | None = None, stderr: str = "") -> None:
        """Initializes the exception with its category and the git process details."""
        super().__init__(message)
        self.category = category
        self.returncode = returncode
        self.stderr = stderr

    @property
    def transient(self) -> bool:
        """Whether retrying the same operation may succeed."""
        return self.category in TRANSIENT_CATEGORIES


class CorruptedCopyError(GitOperationError):
    """Raised when a backup directory exists but is not a usable git repository."""

    def __init__(self, path: Path) -> None:
        """Initializes the exception with the offending directory."""
        super().__init__(f"Existing local copy at {path} is not a valid git repository", ErrorCategory.CORRUPTED)
        self.path = path
