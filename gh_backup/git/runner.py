"""Runs git clone, fetch and validation commands as subprocesses."""

import asyncio
import base64
import contextlib
import os
import re
import shutil
from pathlib import Path

import structlog

from gh_backup.git.exceptions import ErrorCategory, GitOperationError
from gh_backup.utils.constants import DEFAULT_GIT_TIMEOUT

logger = structlog.get_logger(__name__)

# Checked in order; the first matching category wins.
_FAILURE_PATTERNS: list[tuple[ErrorCategory, re.Pattern[str]]] = [
    (
        ErrorCategory.AUTHENTICATION,
        re.compile(
            r"authentication failed|could not read (username|password)|invalid username or password"
            r"|permission denied \(publickey|http basic: access denied|terminal prompts disabled"
            r"|requested url returned error: 40[13]",
            re.IGNORECASE,
        ),
    ),
    (
        ErrorCategory.NOT_FOUND,
        re.compile(
            r"repository not found|does not appear to be a git repository|requested url returned error: 404"
            r"|repository '.*' (not found|does not exist)",
            re.IGNORECASE,
        ),
    ),
    (
        ErrorCategory.DISK,
        re.compile(
            r"no space left on device|disk quota exceeded|read-only file system|permission denied"
            r"|unable to create|could not create|cannot mkdir|unable to write",
            re.IGNORECASE,
        ),
    ),
    (
        ErrorCategory.TIMEOUT,
        re.compile(r"timed out|timeout", re.IGNORECASE),
    ),
    (
        ErrorCategory.NETWORK,
        re.compile(
            r"could not resolve host|connection reset|connection refused|early eof|rpc failed"
            r"|remote end hung up|unable to access|failed to connect|network is unreachable"
            r"|ssl|tls|gnutls|transfer closed|requested url returned error: 5\d\d",
            re.IGNORECASE,
        ),
    ),
]


def classify_git_failure(stderr: str) -> ErrorCategory:
    """Classify a failed git invocation from its error output."""
    for category, pattern in _FAILURE_PATTERNS:
        if pattern.search(stderr):
            return category
    return ErrorCategory.UNKNOWN


def build_auth_header(credential: str) -> str:
    """Build the HTTP basic authorization header git sends to the remote."""
    encoded = base64.b64encode(f"x-access-token:{credential}".encode()).decode("ascii")
    return f"Authorization: Basic {encoded}"


class GitRunner:
    """Runs the git executable for clone and fetch operations.

    The credential is passed per invocation as an ``http.extraHeader`` set through
    ``GIT_CONFIG_*`` environment variables, so it is never written into the
    repository configuration nor visible in the process arguments.
    """

    def __init__(self, git_executable: str = "git", timeout: float = DEFAULT_GIT_TIMEOUT) -> None:
        """Initialize the runner with the git executable and a per-command timeout."""
        self.git_executable = git_executable
        self.timeout = timeout

    def ensure_available(self) -> None:
        """Raise if the git executable cannot be found."""
        if shutil.which(self.git_executable) is None:
            raise GitOperationError(f"git executable not found: {self.git_executable}", ErrorCategory.EXECUTION)

    async def clone(self, clone_url: str, destination: Path, credential: str | None) -> None:
        """Create a mirror clone of ``clone_url`` at ``destination``."""
        logger.info("Cloning repository", destination=str(destination))
        await self._run(["clone", "--mirror", "--quiet", clone_url, str(destination)], credential=credential)

    async def fetch(self, repository_path: Path, credential: str | None) -> None:
        """Update every ref of the mirror at ``repository_path`` from its remote."""
        logger.info("Fetching repository", path=str(repository_path))
        await self._run(["remote", "update", "--prune"], cwd=repository_path, credential=credential)

    async def is_valid_repository(self, path: Path) -> bool:
        """Return whether ``path`` itself is a git repository (bare or working copy)."""
        try:
            await self._run(
                ["rev-parse", "--git-dir"],
                cwd=path,
                extra_env={"GIT_CEILING_DIRECTORIES": str(path.resolve().parent)},
            )
        except GitOperationError as exc:
            logger.debug("Directory is not a git repository", path=str(path), error=str(exc))
            return False
        return True

    async def _run(
        self,
        args: list[str],
        cwd: Path | None = None,
        credential: str | None = None,
        extra_env: dict[str, str] | None = None,
    ) -> str:
        """Run git with ``args`` and return its standard output.

        Raises:
            GitOperationError: If git cannot be started, times out, or exits non-zero.
        """
        command = [self.git_executable, *args]

        env = os.environ.copy()
        for variable in ("GIT_DIR", "GIT_WORK_TREE", "GIT_INDEX_FILE"):
            env.pop(variable, None)
        env["GIT_TERMINAL_PROMPT"] = "0"
        if credential:
            # Appended after any GIT_CONFIG_* entries the caller already set.
            index = int(env.get("GIT_CONFIG_COUNT") or 0)
            env["GIT_CONFIG_COUNT"] = str(index + 1)
            env[f"GIT_CONFIG_KEY_{index}"] = "http.extraHeader"
            env[f"GIT_CONFIG_VALUE_{index}"] = build_auth_header(credential)
        if extra_env:
            env.update(extra_env)

        logger.debug("Running git command", args=args, cwd=str(cwd) if cwd else None)
        try:
            process = await asyncio.create_subprocess_exec(
                *command,
                cwd=cwd,
                env=env,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as exc:
            raise GitOperationError(f"Failed to start git {args[0]}: {exc}", ErrorCategory.EXECUTION) from exc

        try:
            stdout, stderr = await asyncio.wait_for(process.communicate(), timeout=self.timeout)
        except asyncio.TimeoutError as exc:
            await self._kill(process)
            raise GitOperationError(f"git {args[0]} timed out after {self.timeout} seconds", ErrorCategory.TIMEOUT) from exc
        except asyncio.CancelledError:
            await self._kill(process)
            raise

        if process.returncode != 0:
            stderr_text = stderr.decode("utf-8", "ignore").strip()
            category = classify_git_failure(stderr_text)
            last_line = stderr_text.splitlines()[-1] if stderr_text else "no error output"
            raise GitOperationError(
                f"git {args[0]} failed with exit code {process.returncode}: {last_line}",
                category,
                returncode=process.returncode,
                stderr=stderr_text,
            )
        return stdout.decode("utf-8", "ignore")

    @staticmethod
    async def _kill(process: asyncio.subprocess.Process) -> None:
        with contextlib.suppress(ProcessLookupError):
            process.kill()
        await process.wait()
