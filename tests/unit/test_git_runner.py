"""Unit tests for the git.runner module."""

import asyncio
import base64
import os
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from gh_backup.git.exceptions import ErrorCategory, GitOperationError
from gh_backup.git.runner import GitRunner, build_auth_header, classify_git_failure


def make_process(returncode: int = 0, stdout: bytes = b"", stderr: bytes = b"") -> MagicMock:
    """Build a mock asyncio subprocess."""
    process = MagicMock()
    process.returncode = returncode
    process.communicate = AsyncMock(return_value=(stdout, stderr))
    process.wait = AsyncMock(return_value=returncode)
    return process


@pytest.mark.parametrize(
    "stderr,category",
    [
        ("fatal: Authentication failed for 'https://github.com/acme/a.git/'", ErrorCategory.AUTHENTICATION),
        ("fatal: could not read Username for 'https://github.com': terminal prompts disabled", ErrorCategory.AUTHENTICATION),
        ("fatal: unable to access 'https://github.com/acme/a.git/': The requested URL returned error: 403", ErrorCategory.AUTHENTICATION),
        ("remote: Repository not found.\nfatal: repository 'https://github.com/acme/a.git/' not found", ErrorCategory.NOT_FOUND),
        ("fatal: '/tmp/missing' does not appear to be a git repository", ErrorCategory.NOT_FOUND),
        ("fatal: write error: No space left on device", ErrorCategory.DISK),
        ("fatal: could not create leading directories of '/backup/a': Permission denied", ErrorCategory.DISK),
        ("fatal: unable to access 'https://github.com/acme/a.git/': Operation timed out after 300000 milliseconds", ErrorCategory.TIMEOUT),
        ("fatal: unable to access 'https://github.com/acme/a.git/': Could not resolve host: github.com", ErrorCategory.NETWORK),
        ("error: RPC failed; curl 56 GnuTLS recv error (-54)\nfatal: early EOF", ErrorCategory.NETWORK),
        ("fatal: the remote end hung up unexpectedly", ErrorCategory.NETWORK),
        ("fatal: The requested URL returned error: 502", ErrorCategory.NETWORK),
        ("fatal: something nobody has seen before", ErrorCategory.UNKNOWN),
        ("", ErrorCategory.UNKNOWN),
    ],
)
def test_classify_git_failure(stderr: str, category: ErrorCategory) -> None:
    """Test that git error output is mapped to the right category."""
    assert classify_git_failure(stderr) is category


def test_transient_categories() -> None:
    """Test which categories are worth retrying."""
    assert GitOperationError("x", ErrorCategory.NETWORK).transient is True
    assert GitOperationError("x", ErrorCategory.TIMEOUT).transient is True
    assert GitOperationError("x", ErrorCategory.UNKNOWN).transient is True
    assert GitOperationError("x", ErrorCategory.AUTHENTICATION).transient is False
    assert GitOperationError("x", ErrorCategory.NOT_FOUND).transient is False
    assert GitOperationError("x", ErrorCategory.DISK).transient is False


def test_build_auth_header() -> None:
    """Test that the token is sent as basic auth for the x-access-token user."""
    header = build_auth_header("ghp_secret")
    scheme, encoded = header.removeprefix("Authorization: ").split(" ")
    assert scheme == "Basic"
    assert base64.b64decode(encoded).decode() == "x-access-token:ghp_secret"


@pytest.mark.asyncio
async def test_clone_runs_mirror_clone_with_credential_header(tmp_path: Path) -> None:
    """Test that clone passes the credential through the environment and mirrors the repository."""
    runner = GitRunner()
    destination = tmp_path / ".a.partial"
    with patch.dict(os.environ), patch("gh_backup.git.runner.asyncio.create_subprocess_exec", AsyncMock(return_value=make_process())) as create:
        for variable in [name for name in os.environ if name.startswith("GIT_CONFIG_")]:
            del os.environ[variable]
        await runner.clone("https://github.com/acme/a.git", destination, "ghp_secret")

    args = list(create.await_args.args)
    assert args == ["git", "clone", "--mirror", "--quiet", "https://github.com/acme/a.git", str(destination)]
    assert not any("Authorization" in arg or "ghp_secret" in arg for arg in args)
    env = create.await_args.kwargs["env"]
    assert env["GIT_TERMINAL_PROMPT"] == "0"
    assert env["GIT_CONFIG_COUNT"] == "1"
    assert env["GIT_CONFIG_KEY_0"] == "http.extraHeader"
    assert env["GIT_CONFIG_VALUE_0"] == build_auth_header("ghp_secret")


@pytest.mark.asyncio
async def test_credential_header_appends_to_existing_git_config_entries(tmp_path: Path) -> None:
    """Test that entries the caller set through GIT_CONFIG_* are kept."""
    runner = GitRunner()
    existing = {"GIT_CONFIG_COUNT": "1", "GIT_CONFIG_KEY_0": "core.askPass", "GIT_CONFIG_VALUE_0": ""}
    with patch.dict(os.environ, existing), patch("gh_backup.git.runner.asyncio.create_subprocess_exec", AsyncMock(return_value=make_process())) as create:
        await runner.fetch(tmp_path, "ghp_secret")

    env = create.await_args.kwargs["env"]
    assert env["GIT_CONFIG_COUNT"] == "2"
    assert env["GIT_CONFIG_KEY_0"] == "core.askPass"
    assert env["GIT_CONFIG_KEY_1"] == "http.extraHeader"
    assert env["GIT_CONFIG_VALUE_1"] == build_auth_header("ghp_secret")
    assert list(create.await_args.args) == ["git", "remote", "update", "--prune"]


@pytest.mark.asyncio
async def test_no_credential_sets_no_header(tmp_path: Path) -> None:
    """Test that an anonymous run adds no extra git configuration."""
    runner = GitRunner()
    with patch.dict(os.environ), patch("gh_backup.git.runner.asyncio.create_subprocess_exec", AsyncMock(return_value=make_process())) as create:
        for variable in [name for name in os.environ if name.startswith("GIT_CONFIG_")]:
            del os.environ[variable]
        await runner.fetch(tmp_path, None)

    env = create.await_args.kwargs["env"]
    assert "GIT_CONFIG_COUNT" not in env
    assert not any(value.startswith("Authorization") for value in env.values())


@pytest.mark.asyncio
async def test_fetch_updates_all_remotes(tmp_path: Path) -> None:
    """Test that fetch updates the mirror in place and prunes deleted refs."""
    runner = GitRunner()
    with patch("gh_backup.git.runner.asyncio.create_subprocess_exec", AsyncMock(return_value=make_process())) as create:
        await runner.fetch(tmp_path, None)

    assert list(create.await_args.args) == ["git", "remote", "update", "--prune"]
    assert create.await_args.kwargs["cwd"] == tmp_path


@pytest.mark.asyncio
async def test_non_zero_exit_raises_classified_error(tmp_path: Path) -> None:
    """Test that a failed git command raises with its category and error output."""
    process = make_process(returncode=128, stderr=b"remote: Repository not found.\nfatal: repository not found\n")
    runner = GitRunner()
    with patch("gh_backup.git.runner.asyncio.create_subprocess_exec", AsyncMock(return_value=process)):
        with pytest.raises(GitOperationError) as exc_info:
            await runner.fetch(tmp_path, "ghp_secret")

    assert exc_info.value.category is ErrorCategory.NOT_FOUND
    assert exc_info.value.returncode == 128
    assert "Repository not found" in exc_info.value.stderr
    assert "ghp_secret" not in str(exc_info.value)


@pytest.mark.asyncio
async def test_missing_executable_raises_execution_error(tmp_path: Path) -> None:
    """Test that a git binary that cannot be started is reported as an execution error."""
    runner = GitRunner()
    with patch("gh_backup.git.runner.asyncio.create_subprocess_exec", AsyncMock(side_effect=FileNotFoundError("git"))):
        with pytest.raises(GitOperationError) as exc_info:
            await runner.fetch(tmp_path, None)
    assert exc_info.value.category is ErrorCategory.EXECUTION
    assert exc_info.value.transient is False


@pytest.mark.asyncio
async def test_timeout_kills_process(tmp_path: Path) -> None:
    """Test that a git command running past the timeout is killed and reported as transient."""

    async def hang() -> tuple[bytes, bytes]:
        await asyncio.sleep(60)
        return b"", b""

    process = make_process()
    process.communicate = AsyncMock(side_effect=hang)
    runner = GitRunner(timeout=0.01)
    with patch("gh_backup.git.runner.asyncio.create_subprocess_exec", AsyncMock(return_value=process)):
        with pytest.raises(GitOperationError) as exc_info:
            await runner.clone("https://github.com/acme/a.git", tmp_path / ".a.partial", None)

    assert exc_info.value.category is ErrorCategory.TIMEOUT
    assert exc_info.value.transient is True
    process.kill.assert_called_once()
    process.wait.assert_awaited_once()


@pytest.mark.asyncio
async def test_is_valid_repository_false_on_failure(tmp_path: Path) -> None:
    """Test that a failed rev-parse means the directory is not a repository."""
    process = make_process(returncode=128, stderr=b"fatal: not a git repository (or any of the parent directories): .git")
    runner = GitRunner()
    with patch("gh_backup.git.runner.asyncio.create_subprocess_exec", AsyncMock(return_value=process)) as create:
        assert await runner.is_valid_repository(tmp_path) is False

    env = create.await_args.kwargs["env"]
    assert env["GIT_CEILING_DIRECTORIES"] == str(tmp_path.resolve().parent)


def test_ensure_available_raises_when_git_missing() -> None:
    """Test that a missing git executable is detected up front."""
    runner = GitRunner(git_executable="definitely-not-git-executable")
    with pytest.raises(GitOperationError) as exc_info:
        runner.ensure_available()
    assert exc_info.value.category is ErrorCategory.EXECUTION
