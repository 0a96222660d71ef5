"""Defines the Command Line Interface (CLI) using Typer."""

import asyncio
from pathlib import Path

import typer
from dotenv import load_dotenv
from typer import Argument, Option
from typing_extensions import Annotated

from gh_backup.configuration.exceptions import InvalidConfigurationError, RequiredConfigurationElementError
from gh_backup.configuration.models import BackupConfig
from gh_backup.configuration.reconcile import reconcile_backup_configuration
from gh_backup.git.exceptions import GitOperationError
from gh_backup.github.exceptions import RunFatalError
from gh_backup.synchronize.driver import list_organisation_repositories, run_backup_workflow
from gh_backup.synchronize.results import RunSummary
from gh_backup.utils.constants import EXIT_RUN_FATAL
from gh_backup.utils.logging import configure_logging

load_dotenv()

typer_app = typer.Typer(pretty_exceptions_show_locals=False, help="Back up every repository of a GitHub organisation.")


def _reconcile_or_exit(**kwargs: object) -> BackupConfig:
    """Reconcile the configuration, exiting with the run-fatal code if it is unusable."""
    try:
        return asyncio.run(reconcile_backup_configuration(**kwargs))  # type: ignore[arg-type]
    except (RequiredConfigurationElementError, InvalidConfigurationError) as exc:
        typer.echo(f"Configuration error: {exc}", err=True)
        raise typer.Exit(EXIT_RUN_FATAL) from exc


def echo_summary(summary: RunSummary) -> None:
    """Print the run summary to the terminal."""
    typer.echo("")
    typer.echo("=" * 70)
    typer.echo("BACKUP SUMMARY (DRY RUN)" if summary.dry_run else "BACKUP SUMMARY")
    typer.echo("=" * 70)
    typer.echo(f"Repositories processed: {summary.total}")
    typer.echo(f"  Cloned:  {summary.cloned}")
    typer.echo(f"  Fetched: {summary.fetched}")
    typer.echo(f"  Failed:  {summary.failed}")
    if summary.failures:
        typer.echo("")
        typer.echo("Failed repositories:")
        for failure in summary.failures:
            typer.echo(f"  - {failure.name} (attempts: {failure.attempts}): {failure.error}")
    typer.echo("=" * 70)


@typer_app.command(name="backup")
def backup_cli(
    organisation: Annotated[str, Argument(help="GitHub organisation to back up.")],
    backup_dir: Annotated[
        Path | None, Option("--backup-dir", help="Directory holding the backups. Defaults to ./<organisation>_backup.")
    ] = None,
    concurrency: Annotated[int | None, Option(help="Number of repositories synchronized at the same time.")] = None,
    max_attempts: Annotated[int | None, Option(help="Attempts per clone or fetch before a repository is marked failed.")] = None,
    token: Annotated[str | None, Option(help="GitHub token. Defaults to GH_TOKEN or GITHUB_TOKEN.")] = None,
    github_api_url: Annotated[str | None, Option(help="GitHub API URL, for GitHub Enterprise Server.")] = None,
    dry_run: Annotated[bool, Option("--dry-run", help="List what would be cloned or fetched without touching the disk.")] = False,
    skip_archived: Annotated[bool, Option("--skip-archived", help="Do not back up archived or disabled repositories.")] = False,
    reclone_corrupted: Annotated[
        bool, Option("--reclone-corrupted", help="Move invalid local copies aside and clone them again instead of failing.")
    ] = False,
    git_timeout: Annotated[float | None, Option(help="Seconds a single git command may run.")] = None,
    report_file: Annotated[Path | None, Option(help="Write a JSON run report to this file.")] = None,
    debug: Annotated[bool, Option("--debug", help="Enable debug logging.")] = False,
) -> None:
    """Clone new repositories and fetch existing ones for an organisation."""
    configure_logging(debug)
    config = _reconcile_or_exit(
        cli_organisation=organisation,
        cli_token=token,
        cli_github_api_url=github_api_url,
        cli_backup_root=backup_dir,
        cli_concurrency=concurrency,
        cli_max_attempts=max_attempts,
        cli_git_timeout=git_timeout,
        cli_dry_run=dry_run,
        cli_skip_archived=skip_archived,
        cli_reclone_corrupted=reclone_corrupted,
        cli_report_file=report_file,
        cli_debug=debug,
    )
    configure_logging(config.debug)

    if config.backup_root.exists():
        typer.echo(f"Backup directory {config.backup_root} already exists, existing repositories will be fetched", err=True)
    typer.echo(f"Backing up organisation {config.organisation} to {config.backup_root.absolute()}")

    try:
        summary = asyncio.run(run_backup_workflow(config))
    except (RunFatalError, GitOperationError, OSError) as exc:
        typer.echo(f"Backup aborted: {exc}", err=True)
        raise typer.Exit(EXIT_RUN_FATAL) from exc
    except KeyboardInterrupt as exc:
        typer.echo("Backup interrupted", err=True)
        raise typer.Exit(EXIT_RUN_FATAL) from exc

    echo_summary(summary)
    raise typer.Exit(summary.exit_code)


@typer_app.command(name="list-repos")
def list_repos_cli(
    organisation: Annotated[str, Argument(help="GitHub organisation to list.")],
    token: Annotated[str | None, Option(help="GitHub token. Defaults to GH_TOKEN or GITHUB_TOKEN.")] = None,
    github_api_url: Annotated[str | None, Option(help="GitHub API URL, for GitHub Enterprise Server.")] = None,
    debug: Annotated[bool, Option("--debug", help="Enable debug logging.")] = False,
) -> None:
    """Print every repository of an organisation, one per line."""
    configure_logging(debug)
    config = _reconcile_or_exit(cli_organisation=organisation, cli_token=token, cli_github_api_url=github_api_url, cli_debug=debug)

    try:
        descriptors = asyncio.run(list_organisation_repositories(config))
    except RunFatalError as exc:
        typer.echo(f"Listing failed: {exc}", err=True)
        raise typer.Exit(EXIT_RUN_FATAL) from exc

    for descriptor in descriptors:
        flags = [flag for flag, enabled in (("archived", descriptor.archived), ("disabled", descriptor.disabled)) if enabled]
        suffix = f" [{', '.join(flags)}]" if flags else ""
        typer.echo(f"{descriptor.name}\t{descriptor.clone_url}{suffix}")
    typer.echo(f"Listed {len(descriptors)} repositories")


if __name__ == "__main__":
    typer_app()
