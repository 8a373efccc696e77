"""CLI entry point for reviewporter."""

import asyncio
import sys

import click
import structlog

from reviewporter.config.settings import ReviewporterSettings
from reviewporter.engine.services import AddReviewersService, ReportService
from reviewporter.exceptions import ConfigurationError, ReviewporterError
from reviewporter.models.domain import AssignmentResult, AssignmentStatus, DispatchResult, DispatchStatus
from reviewporter.providers.azure_rest import AzureDevOpsProvider
from reviewporter.providers.slack_rest import SlackProvider
from reviewporter.utils.connection_pool import close_all_pools
from reviewporter.utils.logging_config import configure_logging

log = structlog.get_logger(__name__)


@click.group()
@click.option(
    "--config",
    default="reviewporter.toml",
    show_default=True,
    help="Path to configuration file (.toml or .yaml)",
)
@click.option("--log-level", default="INFO", help="Logging level")
@click.option("--json-logs", is_flag=True, help="Emit logs as JSON lines")
@click.pass_context
def cli(ctx: click.Context, config: str, log_level: str, json_logs: bool) -> None:
    """reviewporter: Azure DevOps review reminders and reviewer assignment."""
    configure_logging(log_level, json_logs=json_logs)

    try:
        settings = ReviewporterSettings.from_file(config)
    except ConfigurationError as e:
        click.echo(f"Error: {e.message}", err=True)
        log.debug("config_error", exc_info=True)
        sys.exit(1)

    ctx.obj = {"settings": settings}


@cli.command("send-reports")
@click.argument("repositories", nargs=-1)
@click.pass_context
def send_reports(ctx: click.Context, repositories: tuple[str, ...]) -> None:
    """Message every team member the pull requests waiting for them.

    REPOSITORIES overrides the configured repository list. Without either,
    every repository of the project is scanned.
    """
    try:
        settings = ctx.obj["settings"]
        results = asyncio.run(_send_reports(settings, list(repositories)))
    except ReviewporterError as e:
        click.echo(f"Error: {e.message}", err=True)
        log.debug("send_reports_error", exc_info=True)
        sys.exit(1)
    except KeyboardInterrupt:
        click.echo("\nInterrupted by user", err=True)
        sys.exit(130)
    except Exception as e:
        click.echo(f"Unexpected error: {e}", err=True)
        log.error("send_reports_unexpected", exc_info=True)
        sys.exit(1)

    _print_dispatch_summary(results)
    if any(r.status is DispatchStatus.FAILED for r in results):
        sys.exit(1)


@cli.command("add-reviewers")
@click.option("--repository", required=True, help="Repository name")
@click.option(
    "--request-id",
    "request_ids",
    required=True,
    multiple=True,
    help="Pull request id (repeat for several pull requests)",
)
@click.option("--dry-run", is_flag=True, help="Plan reviewers without writing to Azure DevOps")
@click.pass_context
def add_reviewers(ctx: click.Context, repository: str, request_ids: tuple[str, ...], dry_run: bool) -> None:
    """Add required and optional reviewers to pull requests."""
    try:
        settings = ctx.obj["settings"]
        results = asyncio.run(_add_reviewers(settings, repository, list(request_ids), dry_run))
    except ReviewporterError as e:
        click.echo(f"Error: {e.message}", err=True)
        log.debug("add_reviewers_error", exc_info=True)
        sys.exit(1)
    except KeyboardInterrupt:
        click.echo("\nInterrupted by user", err=True)
        sys.exit(130)
    except Exception as e:
        click.echo(f"Unexpected error: {e}", err=True)
        log.error("add_reviewers_unexpected", exc_info=True)
        sys.exit(1)

    _print_assignment_summary(results)
    if any(r.status is AssignmentStatus.FAILED for r in results):
        sys.exit(1)


def _create_providers(settings: ReviewporterSettings) -> tuple[AzureDevOpsProvider, SlackProvider]:
    directory = AzureDevOpsProvider(
        base_url=str(settings.azure.base_url),
        token=settings.azure.token.get_secret_value(),
        project=settings.azure.project,
    )
    messaging = SlackProvider(
        token=settings.slack.token.get_secret_value(),
        team_id=settings.slack.team_id,
        usergroup_id=settings.slack.usergroup_id,
        vacation_statuses=settings.slack.vacation_statuses,
    )
    return directory, messaging


async def _send_reports(settings: ReviewporterSettings, repositories: list[str]) -> list[DispatchResult]:
    """Run one report pass.

    Args:
        settings: Loaded settings
        repositories: Repositories given on the command line, may be empty
    """
    directory, messaging = _create_providers(settings)
    try:
        async with directory, messaging:
            service = ReportService(
                directory,
                messaging,
                team_name=settings.azure.team_name,
                repositories=settings.azure.repositories,
            )
            return await service.send_reports(repositories)
    finally:
        await close_all_pools()


async def _add_reviewers(
    settings: ReviewporterSettings,
    repository: str,
    request_ids: list[str],
    dry_run: bool,
) -> list[AssignmentResult]:
    directory, messaging = _create_providers(settings)
    try:
        async with directory, messaging:
            service = AddReviewersService(
                directory,
                messaging,
                team_name=settings.azure.team_name,
                reviewers=settings.reviewers,
                dry_run=dry_run,
            )
            return await service.add_reviewers(repository, request_ids)
    finally:
        await close_all_pools()


def _print_dispatch_summary(results: list[DispatchResult]) -> None:
    if not results:
        click.echo("No pending reviews.")
        return
    for result in results:
        line = f"{result.person.display_name}: {result.status.value}"
        if result.error:
            line += f" ({result.error})"
        click.echo(line)


def _print_assignment_summary(results: list[AssignmentResult]) -> None:
    for result in results:
        line = f"{result.repository}!{result.pull_request_id}: {result.status.value}"
        if result.plan is not None and result.plan:
            required = ", ".join(p.display_name for p in result.plan.required) or "-"
            optional = ", ".join(p.display_name for p in result.plan.optional) or "-"
            line += f" required=[{required}] optional=[{optional}]"
        if result.error:
            line += f" ({result.error})"
        click.echo(line)


if __name__ == "__main__":
    cli()
