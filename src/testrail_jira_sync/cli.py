"""CLI entry point for testrail-jira-sync.

Commands:
- run: One scheduled invocation (resume, aggregate, publish, checkpoint)
- status: Show the stored checkpoint and current averages
- reset: Delete the checkpoint so the next run starts a new cycle
- check-config: Validate the configuration and credentials
"""

import asyncio
from pathlib import Path

import click
from pydantic import ValidationError
from rich.console import Console
from rich.table import Table

from testrail_jira_sync import __version__
from testrail_jira_sync.auth import AuthenticationError, load_secret
from testrail_jira_sync.config import Config, load_config
from testrail_jira_sync.coverage.averaging import average_percentages
from testrail_jira_sync.logging import setup_logging
from testrail_jira_sync.storage.checkpoint import CheckpointError, CheckpointStore

console = Console()

config_option = click.option(
    "--config",
    "-c",
    "config_path",
    type=click.Path(exists=True, path_type=Path),
    required=True,
    help="Path to config.yaml file",
)


def _load(config_path: Path) -> Config:
    try:
        return load_config(config_path)
    except ValidationError as e:
        console.print(f"[bold red]Invalid configuration:[/bold red] {config_path}")
        console.print(str(e))
        raise click.Abort() from e


@click.group()
@click.version_option(version=__version__, prog_name="testrail-jira-sync")
@click.option("--verbose", "-v", is_flag=True, default=False, help="Enable verbose output")
@click.option("--json-logs", is_flag=True, default=False, help="Emit logs as JSON lines")
@click.pass_context
def main(ctx: click.Context, verbose: bool, json_logs: bool) -> None:
    """Sync TestRail coverage and pass rates into Jira custom fields.

    \b
    Typical scheduler entry (every 15 minutes):
        testrail-jira-sync run --config config.yaml
    """
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose
    setup_logging(verbose=verbose, json_format=json_logs)


@main.command()
@config_option
@click.option(
    "--dry-run",
    is_flag=True,
    default=False,
    help="Compute averages without updating Jira or saving the checkpoint",
)
@click.pass_context
def run(ctx: click.Context, config_path: Path, dry_run: bool) -> None:
    """Run one resumable sync pass.

    Processes TestRail projects from the stored cursor until the time budget
    is spent, publishes the averaged percentages to Jira and saves the new
    cursor. Exits with status 1 on failure.
    """
    from testrail_jira_sync.sync.orchestrator import run_scheduled

    cfg = _load(config_path)
    outcome = asyncio.run(run_scheduled(cfg, dry_run=dry_run))

    if not outcome.ok:
        console.print(f"[bold red]Error ({outcome.status_code}):[/bold red] {outcome.body}")
        ctx.exit(1)

    result = outcome.result
    console.print(f"[bold green]{outcome.body}[/bold green]")
    if result is None:
        return

    console.print(
        f"  Projects: {result.projects_processed} processed "
        f"(cursor {result.start_index} -> {result.next_index} of {result.project_count})"
    )
    console.print(
        f"  Milestones: {result.milestones_processed} aggregated, "
        f"{result.milestones_skipped} without refs"
    )
    if result.stopped_by_budget:
        console.print("  [yellow]Stopped at the time budget; next run resumes here[/yellow]")
    elif result.cycle_complete:
        console.print("  Cycle complete; next run starts a new cycle")

    if result.dry_run:
        console.print(f"  [cyan]Dry run:[/cyan] {len(result.averages)} issues not updated")
    else:
        report = result.publish_report
        console.print(f"  Issues updated: {len(report.updated)}")
        if report.failed:
            console.print(f"  [yellow]Issues failed: {len(report.failed)}[/yellow]")
            for issue_key, error in sorted(report.failed.items()):
                console.print(f"    {issue_key}: {error}")


@main.command()
@config_option
def status(config_path: Path) -> None:
    """Show the stored checkpoint and the averages it would publish."""
    cfg = _load(config_path)
    store = CheckpointStore(cfg.storage.checkpoint_path)

    if not store.exists():
        console.print(f"[yellow]No checkpoint at {store.checkpoint_path}[/yellow]")
        return

    try:
        state = store.load()
    except CheckpointError as e:
        console.print(f"[bold red]Error:[/bold red] {e}")
        raise click.Abort() from e

    updated = state.updated_at.isoformat() if state.updated_at else "never"
    console.print(f"[bold]Checkpoint:[/bold] {store.checkpoint_path}")
    console.print(f"  Cursor (lastIndex): {state.last_index}")
    console.print(f"  Last updated: {updated}")

    averages = average_percentages(state.jira_percentages)
    if not averages:
        console.print("  No percentages accumulated in this cycle")
        return

    table = Table(title="Current cycle")
    table.add_column("Issue")
    table.add_column("Samples", justify="right")
    table.add_column("Coverage", justify="right")
    table.add_column("Pass rate", justify="right")
    for issue_key in sorted(averages):
        pair = averages[issue_key]
        table.add_row(
            issue_key,
            str(len(state.jira_percentages[issue_key])),
            f"{pair.coverage}%",
            f"{pair.pass_rate}%",
        )
    console.print(table)


@main.command()
@config_option
@click.option("--yes", "-y", is_flag=True, default=False, help="Do not ask for confirmation")
def reset(config_path: Path, yes: bool) -> None:
    """Delete the checkpoint so the next run starts a new cycle."""
    cfg = _load(config_path)
    store = CheckpointStore(cfg.storage.checkpoint_path)

    if not store.exists():
        console.print(f"[yellow]No checkpoint at {store.checkpoint_path}[/yellow]")
        return

    if not yes:
        click.confirm(f"Delete {store.checkpoint_path}?", abort=True)

    try:
        with store:
            store.delete_if_exists()
    except CheckpointError as e:
        console.print(f"[bold red]Error:[/bold red] {e}")
        raise click.Abort() from e
    console.print("[bold green]Checkpoint deleted[/bold green]")


@main.command("check-config")
@config_option
def check_config(config_path: Path) -> None:
    """Validate the configuration file and credential environment variables."""
    cfg = _load(config_path)

    missing = []
    for name, env_var in (
        ("TestRail API token", cfg.testrail.token_env),
        ("Jira API token", cfg.jira.token_env),
    ):
        try:
            load_secret(env_var)
        except AuthenticationError:
            missing.append(f"{name} ({env_var})")

    console.print(f"  TestRail: {cfg.testrail.base_url} as {cfg.testrail.user}")
    console.print(f"  Jira: {cfg.jira.base_url} as {cfg.jira.email}")
    console.print(
        f"  Fields: coverage={cfg.jira.coverage_field_id}, "
        f"pass rate={cfg.jira.pass_rate_field_id}"
    )

    if missing:
        console.print(f"[bold red]Missing credentials:[/bold red] {', '.join(missing)}")
        raise click.Abort()

    console.print("[bold green]Configuration OK[/bold green]")


if __name__ == "__main__":
    main()
