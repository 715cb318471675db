#!/usr/bin/env python3
"""
tmpo - a minimal time tracker that lives in your terminal

Every command opens the entry store under ~/.tmpo (or TMPO_HOME), does its
work and closes the store again before exiting.
"""

from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Iterator, Optional

import click
from rich.markup import escape
from rich.prompt import Confirm
from rich.table import Table

import config
from display import console, entries_table, format_duration, format_time, stats_table
from entry_store import AlreadyTrackingError, EntryStore, StoreError
from project_config import ProjectConfigError, detect_project, hourly_rates, write_project_file
from reports import EXPORTERS, period_range, project_stats, total_duration
from version_check import __version__, is_newer, latest_version

DATETIME_FORMATS = ["%Y-%m-%d %H:%M", "%Y-%m-%d %H:%M:%S"]


@contextmanager
def open_store() -> Iterator[EntryStore]:
    """Open the store for one command and turn store failures into CLI errors."""
    try:
        store = EntryStore.open()
    except StoreError as e:
        raise click.ClickException(str(e)) from e

    with store:
        try:
            yield store
        except AlreadyTrackingError as e:
            raise click.ClickException(
                f"Already tracking '{e.entry.project_name}' since {format_time(e.entry.start_time)}. "
                "Run 'tmpo stop' first."
            ) from e
        except StoreError as e:
            raise click.ClickException(str(e)) from e


def _resolve_period(today: bool, week: bool, month: bool, default: str = "all") -> str:
    chosen = [name for name, flag in (("today", today), ("week", week), ("month", month)) if flag]
    if len(chosen) > 1:
        raise click.UsageError("Use only one of --today, --week or --month.")
    return chosen[0] if chosen else default


def period_options(func):
    func = click.option("--month", is_flag=True, help="Only entries started this month.")(func)
    func = click.option("--week", is_flag=True, help="Only entries started this week.")(func)
    func = click.option("--today", is_flag=True, help="Only entries started today.")(func)
    return func


def _display_version() -> None:
    console.print(f"tmpo version {__version__}")
    if not config.update_check_enabled():
        return
    with console.status("[dim]Checking for updates...[/dim]"):
        latest = latest_version()
    if latest and is_newer(latest, __version__):
        console.print(f"[yellow]A new version of tmpo is available: {latest}[/yellow]")


@click.group(invoke_without_command=True)
@click.option("--version", "-v", "show_version", is_flag=True, help="Show the version and check for updates.")
@click.pass_context
def cli(ctx: click.Context, show_version: bool) -> None:
    """tmpo - Set the tmpo

    A minimal, developer-friendly time tracker that lives in your terminal.
    Track time with automatic project detection and simple commands.
    """
    if show_version:
        _display_version()
        ctx.exit()
    if ctx.invoked_subcommand is None:
        click.echo(ctx.get_help())


# Tracking


@cli.command()
@click.argument("project", required=False)
@click.option("--description", "-d", default=None, help="What you are working on.")
def start(project: Optional[str], description: Optional[str]) -> None:
    """Start tracking time for PROJECT (detected from the directory if omitted)."""
    if not project:
        try:
            project = detect_project().project_name
        except ProjectConfigError as e:
            raise click.ClickException(str(e)) from e

    with open_store() as store:
        entry = store.create_entry(project, description)

    console.print(f"[green]✓[/green] Started tracking [bold]{escape(entry.project_name)}[/bold]")
    if entry.description:
        console.print(f"[dim]Description: {escape(entry.description)}[/dim]")
    console.print(f"[dim]Entry ID: {entry.id}[/dim]")


@cli.command()
def stop() -> None:
    """Stop the running timer."""
    with open_store() as store:
        running = store.get_running_entry()
        if running is None:
            raise click.ClickException("Not tracking anything.")
        entry = store.stop_entry(running.id)

    console.print(f"[green]✓[/green] Stopped [bold]{escape(entry.project_name)}[/bold]")
    console.print(f"[dim]Duration: {format_duration(entry.duration())}[/dim]")


@cli.command()
def pause() -> None:
    """Pause the running timer; continue later with 'tmpo resume'."""
    with open_store() as store:
        running = store.get_running_entry()
        if running is None:
            raise click.ClickException("Not tracking anything.")
        entry = store.stop_entry(running.id)

    console.print(f"[yellow]⏸[/yellow] Paused [bold]{escape(entry.project_name)}[/bold]")
    console.print(f"[dim]Session so far: {format_duration(entry.duration())}. Run 'tmpo resume' to continue.[/dim]")


@cli.command()
def resume() -> None:
    """Resume the most recently stopped project."""
    with open_store() as store:
        last = store.get_last_stopped_entry()
        if last is None:
            raise click.ClickException("Nothing to resume.")
        entry = store.create_entry(last.project_name, last.description)

    console.print(f"[green]▶[/green] Resumed [bold]{escape(entry.project_name)}[/bold]")
    console.print(f"[dim]Entry ID: {entry.id}[/dim]")


@cli.command()
def status() -> None:
    """Show the running timer."""
    with open_store() as store:
        running = store.get_running_entry()

    if running is None:
        console.print("[dim]Not tracking anything.[/dim]")
        return

    table = Table(show_header=False, show_edge=False, pad_edge=False)
    table.add_column("Key", style="dim")
    table.add_column("Value")
    table.add_row("Project", f"[bold]{escape(running.project_name)}[/bold]")
    table.add_row("Started", format_time(running.start_time))
    table.add_row("Elapsed", format_duration(running.duration()))
    if running.description:
        table.add_row("Description", escape(running.description))

    console.print("[green]● Tracking[/green]")
    console.print(table)


# History


@cli.command()
@click.option("--limit", "-l", default=10, show_default=True, type=click.IntRange(min=1), help="Number of entries.")
@click.option("--project", "-p", default=None, help="Only entries for this project.")
@period_options
def log(limit: int, project: Optional[str], today: bool, week: bool, month: bool) -> None:
    """List recent time entries."""
    since, until = period_range(_resolve_period(today, week, month))
    with open_store() as store:
        entries = store.list_entries(project_name=project, since=since, until=until, limit=limit)

    if not entries:
        console.print("[yellow]No entries found.[/yellow]")
        return
    console.print(entries_table(entries))


@cli.command()
@period_options
def stats(today: bool, week: bool, month: bool) -> None:
    """Show time totals per project."""
    period = _resolve_period(today, week, month)
    since, until = period_range(period)
    try:
        rates = hourly_rates()
    except ProjectConfigError as e:
        raise click.ClickException(str(e)) from e

    with open_store() as store:
        entries = store.list_entries(since=since, until=until)

    if not entries:
        console.print("[yellow]No entries found.[/yellow]")
        return

    summary = project_stats(entries)
    console.print(f"[bold cyan]Time by project ({period})[/bold cyan]")
    console.print(stats_table(summary, rates))
    console.print(f"[bold]Total:[/bold] {format_duration(total_duration(summary))} across {len(entries)} entries")


@cli.command()
@click.option(
    "--format", "-f", "fmt", type=click.Choice(sorted(EXPORTERS)), default="csv", show_default=True, help="Output format."
)
@click.option("--output", "-o", type=click.Path(dir_okay=False, path_type=Path), help="Write to a file instead of stdout.")
@click.option("--project", "-p", default=None, help="Only entries for this project.")
@period_options
def export(fmt: str, output: Optional[Path], project: Optional[str], today: bool, week: bool, month: bool) -> None:
    """Export time entries as CSV or JSON."""
    since, until = period_range(_resolve_period(today, week, month))
    with open_store() as store:
        entries = store.list_entries(project_name=project, since=since, until=until)

    document = EXPORTERS[fmt](entries)
    if output is None:
        click.echo(document, nl=False)
        return

    try:
        output.write_text(document, encoding="utf-8")
    except OSError as e:
        raise click.ClickException(f"Failed to write {output}: {e}") from e
    console.print(f"[green]✓[/green] Exported {len(entries)} entries to {escape(str(output))}")


# Entries


@cli.command()
@click.argument("entry_id", type=int)
@click.option("--project", "-p", default=None, help="New project name.")
@click.option("--description", "-d", default=None, help="New description (empty string clears it).")
def edit(entry_id: int, project: Optional[str], description: Optional[str]) -> None:
    """Change the project or description of an entry."""
    if project is None and description is None:
        raise click.UsageError("Nothing to change: pass --project and/or --description.")

    with open_store() as store:
        entry = store.update_entry(entry_id, project_name=project, description=description)

    console.print(f"[green]✓[/green] Updated entry {entry.id} ([bold]{escape(entry.project_name)}[/bold])")


@cli.command()
@click.argument("entry_id", type=int)
@click.option("--yes", "-y", is_flag=True, help="Do not ask for confirmation.")
def delete(entry_id: int, yes: bool) -> None:
    """Delete an entry."""
    with open_store() as store:
        entry = store.get_entry(entry_id)
        if not yes:
            question = f"Delete entry {entry.id} ({escape(entry.project_name)}, {format_time(entry.start_time)})?"
            if not Confirm.ask(question, console=console, default=False):
                console.print("[yellow]Cancelled.[/yellow]")
                return
        store.delete_entry(entry_id)

    console.print(f"[green]✓[/green] Deleted entry {entry_id}")


@cli.command()
@click.argument("project")
@click.argument("start_time", metavar="START", type=click.DateTime(formats=DATETIME_FORMATS))
@click.argument("end_time", metavar="END", type=click.DateTime(formats=DATETIME_FORMATS))
@click.option("--description", "-d", default=None, help="What you worked on.")
def manual(project: str, start_time: datetime, end_time: datetime, description: Optional[str]) -> None:
    """Add a completed entry, e.g. tmpo manual api "2024-05-01 09:00" "2024-05-01 10:30"."""
    with open_store() as store:
        entry = store.add_manual_entry(project, start_time, end_time, description)

    console.print(
        f"[green]✓[/green] Added entry {entry.id} for [bold]{escape(entry.project_name)}[/bold] "
        f"({format_duration(entry.duration())})"
    )


# Setup


@cli.command()
@click.option("--name", "-n", default=None, help="Project name (defaults to the git repository or directory name).")
@click.option("--rate", "-r", type=click.FloatRange(min=0), default=None, help="Hourly rate used by 'tmpo stats'.")
@click.option("--description", "-d", default=None, help="Short project description.")
@click.option("--force", is_flag=True, help="Overwrite an existing .tmporc.")
def init(name: Optional[str], rate: Optional[float], description: Optional[str], force: bool) -> None:
    """Create a .tmporc for the current directory."""
    cwd = Path.cwd()
    try:
        if not name:
            name = detect_project(cwd).project_name
        path = write_project_file(cwd, name, hourly_rate=rate, description=description, force=force)
    except (ProjectConfigError, OSError) as e:
        raise click.ClickException(str(e)) from e

    console.print(f"[green]✓[/green] Created {escape(str(path))} for [bold]{escape(name)}[/bold]")


def main() -> None:
    cli()


if __name__ == "__main__":
    main()
