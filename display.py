"""
Console rendering helpers shared by the tmpo commands
"""

from datetime import datetime, timedelta
from typing import Dict, List, Optional

from rich.console import Console
from rich.markup import escape
from rich.table import Table

import config
from entry import TimeEntry
from reports import ProjectStats

console = Console()
err_console = Console(stderr=True)

TIME_FORMAT = "%Y-%m-%d %H:%M"


def debug(message: str) -> None:
    """Print a dim trace line to stderr when TMPO_DEBUG is set."""
    if config.debug_enabled():
        err_console.print(f"[dim]DEBUG: {message}[/dim]", highlight=False, soft_wrap=True)


def format_duration(delta: timedelta) -> str:
    total = max(int(delta.total_seconds()), 0)
    hours, rem = divmod(total, 3600)
    minutes, seconds = divmod(rem, 60)
    if hours:
        return f"{hours}h {minutes:02d}m {seconds:02d}s"
    if minutes:
        return f"{minutes}m {seconds:02d}s"
    return f"{seconds}s"


def format_time(value: Optional[datetime]) -> str:
    return value.strftime(TIME_FORMAT) if value else "-"


def entries_table(entries: List[TimeEntry], now: Optional[datetime] = None) -> Table:
    now = now or datetime.now()
    table = Table(show_header=True, header_style="bold magenta")
    table.add_column("ID", style="dim", justify="right")
    table.add_column("Project", style="blue")
    table.add_column("Start", style="green")
    table.add_column("End", style="green")
    table.add_column("Duration", style="yellow", justify="right")
    table.add_column("Description", style="cyan")

    for entry in entries:
        end = "[bold green]running[/bold green]" if entry.is_running else format_time(entry.end_time)
        description = entry.description or ""
        table.add_row(
            str(entry.id),
            escape(entry.project_name),
            format_time(entry.start_time),
            end,
            format_duration(entry.duration(now)),
            escape(description[:37] + "..." if len(description) > 40 else description),
        )
    return table


def stats_table(stats: Dict[str, ProjectStats], rates: Dict[str, float]) -> Table:
    show_earnings = any(name in rates for name in stats)

    table = Table(show_header=True, header_style="bold magenta")
    table.add_column("Project", style="blue")
    table.add_column("Entries", justify="right")
    table.add_column("Total", style="yellow", justify="right")
    if show_earnings:
        table.add_column("Earnings", style="green", justify="right")

    for name, item in stats.items():
        row = [escape(name), str(item.count), format_duration(item.total)]
        if show_earnings:
            rate = rates.get(name)
            row.append(f"{item.earnings(rate):.2f}" if rate is not None else "-")
        table.add_row(*row)
    return table
