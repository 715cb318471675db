"""
Aggregation and export of time entries
"""

import csv
import io
from datetime import datetime, timedelta
from typing import Dict, List, Optional, Tuple

from pydantic import BaseModel, Field

from entry import TimeEntry, TimeEntryList

CSV_HEADER = ["id", "project", "start_time", "end_time", "duration_seconds", "description"]


class ProjectStats(BaseModel):
    count: int = Field(0, description="Number of entries for the project.")
    total: timedelta = Field(default_factory=timedelta, description="Tracked time for the project.")

    @property
    def hours(self) -> float:
        return self.total.total_seconds() / 3600

    def earnings(self, hourly_rate: float) -> float:
        return round(self.hours * hourly_rate, 2)


def period_range(period: str, now: Optional[datetime] = None) -> Tuple[Optional[datetime], Optional[datetime]]:
    """Return the ``(since, until)`` bounds for a named period.

    Weeks start on Monday. ``all`` is unbounded on both sides.
    """
    now = now or datetime.now()
    midnight = now.replace(hour=0, minute=0, second=0, microsecond=0)

    if period == "today":
        return midnight, midnight + timedelta(days=1)
    if period == "week":
        start = midnight - timedelta(days=midnight.weekday())
        return start, start + timedelta(days=7)
    if period == "month":
        start = midnight.replace(day=1)
        if start.month == 12:
            end = start.replace(year=start.year + 1, month=1)
        else:
            end = start.replace(month=start.month + 1)
        return start, end
    if period == "all":
        return None, None
    raise ValueError(f"Unknown period: {period}")


def project_stats(entries: List[TimeEntry], now: Optional[datetime] = None) -> Dict[str, ProjectStats]:
    """Total tracked time per project, largest total first.

    Running entries count up to ``now``.
    """
    now = now or datetime.now()
    stats: Dict[str, ProjectStats] = {}
    for entry in entries:
        item = stats.setdefault(entry.project_name, ProjectStats())
        item.count += 1
        item.total += entry.duration(now)
    return dict(sorted(stats.items(), key=lambda kv: (-kv[1].total, kv[0].lower())))


def total_duration(stats: Dict[str, ProjectStats]) -> timedelta:
    return sum((item.total for item in stats.values()), timedelta())


def to_csv(entries: List[TimeEntry], now: Optional[datetime] = None) -> str:
    now = now or datetime.now()
    buffer = io.StringIO()
    writer = csv.writer(buffer, lineterminator="\n")
    writer.writerow(CSV_HEADER)
    for entry in entries:
        writer.writerow(
            [
                entry.id,
                entry.project_name,
                entry.start_time.isoformat(timespec="seconds"),
                entry.end_time.isoformat(timespec="seconds") if entry.end_time else "",
                int(entry.duration(now).total_seconds()),
                entry.description or "",
            ]
        )
    return buffer.getvalue()


def to_json(entries: List[TimeEntry]) -> str:
    return TimeEntryList(entries=entries).model_dump_json(indent=2)


EXPORTERS = {"csv": to_csv, "json": to_json}
