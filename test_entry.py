from datetime import datetime, timedelta

import pytest
from pydantic import ValidationError

from entry import TimeEntry, TimeEntryList

START = datetime(2026, 10, 19, 9, 0)


def test_running_entry_duration_uses_now():
    entry = TimeEntry(id=1, project_name="api", start_time=START)

    assert entry.is_running
    assert entry.duration(START + timedelta(minutes=42)) == timedelta(minutes=42)


def test_stopped_entry_duration_ignores_now():
    entry = TimeEntry(id=1, project_name="api", start_time=START, end_time=START + timedelta(hours=2))

    assert not entry.is_running
    assert entry.duration(START + timedelta(days=3)) == timedelta(hours=2)


def test_end_before_start_is_invalid():
    with pytest.raises(ValidationError):
        TimeEntry(id=1, project_name="api", start_time=START, end_time=START - timedelta(seconds=1))


def test_empty_project_is_invalid():
    with pytest.raises(ValidationError):
        TimeEntry(id=1, project_name="", start_time=START)


def test_list_json_shape():
    entries = TimeEntryList(entries=[TimeEntry(id=3, project_name="web", start_time=START, description="css")])
    data = entries.model_dump(mode="json")

    assert data["entries"][0]["id"] == 3
    assert data["entries"][0]["end_time"] is None
    assert data["entries"][0]["start_time"] == "2026-10-19T09:00:00"
