"""
Tests for the entry store lifecycle and persistence rules
"""

import os
import sqlite3
import stat
from datetime import datetime, timedelta

import pytest

import config
from entry_store import (
    AlreadyTrackingError,
    EntryNotFoundError,
    EntryNotRunningError,
    EntryStore,
    InvalidEntryError,
    StoreClosedError,
    StoreError,
    StoreInitError,
)


def test_first_entry_walkthrough(store, clock):
    started_at = clock.now
    entry = store.create_entry("tmpo", "")

    assert entry.id == 1
    assert entry.start_time == started_at
    assert entry.end_time is None
    assert entry.description is None

    assert store.get_running_entry() == entry

    clock.advance(minutes=25)
    stopped = store.stop_entry(1)
    assert stopped.end_time == started_at + timedelta(minutes=25)

    assert store.get_running_entry() is None
    assert store.get_entry(1).end_time >= store.get_entry(1).start_time


def test_create_then_get_preserves_fields(store):
    created = store.create_entry("proj", "desc")
    fetched = store.get_entry(created.id)

    assert fetched.end_time is None
    assert fetched.project_name == "proj"
    assert fetched.description == "desc"
    assert fetched.is_running


def test_stop_sets_end_time_not_before_start(store, clock):
    entry = store.create_entry("proj")
    clock.advance(seconds=90)
    store.stop_entry(entry.id)

    fetched = store.get_entry(entry.id)
    assert fetched.end_time is not None
    assert fetched.end_time >= fetched.start_time
    assert fetched.duration() == timedelta(seconds=90)


def test_stop_clamps_to_start_when_clock_goes_backwards(store, clock):
    entry = store.create_entry("proj")
    clock.advance(minutes=-5)

    stopped = store.stop_entry(entry.id)
    assert stopped.end_time == entry.start_time


def test_alternating_start_stop(store, clock):
    for i in range(5):
        entry = store.create_entry(f"project-{i}")
        assert store.get_running_entry() is not None
        clock.advance(minutes=10)
        store.stop_entry(entry.id)
        assert store.get_running_entry() is None
        clock.advance(minutes=1)


def test_second_start_is_rejected(store):
    first = store.create_entry("one")

    with pytest.raises(AlreadyTrackingError) as excinfo:
        store.create_entry("two")

    assert excinfo.value.entry.id == first.id
    running = [e for e in store.list_entries() if e.is_running]
    assert [e.id for e in running] == [first.id]


def test_second_store_on_same_file_sees_running_entry(data_dir, clock, store):
    store.create_entry("one")
    with EntryStore.open(data_dir, clock=clock) as other:
        with pytest.raises(AlreadyTrackingError):
            other.create_entry("two")


def test_stopping_twice_fails(store, clock):
    entry = store.create_entry("proj")
    clock.advance(minutes=3)
    first_stop = store.stop_entry(entry.id)

    clock.advance(minutes=3)
    with pytest.raises(EntryNotRunningError):
        store.stop_entry(entry.id)

    assert store.get_entry(entry.id).end_time == first_stop.end_time


@pytest.mark.parametrize("operation", ["get_entry", "stop_entry", "delete_entry"])
def test_unknown_id_is_not_found(store, operation):
    with pytest.raises(EntryNotFoundError) as excinfo:
        getattr(store, operation)(42)
    assert excinfo.value.entry_id == 42


def test_update_unknown_id_is_not_found(store):
    with pytest.raises(EntryNotFoundError):
        store.update_entry(7, description="nothing here")


@pytest.mark.parametrize("name", ["", "   ", None])
def test_blank_project_is_rejected(store, name):
    with pytest.raises(InvalidEntryError):
        store.create_entry(name)
    assert store.list_entries() == []


def test_project_name_is_trimmed(store):
    entry = store.create_entry("  api  ", "  fix login  ")
    assert entry.project_name == "api"
    assert entry.description == "fix login"


def test_n_entries_all_stopped_after_restart(data_dir, clock):
    ids = []
    with EntryStore.open(data_dir, clock=clock) as store:
        for i in range(4):
            entry = store.create_entry(f"p{i}")
            clock.advance(minutes=5)
            store.stop_entry(entry.id)
            ids.append(entry.id)

    with EntryStore.open(data_dir, clock=clock) as store:
        entries = store.list_entries()
        assert len(entries) == 4
        assert sorted(e.id for e in entries) == ids
        assert all(e.end_time is not None for e in entries)
        assert store.get_running_entry() is None


def test_running_entry_survives_reopen(data_dir, clock):
    with EntryStore.open(data_dir, clock=clock) as store:
        entry = store.create_entry("persist", "left running")

    with EntryStore.open(data_dir, clock=clock) as store:
        running = store.get_running_entry()

    assert running is not None
    assert running.id == entry.id
    assert running.description == "left running"


def test_running_entry_prefers_latest_start(store, clock):
    # Two running rows can only come from writes that bypass the store.
    conn = store._conn
    conn.execute(
        "INSERT INTO time_entries (project_name, start_time) VALUES (?, ?)",
        ("older", datetime(2026, 10, 19, 8, 0).isoformat(timespec="microseconds")),
    )
    conn.execute(
        "INSERT INTO time_entries (project_name, start_time) VALUES (?, ?)",
        ("newer", datetime(2026, 10, 19, 8, 30).isoformat(timespec="microseconds")),
    )

    assert store.get_running_entry().project_name == "newer"


def test_last_stopped_entry(store, clock):
    assert store.get_last_stopped_entry() is None

    first = store.create_entry("a", "first")
    clock.advance(minutes=10)
    store.stop_entry(first.id)
    clock.advance(minutes=1)
    second = store.create_entry("b", "second")
    clock.advance(minutes=10)
    store.stop_entry(second.id)
    clock.advance(minutes=1)
    store.create_entry("c")

    last = store.get_last_stopped_entry()
    assert last.id == second.id
    assert last.description == "second"


def test_list_entries_filters(store, clock):
    for name in ["api", "web", "api"]:
        entry = store.create_entry(name)
        clock.advance(hours=1)
        store.stop_entry(entry.id)
        clock.advance(days=1)

    newest_first = store.list_entries()
    assert [e.id for e in newest_first] == [3, 2, 1]

    assert [e.id for e in store.list_entries(project_name="api")] == [3, 1]
    assert [e.id for e in store.list_entries(limit=1)] == [3]

    since = datetime(2026, 10, 20)
    until = datetime(2026, 10, 21)
    assert [e.id for e in store.list_entries(since=since, until=until)] == [2]


def test_manual_entry(store, clock):
    start = datetime(2026, 10, 18, 9, 0)
    end = datetime(2026, 10, 18, 11, 30)

    entry = store.add_manual_entry("backfill", start, end, "forgot to start")

    assert entry.start_time == start
    assert entry.end_time == end
    assert entry.duration() == timedelta(hours=2, minutes=30)
    assert store.get_running_entry() is None


def test_manual_entry_allowed_while_tracking(store):
    store.create_entry("live")
    entry = store.add_manual_entry("backfill", datetime(2026, 10, 1, 9), datetime(2026, 10, 1, 10))
    assert not entry.is_running
    assert store.get_running_entry().project_name == "live"


def test_manual_entry_rejects_bad_intervals(store):
    with pytest.raises(InvalidEntryError):
        store.add_manual_entry("x", datetime(2026, 10, 18, 12), datetime(2026, 10, 18, 11))
    with pytest.raises(InvalidEntryError):
        store.add_manual_entry("x", datetime(2026, 10, 19, 8), datetime(2026, 10, 19, 10))
    assert store.list_entries() == []


def test_update_entry(store, clock):
    entry = store.create_entry("old", "draft")
    clock.advance(minutes=30)
    store.stop_entry(entry.id)

    updated = store.update_entry(entry.id, project_name="new", description="final")
    assert updated.project_name == "new"
    assert updated.description == "final"
    assert updated.start_time == entry.start_time

    cleared = store.update_entry(entry.id, description="")
    assert cleared.description is None
    assert cleared.project_name == "new"


def test_update_rejects_blank_project(store):
    entry = store.create_entry("keep")
    with pytest.raises(InvalidEntryError):
        store.update_entry(entry.id, project_name="  ")
    assert store.get_entry(entry.id).project_name == "keep"


def test_delete_running_entry_frees_the_slot(store):
    entry = store.create_entry("oops")
    store.delete_entry(entry.id)

    assert store.get_running_entry() is None
    with pytest.raises(EntryNotFoundError):
        store.get_entry(entry.id)
    assert store.create_entry("again").id == entry.id + 1


def test_project_names(store, clock):
    for name in ["web", "Api", "web", "cli"]:
        entry = store.create_entry(name)
        store.stop_entry(entry.id)
        clock.advance(minutes=1)
    assert store.project_names() == ["Api", "cli", "web"]


def test_closed_store_rejects_operations(data_dir, clock):
    store = EntryStore.open(data_dir, clock=clock)
    store.close()

    assert store.closed
    with pytest.raises(StoreClosedError):
        store.get_running_entry()
    store.close()


def test_context_manager_closes(data_dir):
    with EntryStore.open(data_dir) as store:
        assert not store.closed
    assert store.closed


def test_open_uses_configured_home(tmp_path, monkeypatch):
    home = tmp_path / "configured"
    monkeypatch.setenv("TMPO_HOME", str(home))

    with EntryStore.open() as store:
        store.create_entry("env")

    assert (home / config.DB_FILE_NAME).is_file()


@pytest.mark.skipif(os.name == "nt", reason="POSIX permissions")
def test_data_directory_is_private(data_dir):
    EntryStore.open(data_dir).close()
    assert stat.S_IMODE(data_dir.stat().st_mode) == 0o700


def test_init_fails_when_directory_is_a_file(tmp_path):
    blocker = tmp_path / "blocker"
    blocker.write_text("not a directory")

    with pytest.raises(StoreInitError) as excinfo:
        EntryStore.open(blocker)
    assert excinfo.value.step == "create data directory"


def test_init_fails_when_database_cannot_be_opened(data_dir):
    (data_dir / config.DB_FILE_NAME).mkdir(parents=True)

    with pytest.raises(StoreInitError) as excinfo:
        EntryStore.open(data_dir)
    assert excinfo.value.step in ("open database", "create schema")


def test_init_fails_without_home(monkeypatch):
    def no_home():
        raise RuntimeError("Could not determine home directory.")

    monkeypatch.setattr(config, "data_dir", no_home)

    with pytest.raises(StoreInitError) as excinfo:
        EntryStore.open()
    assert excinfo.value.step == "resolve home directory"


def test_resume_candidate_ignores_backfill(store, clock):
    paused = store.create_entry("design", "mockups")
    clock.advance(hours=1)
    store.stop_entry(paused.id)

    clock.advance(hours=2)
    store.add_manual_entry(
        "meeting",
        clock.now - timedelta(minutes=105),
        clock.now - timedelta(minutes=15),
    )

    last = store.get_last_stopped_entry()
    assert last.id == paused.id
    assert last.project_name == "design"


def test_only_backfills_leave_nothing_to_resume(store):
    store.add_manual_entry("meeting", datetime(2026, 10, 18, 9), datetime(2026, 10, 18, 10))
    assert store.get_last_stopped_entry() is None


def test_database_without_manual_column_is_upgraded(data_dir, clock):
    data_dir.mkdir(parents=True)
    conn = sqlite3.connect(str(data_dir / config.DB_FILE_NAME))
    conn.execute(
        """
        CREATE TABLE time_entries (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            project_name TEXT NOT NULL,
            start_time TEXT NOT NULL,
            end_time TEXT,
            description TEXT
        )
        """
    )
    conn.execute(
        "INSERT INTO time_entries (project_name, start_time, end_time) VALUES (?, ?, ?)",
        ("legacy", "2026-10-18T09:00:00.000000", "2026-10-18T10:00:00.000000"),
    )
    conn.commit()
    conn.close()

    with EntryStore.open(data_dir, clock=clock) as store:
        assert store.get_last_stopped_entry().project_name == "legacy"
        store.add_manual_entry("backfill", datetime(2026, 10, 18, 11), datetime(2026, 10, 18, 12))
        assert store.get_last_stopped_entry().project_name == "legacy"


def test_project_filter_is_trimmed(store):
    entry = store.create_entry("api")
    store.stop_entry(entry.id)

    assert [e.id for e in store.list_entries(project_name="  api ")] == [entry.id]
    assert len(store.list_entries(project_name="   ")) == 1


def test_unreadable_row_raises_store_error(store):
    store._conn.execute(
        "INSERT INTO time_entries (project_name, start_time) VALUES (?, ?)",
        ("", "2026-10-19T08:00:00.000000"),
    )

    with pytest.raises(StoreError) as excinfo:
        store.get_entry(1)
    assert excinfo.value.operation == "get entry"
    assert "stored entry is invalid" in str(excinfo.value)

    with pytest.raises(StoreError) as excinfo:
        store.list_entries()
    assert excinfo.value.operation == "list entries"
