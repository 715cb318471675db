"""
SQLite-backed storage for time entries

The store owns one connection for the lifetime of a command and enforces the
lifecycle rules of an entry: at most one entry is running at a time, an end
time is written exactly once, and operations on unknown ids fail loudly.
"""

import sqlite3
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Callable, Iterator, List, Optional, Union

from pydantic import ValidationError

import config
from display import debug
from entry import TimeEntry

SCHEMA = """
CREATE TABLE IF NOT EXISTS time_entries (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    project_name TEXT NOT NULL,
    start_time TEXT NOT NULL,
    end_time TEXT,
    description TEXT,
    manual INTEGER NOT NULL DEFAULT 0
);
CREATE INDEX IF NOT EXISTS idx_time_entries_start ON time_entries(start_time);
"""

# Columns added after the first release, with the DDL that adds them.
MIGRATIONS = {
    "manual": "ALTER TABLE time_entries ADD COLUMN manual INTEGER NOT NULL DEFAULT 0",
}

COLUMNS = "id, project_name, start_time, end_time, description"

Clock = Callable[[], datetime]


class StoreError(Exception):
    """Base class for every failure raised by the entry store."""

    def __init__(self, message: str, operation: Optional[str] = None):
        super().__init__(message)
        self.operation = operation


class StoreInitError(StoreError):
    """The data directory, database file or schema could not be set up."""

    def __init__(self, step: str, path: Optional[Path], cause: Exception):
        where = f" ({path})" if path else ""
        super().__init__(f"failed to {step}{where}: {cause}", operation="initialize")
        self.step = step
        self.path = path


class AlreadyTrackingError(StoreError):
    def __init__(self, entry: TimeEntry):
        super().__init__(
            f"already tracking '{entry.project_name}' (entry {entry.id})",
            operation="create entry",
        )
        self.entry = entry


class EntryNotFoundError(StoreError):
    def __init__(self, entry_id: int, operation: Optional[str] = None):
        super().__init__(f"entry {entry_id} not found", operation=operation)
        self.entry_id = entry_id


class EntryNotRunningError(StoreError):
    def __init__(self, entry: TimeEntry):
        super().__init__(f"entry {entry.id} is already stopped", operation="stop entry")
        self.entry = entry


class InvalidEntryError(StoreError):
    pass


class StoreClosedError(StoreError):
    pass


def _to_db(value: datetime) -> str:
    # Fixed-width text keeps lexical order equal to chronological order.
    return value.isoformat(timespec="microseconds")


def _row_to_entry(row: sqlite3.Row) -> TimeEntry:
    return TimeEntry.model_validate(dict(row))


def _migrate(connection: sqlite3.Connection) -> None:
    existing = {row["name"] for row in connection.execute("PRAGMA table_info(time_entries)")}
    for column, ddl in MIGRATIONS.items():
        if column not in existing:
            connection.execute(ddl)


def _clean_project(project_name: Optional[str], operation: str) -> str:
    cleaned = (project_name or "").strip()
    if not cleaned:
        raise InvalidEntryError("project name cannot be empty", operation=operation)
    return cleaned


def _clean_description(description: Optional[str]) -> Optional[str]:
    if description is None:
        return None
    return description.strip() or None


class EntryStore:
    """Durable, single-writer store of :class:`TimeEntry` records.

    Construct one per command with :meth:`open` and close it when the command
    finishes, preferably with ``with EntryStore.open() as store:``.

    Args:
        connection: An open sqlite3 connection in autocommit mode.
        clock: Source of "now"; injectable for tests.
    """

    def __init__(self, connection: sqlite3.Connection, clock: Clock = datetime.now):
        self._conn: Optional[sqlite3.Connection] = connection
        self._clock = clock

    @classmethod
    def open(
        cls,
        directory: Optional[Union[str, Path]] = None,
        clock: Clock = datetime.now,
    ) -> "EntryStore":
        """Create the data directory and schema if needed and open the store.

        Raises:
            StoreInitError: if any bootstrap step fails.
        """
        try:
            directory = Path(directory) if directory else config.data_dir()
        except (RuntimeError, KeyError) as e:
            raise StoreInitError("resolve home directory", None, e) from e

        try:
            directory.mkdir(mode=0o700, parents=True, exist_ok=True)
        except OSError as e:
            raise StoreInitError("create data directory", directory, e) from e

        path = config.db_path(directory)
        try:
            connection = sqlite3.connect(str(path), isolation_level=None)
        except sqlite3.Error as e:
            raise StoreInitError("open database", path, e) from e

        connection.row_factory = sqlite3.Row
        try:
            connection.executescript(SCHEMA)
            _migrate(connection)
        except sqlite3.Error as e:
            connection.close()
            raise StoreInitError("create schema", path, e) from e

        debug(f"opened entry store at {path}")
        return cls(connection, clock=clock)

    def __enter__(self) -> "EntryStore":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    @property
    def closed(self) -> bool:
        return self._conn is None

    def close(self) -> None:
        """Release the connection. Calling it again is a no-op."""
        if self._conn is None:
            return
        conn, self._conn = self._conn, None
        try:
            conn.close()
        except sqlite3.Error as e:
            raise StoreError(f"failed to close database: {e}", operation="close") from e

    @contextmanager
    def _operation(self, name: str) -> Iterator[sqlite3.Connection]:
        if self._conn is None:
            raise StoreClosedError(f"cannot {name}: store is closed", operation=name)
        try:
            yield self._conn
        except sqlite3.Error as e:
            raise StoreError(f"failed to {name}: {e}", operation=name) from e
        except ValidationError as e:
            raise StoreError(f"failed to {name}: stored entry is invalid: {e}", operation=name) from e

    @contextmanager
    def _transaction(self, name: str) -> Iterator[sqlite3.Connection]:
        # BEGIN IMMEDIATE takes the write lock up front so a check followed by
        # a write cannot interleave with another process doing the same.
        with self._operation(name) as conn:
            conn.execute("BEGIN IMMEDIATE")
            try:
                yield conn
            except Exception:
                conn.rollback()
                raise
            conn.commit()

    @staticmethod
    def _fetch(conn: sqlite3.Connection, entry_id: int) -> Optional[TimeEntry]:
        row = conn.execute(
            f"SELECT {COLUMNS} FROM time_entries WHERE id = ?", (entry_id,)
        ).fetchone()
        return _row_to_entry(row) if row else None

    @staticmethod
    def _fetch_running(conn: sqlite3.Connection) -> Optional[TimeEntry]:
        row = conn.execute(
            f"""
            SELECT {COLUMNS}
            FROM time_entries
            WHERE end_time IS NULL
            ORDER BY start_time DESC, id DESC
            LIMIT 1
            """
        ).fetchone()
        return _row_to_entry(row) if row else None

    def create_entry(self, project_name: str, description: Optional[str] = None) -> TimeEntry:
        """Start a new running entry.

        The running-entry check and the insert happen in one transaction.

        Raises:
            InvalidEntryError: if the project name is blank.
            AlreadyTrackingError: if another entry is still running.
        """
        project_name = _clean_project(project_name, "create entry")
        with self._transaction("create entry") as conn:
            running = self._fetch_running(conn)
            if running is not None:
                raise AlreadyTrackingError(running)
            cursor = conn.execute(
                "INSERT INTO time_entries (project_name, start_time, description) VALUES (?, ?, ?)",
                (project_name, _to_db(self._clock()), _clean_description(description)),
            )
            entry_id = cursor.lastrowid

        debug(f"created entry {entry_id} for '{project_name}'")
        return self.get_entry(entry_id)

    def get_running_entry(self) -> Optional[TimeEntry]:
        """Return the running entry, or None when nothing is being tracked."""
        with self._operation("get running entry") as conn:
            return self._fetch_running(conn)

    def stop_entry(self, entry_id: int) -> TimeEntry:
        """Set the end time of a running entry to now.

        Raises:
            EntryNotFoundError: if no entry has this id.
            EntryNotRunningError: if the entry was already stopped.
        """
        with self._transaction("stop entry") as conn:
            entry = self._fetch(conn, entry_id)
            if entry is None:
                raise EntryNotFoundError(entry_id, operation="stop entry")
            if not entry.is_running:
                raise EntryNotRunningError(entry)
            end_time = max(self._clock(), entry.start_time)
            conn.execute(
                "UPDATE time_entries SET end_time = ? WHERE id = ? AND end_time IS NULL",
                (_to_db(end_time), entry_id),
            )

        debug(f"stopped entry {entry_id}")
        return self.get_entry(entry_id)

    def get_entry(self, entry_id: int) -> TimeEntry:
        with self._operation("get entry") as conn:
            entry = self._fetch(conn, entry_id)
        if entry is None:
            raise EntryNotFoundError(entry_id, operation="get entry")
        return entry

    def get_last_stopped_entry(self) -> Optional[TimeEntry]:
        """The tracked entry that was stopped most recently, used to resume work.

        Backfilled entries from :meth:`add_manual_entry` are never candidates.
        """
        with self._operation("get last stopped entry") as conn:
            row = conn.execute(
                f"""
                SELECT {COLUMNS}
                FROM time_entries
                WHERE end_time IS NOT NULL AND manual = 0
                ORDER BY end_time DESC, id DESC
                LIMIT 1
                """
            ).fetchone()
            return _row_to_entry(row) if row else None

    def list_entries(
        self,
        project_name: Optional[str] = None,
        since: Optional[datetime] = None,
        until: Optional[datetime] = None,
        limit: Optional[int] = None,
    ) -> List[TimeEntry]:
        """Entries newest first, filtered by project and ``since <= start < until``."""
        sql = f"SELECT {COLUMNS} FROM time_entries"
        clauses: List[str] = []
        params: List[object] = []
        project_name = (project_name or "").strip()
        if project_name:
            clauses.append("project_name = ?")
            params.append(project_name)
        if since is not None:
            clauses.append("start_time >= ?")
            params.append(_to_db(since))
        if until is not None:
            clauses.append("start_time < ?")
            params.append(_to_db(until))
        if clauses:
            sql += " WHERE " + " AND ".join(clauses)
        sql += " ORDER BY start_time DESC, id DESC"
        if limit is not None:
            sql += " LIMIT ?"
            params.append(limit)

        with self._operation("list entries") as conn:
            rows = conn.execute(sql, params).fetchall()
            return [_row_to_entry(row) for row in rows]

    def add_manual_entry(
        self,
        project_name: str,
        start_time: datetime,
        end_time: datetime,
        description: Optional[str] = None,
    ) -> TimeEntry:
        """Backfill a completed entry.

        Raises:
            InvalidEntryError: for a blank project, an end before the start,
                or an end in the future.
        """
        project_name = _clean_project(project_name, "add manual entry")
        if end_time < start_time:
            raise InvalidEntryError("end time must not be earlier than start time", operation="add manual entry")
        if end_time > self._clock():
            raise InvalidEntryError("end time cannot be in the future", operation="add manual entry")

        with self._transaction("add manual entry") as conn:
            cursor = conn.execute(
                "INSERT INTO time_entries (project_name, start_time, end_time, description, manual) VALUES (?, ?, ?, ?, 1)",
                (project_name, _to_db(start_time), _to_db(end_time), _clean_description(description)),
            )
            entry_id = cursor.lastrowid

        debug(f"added manual entry {entry_id} for '{project_name}'")
        return self.get_entry(entry_id)

    def update_entry(
        self,
        entry_id: int,
        project_name: Optional[str] = None,
        description: Optional[str] = None,
    ) -> TimeEntry:
        """Change the project label and/or description of an entry.

        Timestamps are not editable. An empty description clears it.
        """
        assignments: List[str] = []
        params: List[object] = []
        if project_name is not None:
            assignments.append("project_name = ?")
            params.append(_clean_project(project_name, "update entry"))
        if description is not None:
            assignments.append("description = ?")
            params.append(_clean_description(description))

        with self._transaction("update entry") as conn:
            if self._fetch(conn, entry_id) is None:
                raise EntryNotFoundError(entry_id, operation="update entry")
            if assignments:
                conn.execute(
                    f"UPDATE time_entries SET {', '.join(assignments)} WHERE id = ?",
                    (*params, entry_id),
                )

        return self.get_entry(entry_id)

    def delete_entry(self, entry_id: int) -> None:
        with self._transaction("delete entry") as conn:
            cursor = conn.execute("DELETE FROM time_entries WHERE id = ?", (entry_id,))
            if cursor.rowcount == 0:
                raise EntryNotFoundError(entry_id, operation="delete entry")
        debug(f"deleted entry {entry_id}")

    def project_names(self) -> List[str]:
        with self._operation("list projects") as conn:
            rows = conn.execute(
                "SELECT DISTINCT project_name FROM time_entries ORDER BY project_name COLLATE NOCASE"
            ).fetchall()
        return [row[0] for row in rows]
