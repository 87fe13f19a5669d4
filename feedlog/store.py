"""
store.py — Session persistence

The import pipeline only needs the narrow SessionStore interface: a range
query on timestamp, single and bulk insert, and a transaction scope.
SqliteSessionStore implements it on a local SQLite file (or ``:memory:``)
and adds the maintenance queries the CLI uses.
"""

from __future__ import annotations

import logging
import sqlite3
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Iterable, Iterator, Protocol

from feedlog.models import IMPORTED_SOURCES, SessionRecord, SessionType, Side, Source, Unit

logger = logging.getLogger(__name__)

SCHEMA = """
CREATE TABLE IF NOT EXISTS sessions (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    timestamp TEXT NOT NULL,
    session_type TEXT,
    amount_ml REAL NOT NULL,
    amount_entered REAL NOT NULL,
    unit_entered TEXT NOT NULL,
    side TEXT,
    amount_left_ml REAL,
    amount_right_ml REAL,
    duration_min REAL,
    notes TEXT,
    source TEXT NOT NULL DEFAULT 'manual',
    confidence REAL,
    created_at TEXT,
    updated_at TEXT
);
CREATE INDEX IF NOT EXISTS idx_sessions_timestamp ON sessions (timestamp);
CREATE INDEX IF NOT EXISTS idx_sessions_source ON sessions (source);
"""

COLUMNS = (
    "timestamp",
    "session_type",
    "amount_ml",
    "amount_entered",
    "unit_entered",
    "side",
    "amount_left_ml",
    "amount_right_ml",
    "duration_min",
    "notes",
    "source",
    "confidence",
    "created_at",
    "updated_at",
)


class SessionStore(Protocol):
    def find_between(self, start: datetime, end: datetime) -> list[SessionRecord]: ...

    def add(self, record: SessionRecord) -> SessionRecord: ...

    def add_many(self, records: Iterable[SessionRecord]) -> list[SessionRecord]: ...

    def transaction(self): ...


def _ts(value: datetime | None) -> str | None:
    # Fixed-width ISO text keeps lexical order equal to time order.
    return value.isoformat(timespec="microseconds") if value is not None else None


def _parse_ts(value: str | None) -> datetime | None:
    return datetime.fromisoformat(value) if value else None


def _enum_value(value):
    return value.value if value is not None else None


def record_to_row(record: SessionRecord) -> tuple:
    return (
        _ts(record.timestamp),
        _enum_value(record.session_type),
        record.amount_ml,
        record.amount_entered,
        _enum_value(record.unit_entered),
        _enum_value(record.side),
        record.amount_left_ml,
        record.amount_right_ml,
        record.duration_min,
        record.notes,
        _enum_value(record.source),
        record.confidence,
        _ts(record.created_at),
        _ts(record.updated_at),
    )


def row_to_record(row: sqlite3.Row) -> SessionRecord:
    return SessionRecord(
        id=row["id"],
        timestamp=_parse_ts(row["timestamp"]),
        session_type=SessionType(row["session_type"]) if row["session_type"] else None,
        amount_ml=row["amount_ml"],
        amount_entered=row["amount_entered"],
        unit_entered=Unit(row["unit_entered"]),
        side=Side(row["side"]) if row["side"] else None,
        amount_left_ml=row["amount_left_ml"],
        amount_right_ml=row["amount_right_ml"],
        duration_min=row["duration_min"],
        notes=row["notes"],
        source=Source(row["source"]) if row["source"] else Source.MANUAL,
        confidence=row["confidence"] if row["confidence"] is not None else 1.0,
        created_at=_parse_ts(row["created_at"]),
        updated_at=_parse_ts(row["updated_at"]),
    )


class SqliteSessionStore:
    """SQLite-backed SessionStore. Use as a context manager to close the connection."""

    def __init__(self, path: "str | Path" = ":memory:") -> None:
        self.path = str(path)
        if self.path != ":memory:":
            Path(self.path).parent.mkdir(parents=True, exist_ok=True)
        self.conn = sqlite3.connect(self.path, isolation_level=None)
        self.conn.row_factory = sqlite3.Row
        self.conn.executescript(SCHEMA)
        self._depth = 0

    def __enter__(self) -> "SqliteSessionStore":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def close(self) -> None:
        self.conn.close()

    @contextmanager
    def transaction(self) -> Iterator["SqliteSessionStore"]:
        """
        Open a write transaction; nested calls join the outer one.

        BEGIN IMMEDIATE takes the database write lock up front, so two
        imports against the same file run one after the other.
        """
        if self._depth:
            self._depth += 1
            try:
                yield self
            finally:
                self._depth -= 1
            return

        self.conn.execute("BEGIN IMMEDIATE")
        self._depth = 1
        try:
            yield self
        except BaseException:
            self.conn.execute("ROLLBACK")
            logger.debug("Rolled back session transaction")
            raise
        else:
            self.conn.execute("COMMIT")
        finally:
            self._depth = 0

    # ── SessionStore interface ──────────────────────────────────────────────

    def find_between(self, start: datetime, end: datetime) -> list[SessionRecord]:
        """Records with ``start <= timestamp <= end``, oldest first."""
        rows = self.conn.execute(
            "SELECT * FROM sessions WHERE timestamp BETWEEN ? AND ? ORDER BY timestamp, id",
            (_ts(start), _ts(end)),
        ).fetchall()
        return [row_to_record(row) for row in rows]

    def add(self, record: SessionRecord) -> SessionRecord:
        placeholders = ", ".join("?" for _ in COLUMNS)
        cursor = self.conn.execute(
            f"INSERT INTO sessions ({', '.join(COLUMNS)}) VALUES ({placeholders})",
            record_to_row(record),
        )
        return record.with_id(cursor.lastrowid)

    def add_many(self, records: Iterable[SessionRecord]) -> list[SessionRecord]:
        with self.transaction():
            return [self.add(record) for record in records]

    # ── Maintenance ─────────────────────────────────────────────────────────

    def all_sessions(self) -> list[SessionRecord]:
        rows = self.conn.execute("SELECT * FROM sessions ORDER BY timestamp, id").fetchall()
        return [row_to_record(row) for row in rows]

    def count(self) -> int:
        return self.conn.execute("SELECT COUNT(*) FROM sessions").fetchone()[0]

    def count_by_source(self) -> dict[str, int]:
        counts = {source.value: 0 for source in Source}
        rows = self.conn.execute(
            "SELECT COALESCE(source, 'manual') AS source, COUNT(*) AS n FROM sessions GROUP BY 1"
        ).fetchall()
        for row in rows:
            counts[row["source"]] = counts.get(row["source"], 0) + row["n"]
        return counts

    def delete_imported(
        self,
        sources: Iterable[Source] = IMPORTED_SOURCES,
        after: datetime | None = None,
    ) -> int:
        """
        Delete sessions whose source is in ``sources``.

        With ``after``, only rows created at or after that instant are removed.
        Returns the number of deleted rows.
        """
        values = [Source(source).value for source in sources]
        if not values:
            return 0
        query = f"DELETE FROM sessions WHERE source IN ({', '.join('?' for _ in values)})"
        params: list = list(values)
        if after is not None:
            query += " AND created_at >= ?"
            params.append(_ts(after))
        with self.transaction():
            deleted = self.conn.execute(query, params).rowcount
        logger.info("Deleted %d sessions from sources %s", deleted, ", ".join(values))
        return deleted
