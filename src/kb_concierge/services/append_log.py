"""Append-only tabular log used to persist leads and visit requests."""

from __future__ import annotations

import logging
import re
import sqlite3
import threading
from pathlib import Path
from typing import Any, Protocol

from kb_concierge.errors import PersistenceFailure

logger = logging.getLogger(__name__)

_IDENTIFIER = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")

LEAD_COLUMNS = (
    "timestamp_utc",
    "full_name",
    "email",
    "phone",
    "interest",
    "message",
    "source",
    "extra",
)
VISIT_COLUMNS = (
    "timestamp_utc",
    "status",
    "modality",
    "start_local",
    "end_local",
    "timezone",
    "contact_name",
    "contact_email",
    "contact_phone",
    "notes",
    "event_id",
)


class AppendLog(Protocol):
    """Append a fixed-column row to a named table. No read API."""

    def append(self, table: str, row: dict[str, Any]) -> None: ...


class InMemoryAppendLog:
    """Process-local append log, handy for tests and offline runs."""

    def __init__(self) -> None:
        self._tables: dict[str, list[dict[str, Any]]] = {}
        self._lock = threading.Lock()

    def append(self, table: str, row: dict[str, Any]) -> None:
        with self._lock:
            self._tables.setdefault(table, []).append(dict(row))

    def rows(self, table: str) -> list[dict[str, Any]]:
        with self._lock:
            return list(self._tables.get(table, []))


class SqliteAppendLog:
    """SQLite-backed append log with one fixed-column table per name.

    Tables are created on first use from the declared column set; values
    are stored as text. Every sqlite error is reported as
    ``PersistenceFailure`` so tool callers can degrade.
    """

    def __init__(
        self,
        path: str | Path,
        schemas: dict[str, tuple[str, ...]] | None = None,
    ) -> None:
        self._path = Path(path)
        self._schemas = dict(schemas or {"leads": LEAD_COLUMNS, "visits": VISIT_COLUMNS})
        for table, columns in self._schemas.items():
            _check_identifiers(table, columns)
        self._ready: set[str] = set()
        self._lock = threading.Lock()

    def append(self, table: str, row: dict[str, Any]) -> None:
        columns = self._schemas.get(table)
        if columns is None:
            raise PersistenceFailure(f"append:{table}", "unknown table")

        values = tuple(_as_text(row.get(column)) for column in columns)
        placeholders = ", ".join("?" for _ in columns)
        try:
            with self._lock, sqlite3.connect(self._path) as conn:
                if table not in self._ready:
                    column_sql = ", ".join(f"{column} TEXT" for column in columns)
                    conn.execute(
                        f"CREATE TABLE IF NOT EXISTS {table} "
                        f"(id INTEGER PRIMARY KEY AUTOINCREMENT, {column_sql})"
                    )
                    self._ready.add(table)
                conn.execute(
                    f"INSERT INTO {table} ({', '.join(columns)}) VALUES ({placeholders})",
                    values,
                )
                conn.commit()
        except sqlite3.Error as exc:
            raise PersistenceFailure(f"append:{table}", exc) from exc
        logger.debug("Appended row to %s", table)


def _check_identifiers(table: str, columns: tuple[str, ...]) -> None:
    for name in (table, *columns):
        if not _IDENTIFIER.match(name):
            raise ValueError(f"Invalid table or column name: {name!r}")


def _as_text(value: Any) -> str:
    if value is None:
        return ""
    return str(value)
