"""
SQLite persistence for client-side key/value state.

This module provides functions for obtaining a database connection
(``get_connection``) and for applying the tiny schema the client needs
(``init_db``).  The only table, ``credentials``, maps string keys to
string values; the credential store keeps the ``authToken`` and
``user`` entries there and always writes or deletes them inside a single
transaction.

The migration mechanism stores applied migration versions in the
``migrations`` table and executes new migrations in order.
"""

import logging
import os
import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Dict, Iterable, Iterator, Mapping


logger = logging.getLogger(__name__)

MIGRATIONS: list[tuple[int, str]] = [
    (
        1,
        """
        CREATE TABLE IF NOT EXISTS credentials (
            key TEXT PRIMARY KEY,
            value TEXT NOT NULL,
            updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
        );
        """,
    ),
]


def get_database_path(path: str) -> str:
    """Resolve ``path`` to an absolute file name, creating its directory.

    ``:memory:`` is returned unchanged.
    """
    if path == ":memory:":
        return path
    resolved = Path(os.path.expanduser(path)).resolve()
    resolved.parent.mkdir(parents=True, exist_ok=True)
    return str(resolved)


def get_connection(path: str) -> sqlite3.Connection:
    """Create and return a new SQLite connection.

    The connection uses a row factory to access columns by name.
    """
    conn = sqlite3.connect(get_database_path(path))
    conn.row_factory = sqlite3.Row
    return conn


@contextmanager
def transaction(conn: sqlite3.Connection) -> Iterator[sqlite3.Cursor]:
    """Yield a cursor; commit on success, roll back on any exception."""
    cursor = conn.cursor()
    try:
        yield cursor
        conn.commit()
    except Exception:
        conn.rollback()
        raise
    finally:
        cursor.close()


def init_db(conn: sqlite3.Connection) -> None:
    """Apply pending migrations on ``conn``."""
    with transaction(conn) as cursor:
        cursor.execute(
            "CREATE TABLE IF NOT EXISTS migrations (version INTEGER PRIMARY KEY, applied_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP)"
        )
        row = cursor.execute("SELECT COALESCE(MAX(version), 0) AS version FROM migrations").fetchone()
        current = row["version"] if row else 0
    for version, script in MIGRATIONS:
        if version <= current:
            continue
        logger.debug("Applying credentials schema migration %s", version)
        conn.executescript(script)
        with transaction(conn) as cursor:
            cursor.execute("INSERT INTO migrations (version) VALUES (?)", (version,))


def read_values(conn: sqlite3.Connection, keys: Iterable[str]) -> Dict[str, str]:
    """Return the stored values for ``keys``; missing keys are omitted."""
    keys = list(keys)
    placeholders = ",".join("?" for _ in keys)
    rows = conn.execute(
        f"SELECT key, value FROM credentials WHERE key IN ({placeholders})",
        tuple(keys),
    ).fetchall()
    return {row["key"]: row["value"] for row in rows}


def write_values(conn: sqlite3.Connection, values: Mapping[str, str]) -> None:
    """Upsert all ``values`` in one transaction."""
    with transaction(conn) as cursor:
        cursor.executemany(
            """
            INSERT INTO credentials (key, value, updated_at) VALUES (?, ?, CURRENT_TIMESTAMP)
            ON CONFLICT(key) DO UPDATE SET value = excluded.value, updated_at = CURRENT_TIMESTAMP
            """,
            list(values.items()),
        )


def delete_values(conn: sqlite3.Connection, keys: Iterable[str]) -> None:
    """Delete all ``keys`` in one transaction."""
    with transaction(conn) as cursor:
        cursor.executemany("DELETE FROM credentials WHERE key = ?", [(key,) for key in keys])
