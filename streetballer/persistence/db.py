"""
Database connection, initialization and transaction helpers.

Connections run in autocommit mode: a single statement commits on its own,
multi-step writes go through transaction(), which takes SQLite's write lock
up front (BEGIN IMMEDIATE) so concurrent writers are serialized.
"""
from __future__ import annotations

import sqlite3
import uuid
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator

from streetballer.config import settings

from .schema import all_schema_sql


def _run_score_contested_migration(conn: sqlite3.Connection) -> None:
    """Add matches.score_contested for databases created before re-submission tracking."""
    cur = conn.execute("PRAGMA table_info(matches)")
    cols = [row[1] for row in cur.fetchall()]
    if "score_contested" not in cols:
        conn.execute("ALTER TABLE matches ADD COLUMN score_contested INTEGER NOT NULL DEFAULT 0")


_db_path: Path | None = None


def set_db_path(path: str | Path) -> None:
    """Set the database path. Call before first get_connection if not using default."""
    global _db_path
    _db_path = Path(path)


def get_db_path() -> Path:
    """Return the current database path."""
    if _db_path is not None:
        return _db_path
    return Path(settings.database_path)


def get_connection(db_path: str | Path | None = None) -> sqlite3.Connection:
    """
    Return a new SQLite connection (autocommit, foreign keys on).
    Use as context manager or ensure close() is called.
    """
    path = Path(db_path) if db_path else get_db_path()
    path.parent.mkdir(parents=True, exist_ok=True)
    conn = sqlite3.connect(str(path), timeout=settings.db_timeout_seconds, isolation_level=None)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA foreign_keys = ON")
    return conn


def init_db(db_path: str | Path | None = None) -> None:
    """Create or ensure all tables exist."""
    path = Path(db_path) if db_path else get_db_path()
    path.parent.mkdir(parents=True, exist_ok=True)
    conn = sqlite3.connect(str(path))
    try:
        conn.execute("PRAGMA journal_mode = WAL")
        conn.executescript(all_schema_sql())
        _run_score_contested_migration(conn)
        conn.commit()
    finally:
        conn.close()


@contextmanager
def transaction(conn: sqlite3.Connection) -> Iterator[sqlite3.Connection]:
    """
    Run the block as one atomic unit.
    Outermost use opens BEGIN IMMEDIATE; nested use becomes a savepoint.
    """
    if conn.in_transaction:
        with savepoint(conn):
            yield conn
        return
    conn.execute("BEGIN IMMEDIATE")
    try:
        yield conn
    except BaseException:
        conn.execute("ROLLBACK")
        raise
    conn.execute("COMMIT")


@contextmanager
def savepoint(conn: sqlite3.Connection) -> Iterator[sqlite3.Connection]:
    """Roll back only this block on error; the enclosing transaction survives."""
    name = f"sp_{uuid.uuid4().hex}"
    conn.execute(f"SAVEPOINT {name}")
    try:
        yield conn
    except BaseException:
        conn.execute(f"ROLLBACK TO SAVEPOINT {name}")
        conn.execute(f"RELEASE SAVEPOINT {name}")
        raise
    conn.execute(f"RELEASE SAVEPOINT {name}")
