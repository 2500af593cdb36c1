# sitebid/db.py
# Database abstraction layer supporting PostgreSQL (production) and SQLite (dev)

import sqlite3
from contextlib import contextmanager
from pathlib import Path as FsPath
from typing import Any, Dict, Generator, Optional, Union
from urllib.parse import urlparse

from sqlalchemy import create_engine, exc as sa_exc, pool, text
from sqlalchemy.engine import Connection, Engine

from sitebid.config import (
    DATABASE_PATH,
    DATABASE_URL,
    IS_DEV,
    IS_POSTGRES,
    SQLITE_BUSY_TIMEOUT,
)

DbConnection = Union[sqlite3.Connection, Connection]

# Global engine (SQLAlchemy) or None for SQLite
_engine: Optional[Engine] = None


def init_engine() -> None:
    """Initialize SQLAlchemy engine for PostgreSQL if DATABASE_URL is set."""
    global _engine

    if not IS_POSTGRES:
        # SQLite mode - no engine needed
        _engine = None
        print("[DB] Using SQLite (local dev mode)")
        return

    parsed = urlparse(DATABASE_URL)
    if not parsed.scheme or not parsed.netloc:
        raise ValueError(f"Invalid DATABASE_URL: {DATABASE_URL[:20]}...")

    _engine = create_engine(
        DATABASE_URL,
        poolclass=pool.QueuePool,
        pool_size=5,
        max_overflow=10,
        pool_pre_ping=True,
        isolation_level="READ COMMITTED",
        echo=False,
    )

    print(f"[DB] Using PostgreSQL ({parsed.hostname})")


def default_sqlite_path() -> str:
    return str(FsPath(__file__).resolve().parent / DATABASE_PATH)


def connect_sqlite(db_path: Optional[str] = None) -> sqlite3.Connection:
    """
    Open a SQLite connection with Row factory and foreign keys enabled.

    check_same_thread is off because FastAPI may run a sync dependency and the
    endpoint body on different worker threads; a connection is still only
    used by one request at a time.
    """
    conn = sqlite3.connect(
        db_path or default_sqlite_path(),
        timeout=SQLITE_BUSY_TIMEOUT,
        check_same_thread=False,
    )
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA foreign_keys = ON")
    return conn


def open_connection(db_path: Optional[str] = None) -> DbConnection:
    """Return a new connection for the configured backend. Caller closes it."""
    if IS_POSTGRES and db_path is None:
        if _engine is None:
            init_engine()
        return _engine.connect()
    return connect_sqlite(db_path)


@contextmanager
def get_db_connection(db_path: Optional[str] = None) -> Generator[DbConnection, None, None]:
    """
    Context manager for database connections.
    Returns sqlite3.Connection for SQLite or sqlalchemy.Connection for Postgres.
    """
    conn = open_connection(db_path)
    try:
        yield conn
    finally:
        conn.close()


def execute_query(
    conn: DbConnection,
    query: str,
    params: Optional[Dict[str, Any]] = None,
) -> Any:
    """
    Execute a query with named parameters (``:name`` style).

    Both sqlite3 and SQLAlchemy ``text()`` accept ``:name`` placeholders, so the
    same SQL runs on either backend.

    Returns:
        Cursor (SQLite) or CursorResult (PostgreSQL); both expose
        fetchone(), fetchall() and rowcount.
    """
    if isinstance(conn, sqlite3.Connection):
        return conn.execute(query, params or {})
    return conn.execute(text(query), params or {})


def commit(conn: DbConnection) -> None:
    conn.commit()


def rollback(conn: DbConnection) -> None:
    conn.rollback()


def row_to_dict(row: Any) -> Dict[str, Any]:
    """
    Convert a sqlite3.Row or SQLAlchemy Row to a plain dict.

    Returns {} for None so callers can use .get() safely.
    """
    if row is None:
        return {}
    mapping = getattr(row, "_mapping", None)
    if mapping is not None:
        return dict(mapping)
    return dict(row)


# Unique/foreign-key violations from either driver
INTEGRITY_ERRORS = (sqlite3.IntegrityError, sa_exc.IntegrityError)


SCHEMA_STATEMENTS = [
    """
    CREATE TABLE IF NOT EXISTS users (
        id TEXT PRIMARY KEY,
        email TEXT UNIQUE NOT NULL,
        password_hash TEXT NOT NULL,
        first_name TEXT NOT NULL,
        last_name TEXT NOT NULL,
        role TEXT NOT NULL CHECK (role IN ('homeowner', 'contractor', 'project_manager')),
        phone TEXT,
        address TEXT,
        bio TEXT,
        years_experience INTEGER,
        specializations TEXT NOT NULL DEFAULT '[]',
        is_active INTEGER NOT NULL DEFAULT 1,
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_users_role ON users(role)",
    """
    CREATE TABLE IF NOT EXISTS projects (
        id TEXT PRIMARY KEY,
        owner_id TEXT NOT NULL REFERENCES users(id),
        title TEXT NOT NULL,
        description TEXT NOT NULL,
        location TEXT NOT NULL,
        budget NUMERIC(10, 2),
        status TEXT NOT NULL DEFAULT 'draft'
            CHECK (status IN ('draft', 'open', 'in_progress', 'completed', 'cancelled')),
        category TEXT NOT NULL,
        urgency TEXT NOT NULL DEFAULT 'medium',
        expected_start_date TEXT,
        expected_end_date TEXT,
        accepted_bid_id TEXT,
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_projects_owner_id ON projects(owner_id)",
    "CREATE INDEX IF NOT EXISTS idx_projects_status ON projects(status)",
    # No foreign key on project_id: bids and milestones survive project deletion
    """
    CREATE TABLE IF NOT EXISTS bids (
        id TEXT PRIMARY KEY,
        project_id TEXT NOT NULL,
        contractor_id TEXT NOT NULL REFERENCES users(id),
        price NUMERIC(10, 2) NOT NULL CHECK (price >= 0),
        estimated_duration INTEGER NOT NULL CHECK (estimated_duration >= 1),
        description TEXT NOT NULL,
        status TEXT NOT NULL DEFAULT 'pending'
            CHECK (status IN ('pending', 'accepted', 'rejected', 'withdrawn')),
        proposed_start_date TEXT,
        warranty TEXT,
        valid_until TEXT,
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_bids_project_id ON bids(project_id)",
    "CREATE INDEX IF NOT EXISTS idx_bids_contractor_id ON bids(contractor_id)",
    "CREATE INDEX IF NOT EXISTS idx_bids_status ON bids(status)",
    # One live (non-withdrawn) bid per contractor per project
    """
    CREATE UNIQUE INDEX IF NOT EXISTS uq_bids_live_contractor
        ON bids(project_id, contractor_id)
        WHERE status <> 'withdrawn'
    """,
    """
    CREATE TABLE IF NOT EXISTS milestones (
        id TEXT PRIMARY KEY,
        project_id TEXT NOT NULL,
        assignee_id TEXT REFERENCES users(id),
        title TEXT NOT NULL,
        description TEXT,
        status TEXT NOT NULL DEFAULT 'pending'
            CHECK (status IN ('pending', 'in_progress', 'completed', 'blocked')),
        position INTEGER NOT NULL CHECK (position >= 1),
        estimated_start_date TEXT,
        estimated_end_date TEXT,
        actual_start_date TEXT,
        actual_end_date TEXT,
        payment_amount NUMERIC(10, 2),
        is_paid INTEGER NOT NULL DEFAULT 0,
        notes TEXT,
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_milestones_project_id ON milestones(project_id)",
    "CREATE INDEX IF NOT EXISTS idx_milestones_assignee_id ON milestones(assignee_id)",
]


def init_schema(conn: DbConnection) -> None:
    """Create tables and indexes (idempotent)."""
    for statement in SCHEMA_STATEMENTS:
        execute_query(conn, statement)
    commit(conn)
    if IS_DEV:
        print("[MIGRATION] Ensured users, projects, bids, milestones tables and indexes")


# Initialize engine on module import if Postgres mode
if IS_POSTGRES and _engine is None:
    init_engine()
