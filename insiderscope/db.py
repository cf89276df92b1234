from __future__ import annotations

import re
import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Iterator, List, Sequence
from urllib.parse import urlparse

from insiderscope.schema import get_schema_sql


def _debug(msg: str) -> None:
    print(f"[db] {msg}")


# Advisory lock key held while schema DDL runs on Postgres.
_SCHEMA_LOCK_KEY = 2147483646

# Quoted SQL literals; '' inside single quotes is an escaped quote.
_SQL_LITERAL_RE = re.compile(r"('(?:[^']|'')*'|\"[^\"]*\")")


def detect_dialect(dsn: str) -> str:
    """Return 'postgres' or 'sqlite'."""
    scheme = urlparse((dsn or "").strip()).scheme.lower()
    return "postgres" if scheme in ("postgres", "postgresql") else "sqlite"


def dialect_of(conn: Any) -> str:
    return str(getattr(conn, "dialect", "sqlite") or "sqlite").lower()


def _qmark_to_pct(sql: str) -> str:
    """Rewrite sqlite ``?`` placeholders as psycopg2 ``%s``.

    Text inside quoted literals is left alone; a bare ``%`` outside literals is
    doubled so pyformat does not read it as a placeholder.
    """
    parts = _SQL_LITERAL_RE.split(sql)
    # split() with a capture group puts the literals at the odd indexes
    return "".join(
        part if i % 2 else part.replace("%", "%%").replace("?", "%s")
        for i, part in enumerate(parts)
    )


class PGCursor:
    """psycopg2 cursor that accepts qmark SQL."""

    def __init__(self, cur: Any):
        self._cur = cur

    def execute(self, sql: str, params: Sequence[Any] | None = None) -> "PGCursor":
        self._cur.execute(_qmark_to_pct(sql), tuple(params or ()))
        return self

    @property
    def rowcount(self) -> int:
        return int(self._cur.rowcount or 0)

    def __getattr__(self, name: str) -> Any:
        # fetchone / fetchall / close pass straight through
        return getattr(self._cur, name)


class PGConnection:
    """Wraps a psycopg2 connection so the storage code can treat it like sqlite3."""

    dialect = "postgres"

    def __init__(self, conn: Any):
        self._conn = conn

    def cursor(self) -> PGCursor:
        return PGCursor(self._conn.cursor())

    def execute(self, sql: str, params: Sequence[Any] | None = None) -> PGCursor:
        return self.cursor().execute(sql, params)

    def __getattr__(self, name: str) -> Any:
        # commit / rollback / close
        return getattr(self._conn, name)


def _sqlite_path(dsn: str) -> str:
    if dsn.lower().startswith("sqlite:///"):
        dsn = dsn[len("sqlite:///") :]
    if dsn != ":memory:":
        Path(dsn).parent.mkdir(parents=True, exist_ok=True)
    return dsn


def _open(dsn: str) -> Any:
    if detect_dialect(dsn) == "postgres":
        try:
            import psycopg2
            import psycopg2.extras
        except ImportError as e:
            raise RuntimeError("Postgres DSN given but psycopg2 is missing; install psycopg2-binary.") from e
        return PGConnection(psycopg2.connect(dsn, cursor_factory=psycopg2.extras.RealDictCursor))

    conn = sqlite3.connect(_sqlite_path(dsn), timeout=30)
    conn.row_factory = sqlite3.Row
    for pragma in ("journal_mode=WAL", "synchronous=NORMAL", "busy_timeout=5000", "foreign_keys=ON"):
        conn.execute(f"PRAGMA {pragma};")
    return conn


@contextmanager
def connect(db_dsn: str) -> Iterator[Any]:
    """Open SQLite (rows are sqlite3.Row) or Postgres (RealDictCursor rows).

    Commits on clean exit and rolls back on error. The ingestion pipeline also
    commits explicitly after every page so a crash loses at most one page.
    """
    conn = _open((db_dsn or "").strip())
    try:
        yield conn
        conn.commit()
    except Exception:
        conn.rollback()
        raise
    finally:
        conn.close()


def init_db(db_dsn: str) -> None:
    """Create all tables and run lightweight migrations."""
    dialect = detect_dialect(db_dsn)
    _debug(f"Initializing DB ({dialect}) at {db_dsn}")
    with connect(db_dsn) as conn:
        ensure_schema(conn)


def ensure_schema(conn: Any) -> None:
    """Idempotent DDL on an open connection (safe to call on every run)."""
    dialect = dialect_of(conn)
    schema_sql = get_schema_sql(dialect)
    # Only one process runs schema DDL at a time.
    # SQLite DDL already takes an exclusive database lock.
    if dialect == "postgres":
        conn.execute("SELECT pg_advisory_lock(?)", (_SCHEMA_LOCK_KEY,))
        try:
            _exec_schema(conn, schema_sql, dialect=dialect)
            _migrate(conn, dialect=dialect)
        finally:
            conn.execute("SELECT pg_advisory_unlock(?)", (_SCHEMA_LOCK_KEY,))
        return

    _exec_schema(conn, schema_sql, dialect=dialect)
    _migrate(conn, dialect=dialect)


def _exec_schema(conn: Any, ddl: str, *, dialect: str) -> None:
    if dialect == "postgres":
        # Naive split is OK for our schema (no semicolons in literals)
        statements = [s.strip() for s in ddl.split(";") if s.strip()]
        for stmt in statements:
            conn.execute(stmt)
        return

    conn.executescript(ddl)


def table_columns(conn: Any, table: str) -> List[str]:
    if dialect_of(conn) == "postgres":
        rows = conn.execute(
            """
            SELECT column_name
            FROM information_schema.columns
            WHERE table_schema='public' AND table_name=?
            ORDER BY ordinal_position
            """,
            (table,),
        ).fetchall()
        return [str(r["column_name"]) for r in rows]

    rows = conn.execute(f"PRAGMA table_info({table})").fetchall()
    return [str(r["name"]) for r in rows]


def _migrate(conn: Any, *, dialect: str) -> None:
    """Lightweight forward-only migrations for existing DBs."""
    # Cursor leases were added after the first ingestion_state layout.
    if "lease_until" not in table_columns(conn, "ingestion_state"):
        conn.execute("ALTER TABLE ingestion_state ADD COLUMN lease_until TEXT")

    # Feed publication timestamp (provenance) on transaction rows.
    if "published_at" not in table_columns(conn, "insider_transactions"):
        conn.execute("ALTER TABLE insider_transactions ADD COLUMN published_at TEXT")
