"""Database schema for InsiderScope Form 4 ingestion.

Three logical tables:
- companies: issuer records keyed by CIK (ticker/name filled in opportunistically)
- insider_transactions: open-market purchases keyed by the deterministic dedup identity
- ingestion_state: one resumable cursor row per ingestion stream

Timestamps are ISO-8601 TEXT (UTC, with 'Z') for portability across SQLite and Postgres.
ISO strings sort lexicographically in time order, so `lease_until < now_iso` behaves correctly.

The Postgres schema is generated from the SQLite schema with a small set of type transformations.
"""

from __future__ import annotations

import re


SCHEMA_SQLITE = r"""
PRAGMA foreign_keys = ON;

CREATE TABLE IF NOT EXISTS companies (
    cik TEXT PRIMARY KEY,
    ticker TEXT,
    company_name TEXT,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_companies_ticker ON companies (ticker);

CREATE TABLE IF NOT EXISTS insider_transactions (
    transaction_id TEXT PRIMARY KEY,
    issuer_cik TEXT NOT NULL,
    accession_number TEXT NOT NULL,
    issuer_ticker TEXT,
    issuer_name TEXT,
    owner_name TEXT,
    owner_title TEXT,
    transaction_date TEXT NOT NULL,
    shares REAL NOT NULL,
    price_per_share REAL NOT NULL,
    total_value REAL NOT NULL,
    transaction_code TEXT NOT NULL,
    filing_url TEXT,
    source_url TEXT,
    published_at TEXT,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_insider_tx_ticker_date ON insider_transactions (issuer_ticker, transaction_date);
CREATE INDEX IF NOT EXISTS idx_insider_tx_cik_date ON insider_transactions (issuer_cik, transaction_date);
CREATE INDEX IF NOT EXISTS idx_insider_tx_accession ON insider_transactions (accession_number);

CREATE TABLE IF NOT EXISTS ingestion_state (
    stream_id TEXT PRIMARY KEY,
    position INTEGER NOT NULL DEFAULT 0,
    last_run_at TEXT,
    status TEXT NOT NULL CHECK (status IN ('ok','error','running')),
    last_error TEXT,
    lease_until TEXT,
    updated_at TEXT NOT NULL
);
"""


def _sqlite_to_postgres(ddl: str) -> str:
    # Remove SQLite pragmas
    lines: list[str] = []
    for line in ddl.splitlines():
        if line.strip().upper().startswith("PRAGMA "):
            continue
        lines.append(line)
    out = "\n".join(lines)

    # Types
    out = re.sub(r"\bREAL\b", "DOUBLE PRECISION", out)
    return out


SCHEMA_POSTGRES = _sqlite_to_postgres(SCHEMA_SQLITE)

TABLES = ("companies", "insider_transactions", "ingestion_state")


def get_schema_sql(dialect: str) -> str:
    d = (dialect or "").lower()
    if d.startswith("post"):
        return SCHEMA_POSTGRES
    return SCHEMA_SQLITE
