from __future__ import annotations

from typing import Any, Optional

from insiderscope.models import (
    CURSOR_OK,
    CURSOR_RUNNING,
    UPSERT_INSERTED,
    UPSERT_UPDATED,
    CompanyRecord,
    FilingReference,
    IngestionCursor,
    PurchaseTransaction,
)
from insiderscope.util.hashing import sha256_hex
from insiderscope.util.normalization import normalize_cik, number_key, safe_text
from insiderscope.util.time import iso_after_seconds, to_iso, utcnow_iso


def _debug(msg: str) -> None:
    print(f"[sink] {msg}")


def dedup_identity(
    issuer_cik: str,
    accession_dashed: str,
    owner_name: str | None,
    transaction_date: str | None,
    shares: float,
    price_per_share: float,
) -> str:
    """Stable id for one purchase event.

    Depends only on its inputs (normalized), never on time, randomness or parse order,
    so re-parsing the same filing on any run yields the same id.
    """
    base = "|".join(
        [
            normalize_cik(issuer_cik) or "",
            safe_text(accession_dashed),
            safe_text(owner_name).lower(),
            safe_text(transaction_date),
            number_key(shares),
            number_key(price_per_share),
            "P",
        ]
    )
    return "tx_" + sha256_hex(base)[:40]


class IngestionSink:
    """Idempotent writes of companies and purchase transactions.

    Merge policy on conflict: a present new value wins, an absent one (NULL or '')
    never erases what is already stored.
    """

    def __init__(self, conn: Any):
        self.conn = conn

    def upsert_company(self, company: CompanyRecord, *, now: str | None = None) -> None:
        now = now or utcnow_iso()
        self.conn.execute(
            """
            INSERT INTO companies (cik, ticker, company_name, created_at, updated_at)
            VALUES (?,?,?,?,?)
            ON CONFLICT(cik) DO UPDATE SET
                ticker=COALESCE(NULLIF(excluded.ticker, ''), companies.ticker),
                company_name=COALESCE(NULLIF(excluded.company_name, ''), companies.company_name),
                updated_at=excluded.updated_at
            """,
            (company.cik, company.ticker or None, company.company_name or None, now, now),
        )

    def upsert(self, tx: PurchaseTransaction, ref: FilingReference, *, source_url: str | None = None) -> str:
        """Insert-or-update one purchase keyed on its dedup identity; returns 'inserted' or 'updated'."""
        tx = tx.with_fallback_date(ref.published_date)
        issuer_cik = tx.issuer_cik or ref.issuer_cik
        tx_id = dedup_identity(
            issuer_cik,
            ref.accession_dashed,
            tx.owner_name,
            tx.transaction_date,
            tx.shares,
            tx.price_per_share,
        )
        now = utcnow_iso()

        existing = self.conn.execute(
            "SELECT 1 FROM insider_transactions WHERE transaction_id=?",
            (tx_id,),
        ).fetchone()

        # Companies are a side effect; ticker/name may arrive with a later filing.
        self.upsert_company(
            CompanyRecord(cik=issuer_cik, ticker=tx.issuer_ticker, company_name=tx.issuer_name),
            now=now,
        )

        self.conn.execute(
            """
            INSERT INTO insider_transactions (
                transaction_id, issuer_cik, accession_number,
                issuer_ticker, issuer_name, owner_name, owner_title,
                transaction_date, shares, price_per_share, total_value, transaction_code,
                filing_url, source_url, published_at, created_at, updated_at
            ) VALUES (?,?,?,?,?,?,?,?,?,?,?,?,?,?,?,?,?)
            ON CONFLICT(transaction_id) DO UPDATE SET
                issuer_ticker=COALESCE(NULLIF(excluded.issuer_ticker, ''), insider_transactions.issuer_ticker),
                issuer_name=COALESCE(NULLIF(excluded.issuer_name, ''), insider_transactions.issuer_name),
                owner_name=COALESCE(NULLIF(excluded.owner_name, ''), insider_transactions.owner_name),
                owner_title=COALESCE(NULLIF(excluded.owner_title, ''), insider_transactions.owner_title),
                shares=COALESCE(excluded.shares, insider_transactions.shares),
                price_per_share=COALESCE(excluded.price_per_share, insider_transactions.price_per_share),
                total_value=COALESCE(excluded.total_value, insider_transactions.total_value),
                filing_url=COALESCE(NULLIF(excluded.filing_url, ''), insider_transactions.filing_url),
                source_url=COALESCE(NULLIF(excluded.source_url, ''), insider_transactions.source_url),
                published_at=COALESCE(NULLIF(excluded.published_at, ''), insider_transactions.published_at),
                updated_at=excluded.updated_at
            """,
            (
                tx_id,
                issuer_cik,
                ref.accession_dashed,
                tx.issuer_ticker or None,
                tx.issuer_name or None,
                tx.owner_name or None,
                tx.owner_title or None,
                tx.transaction_date,
                float(tx.shares),
                float(tx.price_per_share),
                float(tx.total_value),
                tx.transaction_code,
                ref.link,
                source_url,
                to_iso(ref.published_at),
                now,
                now,
            ),
        )
        return UPSERT_UPDATED if existing is not None else UPSERT_INSERTED


def _row_to_cursor(row: Any) -> IngestionCursor:
    return IngestionCursor(
        stream_id=str(row["stream_id"]),
        position=int(row["position"] or 0),
        last_run_at=row["last_run_at"],
        status=str(row["status"]),
        last_error=row["last_error"],
        updated_at=row["updated_at"],
    )


_CURSOR_COLUMNS = "stream_id, position, last_run_at, status, last_error, updated_at"


class CursorStore:
    """Resumable position per ingestion stream (one row each, never deleted).

    `claim` doubles as the per-stream lock: the row flips to 'running' with a lease, and
    a second invocation cannot claim it until the lease is released or expires.
    """

    def __init__(self, conn: Any):
        self.conn = conn

    def read(self, stream_id: str) -> Optional[IngestionCursor]:
        row = self.conn.execute(
            f"SELECT {_CURSOR_COLUMNS} FROM ingestion_state WHERE stream_id=?",
            (stream_id,),
        ).fetchone()
        return _row_to_cursor(row) if row is not None else None

    def claim(self, stream_id: str, *, lease_seconds: float) -> Optional[IngestionCursor]:
        now = utcnow_iso()
        self.conn.execute(
            """
            INSERT INTO ingestion_state (stream_id, position, status, updated_at)
            VALUES (?, 0, ?, ?)
            ON CONFLICT(stream_id) DO NOTHING
            """,
            (stream_id, CURSOR_OK, now),
        )
        row = self.conn.execute(
            f"""
            UPDATE ingestion_state
            SET status=?,
                last_run_at=?,
                lease_until=?,
                updated_at=?
            WHERE stream_id=?
              AND (status <> ? OR lease_until IS NULL OR lease_until < ?)
            RETURNING {_CURSOR_COLUMNS}
            """,
            (CURSOR_RUNNING, now, iso_after_seconds(lease_seconds), now, stream_id, CURSOR_RUNNING, now),
        ).fetchone()
        if row is None:
            _debug(f"stream {stream_id} is held by another run")
            return None
        return _row_to_cursor(row)

    def advance(self, stream_id: str, position: int, *, status: str = CURSOR_RUNNING, error: str | None = None) -> None:
        self.conn.execute(
            """
            UPDATE ingestion_state
            SET position=?, status=?, last_error=?, updated_at=?
            WHERE stream_id=?
            """,
            (int(position), status, (str(error)[:5000] if error else None), utcnow_iso(), stream_id),
        )

    def finish(self, stream_id: str, status: str, *, error: str | None = None) -> None:
        """Terminal write for a run: status + error, lease released, position untouched."""
        self.conn.execute(
            """
            UPDATE ingestion_state
            SET status=?, last_error=?, lease_until=NULL, updated_at=?
            WHERE stream_id=?
            """,
            (status, (str(error)[:5000] if error else None), utcnow_iso(), stream_id),
        )
