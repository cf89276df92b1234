from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Any, Dict, List, Optional

from insiderscope.util.normalization import accession_to_compact, accession_to_dashed, normalize_cik
from insiderscope.util.time import to_iso


# Cursor row status values (persisted)
CURSOR_OK = "ok"
CURSOR_ERROR = "error"
CURSOR_RUNNING = "running"

# Terminal states of one invocation (reported, not persisted)
RUN_OK = "ok"
RUN_ERROR = "error"
RUN_BUDGET_EXHAUSTED = "budget_exhausted"
RUN_RATE_LIMITED = "rate_limited"
RUN_LOCKED = "locked"

UPSERT_INSERTED = "inserted"
UPSERT_UPDATED = "updated"


@dataclass(frozen=True)
class FilingReference:
    issuer_cik: str
    accession_dashed: str
    accession_compact: str
    published_at: datetime
    link: str | None = None

    @classmethod
    def build(cls, cik: str, accession: str, published_at: datetime, link: str | None = None) -> "FilingReference":
        cik10 = normalize_cik(cik)
        if cik10 is None:
            raise ValueError(f"Not a CIK: {cik!r}")
        return cls(
            issuer_cik=cik10,
            accession_dashed=accession_to_dashed(accession),
            accession_compact=accession_to_compact(accession),
            published_at=published_at,
            link=link,
        )

    @property
    def published_date(self) -> str:
        # feed-local calendar date, not the UTC one
        return self.published_at.date().isoformat()


@dataclass(frozen=True)
class PurchaseTransaction:
    issuer_ticker: str | None
    issuer_name: str | None
    owner_name: str | None
    owner_title: str | None
    shares: float
    price_per_share: float
    total_value: int
    transaction_date: str | None
    transaction_code: str = "P"
    issuer_cik: str | None = None

    def with_fallback_date(self, fallback: str) -> "PurchaseTransaction":
        if self.transaction_date:
            return self
        return replace(self, transaction_date=fallback)


@dataclass(frozen=True)
class CompanyRecord:
    cik: str
    ticker: str | None
    company_name: str | None


@dataclass(frozen=True)
class IngestionCursor:
    stream_id: str
    position: int
    last_run_at: str | None
    status: str
    last_error: str | None
    updated_at: str | None


@dataclass
class IngestRunResult:
    """Self-describing report of one ingestion invocation."""

    status: str
    stream_id: str
    dry_run: bool
    start_page: int
    next_page: int
    pages_completed: int = 0
    entries_seen: int = 0
    filings_scanned: int = 0
    transactions_found: int = 0
    inserted: int = 0
    updated: int = 0
    time_spent_seconds: float = 0.0
    cutoff: Optional[datetime] = None
    error: str | None = None
    options: Dict[str, Any] = field(default_factory=dict)
    examples: List[Dict[str, Any]] = field(default_factory=list)
    errors_sample: List[Dict[str, Any]] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.status != RUN_ERROR

    def to_dict(self) -> Dict[str, Any]:
        return {
            "ok": self.ok,
            "status": self.status,
            "stream_id": self.stream_id,
            "dry_run": self.dry_run,
            "start_page": self.start_page,
            "next_page": self.next_page,
            "time_spent_seconds": round(self.time_spent_seconds, 3),
            "cutoff": to_iso(self.cutoff) if self.cutoff else None,
            "options": dict(self.options),
            "stats": {
                "pages_completed": self.pages_completed,
                "entries_seen": self.entries_seen,
                "filings_scanned": self.filings_scanned,
                "transactions_found": self.transactions_found,
                "inserted": self.inserted,
                "updated": self.updated,
            },
            "error": self.error,
            "examples": list(self.examples),
            "errors_sample": list(self.errors_sample),
        }
