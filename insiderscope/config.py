import os
from dataclasses import dataclass
from typing import Optional

# Optional: load a local .env file if present.
try:
    from dotenv import load_dotenv

    load_dotenv()
except ImportError:
    # If python-dotenv isn't installed, plain environment variables still work.
    pass


def _env_bool(name: str, default: Optional[bool] = None) -> Optional[bool]:
    """Parse a boolean environment variable.

    Returns:
      - True/False if the env var is set to a recognizable value
      - default if unset or unrecognized

    Accepted truthy: 1, true, yes, y, on
    Accepted falsy:  0, false, no, n, off
    """

    raw = os.environ.get(name)
    if raw is None:
        return default
    v = raw.strip().lower()
    if v in ("1", "true", "yes", "y", "on"):
        return True
    if v in ("0", "false", "no", "n", "off"):
        return False
    return default


def _clean_dsn(raw: str) -> str:
    """Tolerate a DSN pasted as `psql 'postgresql://...'` or wrapped in quotes."""
    s = (raw or "").strip()
    if s.lower().startswith("psql "):
        s = s[5:].strip()
    if len(s) >= 2 and s[0] == s[-1] and s[0] in ("'", '"'):
        s = s[1:-1]
    return s.strip()


@dataclass(frozen=True)
class Config:
    """Runtime configuration.

    IMPORTANT: SEC asks for a descriptive User-Agent with contact details.
    Provide it via SEC_USER_AGENT (env or .env); do not hardcode personal addresses.
    """

    # -----------------
    # Core
    # -----------------
    # Preferred: set INSIDERSCOPE_DATABASE_URL (or DATABASE_URL) to use Postgres.
    # Fallback: INSIDERSCOPE_DB_PATH for SQLite.
    DB_DSN: str = _clean_dsn(
        os.environ.get("INSIDERSCOPE_DATABASE_URL")
        or os.environ.get("DATABASE_URL")
        or os.environ.get("INSIDERSCOPE_DB_PATH", "./insiderscope.sqlite")
    )

    # SEC (EDGAR requires a descriptive User-Agent)
    SEC_USER_AGENT: str = os.environ.get(
        "SEC_USER_AGENT",
        "InsiderScope/0.1 (contact: you@example.com)",
    )
    SEC_REQUEST_TIMEOUT_SECONDS: float = float(os.environ.get("SEC_REQUEST_TIMEOUT_SECONDS", "20"))

    # SEC throttling (polite rate limiting between outbound requests).
    SEC_MIN_INTERVAL_SECONDS: float = float(os.environ.get("SEC_MIN_INTERVAL_SECONDS", "0.35"))

    # -----------------
    # Current Form 4 feed
    # -----------------
    FORM4_FEED_URL: str = os.environ.get("FORM4_FEED_URL", "https://www.sec.gov/cgi-bin/browse-edgar")
    # browse-edgar getcurrent serves at most 100 entries per page
    FORM4_FEED_PAGE_SIZE: int = int(os.environ.get("FORM4_FEED_PAGE_SIZE", "100"))

    # -----------------
    # Ingestion run knobs (per invocation)
    # -----------------
    INGEST_STREAM_ID: str = os.environ.get("INGEST_STREAM_ID", "form4_purchases")
    INGEST_DAYS: int = int(os.environ.get("INGEST_DAYS", "30"))
    INGEST_MAX_PAGES: int = int(os.environ.get("INGEST_MAX_PAGES", "1"))
    INGEST_SCAN_CAP: int = int(os.environ.get("INGEST_SCAN_CAP", "25"))

    # The whole invocation must fit in this wall-clock budget (serverless-style limits).
    INGEST_TIME_BUDGET_SECONDS: float = float(os.environ.get("INGEST_TIME_BUDGET_SECONDS", "8.0"))
    INGEST_SAFETY_MARGIN_SECONDS: float = float(os.environ.get("INGEST_SAFETY_MARGIN_SECONDS", "1.2"))
    INGEST_DRY_RUN: bool = _env_bool("INGEST_DRY_RUN", False) is True

    # -----------------
    # Caches
    # -----------------
    RESOLVER_CACHE_TTL_SECONDS: float = float(os.environ.get("RESOLVER_CACHE_TTL_SECONDS", "3600"))
    SNAPSHOT_CACHE_TTL_SECONDS: float = float(os.environ.get("SNAPSHOT_CACHE_TTL_SECONDS", "60"))


def load_config() -> Config:
    return Config()
