"""Read-side helpers: ingestion status and the latest-purchases snapshot."""

from __future__ import annotations

import time
from contextlib import AbstractContextManager
from dataclasses import asdict
from typing import Any, Callable, Dict, List, Optional

from insiderscope.cache import Cache
from insiderscope.config import Config
from insiderscope.db import connect
from insiderscope.schema import TABLES
from insiderscope.sec.sink import CursorStore
from insiderscope.util.time import utcnow_iso


def _debug(msg: str) -> None:
    print(f"[status] {msg}")


# A snapshot outlives its freshness TTL so it can still be served when storage is down.
STALE_RETENTION_SECONDS = 24 * 3600


def ingest_status(conn: Any, stream_id: str) -> Dict[str, Any]:
    """Row counts per table plus the stream's cursor (None before the first run)."""
    counts: Dict[str, int] = {}
    for table in TABLES:
        row = conn.execute(f"SELECT COUNT(*) AS n FROM {table}").fetchone()
        counts[table] = int(row["n"] or 0)

    cursor = CursorStore(conn).read(stream_id)
    return {
        "stream_id": stream_id,
        "counts": counts,
        "cursor": asdict(cursor) if cursor is not None else None,
        "checked_at": utcnow_iso(),
    }


def _query_latest(conn: Any, *, limit: int, min_value: float) -> List[Dict[str, Any]]:
    rows = conn.execute(
        """
        SELECT transaction_id, issuer_cik, issuer_ticker, issuer_name,
               owner_name, owner_title, transaction_date,
               shares, price_per_share, total_value, transaction_code,
               accession_number, source_url, published_at
        FROM insider_transactions
        WHERE total_value >= ?
        ORDER BY transaction_date DESC, published_at DESC, transaction_id
        LIMIT ?
        """,
        (float(min_value), int(limit)),
    ).fetchall()
    return [dict(r) for r in rows]


def latest_purchases(
    conn_factory: Callable[[], AbstractContextManager],
    cache: Cache,
    *,
    limit: int = 50,
    min_value: Optional[float] = None,
    ttl_seconds: float = 60.0,
    clock: Callable[[], float] = time.time,
) -> Dict[str, Any]:
    """Most recent stored purchases, served from cache while fresh.

    If the store cannot be read and a previous snapshot is cached, that snapshot is
    returned with stale=True instead of raising.
    """
    limit = max(1, min(500, int(limit)))
    floor = max(0.0, float(min_value or 0))
    key = f"latest_purchases:{limit}:{floor:g}"

    snap = cache.get(key)
    if snap and clock() - float(snap["fetched_at"]) < ttl_seconds:
        return {**snap["payload"], "cached": True, "stale": False}

    try:
        with conn_factory() as conn:
            items = _query_latest(conn, limit=limit, min_value=floor)
    except Exception as e:
        if snap:
            _debug(f"store unavailable, serving stale snapshot: {e}")
            return {**snap["payload"], "cached": True, "stale": True}
        raise

    payload = {"items": items, "count": len(items), "generated_at": utcnow_iso()}
    cache.set(key, {"fetched_at": clock(), "payload": payload}, STALE_RETENTION_SECONDS)
    return {**payload, "cached": False, "stale": False}


def latest_purchases_from_config(cfg: Config, cache: Cache, **kwargs: Any) -> Dict[str, Any]:
    """latest_purchases() against cfg.DB_DSN with the configured snapshot TTL."""
    kwargs.setdefault("ttl_seconds", cfg.SNAPSHOT_CACHE_TTL_SECONDS)
    return latest_purchases(lambda: connect(cfg.DB_DSN), cache, **kwargs)
