"""Run one time-boxed Form 4 purchase ingestion and print the result as JSON.

Intended to be invoked on a schedule (cron, serverless trigger). Each invocation
resumes from the stored cursor unless --start-page is given.

Exit codes: 0 for ok / budget_exhausted / rate_limited / locked, 1 for error.
"""

import argparse
import json
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from insiderscope.cache import MemoryCache
from insiderscope.config import load_config
from insiderscope.db import connect
from insiderscope.sec.pipeline import IngestionPipeline, IngestOptions


def main() -> None:
    cfg = load_config()

    parser = argparse.ArgumentParser(description="Ingest recent Form 4 open-market purchases.")
    parser.add_argument("--stream", default=None, help="Cursor stream id")
    parser.add_argument("--days", type=int, default=None, help="Recency window in days (1-365)")
    parser.add_argument("--pages", type=int, default=None, help="Feed pages per invocation (1-50)")
    parser.add_argument("--scan-cap", type=int, default=None, help="Filings scanned per page")
    parser.add_argument("--interval", type=float, default=None, help="Seconds between SEC requests (>= 0.1)")
    parser.add_argument("--budget", type=float, default=None, help="Wall-clock budget in seconds")
    parser.add_argument("--start-page", type=int, default=None, help="Override the stored cursor")
    parser.add_argument("--dry-run", action="store_true", help="Fetch and parse but write nothing")
    args = parser.parse_args()

    opts = IngestOptions.from_config(
        cfg,
        stream_id=args.stream,
        recency_days=args.days,
        max_pages=args.pages,
        scan_cap=args.scan_cap,
        min_interval_seconds=args.interval,
        time_budget_seconds=args.budget,
        dry_run=True if args.dry_run else None,
    )

    with connect(cfg.DB_DSN) as conn:
        pipeline = IngestionPipeline(
            conn,
            opts,
            user_agent=cfg.SEC_USER_AGENT,
            cache=MemoryCache(default_ttl_seconds=cfg.RESOLVER_CACHE_TTL_SECONDS),
        )
        result = pipeline.run(start_page=args.start_page)

    print(json.dumps(result.to_dict(), indent=2, default=str))
    if not result.ok:
        sys.exit(1)


if __name__ == "__main__":
    main()
