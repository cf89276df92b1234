import argparse
import json
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from insiderscope.cache import MemoryCache
from insiderscope.config import load_config
from insiderscope.db import connect, ensure_schema
from insiderscope.status import ingest_status, latest_purchases_from_config


def main() -> None:
    cfg = load_config()

    parser = argparse.ArgumentParser(description="Show table counts and the ingestion cursor.")
    parser.add_argument("--stream", default=cfg.INGEST_STREAM_ID, help="Cursor stream id")
    parser.add_argument("--latest", type=int, default=0, help="Also list the N most recent stored purchases")
    parser.add_argument("--min-value", type=float, default=None, help="Only purchases worth at least this much")
    args = parser.parse_args()

    with connect(cfg.DB_DSN) as conn:
        ensure_schema(conn)
        report = ingest_status(conn, args.stream)

    if args.latest > 0:
        report["latest"] = latest_purchases_from_config(cfg, MemoryCache(), limit=args.latest, min_value=args.min_value)

    print(json.dumps(report, indent=2))


if __name__ == "__main__":
    main()
