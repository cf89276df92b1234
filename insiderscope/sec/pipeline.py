from __future__ import annotations

import time
from dataclasses import asdict, dataclass
from datetime import datetime
from typing import Any, Callable, Dict, Optional, Tuple

import requests

from insiderscope.cache import Cache, NullCache
from insiderscope.config import Config
from insiderscope.db import ensure_schema
from insiderscope.models import (
    CURSOR_ERROR,
    CURSOR_OK,
    RUN_BUDGET_EXHAUSTED,
    RUN_ERROR,
    RUN_LOCKED,
    RUN_OK,
    RUN_RATE_LIMITED,
    UPSERT_INSERTED,
    FilingReference,
    IngestRunResult,
)
from insiderscope.sec.budget import RateBudget
from insiderscope.sec.edgar import BudgetExhausted, SecClient, SecError, SecHttpError, SecRateLimited
from insiderscope.sec.feed import FeedPage, FeedPaginator
from insiderscope.sec.parser import parse_purchases
from insiderscope.sec.resolver import FilingResolver
from insiderscope.sec.sink import CursorStore, IngestionSink


def _debug(msg: str) -> None:
    print(f"[pipeline] {msg}")


MAX_EXAMPLES = 5
MAX_ERRORS_SAMPLE = 20

_XML_ACCEPT = "application/xml,text/xml,*/*"


def _clamp(v: float, lo: float, hi: float) -> float:
    return max(lo, min(hi, v))


@dataclass(frozen=True)
class IngestOptions:
    """Per-invocation knobs. Build with `from_config` so values are clamped."""

    stream_id: str
    recency_days: int
    max_pages: int
    scan_cap: int
    page_size: int
    min_interval_seconds: float
    time_budget_seconds: float
    safety_margin_seconds: float
    request_timeout_seconds: float
    feed_url: str
    dry_run: bool = False
    resolver_cache_ttl_seconds: float | None = None

    @classmethod
    def from_config(cls, cfg: Config, **overrides: Any) -> "IngestOptions":
        """Options from config, with caller overrides (None means "use config")."""
        raw: Dict[str, Any] = {
            "stream_id": cfg.INGEST_STREAM_ID,
            "recency_days": cfg.INGEST_DAYS,
            "max_pages": cfg.INGEST_MAX_PAGES,
            "scan_cap": cfg.INGEST_SCAN_CAP,
            "page_size": cfg.FORM4_FEED_PAGE_SIZE,
            "min_interval_seconds": cfg.SEC_MIN_INTERVAL_SECONDS,
            "time_budget_seconds": cfg.INGEST_TIME_BUDGET_SECONDS,
            "safety_margin_seconds": cfg.INGEST_SAFETY_MARGIN_SECONDS,
            "request_timeout_seconds": cfg.SEC_REQUEST_TIMEOUT_SECONDS,
            "feed_url": cfg.FORM4_FEED_URL,
            "dry_run": cfg.INGEST_DRY_RUN,
            "resolver_cache_ttl_seconds": cfg.RESOLVER_CACHE_TTL_SECONDS,
        }
        for k, v in overrides.items():
            if k not in raw:
                raise TypeError(f"Unknown ingest option: {k}")
            if v is not None:
                raw[k] = v
        return cls.clamped(**raw)

    @classmethod
    def clamped(cls, **raw: Any) -> "IngestOptions":
        page_size = int(_clamp(int(raw["page_size"]), 1, 100))
        margin = max(0.0, float(raw["safety_margin_seconds"]))
        return cls(
            stream_id=str(raw["stream_id"]).strip() or "form4_purchases",
            recency_days=int(_clamp(int(raw["recency_days"]), 1, 365)),
            max_pages=int(_clamp(int(raw["max_pages"]), 1, 50)),
            scan_cap=int(_clamp(int(raw["scan_cap"]), 1, page_size)),
            page_size=page_size,
            min_interval_seconds=max(0.1, float(raw["min_interval_seconds"])),
            # A budget that does not exceed the margin could never make a request
            time_budget_seconds=max(float(raw["time_budget_seconds"]), margin + 0.5),
            safety_margin_seconds=margin,
            request_timeout_seconds=max(0.5, float(raw["request_timeout_seconds"])),
            feed_url=str(raw["feed_url"]),
            dry_run=bool(raw["dry_run"]),
            resolver_cache_ttl_seconds=raw.get("resolver_cache_ttl_seconds"),
        )

    @property
    def lease_seconds(self) -> float:
        # Long enough to outlive one invocation; a crashed run's lease lapses on its own
        return self.time_budget_seconds + self.request_timeout_seconds + 30.0

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


class IngestionPipeline:
    """One invocation of the Form 4 purchase ingestion.

    idle -> running (per page: fetch -> resolve -> parse -> upsert -> checkpoint)
         -> ok | error | budget_exhausted | rate_limited (| locked when another run holds the stream)

    Pages and the filings inside them are processed strictly in order, one request at
    a time. Budget exhaustion and rate limiting stop the loop but keep checkpointed
    progress; anything else escaping the loop is fatal and marks the cursor 'error'.
    """

    def __init__(
        self,
        conn: Any,
        options: IngestOptions,
        *,
        user_agent: str,
        session: Any = None,
        cache: Optional[Cache] = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
        now: Optional[datetime] = None,
    ):
        self.conn = conn
        self.options = options
        self.user_agent = user_agent
        self.session = session
        self.cache = cache if cache is not None else NullCache()
        self.clock = clock
        self.sleep = sleep
        self.now = now

    def run(self, *, start_page: Optional[int] = None, dry_run: Optional[bool] = None) -> IngestRunResult:
        opts = self.options
        dry = opts.dry_run if dry_run is None else bool(dry_run)
        t0 = self.clock()

        budget = RateBudget(
            opts.time_budget_seconds,
            opts.min_interval_seconds,
            safety_margin_seconds=opts.safety_margin_seconds,
            clock=self.clock,
            sleep=self.sleep,
        )
        client = SecClient(
            self.user_agent,
            budget,
            session=self.session,
            timeout_seconds=opts.request_timeout_seconds,
        )
        paginator = FeedPaginator(
            client,
            feed_url=opts.feed_url,
            page_size=opts.page_size,
            recency_days=opts.recency_days,
            scan_cap=opts.scan_cap,
            now=self.now,
        )
        resolver = FilingResolver(client, cache=self.cache, cache_ttl_seconds=opts.resolver_cache_ttl_seconds)
        cursors = CursorStore(self.conn)
        sink = IngestionSink(self.conn)

        ensure_schema(self.conn)

        if dry:
            cursor = cursors.read(opts.stream_id)
        else:
            cursor = cursors.claim(opts.stream_id, lease_seconds=opts.lease_seconds)
            self.conn.commit()
            if cursor is None:
                return IngestRunResult(
                    status=RUN_LOCKED,
                    stream_id=opts.stream_id,
                    dry_run=dry,
                    start_page=int(start_page or 0),
                    next_page=int(start_page or 0),
                    cutoff=paginator.cutoff,
                    error=f"stream {opts.stream_id} is being ingested by another run",
                    options=opts.to_dict(),
                    time_spent_seconds=self.clock() - t0,
                )

        page = int(start_page) if start_page is not None else (cursor.position if cursor else 0)
        page = max(0, page)
        result = IngestRunResult(
            status=RUN_OK,
            stream_id=opts.stream_id,
            dry_run=dry,
            start_page=page,
            next_page=page,
            cutoff=paginator.cutoff,
            options=opts.to_dict(),
        )
        _debug(
            f"start stream={opts.stream_id} page={page} max_pages={opts.max_pages} "
            f"days={opts.recency_days} scan_cap={opts.scan_cap} dry_run={dry}"
        )

        try:
            for _ in range(opts.max_pages):
                feed_page = paginator.next_page(page)
                result.entries_seen += feed_page.raw_entry_count

                if feed_page.exhausted:
                    # Walked off the end of the feed; start again from the newest filings next time
                    _debug(f"page={page} returned no entries; wrapping cursor to 0")
                    page = 0
                    result.next_page = page
                    if not dry:
                        cursors.advance(opts.stream_id, page)
                        self.conn.commit()
                    break

                self._process_page(feed_page, client, resolver, sink, result, dry=dry)

                page += 1
                result.next_page = page
                result.pages_completed += 1
                if not dry:
                    cursors.advance(opts.stream_id, page)
                    self.conn.commit()
        except BudgetExhausted as e:
            result.status = RUN_BUDGET_EXHAUSTED
            _debug(f"stopping: {e}")
        except SecRateLimited as e:
            result.status = RUN_RATE_LIMITED
            result.error = str(e)
            _debug(f"stopping: rate limited by SEC ({e.status})")
        except Exception as e:
            result.status = RUN_ERROR
            result.error = str(e)
            _debug(f"run failed on page={page}: {e}")

        result.time_spent_seconds = self.clock() - t0
        if not dry:
            self._finish(cursors, result)

        _debug(
            f"done status={result.status} pages={result.pages_completed} next_page={result.next_page} "
            f"scanned={result.filings_scanned} found={result.transactions_found} "
            f"inserted={result.inserted} updated={result.updated} t={result.time_spent_seconds:.2f}s"
        )
        return result

    def _finish(self, cursors: CursorStore, result: IngestRunResult) -> None:
        stream_id = self.options.stream_id
        if result.status == RUN_ERROR:
            # Drop the half-processed page; the cursor keeps the last completed page
            try:
                self.conn.rollback()
                cursors.finish(stream_id, CURSOR_ERROR, error=result.error)
                self.conn.commit()
            except Exception as e:
                # the store itself is gone; the lease expires on its own
                _debug(f"could not record error on cursor {stream_id}: {e}")
            return

        # Upserts already made on a truncated page are kept; the page is redone next run
        note = result.error if result.status == RUN_RATE_LIMITED else None
        try:
            cursors.finish(stream_id, CURSOR_OK, error=note)
            self.conn.commit()
        except Exception as e:
            result.status = RUN_ERROR
            result.error = f"could not release cursor {stream_id}: {e}"
            _debug(result.error)

    def _process_page(
        self,
        feed_page: FeedPage,
        client: SecClient,
        resolver: FilingResolver,
        sink: IngestionSink,
        result: IngestRunResult,
        *,
        dry: bool,
    ) -> None:
        for ref in feed_page.references:
            result.filings_scanned += 1

            fetched = self._fetch_document(ref, client, resolver, result)
            if fetched is None:
                continue
            url, xml_text = fetched

            txs = parse_purchases(xml_text)
            result.transactions_found += len(txs)
            if len(result.examples) < MAX_EXAMPLES:
                result.examples.append(
                    {
                        "cik": ref.issuer_cik,
                        "accession": ref.accession_dashed,
                        "xml": url.rsplit("/", 1)[-1],
                        "purchases_found": len(txs),
                        "url": url,
                    }
                )

            if dry:
                continue
            for tx in txs:
                if sink.upsert(tx, ref, source_url=url) == UPSERT_INSERTED:
                    result.inserted += 1
                else:
                    result.updated += 1

    def _fetch_document(
        self,
        ref: FilingReference,
        client: SecClient,
        resolver: FilingResolver,
        result: IngestRunResult,
    ) -> Optional[Tuple[str, str]]:
        """(url, xml) for a filing, or None to skip it. Rate limits and budget end propagate."""
        where = "resolve"
        url: Optional[str] = None
        try:
            url = resolver.resolve(ref)
            if url is None:
                _record_error(result, where, ref, error="no XML document in filing index")
                return None
            where = "xml"
            return url, client.get_text(url, accept=_XML_ACCEPT)
        except (SecRateLimited, BudgetExhausted):
            raise
        except SecHttpError as e:
            _record_error(result, where, ref, status=e.status, url=e.url)
        except (SecError, requests.RequestException) as e:
            _record_error(result, where, ref, error=str(e), url=url)
        return None


def _record_error(
    result: IngestRunResult,
    where: str,
    ref: FilingReference,
    *,
    status: int | None = None,
    error: str | None = None,
    url: str | None = None,
) -> None:
    _debug(f"skip {ref.accession_dashed} ({where}): {status or error}")
    if len(result.errors_sample) >= MAX_ERRORS_SAMPLE:
        return
    item: Dict[str, Any] = {"where": where, "accession": ref.accession_dashed}
    if status is not None:
        item["status"] = status
    if error:
        item["error"] = error[:300]
    if url:
        item["url"] = url
    result.errors_sample.append(item)
