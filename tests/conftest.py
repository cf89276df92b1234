"""Shared fakes: a scripted HTTP session, a manual clock and Form 4 / Atom builders."""
from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

import pytest

from insiderscope.db import connect
from insiderscope.sec.pipeline import IngestOptions


FEED_URL = "https://www.sec.gov/cgi-bin/browse-edgar"
ARCHIVES = "https://www.sec.gov/Archives/edgar/data"
NOW = datetime(2024, 5, 10, 12, 0, 0, tzinfo=timezone.utc)


class FakeClock:
    """Monotonic clock that only moves when told to (or when something sleeps)."""

    def __init__(self, start: float = 0.0):
        self.t = float(start)
        self.sleeps: List[float] = []

    def __call__(self) -> float:
        return self.t

    def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.t += seconds

    def advance(self, seconds: float) -> None:
        self.t += seconds


class FakeResponse:
    def __init__(self, status_code: int = 200, text: str = "", json_data: Any = None):
        self.status_code = status_code
        self.text = text
        self._json = json_data

    def json(self) -> Any:
        if self._json is None:
            raise ValueError("no JSON body")
        return self._json


Route = Any  # FakeResponse or callable(params) -> FakeResponse


class FakeSession:
    """requests.Session stand-in routing on exact URL; unknown URLs answer 404."""

    def __init__(self, routes: Dict[str, Route], *, clock: Optional[FakeClock] = None, latency: float = 0.0):
        self.routes = dict(routes)
        self.clock = clock
        self.latency = latency
        self.calls: List[Tuple[str, Dict[str, Any], Dict[str, str], float]] = []

    def get(self, url: str, params: Any = None, headers: Any = None, timeout: Any = None) -> FakeResponse:
        params = dict(params or {})
        self.calls.append((url, params, dict(headers or {}), timeout))
        if self.clock is not None and self.latency:
            self.clock.advance(self.latency)
        route = self.routes.get(url)
        if route is None:
            return FakeResponse(404, "Not Found")
        if callable(route):
            return route(params)
        return route

    def urls(self) -> List[str]:
        return [c[0] for c in self.calls]


def archive_link(cik: str, accession_dashed: str) -> str:
    compact = accession_dashed.replace("-", "")
    return f"{ARCHIVES}/{int(cik)}/{compact}/{accession_dashed}-index.htm"


def index_url(cik: str, accession_dashed: str) -> str:
    return f"{ARCHIVES}/{int(cik)}/{accession_dashed.replace('-', '')}/index.json"


def doc_url(cik: str, accession_dashed: str, name: str) -> str:
    return f"{ARCHIVES}/{int(cik)}/{accession_dashed.replace('-', '')}/{name}"


def atom_feed(entries: Sequence[Tuple[str, str]]) -> str:
    """Atom document with one <entry> per (link, updated)."""
    body = "".join(
        f"""
  <entry>
    <title>4 - Some Filer</title>
    <link rel="alternate" type="text/html" href="{link}"/>
    <updated>{updated}</updated>
    <category scheme="https://www.sec.gov/" label="form type" term="4"/>
  </entry>"""
        for link, updated in entries
    )
    return f"""<?xml version="1.0"?>
<feed xmlns="http://www.w3.org/2005/Atom">
  <title>Latest Filings</title>
  <updated>2024-05-10T08:00:00-04:00</updated>{body}
</feed>
"""


def form4_xml(
    *,
    ticker: Optional[str] = "ACME",
    issuer_name: str = "Acme Corp",
    issuer_cik: str = "0000320193",
    owner: str = "Doe Jane",
    title: Optional[str] = "Chief Executive Officer",
    transactions: Sequence[Tuple[str, str, str, Optional[str]]] = (),
) -> str:
    """Ownership document; transactions are (code, shares, price, date) as raw text."""
    rows = []
    for code, shares, price, date in transactions:
        date_xml = f"<transactionDate><value>{date}</value></transactionDate>" if date else ""
        rows.append(
            f"""
    <nonDerivativeTransaction>
      <securityTitle><value>Common Stock</value></securityTitle>
      {date_xml}
      <transactionCoding><transactionFormType>4</transactionFormType><transactionCode>{code}</transactionCode></transactionCoding>
      <transactionAmounts>
        <transactionShares><value>{shares}</value></transactionShares>
        <transactionPricePerShare><value>{price}</value></transactionPricePerShare>
        <transactionAcquiredDisposedCode><value>A</value></transactionAcquiredDisposedCode>
      </transactionAmounts>
    </nonDerivativeTransaction>"""
        )
    ticker_xml = f"<issuerTradingSymbol>{ticker}</issuerTradingSymbol>" if ticker else ""
    title_xml = f"<officerTitle>{title}</officerTitle>" if title else ""
    return f"""<?xml version="1.0"?>
<ownershipDocument>
  <schemaVersion>X0508</schemaVersion>
  <documentType>4</documentType>
  <issuer>
    <issuerCik>{issuer_cik}</issuerCik>
    <issuerName>{issuer_name}</issuerName>
    {ticker_xml}
  </issuer>
  <reportingOwner>
    <reportingOwnerId><rptOwnerCik>0001234567</rptOwnerCik><rptOwnerName>{owner}</rptOwnerName></reportingOwnerId>
    <reportingOwnerRelationship><isOfficer>1</isOfficer>{title_xml}</reportingOwnerRelationship>
  </reportingOwner>
  <nonDerivativeTable>{''.join(rows)}
  </nonDerivativeTable>
</ownershipDocument>
"""


def index_json(*names: str) -> Dict[str, Any]:
    return {"directory": {"name": "/Archives/edgar/data/x", "item": [{"name": n, "type": "file"} for n in names]}}


def feed_pages(pages: Dict[int, str], page_size: int = 100) -> Callable[[Dict[str, Any]], FakeResponse]:
    """Feed route answering by `start`; pages not listed are empty feeds."""

    def route(params: Dict[str, Any]) -> FakeResponse:
        page = int(params.get("start", 0)) // page_size
        return FakeResponse(200, pages.get(page, atom_feed([])))

    return route


@pytest.fixture
def db_path(tmp_path):
    return str(tmp_path / "insiderscope.sqlite")


@pytest.fixture
def conn(db_path):
    with connect(db_path) as c:
        yield c


@pytest.fixture
def make_options():
    def _make(**kw: Any) -> IngestOptions:
        raw: Dict[str, Any] = {
            "stream_id": "test_stream",
            "recency_days": 30,
            "max_pages": 1,
            "scan_cap": 25,
            "page_size": 100,
            "min_interval_seconds": 0.1,
            "time_budget_seconds": 8.0,
            "safety_margin_seconds": 1.2,
            "request_timeout_seconds": 20.0,
            "feed_url": FEED_URL,
            "dry_run": False,
            "resolver_cache_ttl_seconds": None,
        }
        raw.update(kw)
        return IngestOptions.clamped(**raw)

    return _make
