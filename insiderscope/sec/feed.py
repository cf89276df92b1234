from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import List, Optional, Set, Tuple
from xml.etree import ElementTree as ET

from insiderscope.models import FilingReference
from insiderscope.sec.edgar import SecClient, SecError
from insiderscope.util.time import parse_feed_timestamp, utcnow


def _debug(msg: str) -> None:
    print(f"[feed] {msg}")


# .../Archives/edgar/data/{cik}/{accession as 18 digits or NNNNNNNNNN-NN-NNNNNN}...
_ARCHIVES_LINK_RE = re.compile(r"edgar/data/(\d+)/(\d{10}-\d{2}-\d{6}|\d{18})(?!\d)", re.IGNORECASE)


@dataclass(frozen=True)
class FeedEntry:
    link: str
    updated: str


@dataclass
class FeedPage:
    page: int
    offset: int
    raw_entry_count: int
    references: List[FilingReference] = field(default_factory=list)

    @property
    def exhausted(self) -> bool:
        """True when the upstream had nothing at this offset."""
        return self.raw_entry_count == 0


def _strip_ns(tag: str) -> str:
    if "}" in tag:
        return tag.split("}", 1)[1]
    return tag


def _children(el: ET.Element, name: str) -> List[ET.Element]:
    return [c for c in el if _strip_ns(c.tag) == name]


def _child_text(el: ET.Element, name: str) -> str:
    for c in _children(el, name):
        text = (c.text or "").strip()
        if text:
            return text
    return ""


def _pick_archives_link(entry: ET.Element) -> str:
    hrefs = [(link.attrib.get("href") or "").strip() for link in _children(entry, "link")]
    hrefs = [h for h in hrefs if h]
    for h in hrefs:
        if "/Archives/" in h:
            return h
    return hrefs[0] if hrefs else ""


def parse_atom_entries(atom_text: str) -> List[FeedEntry]:
    """Return (link, timestamp) for every <entry> of an Atom feed, in feed order."""
    try:
        root = ET.fromstring((atom_text or "").lstrip("\ufeff").strip())
    except ET.ParseError as e:
        raise SecError(f"Feed is not parseable XML: {e}") from e

    out: List[FeedEntry] = []
    for entry in root.iter():
        if _strip_ns(entry.tag) != "entry":
            continue
        out.append(
            FeedEntry(
                link=_pick_archives_link(entry),
                updated=_child_text(entry, "updated") or _child_text(entry, "published"),
            )
        )
    return out


def extract_cik_and_accession(link: str) -> Optional[Tuple[str, str]]:
    """(cik, accession) from an archives URL, or None if the link has another shape."""
    m = _ARCHIVES_LINK_RE.search(link or "")
    if not m:
        return None
    return m.group(1), m.group(2)


def reference_from_entry(entry: FeedEntry) -> Optional[FilingReference]:
    found = extract_cik_and_accession(entry.link)
    if found is None:
        return None
    published_at = parse_feed_timestamp(entry.updated)
    if published_at is None:
        return None
    cik, accession = found
    try:
        return FilingReference.build(cik, accession, published_at, link=entry.link)
    except ValueError:
        return None


class FeedPaginator:
    """Walks the EDGAR "current filings" Form 4 Atom feed one page at a time."""

    def __init__(
        self,
        client: SecClient,
        *,
        feed_url: str,
        page_size: int,
        recency_days: int,
        scan_cap: int,
        now: Optional[datetime] = None,
    ):
        self.client = client
        self.feed_url = feed_url
        self.page_size = int(page_size)
        self.scan_cap = int(scan_cap)
        now = now or utcnow()
        if now.tzinfo is None:
            now = now.replace(tzinfo=timezone.utc)
        self.cutoff = now - timedelta(days=int(recency_days))

    def page_params(self, page: int) -> dict:
        return {
            "action": "getcurrent",
            "type": "4",
            "owner": "include",
            "count": str(self.page_size),
            "start": str(self.offset_for(page)),
            "output": "atom",
        }

    def offset_for(self, page: int) -> int:
        return int(page) * self.page_size

    def next_page(self, page: int) -> FeedPage:
        """Fetch and filter one page.

        Raises SecRateLimited / BudgetExhausted / SecHttpError from the client; an
        unparseable envelope raises SecError. Individual odd entries are skipped.
        """
        text = self.client.get_text(
            self.feed_url,
            params=self.page_params(page),
            accept="application/atom+xml,application/xml,text/xml,*/*",
        )
        entries = parse_atom_entries(text)

        refs: List[FilingReference] = []
        seen: Set[str] = set()
        for entry in entries:
            if len(refs) >= self.scan_cap:
                break
            ref = reference_from_entry(entry)
            if ref is None or ref.published_at < self.cutoff:
                continue
            # The feed lists a filing once per filer role; keep the first
            if ref.accession_dashed in seen:
                continue
            seen.add(ref.accession_dashed)
            refs.append(ref)

        _debug(f"page={page} offset={self.offset_for(page)} entries={len(entries)} in_window={len(refs)}")
        return FeedPage(page=page, offset=self.offset_for(page), raw_entry_count=len(entries), references=refs)
