from __future__ import annotations

import math
import re
from typing import Iterable, List, Optional, Sequence, Tuple
from xml.etree import ElementTree as ET

from insiderscope.models import PurchaseTransaction
from insiderscope.util.normalization import iso_date_only, normalize_cik, parse_number, round_half_up, safe_text


def _debug(msg: str) -> None:
    print(f"[parser] {msg}")


Path = Tuple[str, ...]

# Ordered extraction rules: the first path that yields a non-empty scalar wins.
# Paths are relative to the ownershipDocument (document rules) or to one
# nonDerivativeTransaction (transaction rules).
ISSUER_TICKER_RULES: Sequence[Path] = (
    ("issuer", "issuerTradingSymbol"),
    ("issuerTradingSymbol",),
    ("issuer", "tradingSymbol"),
)
ISSUER_NAME_RULES: Sequence[Path] = (
    ("issuer", "issuerName"),
    ("issuerName",),
)
ISSUER_CIK_RULES: Sequence[Path] = (
    ("issuer", "issuerCik"),
    ("issuerCik",),
)
OWNER_NAME_RULES: Sequence[Path] = (
    ("reportingOwner", "reportingOwnerId", "rptOwnerName"),
    ("rptOwnerName",),
    ("reportingOwnerName",),
)
OWNER_TITLE_RULES: Sequence[Path] = (
    ("reportingOwner", "reportingOwnerRelationship", "officerTitle"),
    ("officerTitle",),
)

TX_CODE_RULES: Sequence[Path] = (
    ("transactionCoding", "transactionCode"),
    ("transactionCode",),
)
TX_SHARES_RULES: Sequence[Path] = (
    ("transactionAmounts", "transactionShares"),
    ("transactionShares",),
)
TX_PRICE_RULES: Sequence[Path] = (
    ("transactionAmounts", "transactionPricePerShare"),
    ("transactionPricePerShare",),
)
TX_DATE_RULES: Sequence[Path] = (
    ("transactionDate",),
)

PURCHASE_CODE = "P"


# --- namespace normalization -------------------------------------------------

_MARKUP_RE = re.compile(r"<[^<>]+>")
_XMLNS_DECL_RE = re.compile(r"""\s+xmlns(?::[\w.-]+)?\s*=\s*(?:"[^"]*"|'[^']*')""")
_TAG_PREFIX_RE = re.compile(r"^<(/?)[A-Za-z_][\w.-]*:")
_ATTR_PREFIX_RE = re.compile(r"""(\s)[A-Za-z_][\w.-]*:([A-Za-z_][\w.-]*\s*=)""")


def _clean_markup(m: "re.Match[str]") -> str:
    tag = m.group(0)
    # Leave declarations, processing instructions and comments alone
    if tag.startswith(("<?", "<!")):
        return tag
    tag = _XMLNS_DECL_RE.sub("", tag)
    tag = _TAG_PREFIX_RE.sub(r"<\1", tag)
    tag = _ATTR_PREFIX_RE.sub(r"\1\2", tag)
    return tag


def strip_namespaces(xml_text: str) -> str:
    """Drop xmlns declarations and ns prefixes so <ns1:issuerName> reads as <issuerName>."""
    if not xml_text:
        return ""
    return _MARKUP_RE.sub(_clean_markup, xml_text)


# --- tree helpers --------------------------------------------------------------

def _strip_ns(tag: object) -> str:
    # Comments/PIs carry a callable tag
    if not isinstance(tag, str):
        return ""
    if "}" in tag:
        return tag.split("}", 1)[1]
    return tag


def _find_child(parent: ET.Element | None, name: str) -> Optional[ET.Element]:
    if parent is None:
        return None
    for child in parent:
        if _strip_ns(child.tag) == name:
            return child
    return None


def _find_children(parent: ET.Element | None, name: str) -> List[ET.Element]:
    if parent is None:
        return []
    return [c for c in parent if _strip_ns(c.tag) == name]


def _find_all(root: ET.Element, name: str) -> List[ET.Element]:
    """Every descendant (or root) named `name`, document order."""
    return [el for el in root.iter() if _strip_ns(el.tag) == name]


def _scalar(el: ET.Element | None) -> Optional[str]:
    """Text of a field that is either bare (<x>T</x>) or wrapped (<x><value>T</value></x>)."""
    if el is None:
        return None
    wrapped = _find_child(el, "value")
    raw = wrapped.text if wrapped is not None else el.text
    text = safe_text(raw)
    return text or None


def _resolve_path(node: ET.Element, path: Path) -> Optional[ET.Element]:
    cur: Optional[ET.Element] = node
    for name in path:
        cur = _find_child(cur, name)
        if cur is None:
            return None
    return cur


def extract_first(node: ET.Element | None, rules: Iterable[Path]) -> Optional[str]:
    """Apply extraction rules in order, short-circuiting on the first non-empty value."""
    if node is None:
        return None
    for path in rules:
        value = _scalar(_resolve_path(node, path))
        if value:
            return value
    return None


# --- document structure --------------------------------------------------------

def _ownership_root(root: ET.Element) -> ET.Element:
    # Some filings wrap ownershipDocument; use it if present, else the parsed root
    if _strip_ns(root.tag) == "ownershipDocument":
        return root
    for el in root.iter():
        if _strip_ns(el.tag) == "ownershipDocument":
            return el
    return root


def _non_derivative_transactions(root: ET.Element) -> List[ET.Element]:
    table = _find_child(root, "nonDerivativeTable")
    txs = _find_children(table, "nonDerivativeTransaction")
    if txs:
        return txs
    txs = _find_children(root, "nonDerivativeTransaction")
    if txs:
        return txs
    # Some filers nest the table one level deeper than usual
    return _find_all(root, "nonDerivativeTransaction")


def _parse_xml(xml_text: str) -> Optional[ET.Element]:
    text = strip_namespaces((xml_text or "").lstrip("\ufeff").strip())
    if not text:
        return None
    try:
        return ET.fromstring(text)
    except (ET.ParseError, ValueError) as e:
        _debug(f"XML parse failed: {e}")
        return None


def parse_transaction(
    tx_el: ET.Element,
    *,
    issuer_ticker: str | None,
    issuer_name: str | None,
    owner_name: str | None,
    owner_title: str | None,
    issuer_cik: str | None = None,
) -> Optional[PurchaseTransaction]:
    """One nonDerivativeTransaction -> PurchaseTransaction, or None if it is not a usable purchase."""
    code = (extract_first(tx_el, TX_CODE_RULES) or "").strip()
    if code != PURCHASE_CODE:
        return None

    shares = parse_number(extract_first(tx_el, TX_SHARES_RULES))
    price = parse_number(extract_first(tx_el, TX_PRICE_RULES))
    # Missing price drops the entry; zero-priced lines are grants/exercises, not purchases
    if shares is None or price is None or shares <= 0 or price <= 0:
        return None
    total = shares * price
    # two finite inputs can still overflow
    if not math.isfinite(total):
        return None

    return PurchaseTransaction(
        issuer_ticker=issuer_ticker,
        issuer_name=issuer_name,
        owner_name=owner_name,
        owner_title=owner_title,
        shares=shares,
        price_per_share=price,
        total_value=round_half_up(total),
        transaction_date=iso_date_only(extract_first(tx_el, TX_DATE_RULES)),
        transaction_code=PURCHASE_CODE,
        issuer_cik=issuer_cik,
    )


def parse_purchases(xml_text: str) -> List[PurchaseTransaction]:
    """Parse a Form 4 ownership document into open-market purchases (code P).

    Never raises on malformed input: unparseable XML yields [].
    """
    parsed = _parse_xml(xml_text)
    if parsed is None:
        return []

    root = _ownership_root(parsed)

    issuer_ticker = extract_first(root, ISSUER_TICKER_RULES)
    issuer_name = extract_first(root, ISSUER_NAME_RULES)
    issuer_cik = normalize_cik(extract_first(root, ISSUER_CIK_RULES))
    owner_name = extract_first(root, OWNER_NAME_RULES)
    owner_title = extract_first(root, OWNER_TITLE_RULES)

    entries = _non_derivative_transactions(root)
    out: List[PurchaseTransaction] = []
    for tx_el in entries:
        tx = parse_transaction(
            tx_el,
            issuer_ticker=issuer_ticker.upper() if issuer_ticker else None,
            issuer_name=issuer_name,
            owner_name=owner_name,
            owner_title=owner_title,
            issuer_cik=issuer_cik,
        )
        if tx is not None:
            out.append(tx)

    _debug(f"Parsed Form4: symbol={issuer_ticker} owner={owner_name} entries={len(entries)} purchases={len(out)}")
    return out
