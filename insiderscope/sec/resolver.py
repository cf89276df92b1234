from __future__ import annotations

from typing import Any, Iterable, List, Optional

from insiderscope.cache import Cache, NullCache
from insiderscope.models import FilingReference
from insiderscope.sec.edgar import SecClient, archive_folder_url


def _debug(msg: str) -> None:
    print(f"[resolver] {msg}")


# Checked in order; the directory listing has no document-role metadata, only names.
_NAME_PRIORITY = ("form4", "primary", "ownership")


def xml_names_from_index(index_json: Any) -> List[str]:
    """Filenames ending in .xml from an EDGAR index.json (`directory.item[].name`)."""
    directory = (index_json or {}).get("directory") if isinstance(index_json, dict) else None
    items = (directory or {}).get("item") if isinstance(directory, dict) else None
    if isinstance(items, dict):
        items = [items]
    if not isinstance(items, list):
        return []

    names: List[str] = []
    for it in items:
        if not isinstance(it, dict):
            continue
        name = str(it.get("name") or "").strip()
        if name and name.lower().endswith(".xml"):
            names.append(name)
    return names


def select_primary_xml(names: Iterable[str]) -> Optional[str]:
    """Pick the most likely ownership document: form4, then primary, then ownership, then first."""
    xmls = [n for n in names if n and n.lower().endswith(".xml")]
    for needle in _NAME_PRIORITY:
        for n in xmls:
            if needle in n.lower():
                return n
    return xmls[0] if xmls else None


class FilingResolver:
    """Maps a FilingReference to the URL of its primary ownership XML (None = NotFound)."""

    def __init__(self, client: SecClient, *, cache: Optional[Cache] = None, cache_ttl_seconds: float | None = None):
        self.client = client
        self.cache = cache if cache is not None else NullCache()
        self.cache_ttl_seconds = cache_ttl_seconds

    @staticmethod
    def index_url(ref: FilingReference) -> str:
        return archive_folder_url(ref.issuer_cik, ref.accession_compact) + "index.json"

    def resolve(self, ref: FilingReference) -> Optional[str]:
        key = f"resolve:{ref.accession_compact}"
        cached = self.cache.get(key)
        if cached:
            return str(cached)

        idx = self.client.get_json(self.index_url(ref))
        chosen = select_primary_xml(xml_names_from_index(idx))
        if chosen is None:
            _debug(f"no XML in {ref.accession_dashed}")
            return None

        url = archive_folder_url(ref.issuer_cik, ref.accession_compact) + chosen
        self.cache.set(key, url, self.cache_ttl_seconds)
        return url
