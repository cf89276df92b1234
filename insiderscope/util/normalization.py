from __future__ import annotations

import math
import re
from datetime import date
from typing import Any


_ACCESSION_DASHED_RE = re.compile(r"^\d{10}-\d{2}-\d{6}$")
_ACCESSION_COMPACT_RE = re.compile(r"^\d{18}$")


def safe_text(v: Any) -> str:
    if v is None:
        return ""
    return " ".join(str(v).split())


def normalize_cik(cik: Any) -> str | None:
    """Digits only, left-pad to 10. Returns None if there are no digits."""
    if cik is None:
        return None
    digits = "".join(ch for ch in str(cik) if ch.isdigit())
    if not digits:
        return None
    return digits.zfill(10)


def cik_path_component(cik10: str) -> str:
    # EDGAR archive paths use the integer CIK without leading zeros
    return str(int(cik10))


def accession_to_dashed(accession: str) -> str:
    """Return NNNNNNNNNN-NN-NNNNNN for either accession form."""
    acc = str(accession or "").strip()
    if _ACCESSION_DASHED_RE.match(acc):
        return acc
    if _ACCESSION_COMPACT_RE.match(acc):
        return f"{acc[:10]}-{acc[10:12]}-{acc[12:]}"
    raise ValueError(f"Not an accession number: {accession!r}")


def accession_to_compact(accession: str) -> str:
    return accession_to_dashed(accession).replace("-", "")


def parse_number(v: Any) -> float | None:
    """Parse a numeric field, stripping thousands separators. Non-finite -> None."""
    if v is None:
        return None
    if isinstance(v, bool):
        return None
    if isinstance(v, (int, float)):
        n = float(v)
    else:
        t = str(v).strip().replace(",", "")
        if not t:
            return None
        try:
            n = float(t)
        except ValueError:
            return None
    return n if math.isfinite(n) else None


def iso_date_only(v: Any) -> str | None:
    """Truncate to the calendar-date part; None unless it is a valid ISO date."""
    s = safe_text(v)[:10]
    if len(s) != 10:
        return None
    try:
        return date.fromisoformat(s).isoformat()
    except ValueError:
        return None


def number_key(n: float) -> str:
    """Stable textual form of a number for identity hashing (1000 and 1000.0 agree)."""
    f = float(n)
    if f == int(f):
        return str(int(f))
    return repr(f)


def round_half_up(x: float) -> int:
    # round() is banker's rounding; values are positive here
    return int(math.floor(x + 0.5))
