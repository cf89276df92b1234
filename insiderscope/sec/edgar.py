from __future__ import annotations

from typing import Any, Dict, Mapping, Optional

import requests

from insiderscope.sec.budget import RateBudget
from insiderscope.util.normalization import cik_path_component


def _debug(msg: str) -> None:
    print(f"[sec] {msg}")


SEC_ARCHIVES_BASE = "https://www.sec.gov/Archives/edgar/data"

# EDGAR answers over-eager clients with 429, or with 403 plus this phrase in the body.
_RATE_LIMIT_STATUS = 429
_RATE_LIMIT_PHRASES = ("request rate threshold exceeded", "rate limit")


class SecError(RuntimeError):
    pass


class SecHttpError(SecError):
    def __init__(self, status: int, url: str, body: str = ""):
        super().__init__(f"SEC request failed {status} for {url}: {body[:300]}")
        self.status = int(status)
        self.url = url


class SecRateLimited(SecHttpError):
    """Upstream says stop. Never retried inside the pipeline."""


class BudgetExhausted(SecError):
    """No time left in the invocation budget to make another request."""


def is_rate_limited(status: int, body: str) -> bool:
    if status == _RATE_LIMIT_STATUS:
        return True
    if status == 403:
        b = (body or "").lower()
        return any(p in b for p in _RATE_LIMIT_PHRASES)
    return False


def archive_folder_url(cik10: str, accession_compact: str) -> str:
    return f"{SEC_ARCHIVES_BASE}/{cik_path_component(cik10)}/{accession_compact}/"


class SecClient:
    """Budget-gated GET helper for SEC endpoints.

    Every call asks the RateBudget first; BudgetExhausted is raised instead of sending
    a request the invocation no longer has time for.
    """

    def __init__(
        self,
        user_agent: str,
        budget: RateBudget,
        *,
        session: Any = None,
        timeout_seconds: float = 20.0,
    ):
        if not (user_agent or "").strip():
            raise RuntimeError('SEC_USER_AGENT is not set (e.g. "InsiderScope (you@example.com)")')
        self.user_agent = user_agent.strip()
        self.budget = budget
        self.session = session if session is not None else requests.Session()
        self.timeout_seconds = float(timeout_seconds)

    def _headers(self, accept: str) -> Dict[str, str]:
        return {
            "User-Agent": self.user_agent,
            "Accept": accept,
        }

    def _get(self, url: str, *, params: Optional[Mapping[str, Any]] = None, accept: str = "*/*") -> Any:
        if not self.budget.before_request():
            raise BudgetExhausted(f"No time budget left for GET {url}")

        # Never let a single request outlive the invocation.
        timeout = max(0.5, min(self.timeout_seconds, self.budget.remaining()))
        _debug(f"GET {url}" + (f" params={dict(params)}" if params else ""))
        r = self.session.get(url, params=params, headers=self._headers(accept), timeout=timeout)
        if r.status_code == 200:
            return r

        body = r.text or ""
        if is_rate_limited(r.status_code, body):
            _debug(f"rate limited ({r.status_code}) on {url}")
            raise SecRateLimited(r.status_code, url, body)
        raise SecHttpError(r.status_code, url, body)

    def get_text(self, url: str, *, params: Optional[Mapping[str, Any]] = None, accept: str = "*/*") -> str:
        return self._get(url, params=params, accept=accept).text

    def get_json(self, url: str, *, params: Optional[Mapping[str, Any]] = None) -> Dict[str, Any]:
        r = self._get(url, params=params, accept="application/json")
        try:
            data = r.json()
        except ValueError as e:
            raise SecError(f"SEC returned non-JSON body for {url}") from e
        return data if isinstance(data, dict) else {}
