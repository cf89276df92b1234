from __future__ import annotations

import time
from typing import Callable


def _debug(msg: str) -> None:
    print(f"[budget] {msg}")


class RateBudget:
    """Wall-clock deadline plus polite pacing between SEC requests.

    One instance per invocation: the pacing state and the deadline travel together,
    and tests drive both through an injected clock.
    Callers consult `before_request()` before every outbound call; nothing here retries.
    """

    def __init__(
        self,
        budget_seconds: float,
        min_interval_seconds: float,
        *,
        safety_margin_seconds: float = 1.2,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self._clock = clock
        self._sleep = sleep
        self.budget_seconds = float(budget_seconds)
        self.min_interval_seconds = max(0.0, float(min_interval_seconds))
        self.safety_margin_seconds = max(0.0, float(safety_margin_seconds))
        self.started_at = clock()
        self.deadline = self.started_at + self.budget_seconds
        self._last_request: float | None = None
        self.requests_made = 0

    def elapsed(self) -> float:
        return self._clock() - self.started_at

    def remaining(self) -> float:
        """Seconds left before the deadline (negative once past it)."""
        return self.deadline - self._clock()

    @property
    def exhausted(self) -> bool:
        return self.remaining() < self.safety_margin_seconds

    def before_request(self) -> bool:
        """Pace the next request; return False if there is no margin left to make it.

        Sleeps for the configured interval minus the time since the previous request,
        but never into the safety margin.
        """
        if self.exhausted:
            return False

        if self._last_request is not None and self.min_interval_seconds > 0:
            wait = self.min_interval_seconds - (self._clock() - self._last_request)
            wait = min(wait, self.remaining() - self.safety_margin_seconds)
            if wait > 0:
                self._sleep(wait)

        if self.exhausted:
            _debug(f"budget exhausted after {self.requests_made} requests ({self.elapsed():.2f}s)")
            return False

        self._last_request = self._clock()
        self.requests_made += 1
        return True
