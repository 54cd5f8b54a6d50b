# token_admission_bundle/admission/rate_limiter.py
"""
Per-client admission throttle.

Reset-window semantics: the first request from a key (or the first one after
its window expired) starts a fresh window with count=1; later requests in the
window increment the count until the ceiling is reached, after which they are
refused without touching the count.

State is process-local. Two near-simultaneous requests can both slip under the
ceiling; that is acceptable for abuse mitigation. A shared backend can replace
`_windows` without changing `allow()`.
"""
from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Callable, Dict, Mapping, Optional

UNKNOWN_CLIENT = "unknown"


@dataclass
class RateLimitWindow:
    count: int
    reset_at: float


class RateLimiter:
    def __init__(
        self,
        max_requests: int = 50,
        window_seconds: float = 3600.0,
        clock: Callable[[], float] = time.time,
    ):
        self.max_requests = int(max_requests)
        self.window_seconds = float(window_seconds)
        self._clock = clock
        self._windows: Dict[str, RateLimitWindow] = {}

    def allow(self, client_id: str) -> bool:
        now = self._clock()
        window = self._windows.get(client_id)

        if window is None or now > window.reset_at:
            self._windows[client_id] = RateLimitWindow(count=1, reset_at=now + self.window_seconds)
            return True

        if window.count >= self.max_requests:
            return False

        window.count += 1
        return True

    def window_for(self, client_id: str) -> Optional[RateLimitWindow]:
        return self._windows.get(client_id)

    def prune(self, now: Optional[float] = None) -> int:
        """Drop expired windows; returns how many were removed."""
        now = self._clock() if now is None else now
        expired = [k for k, w in self._windows.items() if now > w.reset_at]
        for k in expired:
            del self._windows[k]
        return len(expired)


def client_id_from_headers(headers: Mapping[str, str]) -> str:
    forwarded_for = headers.get("X-Forwarded-For") or headers.get("x-forwarded-for")
    if not forwarded_for:
        return UNKNOWN_CLIENT
    first = forwarded_for.split(",")[0].strip()
    return first or UNKNOWN_CLIENT
