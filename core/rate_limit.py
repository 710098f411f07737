"""
In-memory fixed-window rate limiter.

Used for registration, login and AI copilot requests. Counts are per process;
a multi-worker deployment gets one window per worker.
"""

from __future__ import annotations

import threading
import time
from dataclasses import dataclass
from typing import Dict, Optional

CLEANUP_INTERVAL_SEC = 5 * 60


@dataclass
class _Entry:
    count: int
    reset_at: float


@dataclass(frozen=True)
class RateLimitResult:
    success: bool
    remaining: int
    reset_at: float

    def retry_after(self, now: Optional[float] = None) -> int:
        """Seconds until the window resets, at least 1."""
        now = time.time() if now is None else now
        return max(1, int(round(self.reset_at - now)))


_store: Dict[str, _Entry] = {}
_lock = threading.Lock()
_last_cleanup = time.time()


def _cleanup(now: float) -> None:
    global _last_cleanup
    if now - _last_cleanup < CLEANUP_INTERVAL_SEC:
        return
    _last_cleanup = now
    for key in [k for k, entry in _store.items() if entry.reset_at <= now]:
        del _store[key]


def rate_limit(key: str, limit: int = 10, window_seconds: float = 60.0) -> RateLimitResult:
    """
    Check and consume one token for ``key``.

    The first request opens a window of ``window_seconds``; once ``limit``
    requests have been counted, further requests fail until the window resets.
    """
    now = time.time()
    with _lock:
        _cleanup(now)
        entry = _store.get(key)

        if entry is None or entry.reset_at <= now:
            reset_at = now + window_seconds
            _store[key] = _Entry(count=1, reset_at=reset_at)
            return RateLimitResult(success=True, remaining=limit - 1, reset_at=reset_at)

        if entry.count >= limit:
            return RateLimitResult(success=False, remaining=0, reset_at=entry.reset_at)

        entry.count += 1
        return RateLimitResult(success=True, remaining=limit - entry.count, reset_at=entry.reset_at)


def reset() -> None:
    """Clear all windows."""
    with _lock:
        _store.clear()
