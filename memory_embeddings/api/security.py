"""
Request guards for the memory embeddings routes: API key check and a
global fixed-window rate limiter.
"""

import hmac
import threading
import time
from typing import Optional

from fastapi import Header, Request

from util.logging import logger

from ..core.config import get_api_key, get_rate_limit, rate_limit_enabled, strict_auth_enabled
from ..core.errors import AuthError, RateLimitedError


def require_api_key(request: Request, x_api_key: Optional[str] = Header(None)):
    """Reject requests without the configured X-API-Key when strict auth is on."""
    if not strict_auth_enabled():
        return

    expected = get_api_key()
    if not expected:
        logger.log_auth_failure(request.url.path, "API_KEY not configured")
        raise AuthError()
    if not x_api_key or not hmac.compare_digest(x_api_key, expected):
        logger.log_auth_failure(request.url.path, "missing key" if not x_api_key else "key mismatch")
        raise AuthError()


class RateLimiter:
    """One counter shared by every caller, reset at the start of each window."""

    def __init__(self, max_requests: int, window_sec: int, clock=time.monotonic):
        self.max_requests = max_requests
        self.window_sec = window_sec
        self._clock = clock
        self._lock = threading.Lock()
        self._window_start = None
        self._count = 0

    def hit(self) -> bool:
        """Count one request; False when the window's budget is already spent."""
        with self._lock:
            now = self._clock()
            if self._window_start is None or now - self._window_start >= self.window_sec:
                self._window_start = now
                self._count = 0
            if self._count >= self.max_requests:
                return False
            self._count += 1
            return True

    @property
    def count(self) -> int:
        return self._count

    def reset(self):
        with self._lock:
            self._window_start = None
            self._count = 0


_rate_limiter: Optional[RateLimiter] = None
_rate_limiter_lock = threading.Lock()


def get_rate_limiter() -> RateLimiter:
    """Get or create the process-wide rate limiter."""
    global _rate_limiter
    if _rate_limiter is None:
        with _rate_limiter_lock:
            if _rate_limiter is None:
                max_requests, window_sec = get_rate_limit()
                _rate_limiter = RateLimiter(max_requests, window_sec)
    return _rate_limiter


def reset_rate_limiter():
    """Drop the current limiter so the next request rebuilds it from config."""
    global _rate_limiter
    with _rate_limiter_lock:
        _rate_limiter = None


def enforce_rate_limit(request: Request):
    if not rate_limit_enabled():
        return

    limiter = get_rate_limiter()
    if not limiter.hit():
        logger.log_rate_limited(request.url.path, limiter.count, limiter.max_requests)
        raise RateLimitedError()
