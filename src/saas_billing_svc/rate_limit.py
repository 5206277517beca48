"""Per-caller sliding-window rate limiting for billing procedures.

State lives on the limiter instance, which the app keeps on ``app.state``.
It is per-process; a multi-instance deployment needs a shared backend.
"""
import time
import threading
from collections import defaultdict, deque
from typing import Callable, Deque, Dict, Tuple

from fastapi import Depends, HTTPException, Request, status

from saas_billing_svc.auth import get_current_user
from saas_billing_svc.errors import RateLimitExceededError
from saas_billing_svc.models.user import User


class SlidingWindowLimiter:
    def __init__(self, limit: int, window_seconds: float, clock: Callable[[], float] = time.monotonic) -> None:
        self.limit = limit
        self.window_seconds = window_seconds
        self.clock = clock
        self._hits: Dict[str, Deque[float]] = defaultdict(deque)
        self._lock = threading.Lock()
        self._last_sweep = clock()

    def hit(self, key: str) -> Tuple[int, int]:
        """
        Record a request for key.

        :return: (limit, remaining) after this request.
        :raises RateLimitExceededError: if key already used its window.
        """
        now = self.clock()
        cutoff = now - self.window_seconds
        with self._lock:
            self._maybe_sweep(now, cutoff)
            hits = self._hits[key]
            while hits and hits[0] <= cutoff:
                hits.popleft()
            if len(hits) >= self.limit:
                raise RateLimitExceededError()
            hits.append(now)
            return self.limit, self.limit - len(hits)

    def _maybe_sweep(self, now: float, cutoff: float) -> None:
        if now - self._last_sweep < self.window_seconds:
            return
        self._last_sweep = now
        # Drop callers with no request inside the current window
        stale = [k for k, hits in self._hits.items() if not hits or hits[-1] <= cutoff]
        for k in stale:
            del self._hits[k]

    def reset(self) -> None:
        with self._lock:
            self._hits.clear()


def rate_limited_user(request: Request, user: User = Depends(get_current_user)) -> User:
    """Authenticated user dependency that also charges the caller's rate limit."""
    limiter: SlidingWindowLimiter = request.app.state.rate_limiter
    try:
        limiter.hit(f"{request.url.path}:{user.id}")
    except RateLimitExceededError as e:
        raise HTTPException(status_code=status.HTTP_429_TOO_MANY_REQUESTS, detail=str(e))
    return user
