"""In-memory sliding-window rate limiter.

Each client key owns an ordered list of the timestamps of its admitted
requests.  On every call the list is pruned to the trailing window and the
request is admitted only if fewer than ``max_requests`` timestamps remain.

The limiter is a plain object rather than module state: the application
receives one through :func:`cfimage.api.main.create_app`, which keeps tests
isolated and leaves room for a shared backend later.  It is single-process
only; several server instances each enforce their own ceiling.

Usage
-----
::

    limiter = SlidingWindowRateLimiter(window_seconds=60, max_requests=10)
    decision = limiter.admit("203.0.113.7")
    if not decision.allowed:
        print(decision.retry_after_seconds)
"""

from __future__ import annotations

import logging
import math
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RateLimitDecision:
    """Outcome of :meth:`SlidingWindowRateLimiter.admit`.

    Attributes:
        allowed: ``True`` if the request was admitted (and recorded).
        retry_after_seconds: Whole seconds until a slot frees up.  Always
            ``0`` when allowed and at least ``1`` when denied.
    """

    allowed: bool
    retry_after_seconds: int = 0


class SlidingWindowRateLimiter:
    """Per-key sliding-window counter.

    The prune-count-append sequence runs under a lock so two concurrent
    requests for the same key can never both observe a free slot.

    Args:
        window_seconds: Length of the trailing window.
        max_requests: Maximum admitted requests per key within one window.
        clock: Monotonic time source in seconds, injectable for tests.
    """

    def __init__(
        self,
        window_seconds: float = 60.0,
        max_requests: int = 10,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if window_seconds <= 0:
            raise ValueError("window_seconds must be positive")
        if max_requests < 1:
            raise ValueError("max_requests must be at least 1")
        self.window_seconds = window_seconds
        self.max_requests = max_requests
        self._clock = clock
        self._requests: dict[str, list[float]] = {}
        self._lock = threading.Lock()

    def admit(self, client_key: str, now: float | None = None) -> RateLimitDecision:
        """Admit or deny one request for *client_key*.

        Args:
            client_key: Identity of the caller (typically the source address).
            now: Current time in seconds; defaults to the limiter's clock.

        Returns:
            A :class:`RateLimitDecision`.
        """
        if now is None:
            now = self._clock()

        with self._lock:
            recent = [ts for ts in self._requests.get(client_key, ()) if now - ts < self.window_seconds]

            if len(recent) >= self.max_requests:
                self._requests[client_key] = recent
                retry_after = max(1, math.ceil(recent[0] + self.window_seconds - now))
                logger.warning(f"Rate limit exceeded for client: {client_key}")
                return RateLimitDecision(allowed=False, retry_after_seconds=retry_after)

            recent.append(now)
            self._requests[client_key] = recent

        return RateLimitDecision(allowed=True)

    def count(self, client_key: str, now: float | None = None) -> int:
        """Return how many requests *client_key* has in the current window.

        Not used on the request path; it exists for tests and for operators
        inspecting a running limiter.
        """
        if now is None:
            now = self._clock()
        with self._lock:
            return sum(1 for ts in self._requests.get(client_key, ()) if now - ts < self.window_seconds)

    def reset(self, client_key: str | None = None) -> None:
        """Forget one client's history, or every client's when *client_key* is ``None``.

        An operator and test helper; the request path only calls :meth:`admit`.
        """
        with self._lock:
            if client_key is None:
                self._requests.clear()
            else:
                self._requests.pop(client_key, None)
