"""Per-agent request rate limiting.

Implements a sliding window over the last ``window_seconds`` (60 by default)
for each agent id. The check and the recording of a request happen under one
lock, so two concurrent callers cannot both take the last slot.
"""

from __future__ import annotations

import logging
import threading
import time
from collections import deque
from dataclasses import dataclass
from typing import Callable, Deque, Dict

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RateLimitDecision:
    allowed: bool
    used: int
    limit: int
    retry_after_seconds: float = 0.0


class SlidingWindowRateLimiter:
    """
    Sliding-window limiter keyed by agent id.

    Args:
        window_seconds: Length of the rolling window.
        clock: Monotonic time source, injectable for tests.
    """

    def __init__(self, *, window_seconds: float = 60.0, clock: Callable[[], float] = time.monotonic) -> None:
        self._window = window_seconds
        self._clock = clock
        self._lock = threading.Lock()
        self._hits: Dict[str, Deque[float]] = {}

    def try_acquire(self, agent_id: str, limit: int) -> RateLimitDecision:
        """
        Record a request for ``agent_id`` if it fits within ``limit`` per window.

        Returns:
            The decision; a denied request is not recorded.
        """
        with self._lock:
            now = self._clock()
            hits = self._hits.setdefault(agent_id, deque())
            cutoff = now - self._window
            while hits and hits[0] <= cutoff:
                hits.popleft()

            if len(hits) >= limit:
                retry_after = max(0.0, hits[0] + self._window - now)
                logger.debug("Rate limit reached; agent_id=%s used=%d limit=%d", agent_id, len(hits), limit)
                return RateLimitDecision(allowed=False, used=len(hits), limit=limit, retry_after_seconds=retry_after)

            hits.append(now)
            return RateLimitDecision(allowed=True, used=len(hits), limit=limit)

    def usage(self, agent_id: str) -> int:
        with self._lock:
            hits = self._hits.get(agent_id)
            if not hits:
                return 0
            cutoff = self._clock() - self._window
            return sum(1 for t in hits if t > cutoff)

    def reset(self, agent_id: str | None = None) -> None:
        with self._lock:
            if agent_id is None:
                self._hits.clear()
            else:
                self._hits.pop(agent_id, None)
