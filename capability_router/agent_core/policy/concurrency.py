from __future__ import annotations

"""In-flight operation counters enforcing ``max_concurrent_operations``."""

import threading
from contextlib import contextmanager
from typing import Dict, Iterator


class ConcurrencyTracker:
    """Count in-flight operations per agent id."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._in_flight: Dict[str, int] = {}

    def in_flight(self, agent_id: str) -> int:
        return self._in_flight.get(agent_id, 0)

    def try_acquire(self, agent_id: str, limit: int) -> bool:
        """Increment the counter unless ``limit`` operations are already running."""
        with self._lock:
            current = self._in_flight.get(agent_id, 0)
            if current >= limit:
                return False
            self._in_flight[agent_id] = current + 1
            return True

    def release(self, agent_id: str) -> None:
        with self._lock:
            current = self._in_flight.get(agent_id, 0)
            if current <= 1:
                self._in_flight.pop(agent_id, None)
            else:
                self._in_flight[agent_id] = current - 1

    @contextmanager
    def slot(self, agent_id: str) -> Iterator[None]:
        """Hold an already-acquired slot and release it on exit."""
        try:
            yield
        finally:
            self.release(agent_id)
