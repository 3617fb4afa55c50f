"""Process-lifetime hit/miss/error counters per cache namespace."""

import time
from collections import defaultdict
from dataclasses import dataclass
from typing import Any


@dataclass
class NamespaceCounters:
    hits: int = 0
    misses: int = 0
    errors: int = 0

    @property
    def total(self) -> int:
        return self.hits + self.misses

    def as_dict(self) -> dict[str, Any]:
        total = self.total
        return {
            "hits": self.hits,
            "misses": self.misses,
            "errors": self.errors,
            "total": total,
            "hit_rate": round(self.hits / total, 4) if total else 0.0,
            "error_rate": round(self.errors / total, 4) if total else 0.0,
        }


class CacheMetrics:
    """Counters owned by the ephemeral tier; callers only read snapshots.

    When ``reset_interval`` is positive the counters are cleared on the
    first access after the interval elapses.
    """

    def __init__(self, reset_interval: float = 0) -> None:
        self._reset_interval = reset_interval
        self._counters: defaultdict[str, NamespaceCounters] = defaultdict(NamespaceCounters)
        self._window_started = time.monotonic()

    def _maybe_reset(self) -> None:
        if self._reset_interval > 0 and time.monotonic() - self._window_started >= self._reset_interval:
            self.reset()

    def record_hit(self, namespace: str) -> None:
        self._maybe_reset()
        self._counters[namespace].hits += 1

    def record_miss(self, namespace: str) -> None:
        self._maybe_reset()
        self._counters[namespace].misses += 1

    def record_error(self, namespace: str) -> None:
        self._maybe_reset()
        self._counters[namespace].errors += 1

    def reset(self) -> None:
        self._counters.clear()
        self._window_started = time.monotonic()

    def snapshot(self) -> dict[str, dict[str, Any]]:
        """Copy of the current counters keyed by namespace."""
        self._maybe_reset()
        return {ns: counters.as_dict() for ns, counters in sorted(self._counters.items())}
