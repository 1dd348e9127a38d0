"""In-process metrics for FieldGate (query counts, transitions, report timings)."""

import time
from collections import defaultdict
from contextlib import contextmanager
from dataclasses import dataclass
from threading import Lock
from typing import Any, Iterator


@dataclass
class Timing:
    """Running summary of durations in milliseconds."""

    count: int = 0
    total_ms: float = 0.0
    max_ms: float = 0.0

    def add(self, duration_ms: float) -> None:
        self.count += 1
        self.total_ms += duration_ms
        self.max_ms = max(self.max_ms, duration_ms)

    def as_dict(self) -> dict[str, Any]:
        return {
            "count": self.count,
            "total_ms": round(self.total_ms, 3),
            "max_ms": round(self.max_ms, 3),
            "avg_ms": round(self.total_ms / self.count, 3) if self.count else 0.0,
        }


class MetricsRegistry:
    """Counters and timings shared by the engines and the database listeners."""

    def __init__(self) -> None:
        self._lock = Lock()
        self._counters: dict[str, float] = defaultdict(float)
        self._timings: dict[str, Timing] = defaultdict(Timing)

    def inc_counter(self, name: str, amount: float = 1.0) -> None:
        with self._lock:
            self._counters[name] += amount

    def counter_value(self, name: str) -> float:
        """Current value of a counter (0 when it was never incremented)."""
        with self._lock:
            return self._counters.get(name, 0.0)

    def observe(self, name: str, duration_ms: float) -> None:
        with self._lock:
            self._timings[name].add(duration_ms)

    @contextmanager
    def timed(self, name: str) -> Iterator[None]:
        """Record the wall time of the enclosed block."""
        start = time.perf_counter()
        try:
            yield
        finally:
            self.observe(name, (time.perf_counter() - start) * 1000.0)

    def snapshot(self) -> dict[str, Any]:
        with self._lock:
            return {
                "counters": dict(self._counters),
                "timings": {name: t.as_dict() for name, t in self._timings.items()},
            }


metrics = MetricsRegistry()
