from __future__ import annotations

"""Application performance metrics collection.

Provides a lightweight, thread-safe collector for:
- HTTP API response times and counts by method+route and status code
- Folder watcher poll durations
- Named event counters and one-shot timers (indexing, library sync, mail)

Exposes a singleton `metrics`; snapshot() returns a JSON-safe dict.
"""

import threading
import time
from dataclasses import dataclass, field
from typing import Any, Dict, Tuple


@dataclass
class Stat:
    """Accumulates basic statistics for durations.

    Keeps a bounded sample window to estimate p95/p99.
    """

    count: int = 0
    total_s: float = 0.0
    min_s: float = float("inf")
    max_s: float = 0.0
    last_s: float = 0.0
    _samples: list[float] = field(default_factory=list)
    _max_samples: int = 256

    def add(self, duration_s: float) -> None:
        self.count += 1
        self.total_s += duration_s
        self.last_s = duration_s
        self.min_s = min(self.min_s, duration_s)
        self.max_s = max(self.max_s, duration_s)
        self._samples.append(duration_s)
        if len(self._samples) > self._max_samples:
            self._samples.pop(0)

    def _percentile_ms(self, p: float) -> float:
        if not self._samples:
            return 0.0
        data = sorted(self._samples)
        k = max(0, min(len(data) - 1, int(round((p / 100.0) * (len(data) - 1)))))
        return data[k] * 1000.0

    def as_dict_ms(self) -> Dict[str, float | int]:
        avg_ms = (self.total_s / self.count * 1000.0) if self.count else 0.0
        return {
            "count": self.count,
            "avg_ms": avg_ms,
            "min_ms": (self.min_s * 1000.0 if self.count else 0.0),
            "max_ms": self.max_s * 1000.0,
            "last_ms": self.last_s * 1000.0,
            "p95_ms": self._percentile_ms(95.0),
            "p99_ms": self._percentile_ms(99.0),
        }


class MetricsCollector:
    """Thread-safe in-process metrics collector.

    Written to from request handlers and from the watcher thread.
    """

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._http_stats: Dict[Tuple[str, str], Stat] = {}
        self._http_status_counts: Dict[Tuple[str, str], Dict[str, int]] = {}
        self._http_total: int = 0

        self._poll_stats: Stat = Stat()
        self._poll_total: int = 0

        self._events: Dict[str, int] = {}
        self._timers: Dict[str, Stat] = {}

        self._start_monotonic: float = time.monotonic()
        self._start_time_s: float = time.time()

    def increment_event(self, key: str, count: int = 1) -> None:
        """Increment a named counter such as 'index.success' or 'mail.sent'."""
        if not key:
            return
        with self._lock:
            self._events[key] = int(self._events.get(key, 0)) + int(count)

    def record_http(self, method: str, route: str, status_code: int, duration_s: float) -> None:
        key = (method.upper(), route)
        sc = str(status_code)
        with self._lock:
            stat = self._http_stats.get(key)
            if stat is None:
                stat = self._http_stats[key] = Stat()
            stat.add(duration_s)
            counts = self._http_status_counts.setdefault(key, {})
            counts[sc] = counts.get(sc, 0) + 1
            self._http_total += 1

    def record_poll(self, duration_s: float) -> None:
        with self._lock:
            self._poll_stats.add(duration_s)
            self._poll_total += 1

    def record_timer(self, name: str, duration_s: float) -> None:
        if not name:
            return
        with self._lock:
            stat = self._timers.get(name)
            if stat is None:
                stat = self._timers[name] = Stat()
            stat.add(float(duration_s))

    def uptime_s(self) -> float:
        return max(0.0, time.monotonic() - self._start_monotonic)

    def snapshot(self) -> Dict[str, Any]:
        with self._lock:
            http_by_route: Dict[str, Dict[str, Any]] = {}
            for (method, route), stat in self._http_stats.items():
                http_by_route[f"{method}:{route}"] = {
                    **stat.as_dict_ms(),
                    "status_counts": dict(self._http_status_counts.get((method, route), {})),
                }
            return {
                "process": {
                    "started_at": self._start_time_s,
                    "uptime_s": self.uptime_s(),
                },
                "http": {
                    "total_count": self._http_total,
                    "by_route": http_by_route,
                },
                "watcher": {
                    "polls": self._poll_total,
                    **self._poll_stats.as_dict_ms(),
                },
                "events": dict(self._events),
                "timers": {name: stat.as_dict_ms() for name, stat in self._timers.items()},
            }


# Singleton instance exported for app-wide use
metrics = MetricsCollector()

__all__ = ["metrics", "MetricsCollector", "Stat"]
