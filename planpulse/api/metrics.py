"""In-process request metrics exposed at /health/metrics."""

from collections import defaultdict
import threading
from typing import Dict, Any

HISTOGRAM_WINDOW = 1000


class SimpleMetrics:
    """Thread-safe counters and bounded histograms."""

    def __init__(self):
        self._counters = defaultdict(int)
        self._histograms = defaultdict(list)
        self._lock = threading.Lock()

    def increment(self, name: str, value: int = 1):
        with self._lock:
            self._counters[name] += value

    def observe(self, name: str, value: float):
        """Record a sample; only the last HISTOGRAM_WINDOW samples are kept."""
        with self._lock:
            samples = self._histograms[name]
            samples.append(value)
            if len(samples) > HISTOGRAM_WINDOW:
                del samples[:-HISTOGRAM_WINDOW]

    def record_request(self, method: str, route: str, status_code: int, duration: float):
        self.increment(f"api_requests_total.{route}.{method}.{status_code}")
        if status_code >= 500:
            self.increment("api_errors_total")
        self.observe(f"api_request_duration_seconds.{route}", duration)

    def counter(self, name: str) -> int:
        with self._lock:
            return self._counters.get(name, 0)

    def reset(self):
        with self._lock:
            self._counters.clear()
            self._histograms.clear()

    def get_snapshot(self) -> Dict[str, Any]:
        with self._lock:
            return {
                "counters": dict(self._counters),
                "histograms": {
                    name: {
                        "count": len(samples),
                        "sum": sum(samples),
                        "avg": sum(samples) / len(samples) if samples else 0,
                        "min": min(samples) if samples else 0,
                        "max": max(samples) if samples else 0,
                    }
                    for name, samples in self._histograms.items()
                },
            }


metrics = SimpleMetrics()
