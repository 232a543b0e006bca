"""Thread-safe routing counters with a rolling latency window."""

import threading
from collections import deque
from typing import Deque

from src.models.data_models import MetricsSnapshot, Strategy


class RoutingMetrics:
    """Counts requests, paths taken and failures; averages recent latencies."""

    def __init__(self, window: int = 100):
        self._lock = threading.Lock()
        self._latencies: Deque[float] = deque(maxlen=window)
        self.requests = 0
        self.successes = 0
        self.direct_calls = 0
        self.script_calls = 0
        self.fallbacks = 0
        self.failures = 0
        self.retries = 0

    def record_request(self) -> None:
        with self._lock:
            self.requests += 1

    def record_attempt(self, path: Strategy) -> None:
        """Count one attempt on the direct or script path."""
        with self._lock:
            if path is Strategy.SCRIPT:
                self.script_calls += 1
            else:
                self.direct_calls += 1

    def record_fallback(self) -> None:
        with self._lock:
            self.fallbacks += 1

    def record_retry(self) -> None:
        with self._lock:
            self.retries += 1

    def record_outcome(self, ok: bool, elapsed_ms: float) -> None:
        with self._lock:
            if ok:
                self.successes += 1
            else:
                self.failures += 1
            self._latencies.append(elapsed_ms)

    def snapshot(self) -> MetricsSnapshot:
        with self._lock:
            average = sum(self._latencies) / len(self._latencies) if self._latencies else 0.0
            return MetricsSnapshot(
                requests=self.requests,
                successes=self.successes,
                direct_calls=self.direct_calls,
                script_calls=self.script_calls,
                fallbacks=self.fallbacks,
                failures=self.failures,
                retries=self.retries,
                average_latency_ms=average,
            )

    def reset(self) -> None:
        with self._lock:
            self._latencies.clear()
            self.requests = self.successes = self.failures = 0
            self.direct_calls = self.script_calls = 0
            self.fallbacks = self.retries = 0
