# pagebot/infra/metrics.py
"""
In-process counters and timing histograms, exposed on /admin/metrics.

Series are keyed as ``name{label=value,...}`` with labels sorted by name.
Everything lives in process memory and starts from zero on restart.
"""
from __future__ import annotations
import time
from collections import defaultdict, deque
from dataclasses import dataclass, field
from threading import Lock

from pagebot.infra.logging_config import get_logger

logger = get_logger(__name__)

# Observations kept per histogram series
HISTOGRAM_WINDOW = 1000


@dataclass
class Counter:
    value: int = 0

    def inc(self, amount: int = 1) -> None:
        self.value += amount


@dataclass
class Histogram:
    """Sliding window of the most recent observations."""
    window: deque = field(default_factory=lambda: deque(maxlen=HISTOGRAM_WINDOW))
    total: int = 0

    def observe(self, value: float) -> None:
        self.window.append(value)
        self.total += 1

    def summary(self) -> dict:
        if not self.window:
            return {"count": self.total, "min": 0, "max": 0, "avg": 0, "p50": 0, "p95": 0}

        ordered = sorted(self.window)
        n = len(ordered)
        return {
            "count": self.total,
            "min": ordered[0],
            "max": ordered[-1],
            "avg": sum(ordered) / n,
            "p50": ordered[min(int(n * 0.50), n - 1)],
            "p95": ordered[min(int(n * 0.95), n - 1)],
        }


def series_key(name: str, labels: dict | None = None) -> str:
    if not labels:
        return name
    rendered = ",".join(f"{k}={v}" for k, v in sorted(labels.items()))
    return f"{name}{{{rendered}}}"


class MetricsCollector:
    def __init__(self):
        self._counters: dict[str, Counter] = defaultdict(Counter)
        self._histograms: dict[str, Histogram] = defaultdict(Histogram)
        self._lock = Lock()

    def inc_counter(self, name: str, amount: int = 1, labels: dict | None = None) -> None:
        with self._lock:
            self._counters[series_key(name, labels)].inc(amount)

    def observe_histogram(self, name: str, value: float, labels: dict | None = None) -> None:
        with self._lock:
            self._histograms[series_key(name, labels)].observe(value)

    def get_counter(self, name: str, **labels) -> int:
        """Current value of one counter series (0 when never incremented)."""
        with self._lock:
            counter = self._counters.get(series_key(name, labels))
            return counter.value if counter else 0

    def get_metrics(self) -> dict:
        with self._lock:
            return {
                "counters": {k: c.value for k, c in self._counters.items()},
                "histograms": {k: h.summary() for k, h in self._histograms.items()},
            }

    def reset(self) -> None:
        with self._lock:
            self._counters.clear()
            self._histograms.clear()
        logger.debug("Metrics reset")


_metrics = MetricsCollector()


def get_metrics_collector() -> MetricsCollector:
    return _metrics


def inc_counter(name: str, amount: int = 1, **labels) -> None:
    _metrics.inc_counter(name, amount, labels or None)


def observe_histogram(name: str, value: float, **labels) -> None:
    _metrics.observe_histogram(name, value, labels or None)


class Timer:
    """Records the duration of a ``with`` block, in seconds."""

    def __init__(self, metric_name: str, **labels):
        self.metric_name = metric_name
        self.labels = labels
        self.elapsed: float | None = None
        self._started: float | None = None

    def __enter__(self):
        self._started = time.perf_counter()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        if self._started is not None:
            self.elapsed = time.perf_counter() - self._started
            observe_histogram(self.metric_name, self.elapsed, **self.labels)


# ---------------------------------------------------------------------------
# Application series
# ---------------------------------------------------------------------------

class AppMetrics:
    @staticmethod
    def event_received(kind: str) -> None:
        inc_counter("webhook_events_total", kind=kind)

    @staticmethod
    def event_failed(kind: str) -> None:
        inc_counter("webhook_event_failures_total", kind=kind)

    @staticmethod
    def reply_sent(source: str) -> None:
        inc_counter("replies_sent_total", source=source)

    @staticmethod
    def referral(matched: bool) -> None:
        inc_counter("referrals_total", matched=str(matched).lower())

    @staticmethod
    def send_failed(reason: str) -> None:
        inc_counter("outbound_send_failed_total", reason=reason)

    @staticmethod
    def completion_failed() -> None:
        inc_counter("completion_failed_total")

    @staticmethod
    def store_error(operation: str) -> None:
        inc_counter("store_errors_total", operation=operation)

    @staticmethod
    def track_processing_time(kind: str) -> Timer:
        return Timer("event_processing_seconds", kind=kind)
