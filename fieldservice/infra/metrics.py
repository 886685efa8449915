# fieldservice/infra/metrics.py
"""
In-process counters and histograms, served by ``GET /metrics``.

Keys are ``name`` or ``name{label=value,...}`` with labels sorted, so
``get_counter("notifications_total", status="SENT", channel="EMAIL")``
reads exactly what ``inc_counter`` wrote.
"""
from __future__ import annotations
import time
from collections import defaultdict
from threading import Lock
from fieldservice.infra.logging_config import get_logger

logger = get_logger(__name__)


def metric_key(name: str, labels: dict | None = None) -> str:
    if not labels:
        return name
    label_str = ",".join(f"{k}={v}" for k, v in sorted(labels.items()))
    return f"{name}{{{label_str}}}"


def summarize(values: list[float]) -> dict:
    """count / avg / p95 of the observed values"""
    if not values:
        return {"count": 0, "avg": 0, "p95": 0}
    ordered = sorted(values)
    count = len(ordered)
    return {
        "count": count,
        "avg": sum(ordered) / count,
        "p95": ordered[min(int(count * 0.95), count - 1)],
    }


class MetricsCollector:
    """Thread-safe: written from the event loop and from channel worker threads."""

    def __init__(self):
        self._counters: dict[str, int] = defaultdict(int)
        self._samples: dict[str, list[float]] = defaultdict(list)
        self._lock = Lock()

    def inc_counter(self, name: str, amount: int = 1, labels: dict | None = None) -> None:
        key = metric_key(name, labels)
        with self._lock:
            self._counters[key] += amount

    def observe_histogram(self, name: str, value: float, labels: dict | None = None) -> None:
        key = metric_key(name, labels)
        with self._lock:
            self._samples[key].append(value)

    def get_counter(self, name: str, **labels) -> int:
        with self._lock:
            return self._counters.get(metric_key(name, labels), 0)

    def get_metrics(self) -> dict:
        with self._lock:
            counters = dict(self._counters)
            samples = {k: list(v) for k, v in self._samples.items()}
        return {
            "counters": counters,
            "histograms": {k: summarize(v) for k, v in samples.items()},
        }

    def reset(self) -> None:
        with self._lock:
            self._counters.clear()
            self._samples.clear()
        logger.debug("Metrics reset")


_metrics = MetricsCollector()


def get_metrics_collector() -> MetricsCollector:
    return _metrics


def inc_counter(name: str, amount: int = 1, **labels) -> None:
    _metrics.inc_counter(name, amount, labels)


def observe_histogram(name: str, value: float, **labels) -> None:
    _metrics.observe_histogram(name, value, labels)


class Timer:
    """``with Timer("x_seconds", channel="email"):`` records the block's duration."""

    def __init__(self, metric_name: str, **labels):
        self.metric_name = metric_name
        self.labels = labels
        self._started = 0.0

    def __enter__(self):
        self._started = time.monotonic()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        observe_histogram(self.metric_name, time.monotonic() - self._started, **self.labels)


class DispatchMetrics:
    """Dispatch-level metrics tracking"""

    @staticmethod
    def task_created(priority: str) -> None:
        inc_counter("tasks_created_total", priority=priority)

    @staticmethod
    def task_transition(status: str) -> None:
        inc_counter("task_transitions_total", status=status)

    @staticmethod
    def assignment_rejected(reason: str) -> None:
        inc_counter("assignments_rejected_total", reason=reason)

    @staticmethod
    def location_accepted() -> None:
        inc_counter("locations_accepted_total")

    @staticmethod
    def location_throttled() -> None:
        inc_counter("locations_throttled_total")

    @staticmethod
    def notification_result(status: str, channel: str) -> None:
        inc_counter("notifications_total", status=status, channel=channel)

    @staticmethod
    def notification_retry_skipped() -> None:
        inc_counter("notification_retries_skipped_total")

    @staticmethod
    def track_delivery_time(channel: str) -> Timer:
        return Timer("notification_delivery_seconds", channel=channel)
