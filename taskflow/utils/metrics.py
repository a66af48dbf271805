"""
Metrics for the recurring task engine.

In-process counters and run timings, shared between the scheduler thread and
request handlers and exposed read-only at /metrics.
"""

import functools
import threading
import time
from collections import defaultdict
from datetime import datetime
from typing import Any, Callable, Dict


class MetricsCollector:
    """Thread-safe counters plus per-operation timing summaries."""

    COUNTERS = (
        "recurring_runs_total",
        "recurring_parents_processed_total",
        "recurring_instances_created_total",
        "recurring_parents_failed_total",
        "recurring_parents_conflicted_total",
    )

    def __init__(self):
        self.lock = threading.Lock()
        self._reset_unlocked()

    def _reset_unlocked(self):
        self.counters = defaultdict(int, {name: 0 for name in self.COUNTERS})
        self.timings = defaultdict(lambda: {"count": 0, "total_seconds": 0.0, "last_seconds": 0.0})

    def increment_counter(self, name: str, value: int = 1):
        with self.lock:
            self.counters[name] += value

    def record_timer(self, name: str, seconds: float):
        """Add one observation to the timing summary of an operation."""
        with self.lock:
            timing = self.timings[name]
            timing["count"] += 1
            timing["total_seconds"] += seconds
            timing["last_seconds"] = seconds

    def get_metrics(self) -> Dict[str, Any]:
        """Snapshot of all counters and timings."""
        with self.lock:
            return {
                "counters": dict(self.counters),
                "timers": {name: dict(timing) for name, timing in self.timings.items()},
                "timestamp": datetime.utcnow().isoformat(),
            }

    def reset(self):
        with self.lock:
            self._reset_unlocked()

    # Recurring engine events

    def run_started(self):
        self.increment_counter("recurring_runs_total")

    def parent_processed(self):
        self.increment_counter("recurring_parents_processed_total")

    def instances_created(self, count: int):
        self.increment_counter("recurring_instances_created_total", count)

    def parent_failed(self):
        self.increment_counter("recurring_parents_failed_total")

    def parent_conflicted(self):
        self.increment_counter("recurring_parents_conflicted_total")

    def time_operation(self, name: str) -> Callable:
        """Decorator recording the wrapped call's duration, also when it raises."""
        def decorator(func):
            @functools.wraps(func)
            def timed(*args, **kwargs):
                started = time.perf_counter()
                try:
                    return func(*args, **kwargs)
                finally:
                    self.record_timer(name, time.perf_counter() - started)
            return timed
        return decorator


metrics_collector = MetricsCollector()
