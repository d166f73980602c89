"""
In-process metrics for Bloom filter clients.

Tracks items added and queried, pipeline round-trips, store errors and
pipeline latency, and exports them in Prometheus text format.
"""
import time
from collections import deque
from dataclasses import dataclass
from typing import Dict, Optional

import structlog


@dataclass
class MetricSummary:
    """Summary statistics for a histogram."""
    count: int
    sum: float
    min: float
    max: float
    mean: float


class Counter:
    """A monotonically increasing count of events."""

    def __init__(self, name: str, description: str = ""):
        self.name = name
        self.description = description
        self.value = 0

    def increment(self, amount: float = 1.0):
        self.value += amount

    def reset(self):
        self.value = 0

    def get(self) -> float:
        return self.value


class Gauge:
    """A value that can go up and down, such as open clients."""

    def __init__(self, name: str, description: str = ""):
        self.name = name
        self.description = description
        self.value = 0.0

    def set(self, value: float):
        self.value = value

    def increment(self, amount: float = 1.0):
        self.value += amount

    def decrement(self, amount: float = 1.0):
        self.value -= amount

    def get(self) -> float:
        return self.value


class Histogram:
    """
    Sliding window of samples, used for pipeline latencies and batch sizes.

    Only the most recent ``max_size`` samples are kept.
    """

    def __init__(self, name: str, description: str = "", max_size: int = 1000):
        self.name = name
        self.description = description
        self.samples: deque = deque(maxlen=max_size)

    def observe(self, value: float):
        self.samples.append(value)

    def get_summary(self) -> Optional[MetricSummary]:
        """Summary of the current window, or None if it is empty."""
        if not self.samples:
            return None

        total = sum(self.samples)
        return MetricSummary(
            count=len(self.samples),
            sum=total,
            min=min(self.samples),
            max=max(self.samples),
            mean=total / len(self.samples),
        )

    def get_percentile(self, percentile: float) -> Optional[float]:
        """
        Get a percentile of the current window.

        Args:
            percentile: Percentile to calculate (0.0 to 1.0)
        """
        if not self.samples:
            return None

        ordered = sorted(self.samples)
        index = min(int(len(ordered) * percentile), len(ordered) - 1)
        return ordered[index]

    def clear(self):
        self.samples.clear()


class Timer:
    """Context manager recording the duration of a block into a histogram."""

    def __init__(self, histogram: Histogram):
        self.histogram = histogram
        self.start_time: Optional[float] = None

    def __enter__(self):
        self.start_time = time.perf_counter()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        if self.start_time is not None:
            self.histogram.observe(time.perf_counter() - self.start_time)
        return False


class MetricsCollector:
    """Registry of named counters, gauges and histograms."""

    def __init__(self):
        self.logger = structlog.get_logger()

        self.counters: Dict[str, Counter] = {}
        self.gauges: Dict[str, Gauge] = {}
        self.histograms: Dict[str, Histogram] = {}

        self._init_default_metrics()

    def _init_default_metrics(self):
        # Filter operations
        self.counter("filter.items.added", "Items added to filters")
        self.counter("filter.items.queried", "Items checked for membership")
        self.counter("filter.items.matched", "Items reported as possibly present")
        self.counter("filter.clears.total", "Filters cleared")

        # Store round-trips
        self.counter("store.pipelines.total", "Pipelines executed against the store")
        self.counter("store.errors.total", "Failed store operations")
        self.histogram("store.pipeline.latency.seconds", "Pipeline round-trip latency")
        self.histogram("store.pipeline.size", "Operations per pipeline")

        # Clients
        self.gauge("clients.open", "Open filter clients")

    def counter(self, name: str, description: str = "") -> Counter:
        """Get or create a counter."""
        if name not in self.counters:
            self.counters[name] = Counter(name, description)
        return self.counters[name]

    def gauge(self, name: str, description: str = "") -> Gauge:
        """Get or create a gauge."""
        if name not in self.gauges:
            self.gauges[name] = Gauge(name, description)
        return self.gauges[name]

    def histogram(self, name: str, description: str = "", max_size: int = 1000) -> Histogram:
        """Get or create a histogram."""
        if name not in self.histograms:
            self.histograms[name] = Histogram(name, description, max_size)
        return self.histograms[name]

    def timer(self, name: str, description: str = "") -> Timer:
        """Timer recording into the histogram ``name``."""
        return Timer(self.histogram(name, description))

    def increment_counter(self, name: str, amount: float = 1.0):
        """Increment a counter by name, ignoring unknown names."""
        if name in self.counters:
            self.counters[name].increment(amount)

    def observe_histogram(self, name: str, value: float):
        """Add a sample to a histogram by name, ignoring unknown names."""
        if name in self.histograms:
            self.histograms[name].observe(value)

    def reset_all(self):
        """Reset all metrics to their initial state."""
        for counter in self.counters.values():
            counter.reset()
        for gauge in self.gauges.values():
            gauge.set(0)
        for histogram in self.histograms.values():
            histogram.clear()
        self.logger.debug("metrics_reset")

    def export_prometheus(self) -> str:
        """
        Export metrics in Prometheus text format.

        Dots in metric names become underscores.
        """
        lines = []

        for name, counter in self.counters.items():
            prometheus_name = name.replace('.', '_')
            if counter.description:
                lines.append(f"# HELP {prometheus_name} {counter.description}")
            lines.append(f"# TYPE {prometheus_name} counter")
            lines.append(f"{prometheus_name} {counter.get()}")

        for name, gauge in self.gauges.items():
            prometheus_name = name.replace('.', '_')
            if gauge.description:
                lines.append(f"# HELP {prometheus_name} {gauge.description}")
            lines.append(f"# TYPE {prometheus_name} gauge")
            lines.append(f"{prometheus_name} {gauge.get()}")

        for name, histogram in self.histograms.items():
            summary = histogram.get_summary()
            if not summary:
                continue
            prometheus_name = name.replace('.', '_')
            if histogram.description:
                lines.append(f"# HELP {prometheus_name} {histogram.description}")
            lines.append(f"# TYPE {prometheus_name} summary")
            for quantile in (0.5, 0.99):
                value = histogram.get_percentile(quantile)
                lines.append(f'{prometheus_name}{{quantile="{quantile}"}} {value}')
            lines.append(f"{prometheus_name}_count {summary.count}")
            lines.append(f"{prometheus_name}_sum {summary.sum}")

        return '\n'.join(lines) + '\n'


# Global metrics collector instance
_global_metrics: Optional[MetricsCollector] = None


def get_metrics() -> MetricsCollector:
    """Get the process-wide metrics collector, creating it on first use."""
    global _global_metrics
    if _global_metrics is None:
        _global_metrics = MetricsCollector()
    return _global_metrics


def reset_metrics():
    """Discard the process-wide metrics collector."""
    global _global_metrics
    _global_metrics = None
