"""Port interfaces for metrics sinks.

These protocols define the contracts that sink adapters must implement.
The core depends only on these interfaces, not concrete implementations.
"""

from collections.abc import Mapping
from typing import Protocol, runtime_checkable

from measurepy.core.models import MetricSample


@runtime_checkable
class MetricsSinkPort(Protocol):
    """Port the recorder publishes measurements to.

    Examples: InMemoryMetricsSink, RingBufferMetricsSink, LoggingMetricsSink.
    """

    def record(
        self,
        metric_name: str,
        tags: Mapping[str, str],
        duration: float,
        outcome: str,
    ) -> None:
        """Record one measurement.

        Args:
            metric_name: Name of the metric.
            tags: Resolved tag values.
            duration: Elapsed time in seconds.
            outcome: Outcome label ("success" or "error").
        """
        ...


@runtime_checkable
class MetricsStoragePort(Protocol):
    """Port for anything that accepts exported metric samples.

    Consumed by MetricSampleSink, which turns measurements into samples.
    """

    def write(self, sample: MetricSample) -> None:
        """Write a metric sample."""
        ...
