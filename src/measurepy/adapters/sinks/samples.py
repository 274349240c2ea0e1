"""Sink that forwards measurements as MetricSample objects."""

from collections.abc import Mapping

from measurepy.core.metrics import measurement_samples
from measurepy.core.models import Measurement, Outcome
from measurepy.core.ports import MetricsStoragePort


class MetricSampleSink:
    """Bridges MetricsSinkPort to any MetricsStoragePort.

    Each measurement becomes a ``<name>_total`` counter sample and a
    ``<name>_duration_seconds`` histogram (buckets, sum, count).
    """

    def __init__(
        self,
        storage: MetricsStoragePort,
        buckets: list[float] | None = None,
    ) -> None:
        """Initialize the sink.

        Args:
            storage: Destination implementing MetricsStoragePort.
            buckets: Histogram bucket boundaries (default: Prometheus standard).
        """
        self._storage = storage
        self._buckets = buckets

    def record(
        self,
        metric_name: str,
        tags: Mapping[str, str],
        duration: float,
        outcome: str,
    ) -> None:
        """Write the samples for one measurement."""
        measurement = Measurement(
            metric_name=metric_name,
            tags=tuple(tags.items()),
            duration=duration,
            outcome=Outcome(outcome),
        )
        for sample in measurement_samples(measurement, self._buckets):
            self._storage.write(sample)
