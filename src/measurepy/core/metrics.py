"""Helpers for turning measurements into MetricSample objects."""

import re
import time

from measurepy.core.models import Measurement, MetricSample

DEFAULT_HISTOGRAM_BUCKETS = [0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1, 2.5, 5, 10]

_INVALID_NAME_CHARS = re.compile(r"[^a-zA-Z0-9_:]")


def sanitize_metric_name(name: str) -> str:
    """Make a dotted metric name safe for Prometheus-style exporters.

    ``"PaymentService.charge.long-task"`` becomes
    ``"PaymentService_charge_long_task"``.
    """
    sanitized = _INVALID_NAME_CHARS.sub("_", name)
    if sanitized and sanitized[0].isdigit():
        sanitized = f"_{sanitized}"
    return sanitized


def counter(
    name: str,
    value: float = 1.0,
    labels: dict[str, str] | None = None,
) -> MetricSample:
    """One counter increment stamped with the current wall-clock time."""
    return MetricSample(
        name=name,
        timestamp=time.time(),
        value=value,
        labels=labels or {},
    )


def histogram(
    name: str,
    value: float,
    labels: dict[str, str] | None = None,
    buckets: list[float] | None = None,
) -> list[MetricSample]:
    """Samples for a single observed duration.

    Emits one ``_bucket`` sample per boundary (1.0 when the duration fits,
    0.0 otherwise), the ``+Inf`` bucket, then ``_sum`` and ``_count``. All
    samples share one timestamp.
    """
    timestamp = time.time()
    base_labels = labels or {}
    boundaries = buckets if buckets is not None else DEFAULT_HISTOGRAM_BUCKETS

    def sample(suffix: str, sample_value: float, **extra: str) -> MetricSample:
        return MetricSample(
            name=f"{name}_{suffix}",
            timestamp=timestamp,
            value=sample_value,
            labels={**base_labels, **extra},
        )

    samples = [
        sample("bucket", 1.0 if value <= bound else 0.0, le=str(bound))
        for bound in boundaries
    ]
    samples.append(sample("bucket", 1.0, le="+Inf"))
    samples.append(sample("sum", value))
    samples.append(sample("count", 1.0))
    return samples


def measurement_samples(
    measurement: Measurement,
    buckets: list[float] | None = None,
) -> list[MetricSample]:
    """Convert a measurement into a call counter plus a duration histogram.

    The counter carries the outcome label; the histogram carries only the
    measurement's own tags.

    Args:
        measurement: The recorded measurement.
        buckets: Histogram bucket boundaries.

    Returns:
        ``<name>_total`` counter sample followed by
        ``<name>_duration_seconds`` histogram samples.
    """
    base = sanitize_metric_name(measurement.metric_name)
    labels = measurement.tag_dict
    samples = [
        counter(
            f"{base}_total",
            labels={**labels, "outcome": measurement.outcome.value},
        )
    ]
    samples.extend(
        histogram(
            f"{base}_duration_seconds",
            measurement.duration,
            labels=labels,
            buckets=buckets,
        )
    )
    return samples
