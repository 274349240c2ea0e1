"""In-memory metrics sink."""

import threading
from collections.abc import Mapping

from measurepy.core.models import Measurement, Outcome


class InMemoryMetricsSink:
    """In-memory implementation of MetricsSinkPort.

    Keeps every recorded measurement in a list guarded by a lock. Suitable
    for testing and low-volume applications where export is not required.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._measurements: list[Measurement] = []

    def record(
        self,
        metric_name: str,
        tags: Mapping[str, str],
        duration: float,
        outcome: str,
    ) -> None:
        """Record one measurement."""
        measurement = Measurement(
            metric_name=metric_name,
            tags=tuple(tags.items()),
            duration=duration,
            outcome=Outcome(outcome),
        )
        with self._lock:
            self._measurements.append(measurement)

    def __len__(self) -> int:
        with self._lock:
            return len(self._measurements)

    @property
    def measurements(self) -> list[Measurement]:
        """Snapshot of recorded measurements, oldest first."""
        with self._lock:
            return list(self._measurements)

    def find(self, metric_name: str, **tags: str) -> list[Measurement]:
        """Return measurements with the given name whose tags include ``tags``."""
        return [
            m
            for m in self.measurements
            if m.metric_name == metric_name
            and all(m.tag_dict.get(k) == v for k, v in tags.items())
        ]

    def clear(self) -> None:
        """Forget all recorded measurements."""
        with self._lock:
            self._measurements.clear()
