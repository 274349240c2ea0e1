"""Ring buffer metrics sink.

Provides bounded in-memory storage that automatically evicts the oldest
measurements when the buffer is full. Useful for production services that
need predictable memory usage.
"""

from collections import deque
from collections.abc import Mapping

from measurepy.core.models import Measurement, Outcome


class RingBufferMetricsSink:
    """Ring buffer implementation of MetricsSinkPort.

    Stores measurements in a fixed-size circular buffer. When the buffer
    is full, the oldest measurement is evicted to make room for new ones.
    ``deque.append`` is atomic, so concurrent record() calls need no lock.

    Args:
        max_size: Maximum number of measurements to keep.
    """

    def __init__(self, max_size: int) -> None:
        self._buffer: deque[Measurement] = deque(maxlen=max_size)

    def record(
        self,
        metric_name: str,
        tags: Mapping[str, str],
        duration: float,
        outcome: str,
    ) -> None:
        """Record one measurement, evicting the oldest if full."""
        self._buffer.append(
            Measurement(
                metric_name=metric_name,
                tags=tuple(tags.items()),
                duration=duration,
                outcome=Outcome(outcome),
            )
        )

    def __len__(self) -> int:
        return len(self._buffer)

    @property
    def measurements(self) -> list[Measurement]:
        """Snapshot of retained measurements, oldest first."""
        return list(self._buffer)
