"""Per-call timer lifecycle and measurement publishing."""

import threading
import time
from collections.abc import Callable, Mapping

from measurepy.core.exceptions import InvalidStateError, SinkUnavailableError
from measurepy.core.models import Measurement, Outcome
from measurepy.core.ports import MetricsSinkPort


class TimerHandle:
    """A started timer. Can be stopped exactly once."""

    __slots__ = ("started_at", "_guard")

    def __init__(self, started_at: float) -> None:
        self.started_at = started_at
        self._guard = threading.Lock()

    @property
    def stopped(self) -> bool:
        return self._guard.locked()

    def _claim(self) -> bool:
        # The guard is acquired once and never released.
        return self._guard.acquire(blocking=False)


class MeasurementRecorder:
    """Starts timers and publishes one measurement per stopped timer.

    The recorder does no buffering or retrying. Whatever blocking the sink
    does happens on the calling thread.
    """

    def __init__(
        self,
        sink: MetricsSinkPort,
        clock: Callable[[], float] = time.perf_counter,
    ) -> None:
        """Initialize the recorder.

        Args:
            sink: Destination for measurements.
            clock: Monotonic clock returning seconds.
        """
        self.sink = sink
        self._clock = clock

    def start(self) -> TimerHandle:
        """Start a timer for one call."""
        return TimerHandle(self._clock())

    def stop(
        self,
        handle: TimerHandle,
        metric_name: str,
        tags: Mapping[str, str],
        outcome: Outcome,
    ) -> Measurement:
        """Stop a timer and publish its measurement.

        Args:
            handle: Handle returned by start().
            metric_name: Metric to record under.
            tags: Resolved tags.
            outcome: Outcome label of the call.

        Returns:
            The published Measurement.

        Raises:
            InvalidStateError: If the handle was already stopped.
            SinkUnavailableError: If the sink raised while recording.
        """
        if not handle._claim():
            raise InvalidStateError(f"Timer for {metric_name!r} was already stopped")
        duration = max(0.0, self._clock() - handle.started_at)
        measurement = Measurement(
            metric_name=metric_name,
            tags=tuple(tags.items()),
            duration=duration,
            outcome=Outcome(outcome),
        )
        try:
            self.sink.record(
                measurement.metric_name,
                measurement.tag_dict,
                measurement.duration,
                measurement.outcome.value,
            )
        except Exception as exc:
            raise SinkUnavailableError(
                f"Sink failed to record {metric_name!r}: {exc}"
            ) from exc
        return measurement
