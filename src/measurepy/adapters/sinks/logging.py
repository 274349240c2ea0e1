"""Python logging sink adapter for measurepy.

Writes every measurement as a log record, with the measurement fields
attached as ``extra`` attributes so structured handlers can pick them up.
"""

import logging
from collections.abc import Mapping


class LoggingMetricsSink:
    """MetricsSinkPort that emits measurements through a logger.

    Example:
        ```python
        from measurepy import LoggingMetricsSink, configure

        configure(LoggingMetricsSink())
        ```
    """

    def __init__(
        self,
        logger: logging.Logger | None = None,
        level: int = logging.INFO,
        error_level: int = logging.WARNING,
    ) -> None:
        """Initialize the sink.

        Args:
            logger: Destination logger. Defaults to ``measurepy.measurements``.
            level: Level for successful calls.
            error_level: Level for failed calls.
        """
        self._logger = logger or logging.getLogger("measurepy.measurements")
        self._level = level
        self._error_level = error_level

    def record(
        self,
        metric_name: str,
        tags: Mapping[str, str],
        duration: float,
        outcome: str,
    ) -> None:
        """Log one measurement."""
        level = self._error_level if outcome == "error" else self._level
        duration_ms = duration * 1000
        self._logger.log(
            level,
            "%s %s in %.3fms",
            metric_name,
            outcome,
            duration_ms,
            extra={
                "metric": metric_name,
                "outcome": outcome,
                "duration_ms": duration_ms,
                "tags": dict(tags),
            },
        )
