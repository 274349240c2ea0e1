"""Error taxonomy for the instrumentation layer.

None of these ever reach the caller of a measured function. The interceptor
contains them and reports them through logging.
"""


class MeasureError(Exception):
    """Base class for instrumentation errors."""


class ExpressionCompileError(MeasureError):
    """A tag expression is malformed or uses a disallowed construct."""

    def __init__(self, source: str, reason: str) -> None:
        super().__init__(f"Cannot compile expression {source!r}: {reason}")
        self.source = source
        self.reason = reason


class ExpressionEvaluationError(MeasureError):
    """A tag expression failed against the current call context."""

    def __init__(self, source: str, reason: str) -> None:
        super().__init__(f"Cannot evaluate expression {source!r}: {reason}")
        self.source = source
        self.reason = reason


class InvalidStateError(MeasureError):
    """The recorder was misused, e.g. a timer handle stopped twice."""


class SinkUnavailableError(MeasureError):
    """Publishing a measurement to the metrics sink failed."""
