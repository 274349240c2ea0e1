"""measurepy - declarative timing and tagging of function calls."""

from measurepy.adapters.decorators import measured
from measurepy.adapters.sinks import (
    InMemoryMetricsSink,
    LoggingMetricsSink,
    MetricSampleSink,
    RingBufferMetricsSink,
)
from measurepy.core.exceptions import (
    ExpressionCompileError,
    ExpressionEvaluationError,
    InvalidStateError,
    MeasureError,
    SinkUnavailableError,
)
from measurepy.core.expressions import EvaluationContext, ExpressionResolver
from measurepy.core.interceptor import (
    MeasureInterceptor,
    configure,
    get_interceptor,
    reset,
)
from measurepy.core.metrics import counter, histogram, measurement_samples
from measurepy.core.models import (
    CallMetadata,
    Failure,
    InterceptedCall,
    Measurement,
    MeasureSpec,
    MetricSample,
    Outcome,
    Success,
    TagFallback,
    TagSpec,
)
from measurepy.core.outcome import classify
from measurepy.core.ports import MetricsSinkPort, MetricsStoragePort
from measurepy.core.recorder import MeasurementRecorder, TimerHandle

__all__ = [
    # Decorator
    "measured",
    # Interceptor and process default
    "MeasureInterceptor",
    "configure",
    "get_interceptor",
    "reset",
    # Pipeline components
    "EvaluationContext",
    "ExpressionResolver",
    "MeasurementRecorder",
    "TimerHandle",
    "classify",
    # Models
    "CallMetadata",
    "Failure",
    "InterceptedCall",
    "Measurement",
    "MeasureSpec",
    "MetricSample",
    "Outcome",
    "Success",
    "TagFallback",
    "TagSpec",
    # Ports
    "MetricsSinkPort",
    "MetricsStoragePort",
    # Sinks
    "InMemoryMetricsSink",
    "LoggingMetricsSink",
    "MetricSampleSink",
    "RingBufferMetricsSink",
    # Metric helpers
    "counter",
    "histogram",
    "measurement_samples",
    # Errors
    "ExpressionCompileError",
    "ExpressionEvaluationError",
    "InvalidStateError",
    "MeasureError",
    "SinkUnavailableError",
]
