"""Sink adapters implementing MetricsSinkPort."""

from measurepy.adapters.sinks.in_memory import InMemoryMetricsSink
from measurepy.adapters.sinks.logging import LoggingMetricsSink
from measurepy.adapters.sinks.ring_buffer import RingBufferMetricsSink
from measurepy.adapters.sinks.samples import MetricSampleSink

__all__ = [
    "InMemoryMetricsSink",
    "LoggingMetricsSink",
    "MetricSampleSink",
    "RingBufferMetricsSink",
]
