"""Telemetry sinks for model invocations."""

from .MetricsRecorder import (
    BufferedMetricsRecorder,
    InMemoryMetricsRecorder,
    LoggingMetricsRecorder,
    MetricsSink,
    build_recorder,
)

__all__ = [
    "LoggingMetricsRecorder",
    "InMemoryMetricsRecorder",
    "BufferedMetricsRecorder",
    "MetricsSink",
    "build_recorder",
]
