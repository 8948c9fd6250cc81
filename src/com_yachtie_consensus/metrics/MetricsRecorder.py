"""
Metrics recorders for per-invocation telemetry.

``record`` is called on the decision path and must never wait on I/O, so
every recorder here either does constant work or hands the metric to a
bounded buffer drained by a separate task.
"""

import logging
from typing import Awaitable, Callable, Dict, List, Optional

import anyio
from anyio.streams.memory import MemoryObjectReceiveStream, MemoryObjectSendStream

from ..consensus.internal.ConsensusProtocols import InvocationMetric, MetricsRecorder

logger = logging.getLogger(__name__)

MetricsSink = Callable[[InvocationMetric], Awaitable[None]]


class LoggingMetricsRecorder(MetricsRecorder):
    """Writes one log line per invocation."""

    def __init__(self, level: int = logging.INFO) -> None:
        self._level = level

    def record(self, metric: InvocationMetric) -> None:
        status = "ok" if metric.success else f"failed ({metric.error_kind})"
        logger.log(
            self._level,
            f"📈 {metric.model_id} {status}: {metric.latency_ms:.0f}ms, ${metric.cost:.6f} "
            f"[{metric.module}/{metric.action_type} session={metric.session_id}]",
        )


class InMemoryMetricsRecorder(MetricsRecorder):
    """Keeps every metric in a list, with simple per-model aggregates."""

    def __init__(self) -> None:
        self.metrics: List[InvocationMetric] = []

    def record(self, metric: InvocationMetric) -> None:
        self.metrics.append(metric)

    def for_model(self, model_id: str) -> List[InvocationMetric]:
        return [metric for metric in self.metrics if metric.model_id == model_id]

    def success_rates(self) -> Dict[str, float]:
        """Success rate per model in percent, the unit AIModel.success_rate uses."""
        totals: Dict[str, List[int]] = {}
        for metric in self.metrics:
            counts = totals.setdefault(metric.model_id, [0, 0])
            counts[0] += int(metric.success)
            counts[1] += 1
        return {model_id: 100.0 * ok / total for model_id, (ok, total) in totals.items()}

    def total_cost(self) -> float:
        return sum(metric.cost for metric in self.metrics)

    def clear(self) -> None:
        self.metrics.clear()


class BufferedMetricsRecorder(MetricsRecorder):
    """
    Buffers metrics in a bounded anyio memory stream.

    ``record`` enqueues without waiting and drops the metric with a warning
    when the buffer is full. ``run`` drains the buffer into an async sink
    and is meant to live in the application's task group.
    """

    def __init__(self, sink: MetricsSink, max_buffer_size: int = 1000) -> None:
        self._sink = sink
        self._send: MemoryObjectSendStream[InvocationMetric]
        self._receive: MemoryObjectReceiveStream[InvocationMetric]
        self._send, self._receive = anyio.create_memory_object_stream(max_buffer_size)
        self.dropped = 0

    def record(self, metric: InvocationMetric) -> None:
        try:
            self._send.send_nowait(metric)
        except anyio.WouldBlock:
            self.dropped += 1
            logger.warning(f"Metrics buffer full, dropped metric for {metric.model_id} ({self.dropped} dropped)")
        except (anyio.ClosedResourceError, anyio.BrokenResourceError):
            self.dropped += 1
            logger.warning(f"Metrics recorder closed, dropped metric for {metric.model_id}")

    async def run(self) -> None:
        """Drain buffered metrics until ``close`` is called."""
        async with self._receive:
            async for metric in self._receive:
                try:
                    await self._sink(metric)
                except Exception as e:
                    logger.error(f"Metrics sink failed for {metric.model_id}: {e}")

    def close(self) -> None:
        """Stop accepting metrics; ``run`` returns once the buffer is empty."""
        self._send.close()

    @property
    def pending(self) -> int:
        return self._send.statistics().current_buffer_used


def build_recorder(kind: Optional[str]) -> Optional[MetricsRecorder]:
    """Recorder by name: ``log``, ``memory`` or None for no telemetry."""
    if kind is None or kind == "none":
        return None
    if kind == "log":
        return LoggingMetricsRecorder()
    if kind == "memory":
        return InMemoryMetricsRecorder()
    raise ValueError(f"Unknown metrics recorder: {kind}")
