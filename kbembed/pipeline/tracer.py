"""Non-blocking pipeline tracing.

The orchestrator emits :class:`TraceEvent` objects at the start and end of a
request and around every batch.  Emission is a ``put_nowait`` into a bounded
:class:`asyncio.Queue`: it never awaits and never raises.  When the queue is
full the event is dropped and counted.  A drain step (either the background
task started by :meth:`PipelineTracer.start` or an explicit
:meth:`PipelineTracer.drain`) hands queued events to a sink, which by
default writes one structlog line per event.

    EmbeddingService --emit()--> [bounded queue] --drain()--> sink (structlog)

Sink errors are caught and logged; a broken sink can't block or crash the
pipeline.
"""

from __future__ import annotations

import asyncio
import contextlib
from collections.abc import Callable
from typing import Any

import structlog

from kbembed.models.pipeline import TraceEvent, TraceStatus

logger = structlog.get_logger(logger_name=__name__)

TraceSink = Callable[[TraceEvent], None]


def log_sink(event: TraceEvent) -> None:
    """Default sink: one structured log line per trace event."""
    logger.info("trace_event", **event.model_dump(mode="json"))


class PipelineTracer:
    """Bounded, fire-and-forget trace emitter.

    Parameters
    ----------
    enabled:
        When ``False`` every :meth:`emit` is a no-op.
    max_queue_size:
        Capacity of the event queue; overflow drops events.
    sink:
        Called once per drained event.
    service_name:
        Recorded on every event.
    """

    def __init__(
        self,
        enabled: bool = True,
        max_queue_size: int = 1000,
        sink: TraceSink = log_sink,
        service_name: str = "embedding",
    ) -> None:
        self._enabled = enabled
        self._queue: asyncio.Queue[TraceEvent] = asyncio.Queue(maxsize=max_queue_size)
        self._sink = sink
        self._service_name = service_name
        self._dropped = 0
        self._task: asyncio.Task[None] | None = None

    # ------------------------------------------------------------------
    # Emission
    # ------------------------------------------------------------------

    def emit(
        self,
        correlation_id: str,
        event_name: str,
        status: TraceStatus,
        *,
        job_id: str | None = None,
        duration_ms: float | None = None,
        metadata: dict[str, Any] | None = None,
        error_message: str | None = None,
    ) -> None:
        """Queue one event without blocking.  Never raises."""
        if not self._enabled:
            return
        try:
            event = TraceEvent(
                correlation_id=correlation_id,
                service_name=self._service_name,
                event_name=event_name,
                status=status,
                job_id=job_id,
                duration_ms=duration_ms,
                metadata=metadata or {},
                error_message=error_message,
            )
            self._queue.put_nowait(event)
        except asyncio.QueueFull:
            self._dropped += 1
            logger.debug("trace_event_dropped", event_name=event_name, dropped=self._dropped)
        except Exception as exc:  # noqa: BLE001
            logger.warning("trace_emit_failed", event_name=event_name, error=str(exc))

    # ------------------------------------------------------------------
    # Draining
    # ------------------------------------------------------------------

    def drain(self) -> int:
        """Hand every queued event to the sink.  Returns the number drained."""
        drained = 0
        while True:
            try:
                event = self._queue.get_nowait()
            except asyncio.QueueEmpty:
                return drained
            self._deliver(event)
            drained += 1

    def start(self) -> None:
        """Start a background task that drains events as they arrive."""
        if self._task is None or self._task.done():
            self._task = asyncio.create_task(self._run(), name="pipeline-tracer")

    async def stop(self) -> None:
        """Stop the background task and flush whatever is still queued."""
        if self._task is not None:
            self._task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._task
            self._task = None
        self.drain()

    async def _run(self) -> None:
        while True:
            event = await self._queue.get()
            self._deliver(event)

    def _deliver(self, event: TraceEvent) -> None:
        try:
            self._sink(event)
        except Exception as exc:  # noqa: BLE001
            logger.warning("trace_sink_failed", event_name=event.event_name, error=str(exc))

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    @property
    def enabled(self) -> bool:
        return self._enabled

    @property
    def pending(self) -> int:
        return self._queue.qsize()

    @property
    def dropped(self) -> int:
        return self._dropped
