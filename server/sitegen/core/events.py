# sitegen/core/events.py
"""
Progress fan-out.

publish() never blocks and never raises:
- plain callables are called inline; their exceptions are logged and dropped
- coroutine functions are scheduled as tasks on the running loop
- queue subscribers get put_nowait(); a full queue drops the event
"""
import asyncio
import inspect
import json
import logging
from typing import Any, Awaitable, Callable, List, Optional, Set, Union

from sitegen.models import ProgressEvent

logger = logging.getLogger(__name__)

ProgressSink = Callable[[ProgressEvent], Union[None, Awaitable[None]]]


class EventType:
    """Step names carried by ProgressEvent.step"""
    STATE = "state"                  # pipeline state transition
    FEATURES = "features"            # feature analysis finished
    MANIFEST = "manifest"            # structure plan accepted
    LEVEL_STARTED = "level.started"
    ARTIFACT = "artifact"            # one file finished (valid/repaired/fallback)
    LEVEL_FINISHED = "level.finished"
    WARNING = "warning"
    ERROR = "error"


class ProgressBus:
    def __init__(self, sink: Optional[ProgressSink] = None, queue_size: int = 100):
        self._sinks: List[ProgressSink] = []
        self._queues: List[asyncio.Queue] = []
        self._pending: Set[asyncio.Task] = set()
        self.queue_size = queue_size
        self.dropped = 0
        if sink is not None:
            self.add_sink(sink)

    def add_sink(self, sink: ProgressSink) -> None:
        self._sinks.append(sink)

    def subscribe(self, maxsize: Optional[int] = None) -> asyncio.Queue:
        queue: asyncio.Queue = asyncio.Queue(maxsize=self.queue_size if maxsize is None else maxsize)
        self._queues.append(queue)
        return queue

    def unsubscribe(self, queue: asyncio.Queue) -> None:
        if queue in self._queues:
            self._queues.remove(queue)

    def publish(self, event: ProgressEvent) -> None:
        for queue in list(self._queues):
            self._safe_put(queue, event)
        for sink in list(self._sinks):
            self._deliver(sink, event)

    def _safe_put(self, queue: asyncio.Queue, event: ProgressEvent) -> None:
        try:
            queue.put_nowait(event)
        except asyncio.QueueFull:
            self.dropped += 1

    def _deliver(self, sink: ProgressSink, event: ProgressEvent) -> None:
        try:
            result = sink(event)
        except Exception:
            logger.exception("progress sink %r failed", sink)
            return
        if inspect.isawaitable(result):
            self._schedule(result)

    def _schedule(self, awaitable: Awaitable[Any]) -> None:
        try:
            task = asyncio.ensure_future(awaitable)
        except RuntimeError:
            # no running loop; nothing can drive the coroutine
            if inspect.iscoroutine(awaitable):
                awaitable.close()
            logger.warning("async progress sink called outside an event loop; event dropped")
            return
        self._pending.add(task)
        task.add_done_callback(self._task_done)

    def _task_done(self, task: asyncio.Task) -> None:
        self._pending.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error("async progress sink failed: %r", exc)

    async def drain(self) -> None:
        """Wait for scheduled async sink deliveries (for callers that need them flushed)."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)


# ----------------------------
# Streaming helpers (events -> newline-delimited JSON)
# ----------------------------
def ndjson_line(event_type: str, payload: Any) -> str:
    try:
        return json.dumps({"event": event_type, "payload": payload}, ensure_ascii=False) + "\n"
    except (TypeError, ValueError):
        return json.dumps({"event": "error", "payload": f"failed to serialize {event_type}"}) + "\n"
