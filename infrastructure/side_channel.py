"""
Side Channel: Non-Blocking Event Delivery

Best-effort path for fire-and-forget writes (model selection decisions,
recommendation batches). Producers enqueue without awaiting; a detached
consumer task drains the bounded queue into the registered sinks.

A full queue drops the event and a failing sink is logged. Neither ever
reaches the producer.
"""

import asyncio
import inspect
from contextlib import suppress
from typing import Any, Awaitable, Callable, Dict, List, Optional, Union

from loguru import logger

from core.models import utc_now
from infrastructure.monitoring import get_logger

EventSink = Callable[[Dict[str, Any]], Union[None, Awaitable[None]]]


def structlog_sink(event: Dict[str, Any]) -> None:
    """Default sink: emit the event as a structured JSON log line."""
    payload = dict(event)
    name = payload.pop("event", "side_channel_event")
    get_logger("side_channel").info(name, **payload)


class SideChannel:
    """
    Bounded queue with a detached consumer.

    The consumer task starts lazily on the first ``emit`` made from inside a
    running event loop. Events emitted outside a loop stay queued until the
    next ``flush``.
    """

    def __init__(self, max_size: int = 1000, sinks: Optional[List[EventSink]] = None):
        self._queue: "asyncio.Queue[Dict[str, Any]]" = asyncio.Queue(maxsize=max_size)
        self._sinks: List[EventSink] = list(sinks) if sinks is not None else [structlog_sink]
        self._consumer: Optional[asyncio.Task] = None

        self.emitted = 0
        self.dropped = 0
        self.delivered = 0
        self.sink_errors = 0

    def add_sink(self, sink: EventSink) -> None:
        self._sinks.append(sink)

    def emit(self, event: str, **payload: Any) -> bool:
        """
        Enqueue an event without blocking.

        Returns:
            False when the queue was full and the event was dropped
        """
        record = {"event": event, "timestamp": utc_now().isoformat(), **payload}
        try:
            self._queue.put_nowait(record)
        except asyncio.QueueFull:
            self.dropped += 1
            logger.debug(f"Side channel full, dropped event: {event}")
            return False

        self.emitted += 1
        self._ensure_consumer()
        return True

    def _ensure_consumer(self) -> None:
        if self._consumer is not None and not self._consumer.done():
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            return
        self._consumer = loop.create_task(self._drain(), name="side-channel-consumer")

    async def _drain(self) -> None:
        while True:
            record = await self._queue.get()
            try:
                await self._deliver(record)
            finally:
                self._queue.task_done()

    async def _deliver(self, record: Dict[str, Any]) -> None:
        for sink in self._sinks:
            try:
                result = sink(record)
                if inspect.isawaitable(result):
                    await result
            except Exception as e:
                self.sink_errors += 1
                logger.warning(f"Side channel sink failed for {record.get('event')}: {e}")
        self.delivered += 1

    async def flush(self) -> int:
        """
        Deliver everything currently queued.

        Returns:
            Number of events delivered by this call
        """
        count = 0
        while True:
            try:
                record = self._queue.get_nowait()
            except asyncio.QueueEmpty:
                break
            try:
                await self._deliver(record)
                count += 1
            finally:
                self._queue.task_done()
        return count

    async def stop(self) -> None:
        """Stop the consumer and deliver what is left."""
        if self._consumer is not None:
            self._consumer.cancel()
            with suppress(asyncio.CancelledError):
                await self._consumer
            self._consumer = None
        await self.flush()

    @property
    def pending(self) -> int:
        return self._queue.qsize()

    def get_statistics(self) -> Dict[str, int]:
        return {
            "emitted": self.emitted,
            "dropped": self.dropped,
            "delivered": self.delivered,
            "sink_errors": self.sink_errors,
            "pending": self.pending,
        }
