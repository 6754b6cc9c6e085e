"""Per-job event bus with replayable history and drop-on-full subscriber queues."""

from __future__ import annotations

import asyncio
from collections import deque
from typing import Any, AsyncIterator

from deep_research.models.schemas import EventType, ResearchEvent
from deep_research.utils.logging import get_logger

logger = get_logger(__name__)

_CLOSED = object()


class EventBus:
    """Fan-out of a job's events to any number of observers.

    Event ids increase by one per publish. A subscriber that passes the last
    id it saw gets every retained later event and then the live stream, with
    no id delivered twice. Slow subscribers lose events rather than block
    the pipeline.
    """

    def __init__(self, job_id: str, *, history_limit: int = 1000, queue_size: int = 256) -> None:
        self.job_id = job_id
        self._history: deque[ResearchEvent] = deque(maxlen=history_limit)
        self._subscribers: set[asyncio.Queue] = set()
        self._queue_size = queue_size
        self._next_id = 1
        self._closed = False
        self._dropped = 0

    @property
    def last_event_id(self) -> int:
        return self._next_id - 1

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def history(self) -> list[ResearchEvent]:
        return list(self._history)

    def publish(self, event_type: EventType, data: dict[str, Any]) -> ResearchEvent:
        if self._closed:
            raise RuntimeError(f"Event bus for job {self.job_id} is closed")
        event = ResearchEvent(id=self._next_id, type=event_type, job_id=self.job_id, data=data)
        self._next_id += 1
        self._history.append(event)
        for queue in self._subscribers:
            try:
                queue.put_nowait(event)
            except asyncio.QueueFull:
                self._dropped += 1
                logger.debug("event_dropped", job_id=self.job_id, event_id=event.id, dropped_total=self._dropped)
        return event

    def close(self) -> None:
        """End every subscription once its queue drains."""
        if self._closed:
            return
        self._closed = True
        for queue in self._subscribers:
            # Sentinel must land even on a full queue
            while True:
                try:
                    queue.put_nowait(_CLOSED)
                    break
                except asyncio.QueueFull:
                    queue.get_nowait()

    async def subscribe(self, after_id: int = 0) -> AsyncIterator[ResearchEvent]:
        """Yield events with id > ``after_id``: retained history first, then live."""
        queue: asyncio.Queue = asyncio.Queue(maxsize=self._queue_size)
        replay = [e for e in self._history if e.id > after_id]
        if not self._closed:
            self._subscribers.add(queue)

        last_seen = after_id
        try:
            for event in replay:
                last_seen = event.id
                yield event
            if queue not in self._subscribers:
                return
            while True:
                item = await queue.get()
                if item is _CLOSED:
                    return
                if item.id <= last_seen:
                    continue
                last_seen = item.id
                yield item
        finally:
            self._subscribers.discard(queue)
