"""Event Bus — pub/sub with wildcard matching.

The evolution engine reports progress and outcomes here. Topics are
dotted: "evolution.*" matches "evolution.progress", "evolution.failed".
Callers either register async handlers or consume an async stream.
"""

from __future__ import annotations

import asyncio
import fnmatch
import logging
from collections import defaultdict
from datetime import datetime
from typing import Any, AsyncIterator, Callable, Awaitable

from pydantic import BaseModel, Field

from neuroevo.types import new_id, utcnow

logger = logging.getLogger(__name__)

EventHandler = Callable[["Event"], Awaitable[None]]


class Event(BaseModel):
    """A system event."""

    id: str = Field(default_factory=new_id)
    topic: str
    data: dict[str, Any] = Field(default_factory=dict)
    source: str = ""
    timestamp: datetime = Field(default_factory=utcnow)


class EventBus:
    """Async pub/sub event bus with wildcard topic matching.

    ``emit`` returns only after every matching handler has run, so
    events from one producer are observed in the order they were emitted.
    Handler failures are logged and never reach the producer.
    """

    def __init__(self, history_limit: int = 500) -> None:
        self._subscribers: dict[str, list[EventHandler]] = defaultdict(list)
        self._streams: list[tuple[str, asyncio.Queue]] = []
        self._history: list[Event] = []
        self._history_limit = history_limit
        self._lock = asyncio.Lock()

    def subscribe(self, pattern: str, handler: EventHandler) -> None:
        """Subscribe to events matching a topic pattern."""
        self._subscribers[pattern].append(handler)

    def unsubscribe(self, pattern: str, handler: EventHandler) -> None:
        """Remove a subscription."""
        handlers = self._subscribers.get(pattern, [])
        if handler in handlers:
            handlers.remove(handler)

    async def emit(self, topic: str, data: dict | None = None, source: str = "") -> Event:
        """Emit an event to all matching subscribers."""
        event = Event(topic=topic, data=data or {}, source=source)

        async with self._lock:
            self._history.append(event)
            if len(self._history) > self._history_limit:
                self._history = self._history[-self._history_limit:]

        tasks = []
        for pattern, handlers in self._subscribers.items():
            if fnmatch.fnmatch(topic, pattern):
                for handler in handlers:
                    tasks.append(handler(event))

        for pattern, queue in self._streams:
            if fnmatch.fnmatch(topic, pattern):
                if queue.full():
                    queue.get_nowait()  # slow consumer loses the oldest event
                queue.put_nowait(event)

        if tasks:
            results = await asyncio.gather(*tasks, return_exceptions=True)
            for result in results:
                if isinstance(result, Exception):
                    logger.warning("Event handler for %s failed: %s", topic, result)

        return event

    async def stream(self, pattern: str = "*") -> AsyncIterator[Event]:
        """Yield matching events as they are emitted, until the consumer stops.

        At most ``history_limit`` events are buffered per stream; older
        unread events are dropped first.
        """
        queue: asyncio.Queue = asyncio.Queue(maxsize=self._history_limit)
        entry = (pattern, queue)
        self._streams.append(entry)
        try:
            while True:
                yield await queue.get()
        finally:
            self._streams.remove(entry)

    def history(self, topic_filter: str = "*", limit: int = 50) -> list[Event]:
        """Get recent events, optionally filtered by topic pattern."""
        if topic_filter == "*":
            events = self._history
        else:
            events = [
                e for e in self._history
                if fnmatch.fnmatch(e.topic, topic_filter)
            ]
        return list(reversed(events[-limit:]))

    @property
    def subscriber_count(self) -> int:
        return sum(len(h) for h in self._subscribers.values())

    @property
    def stream_count(self) -> int:
        return len(self._streams)

    def topics(self) -> list[str]:
        """Get all topics that have been emitted."""
        return list({e.topic for e in self._history})
