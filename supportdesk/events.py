"""Event publishing for conversation and message changes.

Business operations receive an ``EventPublisher`` and call ``publish``;
the default ``InProcessEventBus`` fans events out to SSE subscribers on
the same event loop.
"""

from __future__ import annotations

import asyncio
import contextlib
import json
import time
from dataclasses import asdict, dataclass, field
from typing import Any, Protocol

import structlog

logger = structlog.get_logger(__name__)


def workspace_topic(workspace_id: str) -> str:
    return f"workspace:{workspace_id}"


@dataclass
class Event:
    """A single published event."""

    topic: str
    name: str
    payload: dict[str, Any] = field(default_factory=dict)
    timestamp: float = 0.0

    def __post_init__(self) -> None:
        if self.timestamp == 0.0:
            self.timestamp = time.time()

    def to_sse(self) -> str:
        """Serialize to SSE wire format."""
        data = json.dumps(asdict(self), default=str)
        return f"event: {self.name}\ndata: {data}\n\n"


class EventPublisher(Protocol):
    async def publish(self, topic: str, name: str, payload: dict[str, Any]) -> None: ...


async def publish_event(
    publisher: EventPublisher, topic: str, name: str, payload: dict[str, Any]
) -> None:
    """Publish after a committed write. Failures are logged, never raised."""
    try:
        await publisher.publish(topic, name, payload)
    except Exception:
        # The write already committed; a lost notification must not fail it
        logger.exception("event_publish_failed", topic=topic, event_name=name)


class InProcessEventBus:
    """In-process fan-out bus keyed by topic.

    Designed for single asyncio event loop (single-process uvicorn).
    A slow subscriber whose queue is full drops the event rather than
    blocking the publisher.
    """

    def __init__(self, max_queue_size: int = 100) -> None:
        self._max_queue_size = max_queue_size
        self._queues: dict[str, list[asyncio.Queue[Event]]] = {}

    async def publish(self, topic: str, name: str, payload: dict[str, Any]) -> None:
        event = Event(topic=topic, name=name, payload=payload)
        delivered = 0
        for q in self._queues.get(topic, []):
            try:
                q.put_nowait(event)
                delivered += 1
            except asyncio.QueueFull:
                logger.warning("event_dropped_slow_subscriber", topic=topic, event_name=name)
        logger.debug("event_published", topic=topic, event_name=name, subscribers=delivered)

    def subscribe(self, topic: str) -> asyncio.Queue[Event]:
        """Register a new subscriber queue for this topic."""
        q: asyncio.Queue[Event] = asyncio.Queue(maxsize=self._max_queue_size)
        self._queues.setdefault(topic, []).append(q)
        return q

    def unsubscribe(self, topic: str, q: asyncio.Queue[Event]) -> None:
        """Remove a disconnected client's queue."""
        queues = self._queues.get(topic, [])
        with contextlib.suppress(ValueError):
            queues.remove(q)
        if not queues and topic in self._queues:
            del self._queues[topic]

    def subscriber_count(self, topic: str) -> int:
        return len(self._queues.get(topic, []))
