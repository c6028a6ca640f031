"""
In-process publish/subscribe for live board updates.

One `EventBus` is built per application and handed to whatever needs to
publish or subscribe. Every subscriber of a topic receives every event on that
topic, in publish order; events for a key other than the subscription's
resolve to None rather than being skipped.
"""
import asyncio
import logging
import threading
from typing import Any, Dict, Optional, Set

logger = logging.getLogger("taskboard.events")

TASK_UPDATED = "TASK_UPDATED"
COMMENT_ADDED = "COMMENT_ADDED"

_CLOSED = object()


class Subscription:
    """Async iterator over the events of one topic, filtered by key."""

    def __init__(self, bus: "EventBus", topic: str, key: str, loop: asyncio.AbstractEventLoop):
        self.bus = bus
        self.topic = topic
        self.key = key
        self._loop = loop
        self._queue: asyncio.Queue = asyncio.Queue()
        self.closed = False

    def _deliver(self, item: Any) -> None:
        # Runs on the subscriber's loop thread only.
        self._queue.put_nowait(item)

    def push(self, item: Any) -> None:
        try:
            self._loop.call_soon_threadsafe(self._deliver, item)
        except RuntimeError:
            # Subscriber loop already closed; drop it from the registry.
            self.bus.unsubscribe(self)

    def __aiter__(self):
        return self

    async def __anext__(self) -> Optional[Any]:
        if self.closed:
            raise StopAsyncIteration
        item = await self._queue.get()
        if item is _CLOSED:
            self.closed = True
            raise StopAsyncIteration
        key, payload = item
        return payload if key == self.key else None

    def close(self) -> None:
        self.bus.unsubscribe(self)


class EventBus:
    def __init__(self):
        self._subscribers: Dict[str, Set[Subscription]] = {}
        self._lock = threading.RLock()

    def subscribe(self, topic: str, key: str) -> Subscription:
        """Register a subscriber; must be called from inside a running event loop."""
        sub = Subscription(self, topic, key, asyncio.get_running_loop())
        with self._lock:
            self._subscribers.setdefault(topic, set()).add(sub)
        logger.debug("Subscribed to %s for %s", topic, key)
        return sub

    def unsubscribe(self, sub: Subscription) -> None:
        with self._lock:
            subs = self._subscribers.get(sub.topic)
            if subs is not None:
                subs.discard(sub)

    def subscriber_count(self, topic: str) -> int:
        with self._lock:
            return len(self._subscribers.get(topic, ()))

    def publish(self, topic: str, key: str, payload: Any) -> None:
        # Hold the lock while pushing so concurrent publishers keep a single
        # order across every subscriber of the topic.
        with self._lock:
            subs = list(self._subscribers.get(topic, ()))
            for sub in subs:
                sub.push((key, payload))
        logger.debug("Published %s for %s to %d subscribers", topic, key, len(subs))

    def close(self) -> None:
        with self._lock:
            subs = [s for topic_subs in self._subscribers.values() for s in topic_subs]
            self._subscribers.clear()
        for sub in subs:
            sub.push(_CLOSED)
        logger.info("Event bus closed (%d subscribers released)", len(subs))
