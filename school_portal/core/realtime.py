"""
In-process realtime hub.

Publishers push row events to a topic; subscribers either register a plain
callback or consume the subscription as an async stream. Publishing is safe
from worker threads: events for async consumers are handed to their event
loop with `call_soon_threadsafe`.
"""

import asyncio
import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

from school_portal.utils.time_utils import now_utc

logger = logging.getLogger(__name__)


@dataclass
class RealtimeEvent:
    topic: str
    event_type: str
    payload: Dict[str, Any]
    published_at: datetime = field(default_factory=now_utc)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "topic": self.topic,
            "event": self.event_type,
            "payload": self.payload,
            "published_at": self.published_at.isoformat(),
        }


EventHandler = Callable[[RealtimeEvent], None]


class Subscription:
    def __init__(self, hub: "RealtimeHub", topic: str,
                 handler: Optional[EventHandler] = None,
                 loop: Optional[asyncio.AbstractEventLoop] = None):
        self.hub = hub
        self.topic = topic
        self.handler = handler
        self._loop = loop
        self._queue: Optional[asyncio.Queue] = asyncio.Queue() if loop is not None else None
        self.closed = False

    def deliver(self, event: RealtimeEvent) -> None:
        if self.handler is not None:
            self.handler(event)
        if self._queue is not None:
            self._loop.call_soon_threadsafe(self._queue.put_nowait, event)

    async def next_event(self, timeout: Optional[float] = None) -> RealtimeEvent:
        if self._queue is None:
            raise RuntimeError("Subscription was created without an event loop")
        return await asyncio.wait_for(self._queue.get(), timeout)

    def __aiter__(self):
        return self

    async def __anext__(self) -> RealtimeEvent:
        if self.closed:
            raise StopAsyncIteration
        return await self.next_event()

    def unsubscribe(self) -> None:
        if not self.closed:
            self.closed = True
            self.hub._remove(self)

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.unsubscribe()


class RealtimeHub:
    def __init__(self):
        self._subscriptions: Dict[str, List[Subscription]] = {}
        self._lock = threading.Lock()

    def subscribe(self, topic: str, handler: Optional[EventHandler] = None) -> Subscription:
        """Subscribe to `topic`.

        Called from inside a running event loop the subscription can also be
        iterated with `async for`.
        """
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            loop = None

        subscription = Subscription(self, topic, handler=handler, loop=loop)
        with self._lock:
            self._subscriptions.setdefault(topic, []).append(subscription)
        logger.info("Subscribed to %s", topic)
        return subscription

    def publish(self, topic: str, event_type: str, payload: Dict[str, Any]) -> int:
        """Fan an event out to every subscriber of `topic`, returns the delivery count"""
        event = RealtimeEvent(topic=topic, event_type=event_type, payload=payload)
        with self._lock:
            subscribers = list(self._subscriptions.get(topic, []))

        delivered = 0
        for subscription in subscribers:
            try:
                subscription.deliver(event)
            except RuntimeError:
                # The consumer's event loop is gone
                logger.warning("Dropping subscription to %s with a closed event loop", topic)
                subscription.unsubscribe()
                continue
            except Exception:
                logger.exception("Realtime handler for %s failed", topic)
                continue
            delivered += 1
        return delivered

    def subscriber_count(self, topic: str) -> int:
        with self._lock:
            return len(self._subscriptions.get(topic, []))

    def _remove(self, subscription: Subscription) -> None:
        with self._lock:
            subscribers = self._subscriptions.get(subscription.topic, [])
            if subscription in subscribers:
                subscribers.remove(subscription)
            if not subscribers:
                self._subscriptions.pop(subscription.topic, None)
        logger.info("Unsubscribed from %s", subscription.topic)


def chat_topic(room_id: str) -> str:
    """Row inserts on chat_messages filtered by room"""
    return f"chat_messages:room_id=eq.{room_id}"


realtime_hub = RealtimeHub()
