"""In-process publish/subscribe relay for live updates.

Every subscriber owns a bounded queue. ``publish`` never blocks: when a
listener's queue is full the event is dropped for that listener only,
so delivery is best-effort and at-most-once. There is no ordering
guarantee across different listeners.

Topics in use:

* ``user:{id}``            personal notifications
* ``user:{id}:contacts``   location updates shared with contacts
* ``emergency_responders`` new and updated emergency reports
* ``alerts``               newly reported safety alerts
* ``group:{id}``           travel group chat
"""

from __future__ import annotations

import asyncio
from collections import defaultdict
from datetime import UTC, datetime
from typing import Any, Final

import structlog

logger = structlog.get_logger(__name__)

Event = dict[str, Any]

EMERGENCY_RESPONDERS: Final[str] = "emergency_responders"
ALERTS: Final[str] = "alerts"

_CLOSED = object()


def user_topic(user_id: str) -> str:
    return f"user:{user_id}"


def contacts_topic(user_id: str) -> str:
    return f"user:{user_id}:contacts"


def group_topic(group_id: str) -> str:
    return f"group:{group_id}"


def make_event(name: str, **data: Any) -> Event:
    return {"event": name, "data": data, "timestamp": datetime.now(UTC).isoformat()}


class Subscription:
    """Async iterator over the events published to one topic."""

    __slots__ = ("_queue", "closed", "topic")

    def __init__(self, topic: str, max_queue: int) -> None:
        self.topic = topic
        self.closed = False
        self._queue: asyncio.Queue[Any] = asyncio.Queue(maxsize=max_queue)

    def offer(self, event: Event) -> bool:
        if self.closed:
            return False
        try:
            self._queue.put_nowait(event)
        except asyncio.QueueFull:
            return False
        return True

    def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        # Make room for the end marker so a blocked reader wakes up.
        while True:
            try:
                self._queue.put_nowait(_CLOSED)
                return
            except asyncio.QueueFull:
                self._queue.get_nowait()

    def __aiter__(self) -> Subscription:
        return self

    async def __anext__(self) -> Event:
        item = await self._queue.get()
        if item is _CLOSED:
            raise StopAsyncIteration
        return item


class EventBroker:
    __slots__ = ("_max_queue", "_topics")

    def __init__(self, max_queue: int = 100) -> None:
        self._max_queue = max_queue
        self._topics: dict[str, list[Subscription]] = defaultdict(list)

    def subscribe(self, topic: str) -> Subscription:
        subscription = Subscription(topic, self._max_queue)
        self._topics[topic].append(subscription)
        logger.debug("realtime.subscribed", topic=topic, listeners=len(self._topics[topic]))
        return subscription

    def unsubscribe(self, subscription: Subscription) -> None:
        listeners = self._topics.get(subscription.topic, [])
        if subscription in listeners:
            listeners.remove(subscription)
        if not listeners:
            self._topics.pop(subscription.topic, None)
        subscription.close()

    def publish(self, topic: str, event: Event) -> int:
        """Offer *event* to every listener of *topic*; returns how many took it."""
        delivered = 0
        for subscription in list(self._topics.get(topic, [])):
            if subscription.offer(event):
                delivered += 1
            else:
                logger.warning("realtime.event_dropped", topic=topic, event_name=event.get("event"))
        return delivered

    def listener_count(self, topic: str) -> int:
        return len(self._topics.get(topic, []))
