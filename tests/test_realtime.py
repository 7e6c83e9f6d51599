"""Tests for the in-process event broker."""

from __future__ import annotations

import asyncio

from src.services.realtime import EventBroker, group_topic, make_event, user_topic


class TestEventBroker:
    async def test_publish_reaches_every_listener(self) -> None:
        broker = EventBroker()
        a = broker.subscribe("alerts")
        b = broker.subscribe("alerts")

        delivered = broker.publish("alerts", make_event("alert.created", alert_id="x"))

        assert delivered == 2
        assert (await a.__anext__())["data"] == {"alert_id": "x"}
        assert (await b.__anext__())["event"] == "alert.created"

    def test_publish_without_listeners(self) -> None:
        assert EventBroker().publish("nobody", make_event("noop")) == 0

    async def test_full_queue_drops_for_that_listener_only(self) -> None:
        broker = EventBroker(max_queue=1)
        slow = broker.subscribe("t")
        fast = broker.subscribe("t")

        broker.publish("t", make_event("first"))
        assert (await fast.__anext__())["event"] == "first"
        assert broker.publish("t", make_event("second")) == 1

        assert (await slow.__anext__())["event"] == "first"
        assert (await fast.__anext__())["event"] == "second"

    async def test_unsubscribe_ends_iteration(self) -> None:
        broker = EventBroker(max_queue=2)
        sub = broker.subscribe(user_topic("u1"))
        broker.publish(user_topic("u1"), make_event("one"))
        broker.unsubscribe(sub)

        received = [event["event"] async for event in sub]
        assert received == ["one"]
        assert broker.listener_count(user_topic("u1")) == 0
        assert broker.publish(user_topic("u1"), make_event("late")) == 0

    async def test_close_wakes_a_blocked_reader(self) -> None:
        broker = EventBroker()
        sub = broker.subscribe(group_topic("g1"))

        async def _drain() -> list:
            return [event async for event in sub]

        reader = asyncio.create_task(_drain())
        await asyncio.sleep(0)
        broker.unsubscribe(sub)
        assert await asyncio.wait_for(reader, timeout=1) == []

    def test_event_shape(self) -> None:
        event = make_event("location.updated", user_id="u1")
        assert set(event) == {"event", "data", "timestamp"}
