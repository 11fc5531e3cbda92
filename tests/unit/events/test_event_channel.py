"""Unit tests for the ordered event channel."""

import asyncio

import pytest

from creditsync.core.service.events.channel import EventChannel
from creditsync.core.service.events.models import EventType, StateChanged, SubscriptionExpired


@pytest.mark.asyncio
class TestEventChannel:

    async def test_events_delivered_in_publish_order(self):
        channel = EventChannel()
        received = []

        async def handler(event):
            # A slow handler must not let later events overtake earlier ones
            await asyncio.sleep(0.01 if event.state["n"] == 0 else 0)
            received.append(event.state["n"])

        channel.subscribe(EventType.STATE_CHANGED, handler)
        await channel.start()
        for n in range(5):
            await channel.publish(StateChanged(state={"n": n}))
        await channel.join()
        await channel.stop()

        assert received == [0, 1, 2, 3, 4]

    async def test_unsubscribe_stops_delivery(self):
        channel = EventChannel()
        received = []

        async def handler(event):
            received.append(event)

        subscription = channel.subscribe(EventType.SUBSCRIPTION_EXPIRED, handler)
        await channel.start()

        await channel.publish(SubscriptionExpired())
        await channel.join()
        subscription.unsubscribe()
        await channel.publish(SubscriptionExpired())
        await channel.join()
        await channel.stop()

        assert len(received) == 1
        assert subscription.active is False
        assert channel.subscriber_count(EventType.SUBSCRIPTION_EXPIRED) == 0

    async def test_failing_handler_does_not_block_others(self):
        channel = EventChannel()
        received = []

        async def broken(event):
            raise RuntimeError("boom")

        async def healthy(event):
            received.append(event)

        channel.subscribe(EventType.STATE_CHANGED, broken)
        channel.subscribe(EventType.STATE_CHANGED, healthy)
        await channel.start()
        await channel.publish(StateChanged(state={}))
        await channel.publish(StateChanged(state={}))
        await channel.join()
        await channel.stop()

        assert len(received) == 2

    async def test_only_matching_type_delivered(self):
        channel = EventChannel()
        received = []

        async def handler(event):
            received.append(event.type)

        channel.subscribe(EventType.SUBSCRIPTION_EXPIRED, handler)
        await channel.start()
        await channel.publish(StateChanged(state={}))
        await channel.publish(SubscriptionExpired(plan_type="weekly"))
        await channel.join()
        await channel.stop()

        assert received == [EventType.SUBSCRIPTION_EXPIRED]
