"""
Tests for the subscription registry and its broker reconciliation.
"""
import asyncio
from unittest.mock import AsyncMock

import pytest

from relay_gateway.adapters.memory_adapter import MemoryAdapter
from relay_gateway.services.broker import Broker
from relay_gateway.services.subscriptions import SubscriptionRegistry


def spy(adapter, name):
    """Record the topics passed to an adapter method, keeping its behaviour."""
    calls = []
    original = getattr(adapter, name)

    async def recording(topic):
        calls.append(topic)
        await original(topic)

    setattr(adapter, name, recording)
    return calls


class FailingOnceAdapter(MemoryAdapter):
    """Memory adapter whose first broker subscribe fails."""

    def __init__(self):
        super().__init__()
        self.subscribe_attempts = 0

    async def subscribe(self, topic: str) -> None:
        self.subscribe_attempts += 1
        if self.subscribe_attempts == 1:
            raise ConnectionError("broker unavailable")
        await super().subscribe(topic)


class SlowRetainedAdapter(MemoryAdapter):
    """Memory adapter whose retained lookup yields to the event loop."""

    async def get_retained(self, topic: str):
        await asyncio.sleep(0.01)
        return await super().get_retained(topic)


class YieldingAdapter(MemoryAdapter):
    """Memory adapter whose subscribe/unsubscribe suspend mid-call."""

    async def subscribe(self, topic: str) -> None:
        await asyncio.sleep(0)
        await super().subscribe(topic)

    async def unsubscribe(self, topic: str) -> None:
        await asyncio.sleep(0)
        await super().unsubscribe(topic)


async def registry_over(adapter) -> SubscriptionRegistry:
    await adapter.connect()
    registry = SubscriptionRegistry(Broker(adapter))
    adapter.set_handler(registry.fan_out)
    return registry


@pytest.fixture
def registry(adapter):
    registry = SubscriptionRegistry(Broker(adapter))
    adapter.set_handler(registry.fan_out)
    return registry


class TestSubscriptionRegistry:
    """Tests for SubscriptionRegistry."""

    async def test_delivery_after_subscribe(self, registry, adapter, make_connection):
        connection, outbox = make_connection()
        await registry.subscribe(connection, "room/1")

        await adapter.publish("room/1", "hello")

        assert outbox.json() == [{"channel": "room/1", "message": "hello"}]

    async def test_no_delivery_after_unsubscribe(self, registry, adapter, make_connection):
        connection, outbox = make_connection()
        await registry.subscribe(connection, "room/1")
        await registry.unsubscribe(connection, "room/1")

        await adapter.publish("room/1", "hello")

        assert outbox.frames == []
        assert "room/1" not in adapter.subscribed_topics

    async def test_subscribe_is_idempotent(self, registry, adapter, make_connection):
        connection, outbox = make_connection()
        subscribes = spy(adapter, "subscribe")

        assert await registry.subscribe(connection, "t") is True
        assert await registry.subscribe(connection, "t") is False

        await adapter.publish("t", "once")

        assert len(outbox.frames) == 1
        assert registry.topics_for(connection) == ["t"]
        assert subscribes == ["t"]

    async def test_broker_subscription_is_shared(self, registry, adapter, make_connection):
        first, first_box = make_connection()
        second, second_box = make_connection()
        subscribes = spy(adapter, "subscribe")
        unsubscribes = spy(adapter, "unsubscribe")

        await registry.subscribe(first, "t")
        await registry.subscribe(second, "t")
        await registry.unsubscribe(first, "t")

        assert subscribes == ["t"]
        assert unsubscribes == []

        await adapter.publish("t", "x")
        assert first_box.frames == []
        assert len(second_box.frames) == 1

        await registry.unsubscribe(second, "t")
        assert unsubscribes == ["t"]
        assert registry.broker_topics == set()

    async def test_unsubscribe_absent_is_noop(self, registry, make_connection):
        connection, _ = make_connection()
        assert await registry.unsubscribe(connection, "never") is False

    async def test_retained_delivered_to_new_subscriber_only(self, registry, adapter, make_connection):
        early, early_box = make_connection()
        await registry.subscribe(early, "state")
        await adapter.publish("state", "v1", retain=True)
        assert len(early_box.frames) == 1

        late, late_box = make_connection()
        await registry.subscribe(late, "state")

        assert late_box.json() == [{"channel": "state", "message": "v1"}]
        assert len(early_box.frames) == 1

    async def test_drop_connection(self, registry, adapter, make_connection):
        connection, outbox = make_connection()
        await registry.subscribe(connection, "b")
        await registry.subscribe(connection, "a")

        topics = registry.drop_connection(connection)
        for topic in topics:
            await registry.reconcile(topic)

        assert topics == ["a", "b"]
        assert registry.topic_count == 0
        assert adapter.subscribed_topics == set()

    async def test_fan_out_skips_failing_socket(self, registry, adapter, make_connection):
        healthy, healthy_box = make_connection()
        broken, _ = make_connection()
        broken.send = AsyncMock(side_effect=RuntimeError("socket closed"))

        await registry.subscribe(healthy, "t")
        await registry.subscribe(broken, "t")

        assert await registry.fan_out("t", "x") == 1
        assert healthy_box.json() == [{"channel": "t", "message": "x"}]

    async def test_broker_failure_keeps_local_subscription(self, make_connection):
        adapter = AsyncMock()
        adapter.subscribe.side_effect = ConnectionError("broker down")
        adapter.get_retained.return_value = None
        registry = SubscriptionRegistry(Broker(adapter))
        connection, _ = make_connection()

        assert await registry.subscribe(connection, "t") is True
        assert registry.is_subscribed(connection, "t")
        assert registry.broker_topics == set()

    async def test_repeated_subscribe_retries_failed_broker_subscription(self, make_connection):
        adapter = FailingOnceAdapter()
        registry = await registry_over(adapter)
        connection, outbox = make_connection()

        await registry.subscribe(connection, "room/1")
        assert registry.broker_topics == set()

        assert await registry.subscribe(connection, "room/1") is False
        assert registry.broker_topics == {"room/1"}

        await adapter.publish("room/1", "back")
        assert outbox.json() == [{"channel": "room/1", "message": "back"}]

        await registry.subscribe(connection, "room/1")
        assert adapter.subscribe_attempts == 2

    async def test_live_publish_during_retained_lookup_is_delivered_once(self, make_connection):
        adapter = SlowRetainedAdapter()
        registry = await registry_over(adapter)
        connection, outbox = make_connection()

        await asyncio.gather(
            registry.subscribe(connection, "t"),
            adapter.publish("t", "hi", retain=True),
        )

        assert outbox.json() == [{"channel": "t", "message": "hi"}]

    async def test_retained_still_delivered_without_live_publish(self, make_connection):
        adapter = SlowRetainedAdapter()
        registry = await registry_over(adapter)
        await adapter.publish("t", "stored", retain=True)
        connection, outbox = make_connection()

        await registry.subscribe(connection, "t")

        assert outbox.json() == [{"channel": "t", "message": "stored"}]


class TestConcurrentReconciliation:
    """Interleaved subscribe/unsubscribe on one topic."""

    async def test_broker_state_matches_local_interest(self, make_connection):
        adapter = YieldingAdapter()
        registry = await registry_over(adapter)
        connections = [make_connection()[0] for _ in range(8)]

        operations = []
        for round_ in range(5):
            for i, connection in enumerate(connections):
                if (i + round_) % 2 == 0:
                    operations.append(registry.subscribe(connection, "shared"))
                else:
                    operations.append(registry.unsubscribe(connection, "shared"))
        await asyncio.gather(*operations)

        wanted = bool(registry.subscribers("shared"))
        assert ("shared" in registry.broker_topics) == wanted
        assert ("shared" in adapter.subscribed_topics) == wanted

    async def test_no_broker_subscription_leaks_after_all_leave(self, make_connection):
        adapter = YieldingAdapter()
        registry = await registry_over(adapter)
        connections = [make_connection()[0] for _ in range(6)]

        await asyncio.gather(*(registry.subscribe(c, "shared") for c in connections))
        assert registry.broker_topics == {"shared"}

        await asyncio.gather(
            *(registry.unsubscribe(c, "shared") for c in connections),
            *(registry.subscribe(c, "other") for c in connections[:2]),
        )
        await asyncio.gather(*(registry.unsubscribe(c, "other") for c in connections[:2]))

        assert registry.topic_count == 0
        assert registry.broker_topics == set()
        assert adapter.subscribed_topics == set()
