"""
Tests for the tunnel event channel.
"""

import asyncio

import pytest

from adit.core.domain.events import Event, TunnelEvent
from adit.core.services.event_bus import EventEmitter


class TestEventEmitter:
    """Test cases for the event emitter."""

    @pytest.fixture
    def emitter(self) -> EventEmitter:
        return EventEmitter(source="tunnel")

    def test_emit_and_subscribe(self, emitter: EventEmitter) -> None:
        received = []
        subscription_id = emitter.on("error", received.append)

        event = emitter.emit("error", ValueError("boom"), retries_left=2)

        assert received == [event]
        assert event.source == "tunnel"
        assert event.metadata == {'retries_left': 2}
        assert emitter.off(subscription_id)
        assert not emitter.off(subscription_id)

    def test_enum_names(self, emitter: EventEmitter) -> None:
        received = []
        emitter.on(TunnelEvent.TCP_CONNECTION, received.append)

        emitter.emit("tcp connection", {'src_port': 1})

        assert len(received) == 1
        assert received[0].name == TunnelEvent.TCP_CONNECTION.value

    def test_dispatch_order_is_subscription_order(self, emitter: EventEmitter) -> None:
        calls = []
        emitter.on("close", lambda event: calls.append("first"))
        emitter.on("close", lambda event: calls.append("second"))

        emitter.emit("close")

        assert calls == ["first", "second"]

    def test_wildcard_subscriptions(self, emitter: EventEmitter) -> None:
        received = []
        emitter.on("*", received.append)

        emitter.emit("data", b"x")
        emitter.emit("state", "ready")

        assert [event.name for event in received] == ["data", "state"]
        assert emitter.listener_count("data") == 1

    def test_once(self, emitter: EventEmitter) -> None:
        received = []
        emitter.once("close", received.append)

        emitter.emit("close")
        emitter.emit("close")

        assert len(received) == 1
        assert emitter.listener_count("close") == 0

    def test_handler_failure_is_isolated(self, emitter: EventEmitter) -> None:
        received = []

        def broken(event: Event) -> None:
            raise RuntimeError("handler bug")

        emitter.on("error", broken)
        emitter.on("error", received.append)

        emitter.emit("error", "payload")

        assert len(received) == 1
        metrics = emitter.get_metrics()
        assert metrics['handlers_failed'] == 1
        assert metrics['handlers_called'] == 1
        assert metrics['events_emitted'] == 1
        assert metrics['subscriptions_count'] == 2

    def test_emit_without_subscribers(self, emitter: EventEmitter) -> None:
        event = emitter.emit("error", "nobody listens")
        assert event.data == "nobody listens"

    @pytest.mark.asyncio
    async def test_coroutine_handlers_are_scheduled(self, emitter: EventEmitter) -> None:
        received = []

        async def handler(event: Event) -> None:
            received.append(event.data)

        emitter.on("data", handler)
        emitter.emit("data", b"chunk")
        await asyncio.sleep(0.01)

        assert received == [b"chunk"]

    @pytest.mark.asyncio
    async def test_coroutine_handler_failure_is_counted(self, emitter: EventEmitter) -> None:
        async def handler(event: Event) -> None:
            raise RuntimeError("handler broke")

        emitter.on("close", handler)
        emitter.emit("close")
        await asyncio.sleep(0.01)

        metrics = emitter.get_metrics()
        assert metrics['handlers_called'] == 1
        assert metrics['handlers_failed'] == 1
