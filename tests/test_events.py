# tests/test_events.py
import asyncio

import pytest

from core.events import ErrorEvent, EventEmitter


class TestEventEmitter:

    def test_sync_listeners_in_order(self):
        emitter = EventEmitter()
        calls = []
        emitter.on("ping", lambda value: calls.append(("a", value)))
        emitter.on("ping", lambda value: calls.append(("b", value)))

        assert emitter.emit("ping", 1) is True
        assert calls == [("a", 1), ("b", 1)]

    def test_emit_without_listeners(self):
        assert EventEmitter().emit("nothing") is False

    def test_once_and_off(self):
        emitter = EventEmitter()
        calls = []
        emitter.once("ping", calls.append)
        listener = emitter.on("pong", calls.append)

        emitter.emit("ping", 1)
        emitter.emit("ping", 2)
        emitter.off("pong", listener)
        emitter.emit("pong", 3)

        assert calls == [1]
        assert emitter.listener_count("ping") == 0

    def test_once_is_tracked_per_event(self):
        emitter = EventEmitter()
        calls = []
        listener = calls.append
        emitter.once("ping", listener)
        emitter.once("pong", listener)

        emitter.emit("ping", 1)
        emitter.emit("pong", 2)
        emitter.emit("pong", 3)

        assert calls == [1, 2]
        assert emitter.listener_count("pong") == 0

    def test_failing_listener_does_not_stop_others(self):
        emitter = EventEmitter()
        calls = []

        def broken(_):
            raise RuntimeError("boom")

        emitter.on("ping", broken)
        emitter.on("ping", calls.append)

        emitter.emit("ping", 1)
        assert calls == [1]

    @pytest.mark.asyncio
    async def test_async_listeners_are_scheduled(self):
        emitter = EventEmitter()
        calls = []

        async def listener(value):
            await asyncio.sleep(0)
            calls.append(value)

        emitter.on("ping", listener)
        emitter.emit("ping", 1)
        assert calls == []

        await emitter.wait_pending()
        assert calls == [1]

    @pytest.mark.asyncio
    async def test_emit_async_awaits_in_order(self):
        emitter = EventEmitter()
        calls = []

        async def slow(value):
            await asyncio.sleep(0.01)
            calls.append(("slow", value))

        emitter.on("ping", slow)
        emitter.on("ping", lambda value: calls.append(("sync", value)))

        await emitter.emit_async("ping", 1)
        assert calls == [("slow", 1), ("sync", 1)]


def test_error_event_to_dict():
    event = ErrorEvent(source="WhatsAppService", error=ValueError("bad number"), conversation_id="c1")
    data = event.to_dict()

    assert data["source"] == "WhatsAppService"
    assert data["error"] == "bad number"
    assert data["errorType"] == "ValueError"
    assert data["conversationId"] == "c1"
    assert len(data["correlationId"]) == 12
