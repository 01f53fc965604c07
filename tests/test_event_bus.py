"""Tests for the in-process EventBus and speech transcript routing."""

from __future__ import annotations

import asyncio

import pytest

from quotecat.events import SPEECH_TRANSCRIPT, Event, EventBus
from quotecat.wizard.controller import ConversationLoopController
from quotecat.wizard.input_buffer import InputBuffer
from quotecat.wizard.registry import SessionRegistry
from quotecat.wizard.schemas import UserDefaults
from tests.conftest import ScriptedClient

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _make_event(
    event_type: str = "test_event",
    session_id: str = "sess-1",
    data: dict | None = None,
    user_id: str | None = "user-1",
) -> Event:
    return Event(
        type=event_type,
        session_id=session_id,
        data=data or {},
        user_id=user_id,
    )


class _Allow:
    async def can_access_wizard(self, user_id: str) -> bool:
        return True


class _Profiles:
    async def defaults(self, user_id: str) -> UserDefaults:
        return UserDefaults()


class _NoQuotes:
    async def create(self, name, client_name):
        raise AssertionError("not expected")

    async def update(self, quote_id, items, labor, markup_percent):
        raise AssertionError("not expected")


def _registry(settings, catalog, bus=None, max_sessions=100) -> SessionRegistry:
    controller = ConversationLoopController(ScriptedClient(), catalog, settings)
    return SessionRegistry(
        controller,
        lambda user_id: _NoQuotes(),
        _Profiles(),
        _Allow(),
        max_sessions=max_sessions,
        bus=bus,
    )


# ===========================================================================
# EventBus core
# ===========================================================================


class TestEventBus:
    @pytest.mark.asyncio
    async def test_emit_handler_receives_event(self):
        bus = EventBus()
        received: list[Event] = []

        async def handler(event: Event) -> None:
            received.append(event)

        bus.on("test_event", handler)
        await bus.start()
        try:
            await bus.emit(_make_event())
            await asyncio.sleep(0.1)
            assert len(received) == 1
            assert received[0].session_id == "sess-1"
            assert received[0].user_id == "user-1"
        finally:
            await bus.stop()

    @pytest.mark.asyncio
    async def test_multiple_handlers_same_event(self):
        bus = EventBus()
        results: list[str] = []

        async def handler_a(event: Event) -> None:
            results.append("a")

        async def handler_b(event: Event) -> None:
            results.append("b")

        bus.on("test_event", handler_a)
        bus.on("test_event", handler_b)
        await bus.start()
        try:
            await bus.emit(_make_event())
            await asyncio.sleep(0.1)
            assert sorted(results) == ["a", "b"]
        finally:
            await bus.stop()

    @pytest.mark.asyncio
    async def test_handler_error_doesnt_block_other_handlers(self):
        bus = EventBus()
        results: list[str] = []

        async def bad_handler(event: Event) -> None:
            raise RuntimeError("fail")

        async def good_handler(event: Event) -> None:
            results.append("ok")

        bus.on("test_event", bad_handler)
        bus.on("test_event", good_handler)
        await bus.start()
        try:
            await bus.emit(_make_event())
            await asyncio.sleep(0.1)
            # Bus survives and keeps dispatching
            await bus.emit(_make_event())
            await asyncio.sleep(0.1)
            assert results == ["ok", "ok"]
        finally:
            await bus.stop()

    @pytest.mark.asyncio
    async def test_off_unregisters(self):
        bus = EventBus()
        received: list[Event] = []

        async def handler(event: Event) -> None:
            received.append(event)

        bus.on("test_event", handler)
        bus.off("test_event", handler)
        bus.off("test_event", handler)
        await bus.start()
        try:
            await bus.emit(_make_event())
            await asyncio.sleep(0.1)
            assert received == []
        finally:
            await bus.stop()

    @pytest.mark.asyncio
    async def test_queue_full_drops_event(self):
        bus = EventBus(max_queue=1)
        await bus.emit(_make_event("first"))
        assert bus.pending == 1
        await bus.emit(_make_event("second"))
        assert bus.pending == 1

    @pytest.mark.asyncio
    async def test_stop_drains_remaining_events(self):
        bus = EventBus()
        received: list[Event] = []

        async def handler(event: Event) -> None:
            received.append(event)

        bus.on("test_event", handler)
        await bus.emit(_make_event(data={"n": 1}))
        await bus.emit(_make_event(data={"n": 2}))
        assert bus.pending == 2

        await bus.start()
        await bus.stop()

        assert bus.pending == 0
        assert [e.data["n"] for e in received] == [1, 2]

    @pytest.mark.asyncio
    async def test_start_is_idempotent(self):
        bus = EventBus()
        await bus.start()
        task = bus._task
        await bus.start()
        assert bus._task is task
        await bus.stop()
        assert bus._task is None


# ===========================================================================
# Speech transcripts routed through the registry
# ===========================================================================


class TestSpeechRouting:
    @pytest.mark.asyncio
    async def test_transcript_lands_in_session_buffer(self, settings, catalog):
        bus = EventBus()
        registry = _registry(settings, catalog, bus=bus)
        session = await registry.open("user-1")
        await bus.start()
        try:
            await bus.emit(_make_event(SPEECH_TRANSCRIPT, session.session_id, {"text": "two vanities"}))
            await asyncio.sleep(0.1)
            assert session.input_buffer.text == "two vanities"
        finally:
            await bus.stop()

    @pytest.mark.asyncio
    async def test_unknown_session_is_ignored(self, settings, catalog):
        registry = _registry(settings, catalog)
        await registry.on_speech_transcript(_make_event(SPEECH_TRANSCRIPT, "nope", {"text": "hi"}))
        assert len(registry) == 0


class TestRegistry:
    @pytest.mark.asyncio
    async def test_lru_eviction(self, settings, catalog):
        registry = _registry(settings, catalog, max_sessions=2)
        first = await registry.open("a")
        second = await registry.open("b")
        # Touch first so second becomes the eviction candidate
        assert registry.get(first.session_id) is first
        await registry.open("c")

        assert len(registry) == 2
        assert registry.get(second.session_id) is None
        assert registry.get(first.session_id) is first

    @pytest.mark.asyncio
    async def test_close(self, settings, catalog):
        registry = _registry(settings, catalog)
        session = await registry.open("a")
        assert registry.close(session.session_id)
        assert not registry.close(session.session_id)


class TestInputBuffer:
    def test_held_while_holding(self):
        buffer = InputBuffer()
        buffer.deliver("twelve by")
        buffer.hold()
        buffer.deliver("eight feet")
        buffer.deliver("   ")
        assert buffer.text == "twelve by"
        assert buffer.held == 1

        buffer.release()
        assert buffer.text == "twelve by eight feet"
        assert buffer.take() == "twelve by eight feet"
        assert buffer.text == ""
