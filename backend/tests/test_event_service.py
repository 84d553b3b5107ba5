"""
Heimursaga API — Event Service Unit Tests
===========================================

What:  Fire-and-forget dispatch: listeners run as detached tasks, failures
       are contained, `drain()` waits for everything outstanding.
"""

import asyncio

import pytest

from saga.services.event_service import EventService, Events


@pytest.fixture
def bus():
    return EventService()


class TestEventService:
    async def test_trigger_runs_every_listener(self, bus):
        seen = []

        async def first(data):
            seen.append(("first", data["n"]))

        async def second(data):
            seen.append(("second", data["n"]))

        bus.on(Events.SEND_EMAIL, first)
        bus.on(Events.SEND_EMAIL, second)
        bus.trigger(Events.SEND_EMAIL, {"n": 1})
        await bus.drain()

        assert sorted(seen) == [("first", 1), ("second", 1)]

    async def test_trigger_returns_before_listener_finishes(self, bus):
        started = asyncio.Event()
        release = asyncio.Event()

        async def slow(data):
            started.set()
            await release.wait()

        bus.on(Events.ENTRY_CREATED, slow)
        bus.trigger(Events.ENTRY_CREATED, {})
        assert not started.is_set()

        await asyncio.sleep(0)
        assert started.is_set()
        release.set()
        await bus.drain()

    async def test_listener_failure_is_contained(self, bus, caplog):
        ran = []

        async def broken(data):
            raise RuntimeError("boom")

        async def healthy(data):
            ran.append(True)

        bus.on(Events.NOTIFICATION_CREATE, broken)
        bus.on(Events.NOTIFICATION_CREATE, healthy)
        bus.trigger(Events.NOTIFICATION_CREATE, {})
        await bus.drain()

        assert ran == [True]
        assert "boom" in caplog.text

    async def test_duplicate_registration_ignored(self, bus):
        calls = []

        async def listener(data):
            calls.append(data)

        bus.on(Events.SEND_EMAIL, listener)
        bus.on(Events.SEND_EMAIL, listener)
        bus.trigger(Events.SEND_EMAIL, {"x": 1})
        await bus.drain()

        assert len(calls) == 1

    async def test_no_listeners_is_a_noop(self, bus):
        bus.trigger(Events.ADMIN_DISPUTE_CREATED, {"id": "dp_1"})
        await bus.drain()

    async def test_drain_waits_for_nested_triggers(self, bus):
        seen = []

        async def outer(data):
            bus.trigger(Events.SEND_EMAIL, {"from": "outer"})

        async def inner(data):
            seen.append(data["from"])

        bus.on(Events.ENTRY_CREATED, outer)
        bus.on(Events.SEND_EMAIL, inner)
        bus.trigger(Events.ENTRY_CREATED, {})
        await bus.drain()

        assert seen == ["outer"]

    def test_trigger_outside_loop_is_dropped(self, bus):
        async def listener(data):
            raise AssertionError("should not run")

        bus.on(Events.SEND_EMAIL, listener)
        bus.trigger(Events.SEND_EMAIL, {})

    async def test_clear_removes_listeners(self, bus):
        calls = []

        async def listener(data):
            calls.append(data)

        bus.on(Events.SEND_EMAIL, listener)
        bus.clear()
        bus.trigger(Events.SEND_EMAIL, {})
        await bus.drain()

        assert calls == []
