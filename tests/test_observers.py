import asyncio

import pytest

from models.events import EventKind
from repositories.observers import ObserverRegistry


def test_register_requires_events_and_callback():
    registry = ObserverRegistry()

    assert registry.register(None, print) is False
    assert registry.register(["SELECT"], None) is False
    assert registry.register([], print) is False
    assert registry.observers("SELECT") == []


def test_init_runs_synchronously_once_and_is_not_stored():
    registry = ObserverRegistry()
    calls = []

    assert registry.register(["INIT"], calls.append) is True

    assert calls == ["INIT"]
    assert registry.observers("INIT") == []


def test_unknown_events_are_ignored():
    registry = ObserverRegistry()

    assert registry.register(["TRUNCATE", "UPDATE"], print) is True
    assert registry.observers("TRUNCATE") == []
    assert registry.observers(EventKind.UPDATE) == [print]


@pytest.mark.asyncio
async def test_notify_defers_callbacks_in_registration_order():
    registry = ObserverRegistry()
    calls = []
    registry.register(["SELECT"], lambda event: calls.append(("first", event)))
    registry.register(["SELECT", "CREATE"], lambda event: calls.append(("second", event)))

    registry.notify("SELECT")
    assert calls == []

    await asyncio.sleep(0)
    assert calls == [("first", "SELECT"), ("second", "SELECT")]


@pytest.mark.asyncio
async def test_notify_schedules_coroutine_observers():
    registry = ObserverRegistry()
    seen = []

    async def observer(event):
        seen.append(event)

    registry.register([EventKind.REMOVE], observer)
    registry.notify(EventKind.REMOVE)
    assert seen == []

    await asyncio.sleep(0)
    assert seen == ["REMOVE"]


@pytest.mark.asyncio
async def test_notify_without_observers_is_noop():
    registry = ObserverRegistry()
    calls = []
    registry.register(["INIT"], calls.append)

    registry.notify("INIT")
    registry.notify("UPDATE")
    registry.notify("bogus")
    await asyncio.sleep(0)

    assert calls == ["INIT"]
