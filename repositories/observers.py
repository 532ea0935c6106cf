"""
repositories/observers.py
-------------------------
Per-accessor observer registry.

Observers subscribe to event kinds and are called with the event name after
the matching operation finished. Dispatch never happens inside `notify`
itself: every callback is pushed onto the event loop and runs on a later tick,
in registration order.
"""

import asyncio
import inspect
from typing import Callable, Iterable

from models.events import EventKind
from utils.logger import get_logger

logger = get_logger(__name__)


class ObserverRegistry:
    """Maps each EventKind to its ordered list of callbacks."""

    def __init__(self):
        self._observers: dict[EventKind, list[Callable]] = {}
        self._tasks: set = set()

    def register(self, events: Iterable | None, callback: Callable | None) -> bool:
        """
        Subscribe `callback` to every valid event in `events`.

        Callbacks take one argument, the event name. Unknown event names are
        ignored. INIT is not stored: the callback is called right away,
        synchronously, with "INIT".

        Returns:
            False if `events` or `callback` is missing or `events` is empty,
            True otherwise.
        """
        if events is None or callback is None:
            return False
        if isinstance(events, (str, EventKind)):
            events = [events]
        events = list(events)
        if not events:
            return False

        for event in events:
            kind = EventKind.parse(event)
            if kind is None:
                logger.debug(f"Ignoring observer for unknown event {event!r}")
                continue
            if kind is EventKind.INIT:
                callback(kind.value)
                continue
            self._observers.setdefault(kind, []).append(callback)

        return True

    def observers(self, event) -> list[Callable]:
        kind = EventKind.parse(event)
        return list(self._observers.get(kind, [])) if kind else []

    def notify(self, event) -> None:
        """Schedule every callback registered for `event` on the running loop."""
        logger.debug(f"{event} called notify")

        kind = EventKind.parse(event)
        if kind is None:
            return
        callbacks = self._observers.get(kind)
        if not callbacks:
            return

        loop = asyncio.get_running_loop()
        for callback in callbacks:
            if inspect.iscoroutinefunction(callback):
                task = loop.create_task(callback(kind.value))
                self._tasks.add(task)
                task.add_done_callback(self._tasks.discard)
            else:
                loop.call_soon(callback, kind.value)
