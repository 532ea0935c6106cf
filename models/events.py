"""
models/events.py
----------------
Event kinds an accessor notifies its observers about.
"""

from enum import Enum


class EventKind(str, Enum):
    """Operations observers can subscribe to."""
    SELECT = "SELECT"
    UPDATE = "UPDATE"
    CREATE = "CREATE"
    REMOVE = "REMOVE"
    INIT = "INIT"

    @classmethod
    def parse(cls, value) -> "EventKind | None":
        """Return the matching kind, or None for anything that isn't one."""
        if isinstance(value, cls):
            return value
        try:
            return cls(value)
        except ValueError:
            return None
