"""
Event subsystem: async pub/sub used to decouple quest services from their
side effects (skill rewards, migration notifications).
"""

from questline.core.event.bus import EventBus
from questline.core.event.registry import ListenerRegistry
from questline.core.event.types import (
    CallbackType,
    EventListener,
    EventPayload,
    ListenerPriority,
)

__all__ = [
    "EventBus",
    "ListenerRegistry",
    "CallbackType",
    "EventListener",
    "EventPayload",
    "ListenerPriority",
]
