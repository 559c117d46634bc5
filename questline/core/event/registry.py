"""
Listener registry for the Questline EventBus.

Stores listeners keyed by exact event name plus an ordered list of wildcard
subscriptions ("quest.*", "*.generated", "*"). Listeners are kept sorted by
(priority, identifier) so dispatch order is deterministic.

Not thread-safe; designed for single-loop asyncio usage.
"""

from __future__ import annotations

from fnmatch import fnmatchcase

from questline.core.event.types import EventListener


def matches(event_name: str, pattern: str) -> bool:
    """
    Check an event name against a subscription pattern.

    >>> matches("quest.difficulty_migrated", "quest.*")
    True
    >>> matches("quest_line.generated", "quest.*")
    False
    """
    if "*" not in pattern:
        return event_name == pattern
    return fnmatchcase(event_name, pattern)


class ListenerRegistry:
    def __init__(self) -> None:
        self._listeners: dict[str, list[EventListener]] = {}
        self._wildcard_listeners: list[tuple[str, EventListener]] = []

    # ------------------------------------------------------------------ #
    # Modification
    # ------------------------------------------------------------------ #

    def add_listener(
        self,
        event_name: str,
        listener: EventListener,
        *,
        allow_duplicates: bool,
    ) -> bool:
        """
        Register a listener for an event or wildcard pattern.

        Returns False when the same (event_name, identifier) is already
        registered and duplicates are not allowed.
        """
        if "*" in event_name:
            if not allow_duplicates and any(
                lst.identifier == listener.identifier
                for pattern, lst in self._wildcard_listeners
                if pattern == event_name
            ):
                return False

            self._wildcard_listeners.append((event_name, listener))
            self._wildcard_listeners.sort(
                key=lambda pl: (pl[1].priority.value, pl[1].identifier)
            )
            return True

        listeners = self._listeners.setdefault(event_name, [])

        if not allow_duplicates and any(
            lst.identifier == listener.identifier for lst in listeners
        ):
            return False

        listeners.append(listener)
        listeners.sort(key=lambda lst: (lst.priority.value, lst.identifier))
        return True

    def remove_listener(self, event_name: str, identifier: str) -> bool:
        removed = False

        if event_name in self._listeners:
            before = len(self._listeners[event_name])
            self._listeners[event_name] = [
                lst for lst in self._listeners[event_name] if lst.identifier != identifier
            ]
            removed = len(self._listeners[event_name]) < before
            if not self._listeners[event_name]:
                del self._listeners[event_name]

        before = len(self._wildcard_listeners)
        self._wildcard_listeners = [
            (pattern, lst)
            for pattern, lst in self._wildcard_listeners
            if not (pattern == event_name and lst.identifier == identifier)
        ]
        return removed or len(self._wildcard_listeners) < before

    def clear_all(self) -> int:
        total = self.get_total_listener_count()
        self._listeners.clear()
        self._wildcard_listeners.clear()
        return total

    # ------------------------------------------------------------------ #
    # Lookup
    # ------------------------------------------------------------------ #

    def extract_listeners_for_event(self, event_name: str) -> list[EventListener]:
        """
        Collect listeners for an event and prune one-shot listeners.

        One-shot listeners are removed here, before execution, so a listener
        that republishes the same event cannot run twice.
        """
        collected = list(self._listeners.get(event_name, []))
        collected.extend(
            lst for pattern, lst in self._wildcard_listeners if matches(event_name, pattern)
        )

        once_ids = {lst.identifier for lst in collected if lst.once}
        if once_ids:
            if event_name in self._listeners:
                self._listeners[event_name] = [
                    lst
                    for lst in self._listeners[event_name]
                    if lst.identifier not in once_ids
                ]
            self._wildcard_listeners = [
                (pattern, lst)
                for pattern, lst in self._wildcard_listeners
                if not (lst.identifier in once_ids and matches(event_name, pattern))
            ]

        collected.sort(key=lambda lst: (lst.priority.value, lst.identifier))
        return collected

    def get_listener_count_for_event(self, event_name: str) -> int:
        exact = len(self._listeners.get(event_name, []))
        wildcard = sum(
            1 for pattern, _ in self._wildcard_listeners if matches(event_name, pattern)
        )
        return exact + wildcard

    def get_total_listener_count(self) -> int:
        return sum(len(v) for v in self._listeners.values()) + len(
            self._wildcard_listeners
        )
