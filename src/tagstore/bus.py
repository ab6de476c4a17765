"""Synchronous publish/subscribe event bus."""

from __future__ import annotations

import bisect
import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

from tagstore.exceptions import StoreArgumentError

_logger = logging.getLogger(__name__)

Callback = Callable[[Any], Any]


@dataclass(slots=True, eq=False)
class Listener:
    """A registered callback.

    Compared by identity so the same callback can be registered twice and
    each registration is tracked on its own.
    """

    callback: Callback
    once: bool = False
    priority: float = 0


def _check_type(type: Any) -> None:
    if not isinstance(type, str):
        raise StoreArgumentError("Type must be a string")


def _check_callback(callback: Any) -> None:
    if not callable(callback):
        raise StoreArgumentError("Callback must be a function")


class EventBus:
    """Event bus keyed by string event types.

    Listeners for a type run in ascending ``priority``; equal priorities keep
    registration order. Emission is synchronous and re-entrant.
    """

    def __init__(self) -> None:
        self._listeners: dict[str, list[Listener]] = {}

    def add_listener(
        self,
        type: str,
        callback: Callback,
        *,
        once: bool = False,
        priority: float = 0,
    ) -> Listener:
        _check_type(type)
        _check_callback(callback)
        if not isinstance(once, bool):
            raise StoreArgumentError("Once must be a boolean")
        if isinstance(priority, bool) or not isinstance(priority, (int, float)):
            raise StoreArgumentError("Priority must be a number")

        listener = Listener(callback=callback, once=once, priority=priority)
        # Kept sorted on insert; insort places equal priorities after existing ones.
        bisect.insort(self._listeners.setdefault(type, []), listener, key=lambda item: item.priority)
        return listener

    def remove_listener(self, type: str, callback: Callback) -> None:
        """Remove every listener under *type* whose callback equals *callback*."""
        _check_type(type)
        _check_callback(callback)

        listeners = self._listeners.get(type)
        if listeners is None:
            return
        listeners[:] = [item for item in listeners if item.callback != callback]

    def discard(self, type: str, listener: Listener) -> None:
        """Remove one specific registration (no-op if already gone)."""
        listeners = self._listeners.get(type)
        if not listeners:
            return
        for index, item in enumerate(listeners):
            if item is listener:
                del listeners[index]
                return

    def emit(self, type: str, payload: Any = None) -> None:
        _check_type(type)

        listeners = self._listeners.get(type)
        if not listeners:
            return

        # Iterate a snapshot: listeners added during this emit wait for the
        # next one, listeners removed during it are skipped.
        for listener in tuple(listeners):
            if not any(item is listener for item in listeners):
                continue
            if listener.once:
                self.discard(type, listener)
            listener.callback(payload)

    def listener_count(self, type: str) -> int:
        return len(self._listeners.get(type, ()))

    def has_listeners(self, type: str) -> bool:
        return self.listener_count(type) > 0


@dataclass(slots=True)
class Subscription:
    """Handle for listeners registered by a helper such as ``watch``."""

    bus: EventBus
    entries: list[tuple[str, Listener]] = field(default_factory=list)
    result: Any = None

    @property
    def active(self) -> bool:
        return bool(self.entries)

    def cancel(self) -> None:
        for type, listener in self.entries:
            self.bus.discard(type, listener)
        if self.entries:
            _logger.debug("Cancelled subscription with %d listener(s)", len(self.entries))
        self.entries.clear()
