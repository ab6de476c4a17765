"""In-memory state tree.

This is the only component that replaces slices; every replacement made
through :meth:`StateContainer.mutate` or :meth:`StateContainer.commit` is
announced on the event bus.
"""

from __future__ import annotations

import copy
import logging
from collections.abc import Callable, Mapping
from typing import Any

from tagstore.bus import EventBus
from tagstore.exceptions import StoreArgumentError
from tagstore.models import SliceSpec, parse_model
from tagstore.state.events import EventKind, StateChanged

_logger = logging.getLogger(__name__)


def _check_initial_state(initial_state: Any) -> dict[str, Any]:
    if initial_state is None:
        return {}
    if not isinstance(initial_state, Mapping):
        raise StoreArgumentError("Initial state must be an object")
    return copy.deepcopy(dict(initial_state))


class StateContainer:
    """Owner of the state tree.

    Callers never receive references into the live tree: reads return deep
    copies and mutations operate on copies that are swapped in afterwards.
    """

    def __init__(self, bus: EventBus, initial_state: Mapping[str, Any] | None = None) -> None:
        self._bus = bus
        self._state: dict[str, Any] = _check_initial_state(initial_state)

    def select(self, selector: Callable[[dict[str, Any]], Any]) -> Any:
        if not callable(selector):
            raise StoreArgumentError("Selector must be a function")
        return copy.deepcopy(selector(self._state))

    def snapshot(self) -> dict[str, Any]:
        return copy.deepcopy(self._state)

    def get_slice(self, name: str, default: Any = None) -> Any:
        return copy.deepcopy(self._state.get(name, default))

    def use(self, *slices: SliceSpec | Mapping[str, Any], stored: Mapping[str, Any] | None = None) -> None:
        """Add slices to the tree.

        Values already present in *stored* (persisted state) win over the
        initializers so state survives reloads. No event is emitted.
        """
        specs = [parse_model(SliceSpec, item, "slice") for item in slices]
        for spec in specs:
            if stored is not None and spec.name in stored:
                self._state[spec.name] = copy.deepcopy(stored[spec.name])
                _logger.debug("Slice %s restored from storage", spec.name)
            else:
                self._state[spec.name] = copy.deepcopy(spec.initial_state)

    def hydrate(self, stored: Mapping[str, Any]) -> None:
        """Merge a stored tree over the current one (stored values win)."""
        if not isinstance(stored, Mapping):
            raise StoreArgumentError("Stored state must be an object")
        self._state.update(copy.deepcopy(dict(stored)))

    def mutate(
        self,
        name: str,
        tag_type: str | None,
        mutation: Callable[[Any], Any],
    ) -> None:
        """Replace slice *name* with ``mutation(copy_of_slice)``."""
        if not isinstance(name, str):
            raise StoreArgumentError("Type must be a string")
        if tag_type is not None and not isinstance(tag_type, str):
            raise StoreArgumentError("TagType must be a string")
        if not callable(mutation):
            raise StoreArgumentError("Mutation must be a valid function")

        self._state[name] = mutation(copy.deepcopy(self._state.get(name)))
        self._emit(name, tag_type)

    def commit(self, name: str, draft: Mapping[str, Any], *, tag_type: str | None = None) -> None:
        """Swap in a working copy of the whole tree and announce it for *name*."""
        if not isinstance(draft, Mapping):
            raise StoreArgumentError("Reducer must leave the state as an object")
        self._state = dict(draft)
        self._emit(name, tag_type)

    def set_tag(self, name: str, tag_type: str, value: Any) -> None:
        """Write ``state[name][tag_type]`` without emitting."""
        current = self._state.get(name)
        if not isinstance(current, dict):
            current = {}
            self._state[name] = current
        current[tag_type] = copy.deepcopy(value)

    def announce(self, name: str, tag_type: str | None = None) -> None:
        self._emit(name, tag_type)

    def _emit(self, name: str, tag_type: str | None) -> None:
        self._bus.emit(
            EventKind.STATE_CHANGE,
            StateChanged(type=name, tag_type=tag_type, state=self.snapshot()),
        )
