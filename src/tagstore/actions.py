"""Named actions and dispatch."""

from __future__ import annotations

import copy
import logging
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from typing import Any

from tagstore.exceptions import StoreArgumentError, StoreLookupError
from tagstore.models import Action, creator_name, parse_model
from tagstore.state.container import StateContainer

_logger = logging.getLogger(__name__)

Reducer = Callable[[dict[str, Any], Any], Any]
ActionCreator = Callable[..., Action]


@dataclass(frozen=True, slots=True)
class RegisteredAction:
    name: str
    reducer: Reducer
    creator: ActionCreator


def _make_creator(name: str) -> ActionCreator:
    def creator(payload: Any = None) -> Action:
        return Action(name=name, payload=payload)

    creator.__name__ = creator_name(name)
    creator.__qualname__ = creator.__name__
    return creator


class ActionRegistry:
    """Reducers keyed by slice name, then action name.

    A reducer receives a deep-copied draft of the whole state tree and the
    action payload. It may change the draft in place, return a replacement
    tree, or both (a non-``None`` return wins). The draft is committed only
    after the reducer returns, so a reducer that raises leaves state as it was.
    """

    def __init__(self, container: StateContainer) -> None:
        self._container = container
        self._actions: dict[str, dict[str, RegisteredAction]] = {}

    def register(self, type: str, reducers: Mapping[str, Reducer]) -> dict[str, ActionCreator]:
        if not isinstance(type, str):
            raise StoreArgumentError("Type must be a string")
        if not isinstance(reducers, Mapping):
            raise StoreArgumentError("Reducers must be an object")

        registered: dict[str, RegisteredAction] = {}
        for name, reducer in reducers.items():
            if not isinstance(name, str) or not name:
                raise StoreArgumentError("Action names must be non-empty strings")
            if not callable(reducer):
                raise StoreArgumentError(f"Reducer {name!r} must be a function")
            registered[name] = RegisteredAction(name=name, reducer=reducer, creator=_make_creator(name))

        # Re-registering a type adds to (and overrides within) the existing set.
        self._actions.setdefault(type, {}).update(registered)
        _logger.debug("Registered actions %s for %s", sorted(registered), type)

        return {creator_name(name): action.creator for name, action in registered.items()}

    def action_names(self, type: str) -> list[str]:
        return list(self._actions.get(type, {}))

    def dispatch(self, type: str, action: Action | Mapping[str, Any]) -> None:
        if not isinstance(type, str):
            raise StoreArgumentError("Type must be a string")
        descriptor: Action = parse_model(Action, action, "action")

        actions = self._actions.get(type)
        if actions is None:
            raise StoreLookupError("No actions found for type", type=type, name=descriptor.name)
        registered = actions.get(descriptor.name)
        if registered is None:
            raise StoreLookupError("No action found", type=type, name=descriptor.name)

        draft = self._container.select(lambda state: state)
        result = registered.reducer(draft, copy.deepcopy(descriptor.payload))
        if result is not None:
            draft = result

        _logger.debug("Dispatch %s/%s", type, descriptor.name)
        self._container.commit(type, draft)
