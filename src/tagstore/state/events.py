"""Change events emitted on the event bus.

Built-in event kinds form a closed enum; slice and tag names travel as data
inside the payload models.
"""

from __future__ import annotations

from enum import StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class EventKind(StrEnum):
    STATE_CHANGE = "stateChange"
    QUERY_CHANGE = "queryChange"
    QUERY_FETCH = "queryFetch"


class _EventModel(BaseModel):
    model_config = ConfigDict(
        frozen=True,
        populate_by_name=True,
        alias_generator=to_camel,
    )

    type: str
    tag_type: str | None = None


class StateChanged(_EventModel):
    """A slice was replaced; ``state`` is a snapshot of the whole tree."""

    state: dict[str, Any]


class QueryChanged(_EventModel):
    """Query data for a slice is available.

    ``state`` is a snapshot of the slice's ``tag_type -> value`` cache
    mapping, or ``None`` when nothing could be produced.
    """

    state: Any = None


class QueryFetching(_EventModel):
    """A network request is about to be issued."""

    url: str
