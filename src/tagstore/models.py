"""Descriptor models passed across the public API.

Every model inherits from :class:`StoreModel`, which accepts both camelCase
keys (``tagType``, ``cacheLogic``, ``initialState``) and snake_case field
names, so descriptors written as plain dicts in either style validate.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from pydantic import BaseModel, ConfigDict, ValidationError, field_validator
from pydantic.alias_generators import to_camel, to_snake

from tagstore.exceptions import StoreArgumentError


class StoreModel(BaseModel):
    model_config = ConfigDict(
        frozen=True,
        extra="forbid",
        populate_by_name=True,
        alias_generator=to_camel,
    )


class Action(StoreModel):
    """Run-time action descriptor consumed by ``dispatch``."""

    name: str
    payload: Any = None


class EndpointRequest(StoreModel):
    """What an endpoint callback resolves a payload into."""

    query: str
    tag_type: str
    cache_logic: dict[str, Any] | None = None

    @field_validator("tag_type")
    @classmethod
    def _tag_non_empty(cls, value: str) -> str:
        if not value:
            raise ValueError("tagType must be non-empty")
        return value


class SliceSpec(StoreModel):
    """A named slice and its initializer, as passed to ``use``."""

    name: str
    initial_state: Any

    @field_validator("initial_state")
    @classmethod
    def _initial_state_defined(cls, value: Any) -> Any:
        if value is None:
            raise ValueError("Initial state can't be undefined")
        return value


def creator_name(name: str) -> str:
    """``"addItem"`` -> ``"use_add_item"``."""
    return f"use_{to_snake(name)}"


def parse_model(model: type[StoreModel], value: Any, what: str) -> Any:
    """Validate *value* into *model*, raising :class:`StoreArgumentError`."""
    if isinstance(value, model):
        return value
    if not isinstance(value, Mapping):
        raise StoreArgumentError(f"{what} must be a mapping or {model.__name__}, got {type(value).__name__}")
    try:
        return model.model_validate(dict(value))
    except ValidationError as exc:
        raise StoreArgumentError(f"Invalid {what}: {exc}") from exc
