"""Store configuration for tagstore."""

from __future__ import annotations

import dataclasses
import os
from typing import Any

from tagstore.exceptions import StoreConfigError
from tagstore.state.policy import CacheMatch

#: Storage key the whole state tree is persisted under.
DEFAULT_PERSISTENCE_KEY = "StoreState"


def _env_bool(value: str | None, default: bool) -> bool:
    if value is None:
        return default
    normalized = value.strip().lower()
    if normalized in {"1", "true", "yes", "y", "on"}:
        return True
    if normalized in {"0", "false", "no", "n", "off"}:
        return False
    return default


@dataclasses.dataclass(frozen=True)
class StoreConfig:
    """Store configuration.

    Parameters
    ----------
    use_persistence : bool
        Mirror the state tree into the storage backend and hydrate from it
        at construction.
    persistence_key : str
        Key the full state tree is stored under.
    cache_match : CacheMatch
        How ``cacheLogic`` fields are compared against a cached value.
        ``ALL`` needs every field to match, ``ANY`` is satisfied by one.
    request_timeout : float
        Total timeout in seconds for a single HTTP GET.
    storage_path : str or None
        File used by :class:`tagstore.persistence.JsonFileStorage`. When
        ``None`` an in-memory backend is used.
    """

    use_persistence: bool = False
    persistence_key: str = DEFAULT_PERSISTENCE_KEY
    cache_match: CacheMatch = CacheMatch.ALL
    request_timeout: float = 30.0
    storage_path: str | None = None

    def __post_init__(self) -> None:
        if not isinstance(self.use_persistence, bool):
            raise StoreConfigError("use_persistence must be a boolean")
        if not isinstance(self.persistence_key, str) or not self.persistence_key.strip():
            raise StoreConfigError("persistence_key must be a non-empty string")
        if isinstance(self.request_timeout, bool) or not isinstance(self.request_timeout, (int, float)):
            raise StoreConfigError("request_timeout must be a number")
        if self.request_timeout <= 0:
            raise StoreConfigError("request_timeout must be positive")
        try:
            object.__setattr__(self, "cache_match", CacheMatch(self.cache_match))
        except ValueError as exc:
            raise StoreConfigError(f"Unknown cache_match: {self.cache_match!r}") from exc

    @classmethod
    def from_env(cls, **overrides: Any) -> StoreConfig:
        """Create configuration from ``TAGSTORE_*`` environment variables.

        Explicit keyword arguments override environment values.
        """
        env = os.environ
        config_kwargs: dict[str, Any] = {}

        if "use_persistence" not in overrides:
            config_kwargs["use_persistence"] = _env_bool(env.get("TAGSTORE_USE_PERSISTENCE"), False)

        key = env.get("TAGSTORE_PERSISTENCE_KEY")
        if key is not None:
            config_kwargs["persistence_key"] = key

        match = env.get("TAGSTORE_CACHE_MATCH")
        if match is not None:
            config_kwargs["cache_match"] = match.strip().lower()

        timeout_env = env.get("TAGSTORE_REQUEST_TIMEOUT")
        if timeout_env is not None and "request_timeout" not in overrides:
            try:
                config_kwargs["request_timeout"] = float(timeout_env)
            except ValueError as exc:
                raise StoreConfigError(f"TAGSTORE_REQUEST_TIMEOUT is not a number: {timeout_env!r}") from exc

        path = env.get("TAGSTORE_STORAGE_PATH")
        if path:
            config_kwargs["storage_path"] = path

        config_kwargs.update(overrides)

        return cls(**config_kwargs)
