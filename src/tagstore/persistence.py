"""Persist the state tree into a key/value store.

Backends only move strings around; :class:`PersistenceBridge` owns the JSON
encoding and the listener that re-persists the tree after every change.
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Any, Protocol

from tagstore.bus import EventBus, Listener
from tagstore.config import DEFAULT_PERSISTENCE_KEY
from tagstore.exceptions import StoreArgumentError, StoreError
from tagstore.state.container import StateContainer
from tagstore.state.events import EventKind

_logger = logging.getLogger(__name__)

#: Runs after user listeners so they observe the change before it is written.
PERSIST_LISTENER_PRIORITY = 100


class StorageBackend(Protocol):
    """String-keyed storage for serialized blobs."""

    def get_item(self, key: str) -> str | None:
        ...

    def set_item(self, key: str, value: str) -> None:
        ...

    def remove_item(self, key: str) -> None:
        ...


class MemoryStorage:
    """Process-local backend; everything is lost when the process exits."""

    def __init__(self) -> None:
        self._items: dict[str, str] = {}

    def get_item(self, key: str) -> str | None:
        return self._items.get(key)

    def set_item(self, key: str, value: str) -> None:
        self._items[key] = value

    def remove_item(self, key: str) -> None:
        self._items.pop(key, None)

    def __len__(self) -> int:
        return len(self._items)


class JsonFileStorage:
    """Backend keeping every key in a single JSON document on disk.

    Writes go to a temporary file that is then renamed over the target.
    """

    def __init__(self, path: str | os.PathLike[str]) -> None:
        self._path = Path(path)

    @property
    def path(self) -> Path:
        return self._path

    def _read(self) -> dict[str, str]:
        try:
            text = self._path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return {}
        if not text.strip():
            return {}
        try:
            items = json.loads(text)
        except json.JSONDecodeError as exc:
            raise StoreError(f"Storage file {self._path} is not valid JSON") from exc
        if not isinstance(items, dict):
            raise StoreError(f"Storage file {self._path} does not hold an object")
        return items

    def _write(self, items: dict[str, str]) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp = tempfile.mkstemp(dir=self._path.parent, prefix=f".{self._path.name}.", suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                json.dump(items, handle)
            os.replace(tmp, self._path)
        except BaseException:
            Path(tmp).unlink(missing_ok=True)
            raise

    def get_item(self, key: str) -> str | None:
        return self._read().get(key)

    def set_item(self, key: str, value: str) -> None:
        items = self._read()
        items[key] = value
        self._write(items)

    def remove_item(self, key: str) -> None:
        items = self._read()
        if items.pop(key, None) is not None:
            self._write(items)


def _check_key(key: Any) -> None:
    if not isinstance(key, str):
        raise StoreArgumentError("Key must be a string")


class PersistenceBridge:
    """JSON mirror of the state tree in a :class:`StorageBackend`."""

    def __init__(self, storage: StorageBackend, key: str = DEFAULT_PERSISTENCE_KEY) -> None:
        _check_key(key)
        self._storage = storage
        self._key = key
        self._attached: tuple[EventBus, Listener] | None = None

    @property
    def key(self) -> str:
        return self._key

    @property
    def attached(self) -> bool:
        return self._attached is not None

    def get(self, key: str) -> Any:
        """Return the decoded value stored under *key*, or ``None``."""
        _check_key(key)
        raw = self._storage.get_item(key)
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except json.JSONDecodeError as exc:
            raise StoreError(f"Stored value for {key!r} is not valid JSON") from exc

    def set(self, key: str, value: Any) -> None:
        _check_key(key)
        try:
            encoded = json.dumps(value)
        except (TypeError, ValueError) as exc:
            raise StoreArgumentError(f"Value for {key!r} can't be serialized: {exc}") from exc
        self._storage.set_item(key, encoded)

    def remove(self, key: str) -> None:
        _check_key(key)
        self._storage.remove_item(key)

    def load_state(self) -> dict[str, Any] | None:
        stored = self.get(self._key)
        if stored is None:
            return None
        if not isinstance(stored, dict):
            _logger.warning("Ignoring stored state under %r: not an object", self._key)
            return None
        return stored

    def save_state(self, state: dict[str, Any]) -> None:
        self.set(self._key, state)
        _logger.debug("Persisted state under %r (%d slices)", self._key, len(state))

    def attach(self, bus: EventBus, container: StateContainer) -> None:
        """Re-persist the full tree on every ``stateChange``."""
        if self._attached is not None:
            return

        def _persist(_event: Any) -> None:
            self.save_state(container.snapshot())

        listener = bus.add_listener(EventKind.STATE_CHANGE, _persist, priority=PERSIST_LISTENER_PRIORITY)
        self._attached = (bus, listener)

    def detach(self) -> None:
        if self._attached is None:
            return
        bus, listener = self._attached
        bus.discard(EventKind.STATE_CHANGE, listener)
        self._attached = None
