"""Public store facade."""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable, Iterable, Mapping
from typing import Any

import aiohttp

from tagstore._transport import HttpTransport, Transport
from tagstore.actions import ActionCreator, ActionRegistry, Reducer
from tagstore.bus import Callback, EventBus, Subscription
from tagstore.config import StoreConfig
from tagstore.exceptions import StoreArgumentError, StoreError
from tagstore.models import Action, SliceSpec
from tagstore.persistence import JsonFileStorage, MemoryStorage, PersistenceBridge, StorageBackend
from tagstore.query import EndpointCallback, QueryCache, QueryHook
from tagstore.state.container import StateContainer
from tagstore.state.events import EventKind, QueryChanged, QueryFetching, StateChanged

_logger = logging.getLogger(__name__)


def _check_optional_callback(name: str, value: Any) -> None:
    if value is not None and not callable(value):
        raise StoreArgumentError(f"{name} must be a function")


class Store:
    """Event-driven state container with remote queries.

    Usage::

        async with Store({"counter": 0}) as store:
            creators = store.register_action("counter", {"increment": increment})
            store.dispatch("counter", creators["use_increment"](3))

            hooks = store.register_query("products", "https://dummyjson.com", endpoints)
            handle = await hooks["use_get_product"](7)

    Synchronous operations (``dispatch``, ``mutate``, ``select``, ``emit``)
    work without entering the context manager; queries need a transport,
    which is created from an ``aiohttp`` session on ``__aenter__`` unless one
    is passed in.
    """

    def __init__(
        self,
        initial_state: Mapping[str, Any] | Callable[[dict[str, Any]], Any] | None = None,
        on_change: Callable[[dict[str, Any]], Any] | None = None,
        *,
        config: StoreConfig | None = None,
        transport: Transport | None = None,
        storage: StorageBackend | None = None,
        http_session: aiohttp.ClientSession | None = None,
    ) -> None:
        # Store(callback) is accepted as shorthand for Store(None, callback).
        if callable(initial_state) and not isinstance(initial_state, Mapping):
            if on_change is not None:
                raise StoreArgumentError("Initial state must be an object")
            initial_state, on_change = None, initial_state
        _check_optional_callback("Callback", on_change)

        self._config = config or StoreConfig()
        self._bus = EventBus()
        self._container = StateContainer(self._bus, initial_state)

        if storage is None:
            storage = JsonFileStorage(self._config.storage_path) if self._config.storage_path else MemoryStorage()
        self._bridge = PersistenceBridge(storage, self._config.persistence_key)
        self._use_persistence = False

        self._transport = transport
        self._external_session = http_session is not None
        self._http_session = http_session

        self._actions = ActionRegistry(self._container)
        self._queries = QueryCache(
            self._container,
            self._bus,
            self._require_transport,
            cache_match=self._config.cache_match,
        )

        if on_change is not None:
            self._bus.add_listener(EventKind.STATE_CHANGE, lambda event: on_change(event.state))

        if self._config.use_persistence:
            self.set_options(use_persistence=True)

    # ------------------------------------------------------------------
    # Context manager lifecycle
    # ------------------------------------------------------------------

    async def __aenter__(self) -> Store:
        if self._transport is None and self._http_session is None:
            self._http_session = aiohttp.ClientSession()
        return self

    async def __aexit__(self, *exc: Any) -> None:
        await self._queries.aclose()
        if not self._external_session and self._http_session is not None:
            await self._http_session.close()
            self._http_session = None
            self._transport = None

    def _require_transport(self) -> Transport:
        if self._transport is None:
            if self._http_session is None:
                raise StoreError("Store has no transport. Use 'async with Store(...) as store:' or pass transport=")
            self._transport = HttpTransport(self._http_session, timeout=self._config.request_timeout)
        return self._transport

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    @property
    def config(self) -> StoreConfig:
        return self._config

    @property
    def bus(self) -> EventBus:
        return self._bus

    @property
    def persistence(self) -> PersistenceBridge:
        return self._bridge

    @property
    def state(self) -> dict[str, Any]:
        """Deep copy of the current state tree."""
        return self._container.snapshot()

    @property
    def cache(self) -> dict[str, Any]:
        """Deep copy of the query cache."""
        return self._queries.cached()

    @property
    def queries(self) -> QueryCache:
        return self._queries

    # ------------------------------------------------------------------
    # Events
    # ------------------------------------------------------------------

    def add_listener(self, type: str, callback: Callback, *, once: bool = False, priority: float = 0) -> None:
        self._bus.add_listener(type, callback, once=once, priority=priority)

    def remove_listener(self, type: str, callback: Callback) -> None:
        self._bus.remove_listener(type, callback)

    def emit(self, type: str, payload: Any = None) -> None:
        self._bus.emit(type, payload)

    # ------------------------------------------------------------------
    # Options and slices
    # ------------------------------------------------------------------

    def set_options(self, *, use_persistence: bool = False) -> Store:
        """Turn persistence on or off.

        Turning it on hydrates from storage (stored values win) or, when
        nothing is stored yet, writes the current tree.
        """
        if not isinstance(use_persistence, bool):
            raise StoreArgumentError("UseLocalStorage must be a boolean")

        if use_persistence and not self._use_persistence:
            stored = self._bridge.load_state()
            if stored is not None:
                self._container.hydrate(stored)
                _logger.debug("Hydrated %d slices from storage", len(stored))
            else:
                self._bridge.save_state(self._container.snapshot())
            self._bridge.attach(self._bus, self._container)
        elif not use_persistence and self._use_persistence:
            self._bridge.detach()

        self._use_persistence = use_persistence
        return self

    def use(self, *slices: SliceSpec | Mapping[str, Any]) -> None:
        stored = self._bridge.load_state() if self._use_persistence else None
        self._container.use(*slices, stored=stored)
        if self._use_persistence:
            self._bridge.save_state(self._container.snapshot())

    def select(self, selector: Callable[[dict[str, Any]], Any]) -> Any:
        return self._container.select(selector)

    # ------------------------------------------------------------------
    # Actions and mutation
    # ------------------------------------------------------------------

    def register_action(self, type: str, reducers: Mapping[str, Reducer]) -> dict[str, ActionCreator]:
        return self._actions.register(type, reducers)

    def dispatch(self, type: str, action: Action | Mapping[str, Any]) -> None:
        self._actions.dispatch(type, action)

    def mutate(self, type: str, tag_type: str | None, mutation: Callable[[Any], Any]) -> None:
        self._container.mutate(type, tag_type, mutation)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def register_query(self, type: str, host: str, endpoints: Mapping[str, EndpointCallback]) -> dict[str, QueryHook]:
        return self._queries.register(type, host, endpoints)

    # ------------------------------------------------------------------
    # Listening helpers
    # ------------------------------------------------------------------

    def watch(self, type: str | Iterable[str], callback: Callable[[StateChanged], Any]) -> Subscription:
        """Call *callback* for ``stateChange`` events of one or several slices."""
        if isinstance(type, str):
            types = frozenset((type,))
        elif isinstance(type, (list, tuple, set, frozenset)):
            types = frozenset(type)
        else:
            raise StoreArgumentError("Type must be a string or an array")
        if not callable(callback):
            raise StoreArgumentError("Callback must be a function")

        def _on_state_change(event: StateChanged) -> None:
            if event.type in types:
                callback(event)

        listener = self._bus.add_listener(EventKind.STATE_CHANGE, _on_state_change)
        return Subscription(self._bus, [(EventKind.STATE_CHANGE, listener)])

    async def listen(
        self,
        query: Callable[[], Awaitable[Any]],
        *,
        on_loading: Callable[[], Any] | None = None,
        on_fetching: Callable[[QueryFetching], Any] | None = None,
        on_error: Callable[[], Any] | None = None,
        on_success: Callable[[Any], Any] | None = None,
    ) -> Subscription:
        """Subscribe to ``queryChange`` and run *query* once.

        ``on_error()`` fires when an emitted query state is ``None``,
        ``on_success(state)`` otherwise. Exceptions raised by *query*
        propagate; the listeners stay registered until the returned
        subscription is cancelled.
        """
        if not callable(query):
            raise StoreArgumentError("Query must be a function")
        _check_optional_callback("OnLoading", on_loading)
        _check_optional_callback("OnFetching", on_fetching)
        _check_optional_callback("OnError", on_error)
        _check_optional_callback("OnSuccess", on_success)

        def _on_query_change(event: QueryChanged) -> None:
            if event.state is None:
                if on_error is not None:
                    on_error()
                return
            if on_success is not None:
                on_success(event.state)

        subscription = Subscription(self._bus)
        subscription.entries.append(
            (EventKind.QUERY_CHANGE, self._bus.add_listener(EventKind.QUERY_CHANGE, _on_query_change))
        )
        if on_fetching is not None:
            subscription.entries.append(
                (EventKind.QUERY_FETCH, self._bus.add_listener(EventKind.QUERY_FETCH, on_fetching))
            )

        if on_loading is not None:
            on_loading()
        subscription.result = await query()
        return subscription
