"""Remote queries backed by a tag-scoped cache.

A query slice is registered with a host and a set of endpoints. Each endpoint
turns a payload into a request path, a tag (the cache partition within the
slice) and optionally ``cache_logic``: field/value pairs that tell whether a
cached value already answers the request.

Flow of a fetch:

1. resolve the endpoint request
2. run the cache-hit test (skipped with ``force``); on a hit, re-emit the
   cached snapshot as ``queryChange`` and stop
3. otherwise GET ``host + query``, project the body through ``selector``,
   store it in both the live slice and the cache, then emit ``stateChange``
   followed by ``queryChange``
"""

from __future__ import annotations

import asyncio
import copy
import logging
from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass
from typing import Any

from tagstore._transport import Transport
from tagstore.bus import EventBus
from tagstore.exceptions import StoreArgumentError, StoreError, StoreLookupError, StoreTransportError
from tagstore.models import EndpointRequest, creator_name, parse_model
from tagstore.state.container import StateContainer
from tagstore.state.events import EventKind, QueryChanged, QueryFetching
from tagstore.state.policy import CacheMatch, is_cache_hit

_logger = logging.getLogger(__name__)

EndpointCallback = Callable[[Any], Mapping[str, Any] | EndpointRequest]
Selector = Callable[[Any], Any]
QueryHook = Callable[..., Awaitable["QueryHandle"]]


@dataclass(frozen=True, slots=True)
class RegisteredEndpoint:
    name: str
    host: str
    callback: EndpointCallback


class QueryHandle:
    """Result of calling a query hook.

    Keeps the payload and options of the call so :meth:`refetch` repeats it,
    and owns the polling task when one was requested.
    """

    def __init__(
        self,
        cache: QueryCache,
        type: str,
        name: str,
        payload: Any,
        *,
        selector: Selector | None,
        force: bool,
    ) -> None:
        self._cache = cache
        self.type = type
        self.name = name
        self.payload = payload
        self._selector = selector
        self._force = force
        self.tag_type: str | None = None
        self._task: asyncio.Task[None] | None = None

    def __repr__(self) -> str:
        return f"QueryHandle({self.type}/{self.name}, tag_type={self.tag_type!r}, polling={self.polling})"

    @property
    def polling(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def data(self) -> Any:
        """Latest cached value for this handle's tag (``None`` before the first fetch)."""
        if self.tag_type is None:
            return None
        return self._cache.cached(self.type).get(self.tag_type)

    async def refetch(self) -> Any:
        self.tag_type = await self._cache.fetch(
            self.type,
            self.name,
            self.payload,
            selector=self._selector,
            force=self._force,
        )
        return self.data

    def start_polling(self, interval: float) -> None:
        if self.polling:
            return
        self._task = asyncio.create_task(self._poll(interval), name=f"tagstore-poll-{self.type}-{self.name}")
        self._cache._pollers.add(self)

    def stop(self) -> None:
        """Cancel the polling task, if any."""
        task = self._task
        self._task = None
        self._cache._pollers.discard(self)
        if task is not None and not task.done():
            task.cancel()
            _logger.debug("Stopped polling %s/%s", self.type, self.name)

    async def aclose(self) -> None:
        task = self._task
        self.stop()
        if task is None:
            return
        try:
            await task
        except asyncio.CancelledError:
            pass
        except Exception:
            _logger.warning("Poller for %s/%s had stopped with an error", self.type, self.name, exc_info=True)

    async def _poll(self, interval: float) -> None:
        while True:
            await asyncio.sleep(interval)
            try:
                await self.refetch()
            except StoreTransportError as exc:
                # No backoff: the next tick tries again.
                _logger.warning("Polling %s/%s failed: %s", self.type, self.name, exc)
            except Exception:
                _logger.warning("Polling %s/%s failed", self.type, self.name, exc_info=True)


class QueryCache:
    """Registry of remote endpoints plus the cache of their results."""

    def __init__(
        self,
        container: StateContainer,
        bus: EventBus,
        transport: Transport | Callable[[], Transport],
        *,
        cache_match: CacheMatch = CacheMatch.ALL,
    ) -> None:
        self._container = container
        self._bus = bus
        self._transport = transport
        self._cache_match = CacheMatch(cache_match)
        self._endpoints: dict[str, dict[str, RegisteredEndpoint]] = {}
        self._cache: dict[str, dict[str, Any]] = {}
        self._pollers: set[QueryHandle] = set()

    @property
    def cache_match(self) -> CacheMatch:
        return self._cache_match

    def _require_transport(self) -> Transport:
        transport = self._transport
        if hasattr(transport, "get_json"):
            return transport  # type: ignore[return-value]
        return transport()  # type: ignore[operator]

    # ------------------------------------------------------------------
    # Registration
    # ------------------------------------------------------------------

    def register(
        self,
        type: str,
        host: str,
        endpoints: Mapping[str, EndpointCallback],
    ) -> dict[str, QueryHook]:
        if not isinstance(type, str):
            raise StoreArgumentError("Type must be a string")
        if not isinstance(host, str):
            raise StoreArgumentError("Host must be a string")
        if not isinstance(endpoints, Mapping):
            raise StoreArgumentError("Endpoints must be an object")

        registered: dict[str, RegisteredEndpoint] = {}
        for name, callback in endpoints.items():
            if not isinstance(name, str) or not name:
                raise StoreArgumentError("Endpoint names must be non-empty strings")
            if not callable(callback):
                raise StoreArgumentError(f"Endpoint {name!r} must be a function")
            registered[name] = RegisteredEndpoint(name=name, host=host, callback=callback)

        self._endpoints.setdefault(type, {}).update(registered)
        _logger.debug("Registered endpoints %s for %s at %s", sorted(registered), type, host)

        return {creator_name(name): self._make_hook(type, name) for name in registered}

    def endpoint_names(self, type: str) -> list[str]:
        return list(self._endpoints.get(type, {}))

    def _make_hook(self, type: str, name: str) -> QueryHook:
        async def hook(
            payload: Any = None,
            *,
            selector: Selector | None = None,
            force: bool = False,
            polling_interval: float = 0,
        ) -> QueryHandle:
            return await self.run(
                type,
                name,
                payload,
                selector=selector,
                force=force,
                polling_interval=polling_interval,
            )

        hook.__name__ = creator_name(name)
        hook.__qualname__ = hook.__name__
        return hook

    def _endpoint(self, type: str, name: str) -> RegisteredEndpoint:
        endpoints = self._endpoints.get(type)
        if endpoints is None:
            raise StoreLookupError("No queries found for type", type=type, name=name)
        endpoint = endpoints.get(name)
        if endpoint is None:
            raise StoreLookupError("No query found", type=type, name=name)
        return endpoint

    # ------------------------------------------------------------------
    # Fetching
    # ------------------------------------------------------------------

    async def run(
        self,
        type: str,
        name: str,
        payload: Any = None,
        *,
        selector: Selector | None = None,
        force: bool = False,
        polling_interval: float = 0,
    ) -> QueryHandle:
        """Fetch once, then keep polling when ``polling_interval > 0`` (seconds).

        An error on the first fetch propagates and no poller is started.
        """
        if selector is not None and not callable(selector):
            raise StoreArgumentError("Selector must be a function")
        if not isinstance(force, bool):
            raise StoreArgumentError("Force must be a boolean")
        if isinstance(polling_interval, bool) or not isinstance(polling_interval, (int, float)):
            raise StoreArgumentError("PollingInterval must be a number")
        if polling_interval < 0:
            raise StoreArgumentError("PollingInterval can't be negative")
        self._endpoint(type, name)

        handle = QueryHandle(self, type, name, payload, selector=selector, force=force)
        await handle.refetch()
        if polling_interval > 0:
            handle.start_polling(float(polling_interval))
        return handle

    async def fetch(
        self,
        type: str,
        name: str,
        payload: Any = None,
        *,
        selector: Selector | None = None,
        force: bool = False,
    ) -> str:
        """Run one fetch cycle and return the tag it resolved to."""
        endpoint = self._endpoint(type, name)
        request: EndpointRequest = parse_model(EndpointRequest, endpoint.callback(payload), "endpoint request")
        tag_type = request.tag_type

        entries = self._cache.get(type, {})
        if not force and is_cache_hit(
            has_entry=tag_type in entries,
            cached=entries.get(tag_type),
            cache_logic=request.cache_logic,
            match=self._cache_match,
        ):
            _logger.debug("Cache hit for %s/%s %s", type, tag_type, request.cache_logic)
            self._bus.emit(
                EventKind.QUERY_CHANGE,
                QueryChanged(type=type, tag_type=tag_type, state=copy.deepcopy(entries)),
            )
            return tag_type

        url = f"{endpoint.host}{request.query}"
        self._bus.emit(EventKind.QUERY_FETCH, QueryFetching(type=type, tag_type=tag_type, url=url))

        transport = self._require_transport()
        try:
            data = await transport.get_json(url)
        except StoreError:
            raise
        except Exception as exc:
            raise StoreTransportError(str(exc) or f"Request to {url} failed", url=url) from exc

        partial = selector(data) if selector is not None else None
        value = data if partial is None else partial

        self._cache.setdefault(type, {})[tag_type] = copy.deepcopy(value)
        self._container.set_tag(type, tag_type, value)

        self._container.announce(type, tag_type)
        self._bus.emit(
            EventKind.QUERY_CHANGE,
            QueryChanged(type=type, tag_type=tag_type, state=self._container.get_slice(type)),
        )
        return tag_type

    # ------------------------------------------------------------------
    # Cache access
    # ------------------------------------------------------------------

    def cached(self, type: str | None = None) -> dict[str, Any]:
        """Snapshot of the cache, for one slice or all of them."""
        if type is None:
            return copy.deepcopy(self._cache)
        return copy.deepcopy(self._cache.get(type, {}))

    def clear(self, type: str | None = None) -> None:
        """Drop cache entries so the next call goes to the network.

        Live state is left untouched.
        """
        if type is None:
            self._cache.clear()
        else:
            self._cache.pop(type, None)

    @property
    def pollers(self) -> list[QueryHandle]:
        return list(self._pollers)

    async def aclose(self) -> None:
        """Stop and await every active poller."""
        for handle in list(self._pollers):
            await handle.aclose()
