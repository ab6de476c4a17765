from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Any

import pytest

from tagstore.config import StoreConfig
from tagstore.exceptions import StoreArgumentError, StoreError, StoreLookupError, StoreTransportError
from tagstore.persistence import MemoryStorage
from tagstore.state.events import QueryChanged, QueryFetching, StateChanged
from tagstore.state.policy import CacheMatch
from tagstore.store import Store

HOST = "https://dummyjson.test"


@dataclass
class FakeTransport:
    responses: dict[str, Any] = field(default_factory=dict)
    calls: list[str] = field(default_factory=list)

    async def get_json(self, url: str) -> Any:
        self.calls.append(url)
        response = self.responses[url]
        if isinstance(response, Exception):
            raise response
        return response


def _products_store(**kwargs: Any) -> tuple[Store, FakeTransport, dict[str, Any]]:
    transport = FakeTransport(
        responses={
            f"{HOST}/products": {"products": [{"id": 1}, {"id": 2}]},
            f"{HOST}/products/2": {"id": 2, "title": "Tablet"},
            f"{HOST}/products/404": StoreTransportError("Product with id '404' not found", status_code=404),
        }
    )
    store = Store(transport=transport, **kwargs)
    hooks = store.register_query(
        "products",
        HOST,
        {
            "getProducts": lambda _: {"query": "/products", "tagType": "all"},
            "getProduct": lambda product_id: {
                "query": f"/products/{product_id}",
                "tagType": "current",
                "cacheLogic": {"id": product_id},
            },
        },
    )
    return store, transport, hooks


def test_counter_flow() -> None:
    store = Store({"counter": 0})
    creators = store.register_action("counter", {"increment": lambda state, amount: state.update(counter=state["counter"] + amount)})

    store.dispatch("counter", creators["use_increment"](3))
    store.mutate("counter", None, lambda value: value * 10)

    assert store.select(lambda state: state["counter"]) == 30
    assert store.state == {"counter": 30}


def test_on_change_receives_full_state() -> None:
    seen: list[dict[str, Any]] = []
    store = Store({"counter": 1}, seen.append)

    store.mutate("counter", None, lambda value: value + 1)

    assert seen == [{"counter": 2}]


def test_callback_only_constructor() -> None:
    seen: list[dict[str, Any]] = []
    store = Store(seen.append)
    store.use({"name": "theme", "initialState": "light"})

    store.mutate("theme", None, lambda _: "dark")

    assert seen == [{"theme": "dark"}]


@pytest.mark.parametrize("initial", [[1], "state", 42])
def test_invalid_initial_state(initial: Any) -> None:
    with pytest.raises(StoreArgumentError):
        Store(initial)


def test_invalid_callback() -> None:
    with pytest.raises(StoreArgumentError):
        Store({}, "callback")  # type: ignore[arg-type]


def test_watch_filters_by_membership() -> None:
    store = Store({"a": 0, "b": 0, "c": 0})
    seen: list[StateChanged] = []
    store.watch(["a", "b"], seen.append)

    store.mutate("c", None, lambda value: value + 1)
    assert seen == []

    store.mutate("a", "tag", lambda value: value + 1)
    assert len(seen) == 1
    assert seen[0].type == "a"
    assert seen[0].tag_type == "tag"
    assert seen[0].state == {"a": 1, "b": 0, "c": 1}


def test_watch_single_type_and_cancel() -> None:
    store = Store({"a": 0, "b": 0})
    seen: list[str] = []
    subscription = store.watch("b", lambda event: seen.append(event.type))

    store.mutate("a", None, lambda value: value + 1)
    store.mutate("b", None, lambda value: value + 1)
    subscription.cancel()
    store.mutate("b", None, lambda value: value + 1)

    assert seen == ["b"]


def test_watch_rejects_bad_type() -> None:
    with pytest.raises(StoreArgumentError):
        Store().watch(5, print)  # type: ignore[arg-type]


def test_state_change_payload_uses_camel_case_aliases() -> None:
    store = Store({"a": 0})
    dumped: list[dict[str, Any]] = []
    store.watch("a", lambda event: dumped.append(event.model_dump(by_alias=True)))

    store.mutate("a", "all", lambda value: value + 1)

    assert dumped == [{"type": "a", "tagType": "all", "state": {"a": 1}}]


def test_user_defined_events() -> None:
    store = Store()
    seen: list[Any] = []
    store.add_listener("toast", seen.append, once=True)

    store.emit("toast", "saved")
    store.emit("toast", "ignored")

    assert seen == ["saved"]
    store.remove_listener("toast", seen.append)


def test_dispatch_unknown_type_does_not_notify() -> None:
    seen: list[Any] = []
    store = Store({"counter": 0}, seen.append)

    with pytest.raises(StoreLookupError):
        store.dispatch("unknown", {"name": "x"})

    assert seen == []
    assert store.state == {"counter": 0}


@pytest.mark.asyncio
async def test_listen_reports_success_and_fetching() -> None:
    store, transport, hooks = _products_store()
    loading: list[bool] = []
    fetching: list[QueryFetching] = []
    successes: list[Any] = []

    subscription = await store.listen(
        lambda: hooks["use_get_products"](),
        on_loading=lambda: loading.append(True),
        on_fetching=fetching.append,
        on_success=successes.append,
    )

    assert loading == [True]
    assert [event.url for event in fetching] == [f"{HOST}/products"]
    assert successes == [{"all": {"products": [{"id": 1}, {"id": 2}]}}]
    assert subscription.result.tag_type == "all"
    subscription.cancel()

    await hooks["use_get_products"]()
    assert len(successes) == 1
    assert transport.calls == [f"{HOST}/products", f"{HOST}/products"]


@pytest.mark.asyncio
async def test_listen_calls_on_error_for_empty_query_state() -> None:
    store = Store()
    errors: list[bool] = []
    successes: list[Any] = []

    async def query() -> None:
        store.emit("queryChange", QueryChanged(type="products", tag_type="all", state=None))

    await store.listen(query, on_error=lambda: errors.append(True), on_success=successes.append)

    assert errors == [True]
    assert successes == []


@pytest.mark.asyncio
async def test_listen_propagates_transport_errors() -> None:
    store, _, hooks = _products_store()

    with pytest.raises(StoreTransportError, match="not found"):
        await store.listen(lambda: hooks["use_get_product"](404), on_success=print)


@pytest.mark.asyncio
async def test_listen_validates_callbacks() -> None:
    store = Store()
    with pytest.raises(StoreArgumentError):
        await store.listen("query")  # type: ignore[arg-type]
    with pytest.raises(StoreArgumentError):
        await store.listen(lambda: None, on_success="yes")  # type: ignore[arg-type]


@pytest.mark.asyncio
async def test_query_results_feed_state_and_cache() -> None:
    store, transport, hooks = _products_store()

    await hooks["use_get_product"](2)
    await hooks["use_get_product"](2)

    assert store.state == {"products": {"current": {"id": 2, "title": "Tablet"}}}
    assert store.cache == {"products": {"current": {"id": 2, "title": "Tablet"}}}
    assert transport.calls == [f"{HOST}/products/2"]


@pytest.mark.asyncio
async def test_cache_match_comes_from_config() -> None:
    store, _, _ = _products_store(config=StoreConfig(cache_match=CacheMatch.ANY))
    assert store.queries.cache_match == CacheMatch.ANY


@pytest.mark.asyncio
async def test_query_without_transport_needs_context_manager() -> None:
    store = Store()
    hooks = store.register_query("products", HOST, {"getProducts": lambda _: {"query": "/products", "tagType": "all"}})

    with pytest.raises(StoreError, match="no transport"):
        await hooks["use_get_products"]()


@pytest.mark.asyncio
async def test_context_manager_stops_pollers() -> None:
    store, _, hooks = _products_store()

    async with store:
        handle = await hooks["use_get_products"](polling_interval=0.01)
        assert handle.polling

    assert not handle.polling
    assert store.queries.pollers == []


@pytest.mark.asyncio
async def test_context_manager_owns_http_session() -> None:
    store = Store()
    async with store:
        assert store._http_session is not None  # noqa: SLF001
        session = store._http_session  # noqa: SLF001
    assert session.closed


def test_persistence_round_trip_across_construction() -> None:
    storage = MemoryStorage()
    config = StoreConfig(use_persistence=True, persistence_key="demo")

    first = Store({"counter": 0}, config=config, storage=storage)
    first.use({"name": "theme", "initialState": "light"})
    first.mutate("counter", None, lambda value: value + 5)
    first.mutate("theme", None, lambda _: "dark")
    expected = first.state

    second = Store({"counter": 0}, config=config, storage=storage)
    second.use({"name": "theme", "initialState": "light"})

    assert second.state == expected == {"counter": 5, "theme": "dark"}


def test_set_options_enables_and_disables_persistence() -> None:
    storage = MemoryStorage()
    store = Store({"counter": 1}, storage=storage)

    assert store.set_options(use_persistence=True) is store
    assert store.persistence.load_state() == {"counter": 1}

    store.mutate("counter", None, lambda value: value + 1)
    assert store.persistence.load_state() == {"counter": 2}

    store.set_options(use_persistence=False)
    store.mutate("counter", None, lambda value: value + 1)
    assert store.persistence.load_state() == {"counter": 2}


def test_set_options_hydrates_from_storage() -> None:
    storage = MemoryStorage()
    storage.set_item("StoreState", '{"counter": 9}')
    store = Store({"counter": 0, "other": True}, storage=storage)

    store.set_options(use_persistence=True)

    assert store.state == {"counter": 9, "other": True}


def test_set_options_rejects_non_bool() -> None:
    with pytest.raises(StoreArgumentError):
        Store().set_options(use_persistence="yes")  # type: ignore[arg-type]


@pytest.mark.asyncio
async def test_context_exit_closes_session_after_poller_died() -> None:
    store = Store()
    async with store:
        session = store._http_session  # noqa: SLF001
        store._transport = FakeTransport(responses={f"{HOST}/products": {"products": []}})  # noqa: SLF001
        hooks = store.register_query("products", HOST, {"getProducts": lambda _: {"query": "/products", "tagType": "all"}})
        handle = await hooks["use_get_products"](polling_interval=0.01)
        handle.stop()

        async def _crash() -> None:
            raise KeyError("products")

        dead = asyncio.create_task(_crash())
        await asyncio.sleep(0)
        handle._task = dead  # noqa: SLF001
        store.queries._pollers.add(handle)  # noqa: SLF001

    assert session is not None
    assert session.closed
    assert store.queries.pollers == []
