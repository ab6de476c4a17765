#!/usr/bin/env python3
"""Console demo of a counter slice plus a products query slice.

The products slice is backed by a JSON API exposing ``/products`` and
``/products/<id>`` (``https://dummyjson.com`` by default). Every state change
is printed; ``--poll`` keeps refreshing the product list until interrupted.

Examples::

    python scripts/products_demo.py --product 3
    python scripts/products_demo.py --persist ~/.cache/tagstore-demo.json --poll 5
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import Any

_repo = Path(__file__).resolve().parent.parent
_src = _repo / "src"
if _src.is_dir():
    sys.path.insert(0, str(_src))

from tagstore import StateChanged, Store, StoreConfig, StoreTransportError  # noqa: E402


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[0])
    parser.add_argument("--host", default="https://dummyjson.com", help="API base URL")
    parser.add_argument("--product", type=int, default=1, help="product id to load as 'current'")
    parser.add_argument("--poll", type=float, default=0.0, help="poll the product list every N seconds")
    parser.add_argument("--persist", default=None, help="JSON file to persist state into")
    parser.add_argument("--verbose", "-v", action="store_true", help="enable debug logging")
    return parser.parse_args(argv)


def _print_change(event: StateChanged) -> None:
    tag = f"/{event.tag_type}" if event.tag_type else ""
    value = event.state.get(event.type)
    print(f"[{event.type}{tag}] {json.dumps(value)[:160]}")


def _increment(state: dict[str, Any], amount: int) -> None:
    state["counter"] += amount


def _decrement(state: dict[str, Any], amount: int) -> None:
    state["counter"] -= amount


async def _run(args: argparse.Namespace) -> int:
    config = StoreConfig.from_env(
        use_persistence=args.persist is not None,
        storage_path=args.persist,
    )

    async with Store(config=config) as store:
        store.use({"name": "counter", "initialState": 0}, {"name": "products", "initialState": {}})
        store.watch(["counter", "products"], _print_change)

        counter = store.register_action("counter", {"increment": _increment, "decrement": _decrement})
        products = store.register_query(
            "products",
            args.host,
            {
                "getProducts": lambda limit: {"query": f"/products?limit={limit}", "tagType": "all"},
                "getProduct": lambda product_id: {
                    "query": f"/products/{product_id}",
                    "tagType": "current",
                    "cacheLogic": {"id": product_id},
                },
            },
        )

        store.dispatch("counter", counter["use_increment"](5))
        store.dispatch("counter", counter["use_decrement"](2))

        try:
            await store.listen(
                lambda: products["use_get_product"](args.product),
                on_fetching=lambda event: print(f"fetching {event.url}"),
                on_success=lambda state: print(f"products cache now holds {sorted(state)}"),
            )
            # Served from the cache: the id did not change.
            await products["use_get_product"](args.product)

            handle = await products["use_get_products"](
                5,
                selector=lambda data: data.get("products"),
                polling_interval=args.poll,
            )
        except StoreTransportError as exc:
            print(f"request failed: {exc}", file=sys.stderr)
            return 1

        if handle.polling:
            print(f"polling every {args.poll}s, Ctrl+C to stop")
            try:
                await asyncio.Event().wait()
            finally:
                handle.stop()

        print(json.dumps(store.select(lambda state: state["counter"])))
    return 0


def main(argv: list[str] | None = None) -> int:
    args = _parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    try:
        return asyncio.run(_run(args))
    except KeyboardInterrupt:
        return 130


if __name__ == "__main__":
    raise SystemExit(main())
