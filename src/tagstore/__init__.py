"""tagstore - Event-driven state container with a tag-scoped query cache."""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("tagstore")
except PackageNotFoundError:
    __version__ = "0+local"
from tagstore._transport import HttpTransport, Transport
from tagstore.actions import ActionRegistry
from tagstore.bus import EventBus, Listener, Subscription
from tagstore.config import StoreConfig
from tagstore.exceptions import (
    StoreArgumentError,
    StoreConfigError,
    StoreError,
    StoreLookupError,
    StoreTransportError,
)
from tagstore.models import Action, EndpointRequest, SliceSpec
from tagstore.persistence import JsonFileStorage, MemoryStorage, PersistenceBridge, StorageBackend
from tagstore.query import QueryCache, QueryHandle
from tagstore.state.container import StateContainer
from tagstore.state.events import EventKind, QueryChanged, QueryFetching, StateChanged
from tagstore.state.policy import CacheMatch
from tagstore.store import Store

__all__ = [
    "__version__",
    "Action",
    "ActionRegistry",
    "CacheMatch",
    "EndpointRequest",
    "EventBus",
    "EventKind",
    "HttpTransport",
    "JsonFileStorage",
    "Listener",
    "MemoryStorage",
    "PersistenceBridge",
    "QueryCache",
    "QueryChanged",
    "QueryFetching",
    "QueryHandle",
    "SliceSpec",
    "StateChanged",
    "StateContainer",
    "StorageBackend",
    "Store",
    "StoreArgumentError",
    "StoreConfig",
    "StoreConfigError",
    "StoreError",
    "StoreLookupError",
    "StoreTransportError",
    "Subscription",
    "Transport",
]
