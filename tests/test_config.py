from __future__ import annotations

import pytest

from tagstore.config import DEFAULT_PERSISTENCE_KEY, StoreConfig
from tagstore.exceptions import StoreConfigError
from tagstore.state.policy import CacheMatch


def test_defaults() -> None:
    config = StoreConfig()
    assert config.use_persistence is False
    assert config.persistence_key == DEFAULT_PERSISTENCE_KEY == "StoreState"
    assert config.cache_match is CacheMatch.ALL
    assert config.storage_path is None


def test_from_env_reads_variables(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("TAGSTORE_USE_PERSISTENCE", "yes")
    monkeypatch.setenv("TAGSTORE_PERSISTENCE_KEY", "shop")
    monkeypatch.setenv("TAGSTORE_CACHE_MATCH", "ANY")
    monkeypatch.setenv("TAGSTORE_REQUEST_TIMEOUT", "5")
    monkeypatch.setenv("TAGSTORE_STORAGE_PATH", "/tmp/shop.json")

    config = StoreConfig.from_env()

    assert config.use_persistence is True
    assert config.persistence_key == "shop"
    assert config.cache_match is CacheMatch.ANY
    assert config.request_timeout == 5.0
    assert config.storage_path == "/tmp/shop.json"


def test_overrides_win_over_env(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("TAGSTORE_USE_PERSISTENCE", "1")
    monkeypatch.setenv("TAGSTORE_REQUEST_TIMEOUT", "5")

    config = StoreConfig.from_env(use_persistence=False, request_timeout=1.5)

    assert config.use_persistence is False
    assert config.request_timeout == 1.5


@pytest.mark.parametrize(
    "kwargs",
    [
        {"cache_match": "some"},
        {"persistence_key": ""},
        {"request_timeout": 0},
        {"request_timeout": "x"},
        {"request_timeout": True},
        {"use_persistence": "yes"},
    ],
)
def test_invalid_values_raise(kwargs: dict[str, object]) -> None:
    with pytest.raises(StoreConfigError):
        StoreConfig(**kwargs)  # type: ignore[arg-type]


def test_invalid_timeout_env(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("TAGSTORE_REQUEST_TIMEOUT", "soon")
    with pytest.raises(StoreConfigError):
        StoreConfig.from_env()
