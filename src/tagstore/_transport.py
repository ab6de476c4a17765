"""HTTP transport for query endpoints."""

from __future__ import annotations

import json
import logging
from typing import Any, Protocol

import aiohttp

from tagstore.exceptions import StoreTransportError

_logger = logging.getLogger(__name__)


class Transport(Protocol):
    """Structural transport interface used by the query cache.

    Tests pass doubles implementing this protocol; production code uses
    :class:`HttpTransport`.
    """

    async def get_json(self, url: str) -> Any:
        ...


def _error_message(body: Any, fallback: str) -> str:
    if isinstance(body, dict):
        message = body.get("message")
        if isinstance(message, str) and message:
            return message
    return fallback


class HttpTransport:
    """GET-and-decode-JSON transport over an ``aiohttp`` session."""

    def __init__(
        self,
        http_session: aiohttp.ClientSession,
        *,
        timeout: float = 30.0,
        headers: dict[str, str] | None = None,
    ) -> None:
        self._http = http_session
        self._timeout = aiohttp.ClientTimeout(total=timeout)
        self._headers = {"accept": "application/json", **(headers or {})}

    async def get_json(self, url: str) -> Any:
        _logger.debug("GET %s", url)

        try:
            async with self._http.get(url, headers=self._headers, timeout=self._timeout) as resp:
                text = await resp.text()
                status = resp.status
        except aiohttp.ClientError as exc:
            raise StoreTransportError(f"Request to {url} failed: {exc}", url=url) from exc
        except TimeoutError as exc:
            raise StoreTransportError(f"Request to {url} timed out", url=url) from exc

        try:
            body = json.loads(text) if text.strip() else None
        except json.JSONDecodeError as exc:
            if not 200 <= status < 300:
                raise StoreTransportError(
                    f"HTTP {status} from {url}: {text[:200]}",
                    status_code=status,
                    url=url,
                ) from exc
            raise StoreTransportError(
                f"Invalid JSON from {url}: {text[:200]}",
                status_code=status,
                url=url,
            ) from exc

        if not 200 <= status < 300:
            raise StoreTransportError(
                _error_message(body, f"HTTP {status} from {url}"),
                status_code=status,
                url=url,
            )

        return body
